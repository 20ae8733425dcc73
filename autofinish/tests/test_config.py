"""Tests for configuration."""

import os
from unittest.mock import patch

from autofinish.config import AutoFinishConfig, RunOptions


class TestAutoFinishConfig:
    """Test AutoFinishConfig defaults and env overrides."""

    def test_defaults(self):
        """Defaults should match the documented protocol constants."""
        config = AutoFinishConfig()

        assert config.max_confirmation_attempts == 3
        assert config.confirmation_timeout_seconds == 10.0
        assert config.confirmation_retry_delay_seconds == 1.0
        assert config.confidence_threshold == 0.8
        assert config.session_timeout_seconds == 300.0
        assert config.sweep_interval_seconds == 60.0
        assert config.max_concurrent_sessions == 5
        assert config.service_name == "autofinish"

    def test_from_env_overrides(self):
        """from_env should read AUTOFINISH_* variables."""
        env = {
            "AUTOFINISH_MAX_ATTEMPTS": "5",
            "AUTOFINISH_CONFIRM_TIMEOUT": "2.5",
            "AUTOFINISH_CONFIDENCE_THRESHOLD": "0.7",
            "AUTOFINISH_SESSION_TIMEOUT": "60",
            "AUTOFINISH_LANGUAGE": "de",
            "AUTOFINISH_SANDBOX_CONTAINER": "sandbox",
            "OTLP_ENDPOINT": "http://collector:4317",
        }
        with patch.dict(os.environ, env):
            config = AutoFinishConfig.from_env()

        assert config.max_confirmation_attempts == 5
        assert config.confirmation_timeout_seconds == 2.5
        assert config.confidence_threshold == 0.7
        assert config.session_timeout_seconds == 60.0
        assert config.language == "de"
        assert config.sandbox_container == "sandbox"
        assert config.otlp_endpoint == "http://collector:4317"

    def test_zero_task_timeout_disables_it(self):
        """AUTOFINISH_TASK_TIMEOUT=0 should mean no timeout."""
        with patch.dict(os.environ, {"AUTOFINISH_TASK_TIMEOUT": "0"}):
            config = AutoFinishConfig.from_env()

        assert config.task_timeout_seconds is None

    def test_missing_env_uses_defaults(self):
        """Missing env vars should fall back to defaults."""
        with patch.dict(os.environ, {}, clear=True):
            config = AutoFinishConfig.from_env()

        assert config.max_confirmation_attempts == 3
        assert config.sandbox_container is None
        assert config.progress_webhook_url is None


class TestRunOptions:
    """Test RunOptions defaults."""

    def test_defaults(self):
        options = RunOptions()

        assert options.stop_on_error is False
        assert options.use_enhanced is True
        assert options.max_confirmation_attempts is None
