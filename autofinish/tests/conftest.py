"""Shared fixtures for autofinish tests."""

import pytest

from autofinish.config import AutoFinishConfig
from autofinish.tests.stubs import RecordingSink


@pytest.fixture
def fast_config() -> AutoFinishConfig:
    """Config without retry delays."""
    return AutoFinishConfig(
        confirmation_retry_delay_seconds=0.0,
        confirmation_timeout_seconds=1.0,
        task_timeout_seconds=5.0,
        progress_webhook_url=None,
    )


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def scenario_text() -> str:
    return (
        "TODO: create database schema\n"
        "TODO: build api depends on database schema\n"
        "TODO: build ui after api"
    )
