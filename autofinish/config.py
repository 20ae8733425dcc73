"""Configuration for autofinish.

Provides centralized configuration with sensible defaults and environment
variable overrides for confirmation, session bookkeeping, the agent channel,
and telemetry. Per-run switches live in RunOptions.
"""

import os
from dataclasses import dataclass, field


@dataclass
class AutoFinishConfig:
    """Configuration for session orchestration.

    All settings have sensible defaults but can be overridden via environment
    variables using the from_env() factory method.
    """

    # Confirmation protocol
    max_confirmation_attempts: int = 3
    confirmation_timeout_seconds: float = 10.0
    confirmation_retry_delay_seconds: float = 1.0
    confidence_threshold: float = 0.8
    language: str = "en"
    fallback_detection_enabled: bool = True

    # Task execution
    task_timeout_seconds: float | None = 600.0

    # Session bookkeeping
    session_timeout_seconds: float = 300.0
    sweep_interval_seconds: float = 60.0
    max_concurrent_sessions: int = 5

    # Agent channel (claude CLI)
    claude_command: str = "claude"
    max_turns: int = 50
    sandbox_container: str | None = None
    workspace_path: str = "/workspace"
    allowed_tools: list[str] = field(
        default_factory=lambda: ["Bash", "Read", "Write", "Edit", "Glob", "Grep"]
    )

    # Progress streaming
    progress_webhook_url: str | None = field(
        default_factory=lambda: os.getenv("AUTOFINISH_PROGRESS_WEBHOOK") or None
    )

    # Telemetry settings
    otlp_endpoint: str = field(
        default_factory=lambda: os.getenv("OTLP_ENDPOINT", "http://localhost:4317")
    )
    service_name: str = "autofinish"

    @classmethod
    def from_env(cls) -> "AutoFinishConfig":
        """Load config with environment variable overrides.

        Environment variables:
            AUTOFINISH_MAX_ATTEMPTS: Override max_confirmation_attempts (default: 3)
            AUTOFINISH_CONFIRM_TIMEOUT: Override confirmation_timeout_seconds (default: 10)
            AUTOFINISH_CONFIDENCE_THRESHOLD: Override confidence_threshold (default: 0.8)
            AUTOFINISH_TASK_TIMEOUT: Override task_timeout_seconds (default: 600, 0 disables)
            AUTOFINISH_SESSION_TIMEOUT: Override session_timeout_seconds (default: 300)
            AUTOFINISH_LANGUAGE: Override language of status requests (default: en)
            AUTOFINISH_SANDBOX_CONTAINER: Run the claude CLI inside this container
            AUTOFINISH_PROGRESS_WEBHOOK: Post progress events to this URL
            OTLP_ENDPOINT: Override otlp_endpoint (default: http://localhost:4317)
        """
        task_timeout = float(os.getenv("AUTOFINISH_TASK_TIMEOUT", "600"))
        return cls(
            max_confirmation_attempts=int(os.getenv("AUTOFINISH_MAX_ATTEMPTS", "3")),
            confirmation_timeout_seconds=float(
                os.getenv("AUTOFINISH_CONFIRM_TIMEOUT", "10")
            ),
            confidence_threshold=float(
                os.getenv("AUTOFINISH_CONFIDENCE_THRESHOLD", "0.8")
            ),
            task_timeout_seconds=task_timeout if task_timeout > 0 else None,
            session_timeout_seconds=float(
                os.getenv("AUTOFINISH_SESSION_TIMEOUT", "300")
            ),
            language=os.getenv("AUTOFINISH_LANGUAGE", "en"),
            sandbox_container=os.getenv("AUTOFINISH_SANDBOX_CONTAINER") or None,
            progress_webhook_url=os.getenv("AUTOFINISH_PROGRESS_WEBHOOK") or None,
            otlp_endpoint=os.getenv("OTLP_ENDPOINT", "http://localhost:4317"),
        )


@dataclass
class RunOptions:
    """Per-run switches passed to SessionOrchestrator.run().

    Attributes:
        stop_on_error: Abort the remaining tasks after the first failure
        max_confirmation_attempts: Override the configured attempt budget
        task_timeout_seconds: Override the configured whole-task timeout
        use_enhanced: Allow the enhanced execution path when one is configured
        project_path: Project the enhanced workflow operates on
    """

    stop_on_error: bool = False
    max_confirmation_attempts: int | None = None
    task_timeout_seconds: float | None = None
    use_enhanced: bool = True
    project_path: str | None = None
