"""Interfaces of the external collaborators used by the orchestrator.

Concrete implementations live in agent_channel.py (agent channel),
fallback.py (fallback detector), validation.py (quality assessor) and
progress.py (progress sinks). The enhanced execution path has no built-in
implementation; callers inject one.
"""

from dataclasses import dataclass, field
from typing import Any, Literal, Protocol, runtime_checkable

from autofinish.models import QualityAssessment, Task

FallbackAction = Literal["pause", "continue"]


@runtime_checkable
class AgentChannel(Protocol):
    """Sends a prompt to the completion agent and returns its free-text reply."""

    async def send(self, prompt: str) -> str: ...


@runtime_checkable
class FallbackDetector(Protocol):
    """Decides whether an agent reply is waiting for user input."""

    async def detect_user_input_need(self, response: str) -> FallbackAction: ...


@runtime_checkable
class QualityAssessor(Protocol):
    """Scores an agent response against the task it answers."""

    async def assess(self, response: str, context: dict[str, Any]) -> QualityAssessment: ...


@dataclass
class WorkflowContext:
    """Input for an enhanced (e.g. git workflow) execution of one task."""

    task: Task
    session_id: str
    project_path: str | None = None
    options: dict[str, Any] = field(default_factory=dict)
    workflow_type: str = "auto-finish-task"


@runtime_checkable
class EnhancedExecutor(Protocol):
    """Alternative execution path for a task."""

    async def execute_workflow(self, context: WorkflowContext) -> Any: ...


@runtime_checkable
class ProgressSink(Protocol):
    """Receives progress events. Failures are logged by the caller, never raised."""

    async def emit(self, session_id: str, event: str, payload: dict[str, Any]) -> None: ...
