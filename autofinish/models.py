"""Data models for autofinish.

Defines dataclasses for parsed tasks, dependency edges, confirmation attempts,
validation outcomes, and task/session results. All models are JSON
serializable via dataclasses.asdict() (datetimes need isoformat()).
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

TaskStatus = Literal["pending", "in_progress", "paused", "completed", "failed"]
EdgeProvenance = Literal["explicit", "type", "implicit"]
ConfirmationStatus = Literal["completed", "partially_completed", "need_human", "unknown"]
ExecutionPath = Literal["enhanced", "baseline", "skipped"]
SessionStatus = Literal[
    "created", "parsing", "sequenced", "executing", "completed", "failed", "cancelled"
]

# Fixed category set used by the input parser and the sequencer precedence table
CATEGORIES: tuple[str, ...] = (
    "ui",
    "api",
    "database",
    "test",
    "deployment",
    "security",
    "performance",
    "refactor",
)


@dataclass
class Task:
    """An action item extracted from free-form input.

    Created by the input parser. Only the session orchestrator changes
    ``status`` once a run has started.

    Attributes:
        id: Stable identifier derived from line number and content
        description: The captured action text
        pattern: Name of the line pattern that matched
        pattern_priority: Rank of that pattern (ordering tie-break only)
        line_number: 1-based line in the original input
        category: One of CATEGORIES, or None when uncategorized
        status: Execution status
        dependency_hints: Raw hint phrases such as "after build api"
        created_at: Creation time (ignored for equality)
    """

    id: str
    description: str
    pattern: str
    pattern_priority: int
    line_number: int
    category: str | None = None
    status: TaskStatus = "pending"
    dependency_hints: list[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=datetime.now, compare=False)

    def summary(self) -> dict[str, Any]:
        """Short form used in progress events."""
        return {
            "id": self.id,
            "description": self.description,
            "category": self.category,
            "status": self.status,
        }


@dataclass(frozen=True)
class DependencyEdge:
    """Ordering constraint: ``from_id`` must execute before ``to_id``."""

    from_id: str
    to_id: str
    provenance: EdgeProvenance
    confidence: float


@dataclass
class TestOutcome:
    """Test result reported by the agent, e.g. ``[PASSED] 95%``."""

    __test__ = False  # not a pytest test class

    passed: bool
    percentage: int | None = None


@dataclass
class ConfirmationAttempt:
    """One status query round-trip with the agent."""

    attempt: int
    question: str
    reply: str
    status: ConfirmationStatus
    confidence: float
    test_outcome: TestOutcome | None = None


@dataclass
class ConfirmationResult:
    """Outcome of the confirmation protocol for one task.

    Reason values:
        confirmed: Agent reported completion with enough confidence
        need_human / partially_completed: Decisive negative answer
        user_input_required: Fallback detector asked to pause
        max_attempts_exceeded: No decisive answer within the attempt budget
    """

    confirmed: bool
    status: ConfirmationStatus
    confidence: float
    attempts: int
    reason: str | None = None
    paused: bool = False
    history: list[ConfirmationAttempt] = field(default_factory=list)


@dataclass
class QualityAssessment:
    """Scores returned by a quality collaborator."""

    completeness_score: float
    overall_score: float
    has_errors: bool
    suggestions: list[str] = field(default_factory=list)


@dataclass
class ValidationResult:
    """Corroboration of a confirmed completion.

    ``fallback`` is True when the quality collaborator failed (or was absent)
    and the keyword heuristic decided instead.
    """

    is_valid: bool
    confidence: float
    has_completion_keyword: bool
    has_error_keyword: bool
    fallback: bool = False
    error: str | None = None
    assessment: QualityAssessment | None = None


@dataclass
class TaskResult:
    """Result of driving one task.

    Status values:
        completed: Confirmed and validated
        failed: Dispatch, confirmation or validation failed
        paused: The agent is waiting for user input
    """

    task_id: str
    description: str
    status: Literal["completed", "failed", "paused"]
    path: ExecutionPath
    duration_seconds: float
    attempted_paths: list[str] = field(default_factory=list)
    fallback_reason: str | None = None
    response: str | None = None
    confirmation: ConfirmationResult | None = None
    validation: ValidationResult | None = None
    workflow_result: Any = None
    error: str | None = None
    reason: str | None = None
    finished_at: datetime = field(default_factory=datetime.now)


@dataclass
class SessionResult:
    """Final report of a session run."""

    session_id: str
    status: SessionStatus
    total_tasks: int
    completed_tasks: int
    failed_tasks: int
    paused_tasks: int
    duration_seconds: float
    results: list[TaskResult]
    started_at: datetime
    ended_at: datetime
    reason: str | None = None

    @property
    def success(self) -> bool:
        """True when the session completed without failed tasks."""
        return self.status == "completed" and self.failed_tasks == 0
