"""Session records and the in-memory session registry.

A Session tracks one orchestrated run from parsing to its terminal state.
SessionRegistry stores sessions by id behind a lock, so concurrent runs can
share it, and sweeps out sessions that have been idle for too long.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from autofinish.config import RunOptions
from autofinish.models import SessionResult, SessionStatus, Task, TaskResult

logger = logging.getLogger(__name__)

TERMINAL_STATES: frozenset[str] = frozenset({"completed", "failed", "cancelled"})


@dataclass
class Session:
    """One end-to-end run over a batch of tasks.

    Attributes:
        id: Unique session identifier
        input_text: Raw input the tasks were parsed from
        options: Per-run options
        status: Lifecycle state; completed, failed and cancelled are final
        tasks: Tasks in execution order (set once sequenced)
        results: TaskResults in completion order
        started_at: When the session was created
        ended_at: When the session reached a terminal state
        last_activity: Last time the session changed (used by the idle sweep)
        error: Error message when the session failed
        result: Final report once the run returned
    """

    id: str
    input_text: str
    options: RunOptions = field(default_factory=RunOptions)
    status: SessionStatus = "created"
    tasks: list[Task] = field(default_factory=list)
    results: list[TaskResult] = field(default_factory=list)
    total_tasks: int = 0
    completed_tasks: int = 0
    failed_tasks: int = 0
    paused_tasks: int = 0
    started_at: datetime = field(default_factory=datetime.now)
    ended_at: datetime | None = None
    last_activity: datetime = field(default_factory=datetime.now)
    error: str | None = None
    result: SessionResult | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATES

    def touch(self) -> None:
        """Record activity so the idle sweep leaves this session alone."""
        self.last_activity = datetime.now()

    def transition(self, status: SessionStatus) -> bool:
        """Move to a new status.

        Returns:
            False (and leaves the status unchanged) if the session is already
            in a terminal state, True otherwise
        """
        if self.is_terminal:
            logger.debug(f"Session {self.id} is {self.status}, ignoring transition to {status}")
            return False
        self.status = status
        if status in TERMINAL_STATES:
            self.ended_at = datetime.now()
        self.touch()
        return True

    def record(self, result: TaskResult) -> None:
        """Append a task result and update the counters."""
        self.results.append(result)
        if result.status == "completed":
            self.completed_tasks += 1
        elif result.status == "failed":
            self.failed_tasks += 1
        elif result.status == "paused":
            self.paused_tasks += 1
        self.touch()

    def counters(self) -> dict[str, int]:
        return {
            "total_tasks": self.total_tasks,
            "completed_tasks": self.completed_tasks,
            "failed_tasks": self.failed_tasks,
            "paused_tasks": self.paused_tasks,
        }

    def to_dict(self) -> dict[str, Any]:
        """Summary suitable for JSON output."""
        return {
            "id": self.id,
            "status": self.status,
            **self.counters(),
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "last_activity": self.last_activity.isoformat(),
            "error": self.error,
        }


class SessionRegistry:
    """Thread-safe map of session id to Session with an idle sweep.

    Usage:
        registry = SessionRegistry(session_timeout_seconds=300)
        session = registry.create("TODO: build api")
        registry.start_sweeper(interval_seconds=60)
    """

    def __init__(self, session_timeout_seconds: float = 300.0):
        self.session_timeout_seconds = session_timeout_seconds
        self._sessions: dict[str, Session] = {}
        self._lock = threading.Lock()
        self._sweeper: asyncio.Task | None = None
        self.peak_sessions = 0

    def create(self, input_text: str, options: RunOptions | None = None) -> Session:
        session = Session(
            id=f"session-{uuid.uuid4().hex[:12]}",
            input_text=input_text,
            options=options or RunOptions(),
        )
        with self._lock:
            self._sessions[session.id] = session
            self.peak_sessions = max(self.peak_sessions, len(self._sessions))
        return session

    def get(self, session_id: str) -> Session | None:
        with self._lock:
            return self._sessions.get(session_id)

    def update(self, session_id: str, **changes: Any) -> Session | None:
        """Set attributes on a stored session. Returns None for unknown ids."""
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return None
            for name, value in changes.items():
                if not hasattr(session, name):
                    raise AttributeError(f"Session has no attribute {name!r}")
                setattr(session, name, value)
            session.touch()
            return session

    def delete(self, session_id: str) -> bool:
        with self._lock:
            return self._sessions.pop(session_id, None) is not None

    def list(self) -> list[Session]:
        with self._lock:
            return list(self._sessions.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._sessions

    def active_count(self) -> int:
        """Number of sessions not yet in a terminal state."""
        with self._lock:
            return sum(1 for s in self._sessions.values() if not s.is_terminal)

    def sweep(self, now: datetime | None = None) -> list[str]:
        """Remove sessions idle for longer than the session timeout.

        Returns:
            Ids of the removed sessions
        """
        now = now or datetime.now()
        cutoff = now - timedelta(seconds=self.session_timeout_seconds)
        with self._lock:
            expired = [sid for sid, s in self._sessions.items() if s.last_activity < cutoff]
            for sid in expired:
                del self._sessions[sid]
        if expired:
            logger.info(f"Swept {len(expired)} idle session(s)")
        return expired

    def start_sweeper(self, interval_seconds: float = 60.0) -> None:
        """Start the periodic sweep on the running event loop."""
        if self._sweeper is not None and not self._sweeper.done():
            return
        self._sweeper = asyncio.get_running_loop().create_task(
            self._sweep_forever(interval_seconds)
        )

    async def stop_sweeper(self) -> None:
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        try:
            await self._sweeper
        except asyncio.CancelledError:
            pass
        self._sweeper = None

    async def _sweep_forever(self, interval_seconds: float) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            self.sweep()
