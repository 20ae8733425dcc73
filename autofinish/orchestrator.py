"""Session orchestrator for auto-finishing a TODO list.

Owns the end-to-end run: parses the input, sequences the tasks, then drives
each task to completion one at a time (dispatch, confirmation, validation)
while streaming progress events. Also owns session bookkeeping: the registry,
the idle sweep, cancellation and statistics.
"""

import asyncio
import logging
import time
from datetime import datetime
from typing import Any

from opentelemetry import trace

from autofinish import progress, telemetry
from autofinish.collaborators import (
    AgentChannel,
    EnhancedExecutor,
    FallbackDetector,
    ProgressSink,
    QualityAssessor,
    WorkflowContext,
)
from autofinish.config import AutoFinishConfig, RunOptions
from autofinish.confirmation import ConfirmationProtocol
from autofinish.errors import (
    AgentDispatchError,
    AutoFinishError,
    ConfirmationExhausted,
    InputError,
)
from autofinish.fallback import KeywordFallbackDetector
from autofinish.input_parser import InputParser
from autofinish.models import SessionResult, Task, TaskResult
from autofinish.sequencer import TaskSequencer
from autofinish.session import Session, SessionRegistry
from autofinish.validation import CompletionValidator, HeuristicQualityAssessor

logger = logging.getLogger(__name__)


def build_task_prompt(task: Task) -> str:
    """Build the completion-oriented prompt sent to the agent for a task."""
    lines = [f"Complete the following task: {task.description}"]
    if task.category:
        lines.append(f"Area: {task.category}")
    if task.dependency_hints:
        lines.append(f"Dependencies: {', '.join(task.dependency_hints)}")
    lines.extend(
        [
            "",
            "Implement it fully, run the relevant tests, and finish with a short",
            "summary of the changes made.",
            "If you cannot continue without a decision from a human, reply with",
            "'STATUS: needs_human' followed by your question.",
        ]
    )
    return "\n".join(lines)


def _workflow_succeeded(workflow_result: Any) -> bool:
    if isinstance(workflow_result, dict):
        return workflow_result.get("success", True) is not False
    return getattr(workflow_result, "success", True) is not False


class SessionOrchestrator:
    """Runs sessions end to end and keeps track of them.

    Usage:
        orchestrator = SessionOrchestrator(channel, AutoFinishConfig.from_env())
        await orchestrator.start()
        result = await orchestrator.run("TODO: build api", RunOptions())
        await orchestrator.shutdown()
    """

    def __init__(
        self,
        channel: AgentChannel,
        config: AutoFinishConfig | None = None,
        *,
        parser: InputParser | None = None,
        sequencer: TaskSequencer | None = None,
        fallback_detector: FallbackDetector | None = None,
        quality_assessor: QualityAssessor | None = None,
        enhanced_executor: EnhancedExecutor | None = None,
        progress_sink: ProgressSink | None = None,
        registry: SessionRegistry | None = None,
        tracer: trace.Tracer | None = None,
    ):
        """Initialize the orchestrator.

        Args:
            channel: Agent channel used for dispatch and status requests
            config: Configuration (defaults if None)
            parser: Input parser (defaults to InputParser)
            sequencer: Task sequencer (defaults to TaskSequencer)
            fallback_detector: User-input detector (defaults to KeywordFallbackDetector)
            quality_assessor: Quality collaborator (defaults to HeuristicQualityAssessor)
            enhanced_executor: Optional enhanced execution path
            progress_sink: Optional receiver of progress events
            registry: Session registry (a private one if None)
            tracer: OpenTelemetry tracer (uses the global provider if None)
        """
        self.config = config or AutoFinishConfig()
        self.channel = channel
        self.parser = parser or InputParser()
        self.sequencer = sequencer or TaskSequencer()
        self.fallback_detector = fallback_detector or KeywordFallbackDetector(
            enabled=self.config.fallback_detection_enabled
        )
        self.validator = CompletionValidator(quality_assessor or HeuristicQualityAssessor())
        self.enhanced_executor = enhanced_executor
        self.progress_sink = progress_sink
        self.registry = registry or SessionRegistry(self.config.session_timeout_seconds)
        self.tracer = tracer or trace.get_tracer("autofinish")
        self.confirmation = ConfirmationProtocol(channel, self.config, self.fallback_detector)

    async def start(self) -> None:
        """Start the periodic idle-session sweep."""
        self.registry.start_sweeper(self.config.sweep_interval_seconds)

    async def shutdown(self) -> None:
        """Stop the sweep and cancel every session that is still running."""
        await self.registry.stop_sweeper()
        for session in self.registry.list():
            if not session.is_terminal:
                await self.cancel_session(session.id)

    async def run(self, text: str, options: RunOptions | None = None) -> SessionResult:
        """Run one session over the tasks found in text.

        Args:
            text: Free-form TODO list
            options: Per-run options

        Returns:
            SessionResult with per-task results. Failed tasks do not raise.

        Raises:
            InputError: If the input is invalid, cannot be parsed, or contains no tasks
            AgentDispatchError: If the agent channel is not ready
        """
        options = options or RunOptions()
        session = self.registry.create(text, options)
        active = self.registry.active_count()
        if active > self.config.max_concurrent_sessions:
            logger.warning(
                f"{active} sessions active, above max_concurrent_sessions="
                f"{self.config.max_concurrent_sessions}"
            )

        with self.tracer.start_as_current_span("autofinish.session") as span:
            span.set_attribute("session.id", session.id)
            logger.info(f"Session {session.id} started")
            await self._emit(session, progress.START, {})

            try:
                await self._preflight()
                session.transition("parsing")
                tasks = self.parser.parse(text)
                if not tasks:
                    raise InputError("No tasks found in input")
            except (InputError, AgentDispatchError) as e:
                await self._abort(session, e)
                span.set_attribute("session.status", session.status)
                raise
            except Exception as e:
                error = InputError(f"Failed to parse input: {e}")
                await self._abort(session, error)
                span.set_attribute("session.status", session.status)
                raise error from e

            session.total_tasks = len(tasks)
            span.set_attribute("session.total_tasks", len(tasks))
            await self._emit(
                session,
                progress.TASKS_PARSED,
                {"tasks": [task.summary() for task in tasks]},
            )

            ordered = self.sequencer.sequence(tasks)
            telemetry.record_cycles(len(self.sequencer.last_removed_edges))
            session.tasks = ordered
            session.transition("sequenced")
            session.transition("executing")

            reason = None
            for task in ordered:
                if session.status == "cancelled":
                    logger.info(f"Session {session.id} cancelled, stopping before {task.id}")
                    break
                result = await self._process_task(session, task, options)
                session.record(result)
                if result.status == "failed" and options.stop_on_error:
                    reason = "stop_on_error"
                    logger.info(f"Stopping session {session.id} after failed task {task.id}")
                    break

            result = await self._finish(session, reason)
            span.set_attribute("session.status", result.status)
            span.set_attribute("session.completed_tasks", result.completed_tasks)
            span.set_attribute("session.failed_tasks", result.failed_tasks)
            return result

    async def _preflight(self) -> None:
        ensure_ready = getattr(self.channel, "ensure_ready", None)
        if ensure_ready is None:
            return
        try:
            await ensure_ready()
        except AgentDispatchError:
            raise
        except Exception as e:
            raise AgentDispatchError(f"Agent channel not ready: {e}") from e

    async def _abort(self, session: Session, error: Exception) -> None:
        """Mark a session failed before any task ran."""
        logger.error(f"Session {session.id} failed: {error}")
        session.error = str(error)
        if session.transition("failed"):
            session.result = self._build_result(session, reason=type(error).__name__)
            telemetry.record_session("failed")
            await self._emit(
                session,
                progress.ERROR,
                {"reason": type(error).__name__, "error": str(error), "results": []},
            )

    async def _finish(self, session: Session, reason: str | None) -> SessionResult:
        if session.status == "cancelled":
            # cancel_session() already emitted the terminal event
            session.result = self._build_result(session, reason="cancelled")
            return session.result

        if reason == "stop_on_error":
            session.error = session.results[-1].error if session.results else None
            session.transition("failed")
            session.result = self._build_result(session, reason=reason)
            event = progress.ERROR
        else:
            session.transition("completed")
            session.result = self._build_result(session, reason="all_tasks_processed")
            event = progress.COMPLETE

        telemetry.record_session(session.status)
        logger.info(
            f"Session {session.id} {session.status}: "
            f"{session.completed_tasks}/{session.total_tasks} completed, "
            f"{session.failed_tasks} failed, {session.paused_tasks} paused"
        )
        await self._emit(
            session,
            event,
            {
                "reason": session.result.reason,
                "error": session.error,
                "results": [r.task_id for r in session.results],
            },
        )
        return session.result

    def _build_result(self, session: Session, reason: str | None) -> SessionResult:
        ended_at = session.ended_at or datetime.now()
        return SessionResult(
            session_id=session.id,
            status=session.status,
            total_tasks=session.total_tasks,
            completed_tasks=session.completed_tasks,
            failed_tasks=session.failed_tasks,
            paused_tasks=session.paused_tasks,
            duration_seconds=(ended_at - session.started_at).total_seconds(),
            results=list(session.results),
            started_at=session.started_at,
            ended_at=ended_at,
            reason=reason,
        )

    async def _process_task(self, session: Session, task: Task, options: RunOptions) -> TaskResult:
        """Drive one task to a completed, failed or paused result."""
        start_time = time.monotonic()
        await self._emit(session, progress.TASK_START, {"task_id": task.id, "task": task.summary()})

        if task.status == "completed":
            result = TaskResult(
                task_id=task.id,
                description=task.description,
                status="completed",
                path="skipped",
                duration_seconds=0.0,
                reason="already_completed",
            )
            await self._emit_task_result(session, task, result)
            return result

        task.status = "in_progress"
        session.touch()
        attempted: list[str] = []
        timeout = options.task_timeout_seconds or self.config.task_timeout_seconds

        with self.tracer.start_as_current_span("autofinish.task") as task_span:
            task_span.set_attribute("task.id", task.id)
            task_span.set_attribute("task.category", task.category or "none")

            try:
                result = await asyncio.wait_for(
                    self._execute(session, task, options, attempted), timeout=timeout
                )
            except asyncio.TimeoutError:
                logger.error(f"Task {task.id} timed out after {timeout}s")
                result = self._failed(
                    task, attempted, f"Task timed out after {timeout} seconds", "timeout"
                )
            except AutoFinishError as e:
                logger.error(f"Task {task.id} failed: {e}")
                result = self._failed(task, attempted, str(e), type(e).__name__)
            except Exception as e:
                logger.exception(f"Unexpected error in task {task.id}")
                result = self._failed(task, attempted, str(e), type(e).__name__)

            result.duration_seconds = time.monotonic() - start_time
            task.status = result.status
            task_span.set_attribute("task.status", result.status)
            task_span.set_attribute("task.path", result.path)

        telemetry.record_task(result.status, result.path, result.duration_seconds)
        await self._emit_task_result(session, task, result)
        return result

    def _failed(self, task: Task, attempted: list[str], error: str, reason: str) -> TaskResult:
        return TaskResult(
            task_id=task.id,
            description=task.description,
            status="failed",
            path=attempted[-1] if attempted else "baseline",
            duration_seconds=0.0,
            attempted_paths=list(attempted),
            error=error,
            reason=reason,
        )

    async def _emit_task_result(self, session: Session, task: Task, result: TaskResult) -> None:
        event = {
            "completed": progress.TASK_COMPLETE,
            "failed": progress.TASK_ERROR,
            "paused": progress.TASK_PAUSE,
        }[result.status]
        # Counters in the payload already include this result
        await self._emit(
            session,
            event,
            {
                "task_id": task.id,
                "task": task.summary(),
                "path": result.path,
                "reason": result.reason,
                "error": result.error,
            },
            pending=result,
        )

    async def _execute(
        self, session: Session, task: Task, options: RunOptions, attempted: list[str]
    ) -> TaskResult:
        """Select the execution path, falling back from enhanced to baseline."""
        fallback_reason = None
        if self.enhanced_executor is not None and options.use_enhanced:
            attempted.append("enhanced")
            try:
                workflow_result = await self.enhanced_executor.execute_workflow(
                    WorkflowContext(
                        task=task,
                        session_id=session.id,
                        project_path=options.project_path,
                        options={"stop_on_error": options.stop_on_error},
                    )
                )
                if not _workflow_succeeded(workflow_result):
                    raise AutoFinishError("Enhanced workflow reported failure")
                return TaskResult(
                    task_id=task.id,
                    description=task.description,
                    status="completed",
                    path="enhanced",
                    duration_seconds=0.0,
                    attempted_paths=list(attempted),
                    workflow_result=workflow_result,
                    reason="workflow_completed",
                )
            except Exception as e:
                logger.warning(f"Enhanced execution failed for {task.id}, using baseline: {e}")
                fallback_reason = str(e)

        attempted.append("baseline")
        result = await self._run_baseline(task, options)
        result.attempted_paths = list(attempted)
        result.fallback_reason = fallback_reason
        return result

    async def _run_baseline(self, task: Task, options: RunOptions) -> TaskResult:
        """Dispatch the task, confirm completion, and validate the response."""
        try:
            response = await self.channel.send(build_task_prompt(task))
        except AgentDispatchError:
            raise
        except Exception as e:
            raise AgentDispatchError(f"Dispatch failed for {task.id}: {e}") from e

        confirmation = await self.confirmation.confirm(
            task.description, max_attempts=options.max_confirmation_attempts
        )
        telemetry.record_confirmation(confirmation.reason)

        result = TaskResult(
            task_id=task.id,
            description=task.description,
            status="failed",
            path="baseline",
            duration_seconds=0.0,
            response=response,
            confirmation=confirmation,
            reason=confirmation.reason,
        )

        if confirmation.paused or confirmation.status == "need_human":
            logger.info(f"Task {task.id} paused ({confirmation.reason})")
            result.status = "paused"
            return result

        if not confirmation.confirmed:
            if confirmation.reason == "max_attempts_exceeded":
                error = ConfirmationExhausted(
                    f"No decisive confirmation after {confirmation.attempts} attempts"
                )
            else:
                error = AutoFinishError(f"Task not completed: {confirmation.status}")
            result.error = str(error)
            return result

        final_reply = confirmation.history[-1].reply if confirmation.history else ""
        validation = await self.validator.validate(task, f"{response}\n{final_reply}")
        result.validation = validation
        if not validation.is_valid:
            logger.warning(f"Validation rejected completion of {task.id}")
            result.reason = "validation_failed"
            result.error = "Completion could not be validated"
            return result

        result.status = "completed"
        return result

    async def cancel_session(self, session_id: str) -> bool:
        """Cancel a session. The task in flight still finishes.

        Returns:
            True if the session was cancelled, False for unknown or finished sessions
        """
        session = self.registry.get(session_id)
        if session is None or not session.transition("cancelled"):
            return False
        logger.info(f"Session {session_id} cancelled")
        telemetry.record_session("cancelled")
        await self._emit(
            session,
            progress.CANCELLED,
            {"reason": "cancelled", "results": [r.task_id for r in session.results]},
        )
        return True

    def get_session(self, session_id: str) -> Session | None:
        return self.registry.get(session_id)

    def get_active_sessions(self) -> list[Session]:
        """Every session currently held by the registry."""
        return self.registry.list()

    def get_stats(self) -> dict[str, Any]:
        sessions = self.registry.list()
        by_status: dict[str, int] = {}
        for session in sessions:
            by_status[session.status] = by_status.get(session.status, 0) + 1
        return {
            "total_sessions": len(sessions),
            "active_sessions": sum(1 for s in sessions if not s.is_terminal),
            "sessions_by_status": by_status,
            "max_concurrent_sessions": self.config.max_concurrent_sessions,
            "peak_sessions": self.registry.peak_sessions,
            "session_timeout_seconds": self.config.session_timeout_seconds,
        }

    async def _emit(
        self,
        session: Session,
        event: str,
        payload: dict[str, Any],
        pending: TaskResult | None = None,
    ) -> None:
        """Send a progress event. Sink failures are logged, never raised."""
        if self.progress_sink is None:
            return
        counters = session.counters()
        if pending is not None:
            counters[f"{pending.status}_tasks"] += 1
        try:
            await self.progress_sink.emit(
                session.id, event, {"session_id": session.id, **counters, **payload}
            )
        except Exception as e:
            logger.warning(f"Progress sink failed on {event} for {session.id}: {e}")
