"""Progress sinks for session events.

Provides a rich console sink, an HTTP webhook sink and a composite that fans
out to several sinks. All sinks are best effort: failures are logged but not
raised, so progress reporting never blocks a run.
"""

import logging
from datetime import datetime
from typing import Any

import httpx
from rich.console import Console

from autofinish.collaborators import ProgressSink

logger = logging.getLogger(__name__)

# Event names
START = "start"
TASKS_PARSED = "tasks-parsed"
TASK_START = "task-start"
TASK_COMPLETE = "task-complete"
TASK_ERROR = "task-error"
TASK_PAUSE = "task-pause"
COMPLETE = "complete"
ERROR = "error"
CANCELLED = "cancelled"

TERMINAL_EVENTS = frozenset({COMPLETE, ERROR, CANCELLED})

# Rich styles per event
STYLES = {
    START: "blue",
    TASKS_PARSED: "cyan",
    TASK_START: "dim",
    TASK_COMPLETE: "green",
    TASK_ERROR: "red",
    TASK_PAUSE: "yellow",
    COMPLETE: "bold green",
    ERROR: "bold red",
    CANCELLED: "bold yellow",
}


def format_event(event: str, payload: dict[str, Any]) -> str:
    """Render one event as a single human-readable line."""
    if event == TASKS_PARSED:
        return f"Parsed {payload.get('total_tasks', 0)} tasks"
    if event in (TASK_START, TASK_COMPLETE, TASK_ERROR, TASK_PAUSE):
        task = payload.get("task", {})
        label = {
            TASK_START: "Starting",
            TASK_COMPLETE: "Completed",
            TASK_ERROR: "Failed",
            TASK_PAUSE: "Paused",
        }[event]
        line = f"{label}: {task.get('description', payload.get('task_id', '?'))}"
        if payload.get("reason"):
            line += f" ({payload['reason']})"
        return line
    if event in TERMINAL_EVENTS:
        counts = (
            f"{payload.get('completed_tasks', 0)}/{payload.get('total_tasks', 0)} completed"
        )
        reason = payload.get("reason")
        return f"Session {event}: {counts}" + (f" ({reason})" if reason else "")
    return f"Session {event}"


class ConsoleProgressSink:
    """Prints events to a rich console."""

    def __init__(self, console: Console | None = None):
        self.console = console or Console()

    async def emit(self, session_id: str, event: str, payload: dict[str, Any]) -> None:
        # Task text may contain brackets, so markup stays off
        self.console.print(format_event(event, payload), style=STYLES.get(event), markup=False)


class WebhookProgressSink:
    """Posts events as JSON to a webhook URL.

    Uses a 5 second timeout. All errors (network, timeout, HTTP errors) are
    logged as warnings but not raised.
    """

    def __init__(self, webhook_url: str, timeout: float = 5.0):
        self.webhook_url = webhook_url
        self.timeout = timeout

    async def emit(self, session_id: str, event: str, payload: dict[str, Any]) -> None:
        body = {
            "session_id": session_id,
            "event": event,
            "timestamp": datetime.now().isoformat(),
            "payload": payload,
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.webhook_url, json=body)

                if response.status_code >= 400:
                    logger.warning(
                        f"Progress webhook returned {response.status_code}: {response.text}"
                    )
        except httpx.TimeoutException:
            logger.warning("Progress webhook request timed out")
        except httpx.ConnectError:
            logger.warning("Failed to connect to progress webhook")
        except Exception as e:
            logger.warning(f"Progress webhook error: {e}")


class CompositeProgressSink:
    """Forwards every event to each sink in order."""

    def __init__(self, sinks: list[ProgressSink]):
        self.sinks = list(sinks)

    async def emit(self, session_id: str, event: str, payload: dict[str, Any]) -> None:
        for sink in self.sinks:
            try:
                await sink.emit(session_id, event, payload)
            except Exception as e:
                logger.warning(f"Progress sink {type(sink).__name__} failed on {event}: {e}")
