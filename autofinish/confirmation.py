"""Confirmation protocol for deciding whether a task is finished.

Sends a templated status request to the agent, parses the reply (structured
status token first, multilingual keyword lexicon second) and retries within a
bounded attempt budget. A clear negative answer stops the loop immediately;
ambiguous answers are retried after a fixed delay.
"""

import asyncio
import logging
import re

from autofinish.collaborators import AgentChannel, FallbackDetector
from autofinish.config import AutoFinishConfig
from autofinish.errors import AgentDispatchError
from autofinish.matchers import contains_keyword
from autofinish.models import (
    ConfirmationAttempt,
    ConfirmationResult,
    ConfirmationStatus,
    TestOutcome,
)

logger = logging.getLogger(__name__)

STATUS_REQUEST_TEMPLATES: dict[str, str] = {
    "en": (
        "Status check for the task: {context}\n\n"
        "Reply with exactly one status: COMPLETED, PARTIALLY COMPLETED or NEED HUMAN.\n"
        "If you ran tests, also report the outcome as [PASSED] NN% or [FAILED] NN%."
    ),
    "de": (
        "Statusabfrage zur Aufgabe: {context}\n\n"
        "Antworte mit genau einem Status: COMPLETED, PARTIALLY COMPLETED oder NEED HUMAN.\n"
        "Falls du Tests ausgeführt hast, melde das Ergebnis als [PASSED] NN% oder [FAILED] NN%."
    ),
    "es": (
        "Consulta de estado de la tarea: {context}\n\n"
        "Responde con un único estado: COMPLETED, PARTIALLY COMPLETED o NEED HUMAN.\n"
        "Si ejecutaste pruebas, indica el resultado como [PASSED] NN% o [FAILED] NN%."
    ),
    "fr": (
        "Point d'étape sur la tâche : {context}\n\n"
        "Réponds avec un seul statut : COMPLETED, PARTIALLY COMPLETED ou NEED HUMAN.\n"
        "Si tu as lancé des tests, indique le résultat sous la forme [PASSED] NN% ou [FAILED] NN%."
    ),
}

STRUCTURED_CONFIDENCE: dict[str, float] = {
    "completed": 0.9,
    "partially_completed": 0.7,
    "need_human": 0.8,
}
KEYWORD_CONFIDENCE = 0.6

# Checked in order: the first structured pattern that matches wins
_STRUCTURED_PATTERNS: tuple[tuple[ConfirmationStatus, re.Pattern[str]], ...] = (
    ("need_human", re.compile(r"\bneeds?[\s_-]+(?:a[\s_-]+)?human\b", re.IGNORECASE)),
    (
        "partially_completed",
        re.compile(
            r"\bpartial(?:ly)?[\s_-]+complete(?:d)?\b"
            r"|\bnot[\s_-]+(?:yet[\s_-]+)?complete(?:d)?\b",
            re.IGNORECASE,
        ),
    ),
    ("completed", re.compile(r"\bcompleted\b", re.IGNORECASE)),
)
_TEST_OUTCOME_RE = re.compile(r"\[?\b(PASSED|FAILED)\b\]?\s*:?\s*(\d{1,3})\s*%", re.IGNORECASE)
_TEST_OUTCOME_BARE_RE = re.compile(r"\[(PASSED|FAILED)\]", re.IGNORECASE)

COMPLETION_KEYWORDS: dict[str, tuple[str, ...]] = {
    "en": ("done", "complete", "finished", "ready", "all set"),
    "de": ("fertig", "erledigt", "abgeschlossen", "vollständig"),
    "es": ("listo", "completado", "terminado", "hecho"),
    "fr": ("fini", "terminé", "complété", "prêt"),
}


def build_status_request(context: str, language: str = "en") -> str:
    """Render the status request for a task in the given language.

    Unknown languages fall back to English.
    """
    template = STATUS_REQUEST_TEMPLATES.get(language, STATUS_REQUEST_TEMPLATES["en"])
    return template.format(context=context.strip() or "current task")


def parse_test_outcome(reply: str) -> TestOutcome | None:
    """Extract a ``[PASSED|FAILED] NN%`` token from a reply."""
    match = _TEST_OUTCOME_RE.search(reply)
    if match:
        return TestOutcome(
            passed=match.group(1).upper() == "PASSED",
            percentage=min(int(match.group(2)), 100),
        )
    bare = _TEST_OUTCOME_BARE_RE.search(reply)
    if bare:
        return TestOutcome(passed=bare.group(1).upper() == "PASSED")
    return None


def parse_reply(reply: str) -> tuple[ConfirmationStatus, float, TestOutcome | None]:
    """Parse a status reply into (status, confidence, test outcome).

    Structured status tokens win over the keyword lexicon. A "completed"
    reply with a failed test outcome is treated as partially completed.
    """
    if not reply or not reply.strip():
        return "unknown", 0.0, None

    test_outcome = parse_test_outcome(reply)

    for status, pattern in _STRUCTURED_PATTERNS:
        if pattern.search(reply):
            if status == "completed" and test_outcome is not None and not test_outcome.passed:
                status = "partially_completed"
            return status, STRUCTURED_CONFIDENCE[status], test_outcome

    for keywords in COMPLETION_KEYWORDS.values():
        if any(contains_keyword(reply, keyword) for keyword in keywords):
            return "completed", KEYWORD_CONFIDENCE, test_outcome

    return "unknown", 0.0, test_outcome


class ConfirmationProtocol:
    """Bounded status-query loop against the agent channel.

    Usage:
        protocol = ConfirmationProtocol(channel, config, fallback_detector=detector)
        result = await protocol.confirm("build api", max_attempts=3, timeout=10)
    """

    def __init__(
        self,
        channel: AgentChannel,
        config: AutoFinishConfig | None = None,
        fallback_detector: FallbackDetector | None = None,
    ):
        self.channel = channel
        self.config = config or AutoFinishConfig()
        self.fallback_detector = fallback_detector

    async def confirm(
        self,
        context: str,
        max_attempts: int | None = None,
        timeout: float | None = None,
    ) -> ConfirmationResult:
        """Ask the agent for the task status until a decisive answer arrives.

        Args:
            context: Task description included in the status request
            max_attempts: Attempt budget (defaults to config)
            timeout: Per-reply timeout in seconds (defaults to config)

        Returns:
            ConfirmationResult; ``paused`` is set when the fallback detector
            asked to stop for user input.

        Raises:
            AgentDispatchError: If the channel fails on the final attempt
        """
        max_attempts = max_attempts or self.config.max_confirmation_attempts
        timeout = timeout or self.config.confirmation_timeout_seconds
        threshold = self.config.confidence_threshold
        question = build_status_request(context, self.config.language)
        history: list[ConfirmationAttempt] = []

        for attempt in range(1, max_attempts + 1):
            logger.info(f"Confirmation attempt {attempt}/{max_attempts}")
            reply = await self._ask(question, timeout, attempt, max_attempts)
            status, confidence, test_outcome = parse_reply(reply)
            history.append(
                ConfirmationAttempt(
                    attempt=attempt,
                    question=question,
                    reply=reply,
                    status=status,
                    confidence=confidence,
                    test_outcome=test_outcome,
                )
            )

            if status == "completed" and confidence >= threshold:
                logger.info(f"Confirmation successful on attempt {attempt}")
                return ConfirmationResult(
                    confirmed=True,
                    status=status,
                    confidence=confidence,
                    attempts=attempt,
                    reason="confirmed",
                    history=history,
                )

            if status in ("partially_completed", "need_human") and confidence >= threshold:
                logger.info(f"Confirmation reports {status} on attempt {attempt}")
                return ConfirmationResult(
                    confirmed=False,
                    status=status,
                    confidence=confidence,
                    attempts=attempt,
                    reason=status,
                    history=history,
                )

            if await self._should_pause(reply):
                logger.info(f"User input required after attempt {attempt}, pausing")
                return ConfirmationResult(
                    confirmed=False,
                    status=status,
                    confidence=confidence,
                    attempts=attempt,
                    reason="user_input_required",
                    paused=True,
                    history=history,
                )

            logger.info(f"Confirmation ambiguous on attempt {attempt} ({status})")
            if attempt < max_attempts:
                await asyncio.sleep(self.config.confirmation_retry_delay_seconds)

        logger.warning(f"All {max_attempts} confirmation attempts were inconclusive")
        last = history[-1]
        return ConfirmationResult(
            confirmed=False,
            status=last.status,
            confidence=last.confidence,
            attempts=max_attempts,
            reason="max_attempts_exceeded",
            history=history,
        )

    async def _ask(self, question: str, timeout: float, attempt: int, max_attempts: int) -> str:
        """Send one status request. Timeouts yield an empty (unknown) reply."""
        try:
            return await asyncio.wait_for(self.channel.send(question), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Confirmation attempt {attempt} timed out after {timeout}s")
            return ""
        except Exception as e:
            logger.error(f"Confirmation attempt {attempt} failed: {e}")
            if attempt >= max_attempts:
                raise AgentDispatchError(f"Status request failed: {e}") from e
            return ""

    async def _should_pause(self, reply: str) -> bool:
        if self.fallback_detector is None or not self.config.fallback_detection_enabled:
            return False
        try:
            action = await self.fallback_detector.detect_user_input_need(reply)
        except Exception as e:
            logger.warning(f"Fallback detection failed, continuing: {e}")
            return False
        return action == "pause"
