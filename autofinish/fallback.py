"""Keyword fallback detector for agent replies that wait on the user.

Consulted by the confirmation protocol after an ambiguous status reply. An
explicit escalation marker pauses immediately; otherwise input-request phrases
(English, German, Spanish, French) and questions are scored and the reply
pauses the task once the score reaches the threshold.
"""

import logging
import re
from dataclasses import dataclass, field

from autofinish.collaborators import FallbackAction
from autofinish.matchers import KeywordTable, contains_keyword

logger = logging.getLogger(__name__)

# Markers the agent is instructed to emit when it needs a human
EXPLICIT_MARKERS: tuple[str, ...] = ("STATUS: needs_human", "NEEDS_HUMAN:")

INPUT_REQUEST_PHRASES: KeywordTable = {
    "en": (
        "please confirm",
        "please choose",
        "please select",
        "which option",
        "would you like",
        "do you want",
        "should i",
        "let me know",
        "your input",
        "your decision",
        "waiting for input",
    ),
    "de": (
        "bitte bestätigen",
        "bitte wählen",
        "welche option",
        "möchtest du",
        "möchten sie",
        "soll ich",
        "deine eingabe",
        "ihre eingabe",
        "entscheidung",
    ),
    "es": (
        "por favor confirma",
        "por favor elige",
        "qué opción",
        "quieres que",
        "prefieres",
        "debo",
        "tu decisión",
        "tu elección",
    ),
    "fr": (
        "merci de confirmer",
        "veuillez confirmer",
        "veuillez choisir",
        "quelle option",
        "voulez-vous",
        "souhaitez-vous",
        "dois-je",
        "votre choix",
        "votre décision",
    ),
}

PHRASE_SCORE = 0.4
TRAILING_QUESTION_SCORE = 0.4
QUESTION_SCORE = 0.1
MAX_QUESTION_SCORE = 0.3

_QUESTION_RE = re.compile(r"[?¿]")


@dataclass
class FallbackAnalysis:
    """Scoring details behind a pause/continue decision."""

    action: FallbackAction
    score: float
    explicit_marker: bool = False
    indicators: list[str] = field(default_factory=list)


def analyze_response(response: str, threshold: float = 0.7) -> FallbackAnalysis:
    """Score a reply for signs that the agent is waiting on the user.

    Args:
        response: Agent reply text
        threshold: Score at or above which the decision is "pause"

    Returns:
        FallbackAnalysis with the decision and the matched indicators
    """
    if not response or not response.strip():
        return FallbackAnalysis(action="continue", score=0.0)

    for marker in EXPLICIT_MARKERS:
        if marker in response:
            return FallbackAnalysis(
                action="pause", score=1.0, explicit_marker=True, indicators=[marker]
            )

    indicators: list[str] = []
    score = 0.0
    for phrases in INPUT_REQUEST_PHRASES.values():
        for phrase in phrases:
            if contains_keyword(response, phrase):
                indicators.append(phrase)
                score += PHRASE_SCORE

    lines = [line.strip() for line in response.strip().splitlines() if line.strip()]
    if lines and lines[-1].endswith("?"):
        indicators.append("trailing question")
        score += TRAILING_QUESTION_SCORE
    questions = len(_QUESTION_RE.findall(response))
    if questions:
        score += min(questions * QUESTION_SCORE, MAX_QUESTION_SCORE)

    score = min(score, 1.0)
    action: FallbackAction = "pause" if score >= threshold else "continue"
    return FallbackAnalysis(action=action, score=score, indicators=indicators)


class KeywordFallbackDetector:
    """Default FallbackDetector backed by analyze_response()."""

    def __init__(self, threshold: float = 0.7, enabled: bool = True):
        self.threshold = threshold
        self.enabled = enabled

    async def detect_user_input_need(self, response: str) -> FallbackAction:
        if not self.enabled:
            return "continue"
        analysis = analyze_response(response, self.threshold)
        if analysis.action == "pause":
            logger.info(
                f"User input need detected (score={analysis.score:.2f}, "
                f"indicators={analysis.indicators})"
            )
        return analysis.action
