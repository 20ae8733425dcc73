"""Completion validation for confirmed tasks.

A confirmed completion is corroborated against the agent's own text before
the task is marked completed. The quality collaborator scores the response;
when it is absent or fails, a keyword check decides instead.
"""

import logging
import re
from collections.abc import Mapping
from typing import Any

from autofinish.collaborators import QualityAssessor
from autofinish.errors import ValidationError
from autofinish.matchers import contains_keyword, words
from autofinish.models import QualityAssessment, Task, ValidationResult

logger = logging.getLogger(__name__)

COMPLETION_KEYWORDS: tuple[str, ...] = (
    "fertig",
    "done",
    "complete",
    "completed",
    "finished",
    "erledigt",
    "abgeschlossen",
)
ERROR_KEYWORDS: tuple[str, ...] = ("error", "failed", "cannot", "unable", "problem", "issue")

# Thresholds a quality assessment must clear
MIN_COMPLETENESS = 0.7
MIN_OVERALL = 0.6

_EXPLICIT_COMPLETION = (
    re.compile(r"task.*complete", re.IGNORECASE),
    re.compile(r"work.*done", re.IGNORECASE),
    re.compile(r"finished.*implementation", re.IGNORECASE),
    re.compile(r"ready.*for.*next", re.IGNORECASE),
)
_IMPLICIT_COMPLETION = (
    re.compile(r"here.*is.*the.*solution", re.IGNORECASE),
    re.compile(r"this.*should.*work", re.IGNORECASE),
    re.compile(r"you.*can.*now", re.IGNORECASE),
    re.compile(r"code.*has.*been.*updated", re.IGNORECASE),
    re.compile(r"\b(?:implemented|added|created|updated|fixed)\b", re.IGNORECASE),
)
_SUMMARY = (
    re.compile(r"summary.*of.*changes", re.IGNORECASE),
    re.compile(r"changes.*made", re.IGNORECASE),
    re.compile(r"implementation.*complete", re.IGNORECASE),
)
_PARTIAL = (
    re.compile(r"partially.*complete", re.IGNORECASE),
    re.compile(r"still.*working", re.IGNORECASE),
    re.compile(r"need.*more.*time", re.IGNORECASE),
    re.compile(r"\bin.*progress\b", re.IGNORECASE),
    re.compile(r"not.*finished", re.IGNORECASE),
    re.compile(r"missing.*implementation", re.IGNORECASE),
    re.compile(r"requires.*more.*work", re.IGNORECASE),
)
_ERRORS = (
    re.compile(r"\btraceback\b", re.IGNORECASE),
    re.compile(r"\b\w*(?:error|exception)\s*:", re.IGNORECASE),
    re.compile(r"\b(?:cannot|can't|could not|couldn't|unable to)\b", re.IGNORECASE),
    re.compile(r"(?<!\b0 )(?<!\bno )\bfailed\b", re.IGNORECASE),
)


def keyword_validation(text: str, error: str | None = None) -> ValidationResult:
    """Basic validation: a completion keyword and no error keyword."""
    has_completion = any(contains_keyword(text, k) for k in COMPLETION_KEYWORDS)
    has_error = any(contains_keyword(text, k) for k in ERROR_KEYWORDS)
    return ValidationResult(
        is_valid=has_completion and not has_error,
        confidence=0.9 if has_completion else 0.3,
        has_completion_keyword=has_completion,
        has_error_keyword=has_error,
        fallback=True,
        error=error,
    )


class HeuristicQualityAssessor:
    """Default QualityAssessor scoring completion, error and relevance signals."""

    async def assess(self, response: str, context: dict[str, Any]) -> QualityAssessment:
        completeness = 0.5
        suggestions: list[str] = []

        if any(p.search(response) for p in _EXPLICIT_COMPLETION) or any(
            contains_keyword(response, k) for k in COMPLETION_KEYWORDS
        ):
            completeness += 0.3
        if any(p.search(response) for p in _IMPLICIT_COMPLETION):
            completeness += 0.1
        if any(p.search(response) for p in _SUMMARY):
            completeness += 0.1
        partial_hits = sum(1 for p in _PARTIAL if p.search(response))
        if partial_hits:
            completeness -= 0.3 * partial_hits
            suggestions.append("Response indicates the work is not finished")
        completeness = max(0.0, min(completeness, 1.0))

        has_errors = any(p.search(response) for p in _ERRORS)
        if has_errors:
            suggestions.append("Response reports errors")

        relevance = _relevance(response, context.get("description", ""))
        if relevance < 0.3:
            suggestions.append("Response does not mention the task")

        overall = 0.6 * completeness + 0.2 * (0.0 if has_errors else 1.0) + 0.2 * relevance
        return QualityAssessment(
            completeness_score=round(completeness, 3),
            overall_score=round(overall, 3),
            has_errors=has_errors,
            suggestions=suggestions,
        )


def coerce_assessment(value: Any) -> QualityAssessment:
    """Normalize a collaborator's assessment.

    Accepts a QualityAssessment, any object with the same attributes, or a
    mapping with snake_case or camelCase keys (``completenessScore``,
    ``overallScore``, ``hasErrors``).

    Raises:
        KeyError, AttributeError, TypeError, ValueError: If a score is missing
            or not numeric
    """
    if isinstance(value, QualityAssessment):
        return value
    if isinstance(value, Mapping):

        def pick(snake: str, camel: str) -> Any:
            return value[snake] if snake in value else value[camel]

        return QualityAssessment(
            completeness_score=float(pick("completeness_score", "completenessScore")),
            overall_score=float(pick("overall_score", "overallScore")),
            has_errors=bool(pick("has_errors", "hasErrors")),
            suggestions=list(value.get("suggestions", [])),
        )
    return QualityAssessment(
        completeness_score=float(value.completeness_score),
        overall_score=float(value.overall_score),
        has_errors=bool(value.has_errors),
        suggestions=list(getattr(value, "suggestions", [])),
    )


class CompletionValidator:
    """Validates that a confirmed task is actually complete.

    Args:
        assessor: Optional quality collaborator; keyword validation is used
            when it is None or raises
    """

    def __init__(self, assessor: QualityAssessor | None = None):
        self.assessor = assessor

    async def validate(self, task: Task, response: str) -> ValidationResult:
        if self.assessor is None:
            return keyword_validation(response)

        context = {"task_id": task.id, "description": task.description, "category": task.category}
        try:
            assessment = coerce_assessment(await self.assessor.assess(response, context))
            is_valid = (
                assessment.completeness_score > MIN_COMPLETENESS
                and assessment.overall_score > MIN_OVERALL
                and not assessment.has_errors
            )
        except Exception as e:
            error = ValidationError(f"Quality assessment failed for {task.id}: {e}")
            logger.warning(f"{error}; falling back to keyword validation")
            return keyword_validation(response, error=str(error))

        has_completion = any(contains_keyword(response, k) for k in COMPLETION_KEYWORDS)
        return ValidationResult(
            is_valid=is_valid,
            confidence=round((assessment.overall_score + assessment.completeness_score) / 2, 3),
            has_completion_keyword=has_completion,
            has_error_keyword=assessment.has_errors,
            assessment=assessment,
        )


def _relevance(response: str, description: str) -> float:
    task_words = {w for w in words(description) if len(w) > 3}
    if not task_words:
        return 0.5
    return len(task_words & set(words(response))) / len(task_words)
