"""Tests for completion validation."""

from unittest.mock import AsyncMock

import pytest

from autofinish.models import QualityAssessment, Task
from autofinish.validation import (
    CompletionValidator,
    HeuristicQualityAssessor,
    keyword_validation,
)


@pytest.fixture
def task():
    return Task(
        id="task-1-abc",
        description="create database schema",
        pattern="todo",
        pattern_priority=1,
        line_number=1,
        category="database",
    )


class TestKeywordValidation:
    """Test the keyword fallback check."""

    def test_completion_keyword_is_valid(self):
        result = keyword_validation("Schema is done.")

        assert result.is_valid is True
        assert result.confidence == 0.9
        assert result.fallback is True

    def test_error_keyword_is_invalid(self):
        result = keyword_validation("Done, but one migration failed")

        assert result.is_valid is False
        assert result.has_error_keyword is True

    def test_no_keyword_is_invalid(self):
        result = keyword_validation("I looked at the code")

        assert result.is_valid is False
        assert result.confidence == 0.3


class TestHeuristicQualityAssessor:
    """Test the default quality assessor."""

    @pytest.mark.asyncio
    async def test_plain_completed_reply(self):
        assessment = await HeuristicQualityAssessor().assess(
            "completed", {"description": "create database schema"}
        )

        assert assessment.completeness_score == 0.8
        assert assessment.overall_score == pytest.approx(0.68)
        assert assessment.has_errors is False

    @pytest.mark.asyncio
    async def test_relevant_summary_scores_high(self):
        assessment = await HeuristicQualityAssessor().assess(
            "Created the database schema. Summary of changes: added tables. Task complete.",
            {"description": "create database schema"},
        )

        assert assessment.completeness_score == 1.0
        assert assessment.overall_score > 0.9

    @pytest.mark.asyncio
    async def test_errors_detected(self):
        assessment = await HeuristicQualityAssessor().assess(
            "Traceback (most recent call last):\nValueError: bad schema", {}
        )

        assert assessment.has_errors is True

    @pytest.mark.asyncio
    async def test_zero_failed_is_not_an_error(self):
        assessment = await HeuristicQualityAssessor().assess("42 passed, 0 failed. Done.", {})

        assert assessment.has_errors is False

    @pytest.mark.asyncio
    async def test_partial_work_lowers_completeness(self):
        assessment = await HeuristicQualityAssessor().assess("Still working on the schema", {})

        assert assessment.completeness_score < 0.7


class TestCompletionValidator:
    """Test CompletionValidator.validate()."""

    @pytest.mark.asyncio
    async def test_without_assessor_uses_keywords(self, task):
        result = await CompletionValidator().validate(task, "completed")

        assert result.is_valid is True
        assert result.fallback is True

    @pytest.mark.asyncio
    async def test_assessor_failure_falls_back(self, task):
        assessor = AsyncMock()
        assessor.assess.side_effect = RuntimeError("engine down")

        result = await CompletionValidator(assessor).validate(task, "completed")

        assert result.is_valid is True
        assert result.fallback is True
        assert "Quality assessment failed" in result.error

    @pytest.mark.asyncio
    async def test_mapping_assessment_is_accepted(self, task):
        assessor = AsyncMock()
        assessor.assess.return_value = {
            "completenessScore": 0.9,
            "overallScore": 0.8,
            "hasErrors": False,
        }

        result = await CompletionValidator(assessor).validate(task, "completed")

        assert result.is_valid is True
        assert result.fallback is False
        assert result.assessment == QualityAssessment(0.9, 0.8, False)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("malformed", [{"score": 1}, None, {"completenessScore": "high"}])
    async def test_malformed_assessment_falls_back(self, task, malformed):
        assessor = AsyncMock()
        assessor.assess.return_value = malformed

        result = await CompletionValidator(assessor).validate(task, "completed")

        assert result.is_valid is True
        assert result.fallback is True
        assert "Quality assessment failed" in result.error

    @pytest.mark.asyncio
    async def test_assessor_passes_task_context(self, task):
        assessor = AsyncMock()
        assessor.assess.return_value = QualityAssessment(0.9, 0.8, False)

        await CompletionValidator(assessor).validate(task, "completed")

        context = assessor.assess.call_args[0][1]
        assert context["description"] == "create database schema"
        assert context["category"] == "database"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "assessment,valid",
        [
            (QualityAssessment(0.9, 0.8, False), True),
            (QualityAssessment(0.9, 0.8, True), False),
            (QualityAssessment(0.6, 0.9, False), False),
            (QualityAssessment(0.9, 0.5, False), False),
        ],
    )
    async def test_thresholds(self, task, assessment, valid):
        assessor = AsyncMock()
        assessor.assess.return_value = assessment

        result = await CompletionValidator(assessor).validate(task, "completed")

        assert result.is_valid is valid
        assert result.fallback is False
        assert result.assessment is assessment
