"""
Tests for quality scoring.

Covers weight profile validation and loading, weighted scoring, thresholds,
review decisions, quality gates and the LLM output grader.
"""

import logging
import math

import pytest
import yaml
from unittest.mock import AsyncMock

from models.entities import ReviewStatus
from models.results import DepartmentReport, DepartmentStatus, OrchestratorResult, Recommendation
from quality.gates import (
    get_quality_recommendation,
    run_all_quality_gates,
    validate_department_quality,
    validate_orchestrator_quality,
)
from quality.grader import DimensionAssessment, OutputGrader
from quality.scorer import QualityAssessmentEngine, calculate_weighted_score
from quality.thresholds import (
    QualityDecision,
    get_quality_decision,
    get_score_label,
    resolve_threshold,
    review_status_for,
)
from quality.weights import (
    BALANCED_WEIGHTS,
    DEPARTMENT_WEIGHTS,
    ScoringWeights,
    build_profiles,
    clamp_score,
    load_weight_profiles,
    validate_score,
    validate_weights,
)
from utils.llm import LLMClient, LLMResponse, ResponseFormatError


ALL_SEVENTY = {
    "confidence": 70, "completeness": 70, "relevance": 70,
    "consistency": 70, "creativity": 70, "technical": 70,
}


class TestWeights:

    def test_builtin_profiles_are_valid(self):
        assert validate_weights(BALANCED_WEIGHTS)
        for name, weights in DEPARTMENT_WEIGHTS.items():
            assert validate_weights(weights), name

    def test_tolerance(self):
        assert validate_weights(ScoringWeights(confidence=0.5, completeness=0.505))
        assert not validate_weights(ScoringWeights(confidence=0.5, completeness=0.52))

    @pytest.mark.parametrize("score,valid", [
        (0, True),
        (72.5, True),
        (100, True),
        (150, False),
        (-1, False),
        (float("nan"), False),
        (True, False),
        ("80", False),
    ])
    def test_validate_score(self, score, valid):
        assert validate_score(score) is valid

    def test_clamp_score(self):
        assert clamp_score(150) == 100
        assert clamp_score(-5) == 0
        assert clamp_score(42) == 42

    def test_invalid_profile_falls_back_to_balanced(self, caplog):
        with caplog.at_level(logging.WARNING):
            profiles = build_profiles({"Story": {"creativity": 0.9, "technical": 0.9}})

        assert profiles["story"] == BALANCED_WEIGHTS
        assert "sums to 1.800" in caplog.text

    def test_malformed_profile_falls_back_to_balanced(self):
        profiles = build_profiles({"audio": {"technical": "loud"}})
        assert profiles["audio"] == BALANCED_WEIGHTS

    def test_valid_override_replaces_builtin(self):
        profiles = build_profiles({"audio": {"technical": 0.5, "completeness": 0.5}})
        assert profiles["audio"].technical == 0.5
        assert profiles["story"] == DEPARTMENT_WEIGHTS["story"]

    def test_load_from_yaml(self, tmp_path):
        path = tmp_path / "weights.yaml"
        path.write_text(yaml.safe_dump({
            "departments": {
                "marketing": {"relevance": 0.6, "creativity": 0.4},
            }
        }))

        profiles = load_weight_profiles(path)

        assert profiles["marketing"].relevance == 0.6
        assert "story" in profiles


class TestScoring:

    def test_uniform_scores(self):
        assert calculate_weighted_score(ALL_SEVENTY, BALANCED_WEIGHTS) == pytest.approx(70)

    def test_department_weights_change_the_score(self):
        dimensions = {"technical": 100, "creativity": 0}
        engine = QualityAssessmentEngine()

        audio = engine.score(dimensions, "audio")
        story = engine.score(dimensions, "story")

        assert audio == pytest.approx(0.40 / 0.50 * 100)
        assert story == pytest.approx(0.10 / 0.35 * 100)

    def test_missing_and_invalid_dimensions_are_ignored(self):
        dimensions = {"relevance": 80, "consistency": None, "creativity": math.nan, "vibes": 10, "technical": True}
        assert calculate_weighted_score(dimensions, BALANCED_WEIGHTS) == pytest.approx(80)

    def test_no_dimensions(self):
        assert calculate_weighted_score({}, BALANCED_WEIGHTS) == 0.0

    def test_lookup_is_case_insensitive(self):
        engine = QualityAssessmentEngine()
        assert engine.get_weights("AUDIO") == DEPARTMENT_WEIGHTS["audio"]

    def test_unknown_department_uses_balanced(self, caplog):
        engine = QualityAssessmentEngine()
        with caplog.at_level(logging.WARNING):
            weights = engine.get_weights("marketing")

        assert weights == BALANCED_WEIGHTS
        assert "marketing" in caplog.text

    def test_breakdown_sums_to_score(self):
        engine = QualityAssessmentEngine()
        breakdown = engine.breakdown(ALL_SEVENTY, "story")
        assert sum(breakdown.values()) == pytest.approx(engine.score(ALL_SEVENTY, "story"))


class TestThresholds:

    @pytest.mark.parametrize("score,expected", [
        (90, ReviewStatus.APPROVED),
        (70, ReviewStatus.APPROVED),
        (65, ReviewStatus.REVISION_NEEDED),
        (60, ReviewStatus.REVISION_NEEDED),
        (55, ReviewStatus.REJECTED),
    ])
    def test_review_status(self, score, expected):
        assert review_status_for(score, 60) == expected

    def test_zero_threshold_approves(self):
        assert review_status_for(0, 0) == ReviewStatus.APPROVED

    def test_resolve_threshold(self):
        assert resolve_threshold(70, 80) == 70
        assert resolve_threshold(None, 80) == 80
        assert resolve_threshold(None, None) == 60
        assert resolve_threshold(0, 80) == 0

    def test_quality_decisions(self):
        assert get_quality_decision(50) == QualityDecision.REJECT
        assert get_quality_decision(70) == QualityDecision.RETRY
        assert get_quality_decision(80, consistency=50) == QualityDecision.RETRY
        assert get_quality_decision(80) == QualityDecision.ACCEPT
        assert get_quality_decision(92, consistency=90) == QualityDecision.EXEMPLARY
        assert get_quality_decision(92, consistency=80) == QualityDecision.ACCEPT

    def test_score_labels(self):
        assert get_score_label(96) == "Excellent"
        assert get_score_label(76) == "Acceptable"
        assert get_score_label(10) == "Poor"


class TestQualityGates:

    def _report(self, quality, relevance=1.0, status=DepartmentStatus.COMPLETE, issues=None):
        return DepartmentReport(
            department_id="story", status=status, quality=quality, relevance=relevance, issues=issues or []
        )

    def test_department_gate_passes(self):
        gate = validate_department_quality(self._report(0.8))
        assert gate.passed
        assert gate.issues == []

    def test_low_relevance_is_penalised(self):
        gate = validate_department_quality(self._report(0.65, relevance=0.4))
        assert not gate.passed
        assert gate.score == pytest.approx(0.55)
        assert "Low relevance to request" in gate.issues

    def test_failed_department_issues_are_carried(self):
        gate = validate_department_quality(self._report(0.0, status=DepartmentStatus.FAILED, issues=["no head"]))
        assert not gate.passed
        assert "no head" in gate.issues

    def test_orchestrator_gate_skips_unchecked_consistency(self):
        result = OrchestratorResult(prompt="p", overall_quality=0.8, completeness=1.0, consistency=None)
        assert validate_orchestrator_quality(result).passed

        result.consistency = 0.5
        gate = validate_orchestrator_quality(result)
        assert not gate.passed
        assert "Low cross-department consistency" in gate.issues

    def test_recommendation_from_gates(self):
        result = OrchestratorResult(
            prompt="p",
            departments=[self._report(0.9), self._report(0.3)],
            overall_quality=0.6,
            completeness=1.0,
        )
        gates = run_all_quality_gates(result)

        assert gates["passed"] is False
        advice = get_quality_recommendation(gates["gates"])
        assert advice["action"] == Recommendation.DISCARD
        assert "Critical quality issues" in advice["reason"]

    def test_all_gates_passing(self):
        result = OrchestratorResult(
            prompt="p", departments=[self._report(0.9)], overall_quality=0.9, completeness=1.0
        )
        advice = get_quality_recommendation(run_all_quality_gates(result)["gates"])
        assert advice["action"] == Recommendation.INGEST


class TestOutputGrader:

    @pytest.mark.asyncio
    async def test_grades_with_department_weights(self):
        client = AsyncMock(spec=LLMClient)
        client.call.return_value = DimensionAssessment(technical=100, completeness=0, feedback="Tight mix")
        grader = OutputGrader(client, QualityAssessmentEngine())

        assessment = await grader.grade("Mix the opening", "final mix", "audio")

        assert assessment.dimensions["technical"] == 100
        assert assessment.feedback == "Tight mix"
        assert assessment.overall_score == pytest.approx(40)
        assert "audio department" in client.call.call_args.kwargs["prompt"]

    @pytest.mark.asyncio
    async def test_out_of_range_scores_are_clamped(self):
        client = AsyncMock(spec=LLMClient)
        client.call.return_value = DimensionAssessment(technical=140, creativity=-5)
        grader = OutputGrader(client, QualityAssessmentEngine())

        assessment = await grader.grade("p", "o", "audio")

        assert assessment.dimensions["technical"] == 100
        assert assessment.dimensions["creativity"] == 0

    @pytest.mark.asyncio
    async def test_unparsed_response_raises(self):
        client = AsyncMock(spec=LLMClient)
        client.call.return_value = LLMResponse(content="great job")
        grader = OutputGrader(client, QualityAssessmentEngine())

        with pytest.raises(ResponseFormatError):
            await grader.grade("p", "o", "story")
