"""Tests for request complexity analysis."""

import pytest

from agents.complexity import KeywordComplexityAnalyzer
from models.results import ComplexityLevel


@pytest.fixture
def analyzer():
    return KeywordComplexityAnalyzer()


def test_short_request_is_simple(analyzer):
    analysis = analyzer.analyze("Name the pilot episode")

    assert analysis.complexity == ComplexityLevel.SIMPLE
    assert analysis.requires_specialists is False
    assert analysis.estimated_specialists == 1
    assert analysis.required_skills == []
    assert analysis.word_count == 4


def test_multi_part_request_is_complex(analyzer):
    analysis = analyzer.analyze("Write the plot and the dialogue")

    assert analysis.complexity == ComplexityLevel.COMPLEX
    assert analysis.estimated_specialists == 4
    assert analysis.required_skills == ["dialogue", "plot"]


def test_depth_request_is_complex(analyzer):
    assert analyzer.analyze("A detailed pitch").complexity == ComplexityLevel.COMPLEX


def test_conjunctions_match_whole_words_only(analyzer):
    assert analyzer.analyze("Understand the brand").complexity == ComplexityLevel.SIMPLE


@pytest.mark.parametrize("words,expected", [
    (50, ComplexityLevel.SIMPLE),
    (51, ComplexityLevel.MODERATE),
    (100, ComplexityLevel.MODERATE),
    (101, ComplexityLevel.COMPLEX),
])
def test_word_count_thresholds(analyzer, words, expected):
    analysis = analyzer.analyze(" ".join(["scene"] * words))

    assert analysis.complexity == expected
    assert analysis.word_count == words


def test_skill_keywords_match_substrings(analyzer):
    assert "character" in analyzer.detect_skills("Fix the characterization")


def test_custom_keywords_and_thresholds():
    analyzer = KeywordComplexityAnalyzer(
        skill_keywords={"foley": ["footsteps", "door"]},
        complex_word_count=5,
        moderate_word_count=2,
    )

    analysis = analyzer.analyze("Record footsteps outside")

    assert analysis.complexity == ComplexityLevel.MODERATE
    assert analysis.estimated_specialists == 2
    assert analysis.required_skills == ["foley"]
