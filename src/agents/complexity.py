"""Request complexity analysis used by department heads to size specialist fan-out."""

import re
from abc import ABC, abstractmethod
from typing import Dict, List, Mapping, Optional, Sequence

from models.results import ComplexityLevel, RequestAnalysis


DEFAULT_SKILL_KEYWORDS: Dict[str, List[str]] = {
    "dialogue": ["dialogue", "conversation", "speech", "talking"],
    "plot": ["plot", "story", "narrative", "storyline"],
    "character": ["character", "protagonist", "personality", "traits"],
    "theme": ["theme", "meaning", "symbolism", "message"],
    "structure": ["structure", "act", "sequence", "pacing"],
}

MULTI_PART_WORDS = ("and", "also", "additionally", "furthermore")
DEPTH_WORDS = ("complex", "detailed", "comprehensive", "elaborate")

SPECIALISTS_BY_COMPLEXITY = {
    ComplexityLevel.SIMPLE: 1,
    ComplexityLevel.MODERATE: 2,
    ComplexityLevel.COMPLEX: 4,
}


class ComplexityAnalyzer(ABC):

    @abstractmethod
    def analyze(self, prompt: str) -> RequestAnalysis:
        pass


class KeywordComplexityAnalyzer(ComplexityAnalyzer):
    """
    Word-count and keyword heuristic.

    Complex when the request is long (> complex_word_count words), has several
    parts (joined by conjunctions) or asks for depth; moderate when it is
    longer than moderate_word_count words; otherwise simple.
    """

    def __init__(
        self,
        skill_keywords: Optional[Mapping[str, Sequence[str]]] = None,
        complex_word_count: int = 100,
        moderate_word_count: int = 50
    ):
        self.skill_keywords = dict(skill_keywords or DEFAULT_SKILL_KEYWORDS)
        self.complex_word_count = complex_word_count
        self.moderate_word_count = moderate_word_count
        # Whole words only, so "brand" does not read as "and"
        self._multi_part = re.compile(r"\b(" + "|".join(MULTI_PART_WORDS) + r")\b", re.IGNORECASE)
        self._depth = re.compile(r"\b(" + "|".join(DEPTH_WORDS) + r")\b", re.IGNORECASE)

    def analyze(self, prompt: str) -> RequestAnalysis:
        word_count = len(prompt.split())
        has_multiple_parts = bool(self._multi_part.search(prompt))
        needs_depth = bool(self._depth.search(prompt))

        if word_count > self.complex_word_count or has_multiple_parts or needs_depth:
            complexity = ComplexityLevel.COMPLEX
        elif word_count > self.moderate_word_count:
            complexity = ComplexityLevel.MODERATE
        else:
            complexity = ComplexityLevel.SIMPLE

        return RequestAnalysis(
            complexity=complexity,
            required_skills=self.detect_skills(prompt),
            estimated_specialists=SPECIALISTS_BY_COMPLEXITY[complexity],
            requires_specialists=complexity != ComplexityLevel.SIMPLE,
            word_count=word_count,
        )

    def detect_skills(self, prompt: str) -> List[str]:
        lowered = prompt.lower()
        return [
            skill for skill, keywords in self.skill_keywords.items()
            if any(keyword in lowered for keyword in keywords)
        ]
