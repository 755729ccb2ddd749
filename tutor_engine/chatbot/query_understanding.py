"""
Query Understanding (rule-based classifier)

Input: one learner utterance.
Output: QueryAnalysis
  - subject:            first keyword table that matches, in priority order
  - complexity:         advanced / basic indicators, then word count
  - intent:             confirmatory > factual > procedural > analytical > creative > conceptual
  - response_type:      length tier (simple / medium / longer) that bounds the answer
  - learning_approach:  socratic / example_based / analogical / scaffolded / direct
  - keywords, question_type, requires_examples, requires_steps

Classification is deterministic and side-effect free: the same text always
yields the same QueryAnalysis. All patterns live in rule_tables.py.
"""

import re
from functools import lru_cache
from typing import Iterable, List, Pattern, Tuple

from ..schema.core_schema import (
    LearningApproach,
    QueryAnalysis,
    QueryComplexity,
    ResponseType,
    SubjectType,
    UserIntent,
)
from . import rule_tables as rules


_TOKEN_RE = re.compile(r"[a-z0-9][a-z0-9'\-]*")


@lru_cache(maxsize=2048)
def _phrase_regex(phrase: str) -> Pattern[str]:
    # word boundaries on both sides; allow plural forms of single keywords
    suffix = r"(?:s|es)?" if phrase[-1].isalpha() else ""
    return re.compile(r"(?<!\w)" + re.escape(phrase) + suffix + r"(?!\w)")


def contains_phrase(text: str, phrases: Iterable[str]) -> bool:
    """True if any phrase occurs in text as whole words."""
    return any(_phrase_regex(p).search(text) for p in phrases)


def _matches_any(text: str, patterns: Iterable[Pattern[str]]) -> bool:
    return any(p.search(text) for p in patterns)


def word_count(text: str) -> int:
    return len(text.split())


class QueryClassifier:
    """Deterministic multi-axis classifier over the tables in rule_tables."""

    def classify(self, text: str) -> QueryAnalysis:
        """
        Classify one utterance.

        The working copy is trimmed and lower-cased; word counts are taken
        from the original (trimmed) text.
        """
        original = (text or "").strip()
        lower = original.lower()
        if not lower:
            return QueryAnalysis(
                complexity=QueryComplexity.BASIC,
                response_type=ResponseType.SIMPLE,
            )

        return QueryAnalysis(
            subject=self.identify_subject(lower),
            complexity=self.assess_complexity(lower, original),
            intent=self.classify_intent(lower),
            response_type=self.determine_response_type(lower, original),
            learning_approach=self.select_learning_approach(lower),
            keywords=self.extract_keywords(lower),
            question_type=self.identify_question_type(lower),
            requires_examples=contains_phrase(lower, rules.EXAMPLE_INDICATORS),
            requires_steps=contains_phrase(lower, rules.STEP_INDICATORS),
        )

    # ------------------------------------------------------------------
    # Axes
    # ------------------------------------------------------------------
    def identify_subject(self, lower: str) -> SubjectType:
        for subject, keywords in rules.SUBJECT_KEYWORDS:
            if contains_phrase(lower, keywords):
                return subject
            if subject == SubjectType.MATHEMATICS and rules.MATH_SYMBOL_PATTERN.search(lower):
                return subject
        return SubjectType.GENERAL

    def assess_complexity(self, lower: str, original: str) -> QueryComplexity:
        if contains_phrase(lower, rules.ADVANCED_INDICATORS) or contains_phrase(
            lower, rules.COMPLEX_VOCABULARY
        ):
            return QueryComplexity.ADVANCED
        if contains_phrase(lower, rules.BASIC_INDICATORS) or word_count(original) <= rules.BASIC_MAX_WORDS:
            return QueryComplexity.BASIC
        return QueryComplexity.INTERMEDIATE

    def classify_intent(self, lower: str) -> UserIntent:
        if self.is_confirmation(lower):
            return UserIntent.CONFIRMATORY
        if _matches_any(lower, rules.FACTUAL_PATTERNS):
            return UserIntent.FACTUAL
        for intent, phrases in rules.INTENT_PHRASES:
            if contains_phrase(lower, phrases):
                return intent
        return UserIntent.CONCEPTUAL

    def determine_response_type(self, lower: str, original: str) -> ResponseType:
        words = word_count(original)

        # explicit cues override everything else
        if contains_phrase(lower, rules.EXPLICIT_SIMPLE_CUES):
            return ResponseType.SIMPLE
        if contains_phrase(lower, rules.EXPLICIT_LONGER_CUES):
            return ResponseType.LONGER

        if _matches_any(lower, rules.DIRECT_FACTUAL_PATTERNS):
            return ResponseType.SIMPLE
        if self.is_confirmation(lower):
            return ResponseType.SIMPLE

        open_conceptual = _matches_any(lower, rules.OPEN_CONCEPTUAL_PATTERNS)
        if words <= rules.SHORT_QUERY_MAX_WORDS and not open_conceptual:
            return ResponseType.SIMPLE
        if self.is_math_expression(lower) and not contains_phrase(lower, ("how", "why")):
            return ResponseType.SIMPLE
        if open_conceptual:
            return ResponseType.MEDIUM
        if contains_phrase(lower, rules.PROCEDURAL_ANALYTICAL_CUES):
            return ResponseType.LONGER

        return ResponseType.SIMPLE if words <= rules.SIMPLE_FALLBACK_MAX_WORDS else ResponseType.MEDIUM

    def select_learning_approach(self, lower: str) -> LearningApproach:
        for approach, cues in rules.APPROACH_CUES:
            if contains_phrase(lower, cues):
                return approach
        return LearningApproach.DIRECT

    def extract_keywords(self, lower: str) -> Tuple[str, ...]:
        keywords: List[str] = []
        for token in _TOKEN_RE.findall(lower):
            token = token.strip("'-")
            if len(token) < rules.KEYWORD_MIN_LENGTH or token in rules.KEYWORD_STOP_WORDS:
                continue
            if token not in keywords:
                keywords.append(token)
            if len(keywords) == rules.MAX_KEYWORDS:
                break
        return tuple(keywords)

    def identify_question_type(self, lower: str) -> str:
        for prefix, label in rules.QUESTION_TYPES:
            if lower.startswith(prefix):
                return label
        if "?" in lower:
            return "Direct Question"
        return "Statement/Request"

    # ------------------------------------------------------------------
    # Shared predicates
    # ------------------------------------------------------------------
    @staticmethod
    def is_confirmation(lower: str) -> bool:
        return _matches_any(lower, rules.CONFIRMATION_PATTERNS)

    @staticmethod
    def is_math_expression(lower: str) -> bool:
        return _matches_any(lower, rules.MATH_EXPRESSION_PATTERNS)


_DEFAULT_CLASSIFIER = QueryClassifier()


def classify(text: str) -> QueryAnalysis:
    """Single entry point: utterance → QueryAnalysis."""
    return _DEFAULT_CLASSIFIER.classify(text)


def is_simple_math(text: str) -> bool:
    """Bare arithmetic ('2+2', 'what is 3*4?', '1+1=?') that takes the fast path."""
    return _matches_any((text or "").strip().lower(), rules.SIMPLE_MATH_PATTERNS)


def needs_web_search(text: str) -> bool:
    """
    Real-world / current-event / institution lookups go to the search gateway.
    Teaching and conversational phrasing never does.
    """
    lower = (text or "").strip().lower()
    if not lower:
        return False
    if _matches_any(lower, rules.CONVERSATIONAL_INDICATORS):
        return False
    return _matches_any(lower, rules.SEARCH_INDICATORS)
