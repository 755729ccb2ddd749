"""
Fact Extractor

Pulls short declarative facts out of learner messages ("My name is Ana",
"I'm studying biology", "Paris is the capital of France") so they can be
carried into the prompt as key facts. Best-effort: a pattern that fails on
one message is logged and skipped.
"""

import re
from typing import Iterable, List, Pattern, Tuple

from loguru import logger

from ..schema.core_schema import ChatMessage


# Ordered (name, pattern) table; group(0) of a match is the candidate fact.
FACT_PATTERNS: Tuple[Tuple[str, Pattern[str]], ...] = (
    ("assertion", re.compile(r"\b[A-Z][\w'-]*(?:\s+[A-Z][\w'-]*)*\s+is\s+[^.!?\n]+")),
    ("self_introduction", re.compile(r"\bmy name is\s+[^.!?,\n]+", re.IGNORECASE)),
    ("studying", re.compile(r"\bI(?:'m| am)\s+(?:studying|learning|taking)\s+[^.!?\n]+", re.IGNORECASE)),
    ("interest", re.compile(r"\bI(?:'m| am)\s+interested in\s+[^.!?\n]+", re.IGNORECASE)),
    ("topic", re.compile(r"\b(?:about|studying|learning|topic|subject)\s+[A-Za-z][\w'-]*(?:\s+[A-Za-z][\w'-]*){0,3}", re.IGNORECASE)),
    ("numeric_equality", re.compile(r"\b\d+(?:\.\d+)?\s*[+\-*/^x]\s*\d+(?:\.\d+)?\s*=\s*-?\d+(?:\.\d+)?")),
    ("institution", re.compile(r"\b(?:at|from)\s+(?:the\s+)?(?:[A-Z][\w'-]*\s+)*(?:University|College|School|Academy|Institute)\b(?:\s+of\s+[A-Z][\w'-]*)*")),
    ("institution_named", re.compile(r"\b(?:university|college|school)\s+of\s+[A-Z][\w'-]*(?:\s+[A-Z][\w'-]*)*", re.IGNORECASE)),
)

# Matches containing any of these (as whole words) are not facts.
EXCLUDED_PHRASES: Tuple[str, ...] = (
    "what",
    "how",
    "why",
    "when",
    "where",
    "which",
    "who",
    "can you",
    "could you",
    "please",
    "help me",
    "explain",
    "tell me",
    "i don't know",
    "not sure",
    "maybe",
)

MIN_FACT_LENGTH = 5
MAX_FACT_LENGTH = 150


def _excluded(candidate: str) -> bool:
    lower = candidate.lower()
    return any(re.search(r"(?<!\w)" + re.escape(p) + r"(?!\w)", lower) for p in EXCLUDED_PHRASES)


class FactExtractor:
    """Extracts up to max_facts distinct facts, most recent first."""

    def __init__(
        self,
        max_facts: int = 10,
        patterns: Iterable[Tuple[str, Pattern[str]]] = FACT_PATTERNS,
    ):
        self.max_facts = max_facts
        self.patterns = tuple(patterns)

    def extract(self, messages: Iterable[ChatMessage]) -> List[str]:
        """
        Scan user-authored messages newest to oldest.

        Returns:
            Deduplicated facts, most recent message first, capped at max_facts.
        """
        facts: List[str] = []
        seen = set()
        for message in reversed(list(messages)):
            if not message.is_user:
                continue
            for fact in self.extract_from_text(message.text):
                key = fact.lower()
                if key in seen:
                    continue
                seen.add(key)
                facts.append(fact)
                if len(facts) >= self.max_facts:
                    return facts
        return facts

    def extract_from_text(self, text: str) -> List[str]:
        """Candidate facts from a single message, in pattern-table order."""
        found: List[str] = []
        for name, pattern in self.patterns:
            try:
                matches = [m.group(0).strip() for m in pattern.finditer(text)]
            except Exception as e:
                logger.warning(f"Fact pattern '{name}' failed: {e}")
                continue
            for candidate in matches:
                candidate = candidate.rstrip(" ,;:")
                if not (MIN_FACT_LENGTH < len(candidate) < MAX_FACT_LENGTH):
                    continue
                if _excluded(candidate):
                    continue
                if candidate not in found:
                    found.append(candidate)
        return found
