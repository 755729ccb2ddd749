"""
Response Post-Processor

Shapes generated text for the simple tier: strip padding, then hold the
answer to the token ceiling (compress by intent, truncate as a last resort).
Medium and longer tiers pass through trimmed but otherwise untouched.
"""

import re
from typing import Pattern, Tuple

from loguru import logger

from ..schema.core_schema import ResponseType, UserIntent


PADDING_PATTERNS: Tuple[Pattern[str], ...] = (
    re.compile(r"^\s*(?:sure|absolutely|of course|certainly|great question)\s*[!,.]*\s*", re.IGNORECASE),
    # closers drop everything after them
    re.compile(r"\s*(?:i\s+)?hope (?:this|that) helps.*$", re.IGNORECASE | re.DOTALL),
    re.compile(r"\s*(?:is there anything else|any other questions|anything else you).*$", re.IGNORECASE | re.DOTALL),
    re.compile(r"\s*let me know if you (?:have|need).*$", re.IGNORECASE | re.DOTALL),
    re.compile(r"^\s*(?:here(?:'s| is) the answer|the answer is)\s*[:,]?\s*", re.IGNORECASE),
)

LEAD_IN_PATTERN = re.compile(r"^\s*(?:the answer is|it is|it's)\s*[:,]?\s*", re.IGNORECASE)
NEGATIVE_POLARITY = re.compile(r"\b(?:false|incorrect|wrong|not true)\b|^\s*no\b", re.IGNORECASE)
POSITIVE_POLARITY = re.compile(r"\b(?:true|correct|yes|right)\b", re.IGNORECASE)
_SENTENCE_RE = re.compile(r"^.*?[.!?](?=\s|$)", re.DOTALL)


def token_count(text: str) -> int:
    return len(text.split())


class ResponsePostProcessor:
    """Enforces the simple-tier shape on generated text."""

    def __init__(self, token_ceiling: int = 15):
        if token_ceiling < 1:
            raise ValueError("token_ceiling must be >= 1")
        self.token_ceiling = token_ceiling

    def process(self, text: str, response_type: ResponseType, intent: UserIntent) -> str:
        text = (text or "").strip()
        if response_type != ResponseType.SIMPLE:
            return text

        stripped = self.strip_padding(text)
        if not stripped:
            # padding was all there was; keep the original rather than an empty reply
            stripped = text

        if token_count(stripped) <= self.token_ceiling:
            return stripped

        compressed = self.compress(stripped, intent)
        if token_count(compressed) <= self.token_ceiling:
            return compressed

        truncated = " ".join(compressed.split()[: self.token_ceiling])
        logger.warning(
            f"Simple-tier reply still {token_count(compressed)} tokens after compression; "
            f"truncated to {self.token_ceiling}"
        )
        return truncated

    @staticmethod
    def strip_padding(text: str) -> str:
        for pattern in PADDING_PATTERNS:
            text = pattern.sub(" ", text)
        return re.sub(r"\s{2,}", " ", text).strip()

    @staticmethod
    def compress(text: str, intent: UserIntent) -> str:
        """Intent-specific compression; other intents are returned unchanged."""
        if intent == UserIntent.CONFIRMATORY:
            if NEGATIVE_POLARITY.search(text):
                return "False"
            if POSITIVE_POLARITY.search(text):
                return "True"
            return text

        if intent == UserIntent.FACTUAL:
            match = _SENTENCE_RE.match(text)
            first = match.group(0) if match else text
            first = LEAD_IN_PATTERN.sub("", first).strip()
            if first:
                return first[0].upper() + first[1:]
        return text
