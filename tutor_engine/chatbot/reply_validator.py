"""
Reply Validator

Checks generated text before it reaches the learner:

- memory claims ("we discussed X", "you told me X", "last time we covered X")
  must be backed by the conversation (session memory plus carryover). The
  sentence holding an unsupported claim is replaced with an honest statement.
- arithmetic written as "a op b = c" is recomputed and a wrong result is
  corrected in place.

Both checks are best-effort: a claim pattern that fails is logged and skipped,
and an expression that cannot be computed is left alone.
"""

import math
import operator
import re
from typing import Callable, Dict, Iterable, List, Optional, Pattern, Set, Tuple

from loguru import logger
from pydantic import BaseModel, Field

from ..schema.core_schema import ChatMessage
from .rule_tables import KEYWORD_STOP_WORDS


# ============================================================================
# MEMORY CLAIMS
# ============================================================================

_TOPIC = r"(?P<topic>[^.!?,;:\n]+)"

# Ordered (name, pattern) table; group "topic" is what the claim says was shared.
CLAIM_PATTERNS: Tuple[Tuple[str, Pattern[str]], ...] = (
    ("shared_discussion", re.compile(
        r"\bwe\s+(?:already\s+)?(?:discussed|talked about|covered|went over|looked at|reviewed|explored)\s+" + _TOPIC,
        re.IGNORECASE,
    )),
    ("learner_statement", re.compile(
        r"\byou\s+(?:told me|mentioned|said|asked about|were interested in)\s+(?:that\s+)?" + _TOPIC,
        re.IGNORECASE,
    )),
    ("previous_session", re.compile(
        r"\b(?:last time|in our (?:last|previous|earlier) (?:session|conversation|chat)),?\s+"
        r"(?:we|you)\s+(?:discussed|talked about|covered|learned|studied|practiced|worked on|asked about)\s+" + _TOPIC,
        re.IGNORECASE,
    )),
    ("remember_when", re.compile(
        r"\bremember\s+when\s+(?:we|you)\s+(?:discussed|talked about|covered|learned|asked about|worked on)\s+" + _TOPIC,
        re.IGNORECASE,
    )),
)

CLAIM_STOP_WORDS = KEYWORD_STOP_WORDS | frozenset({
    "the", "and", "for", "our", "your", "you", "some", "earlier", "before", "previously",
    "today", "yesterday", "just", "really", "things", "thing", "topic", "stuff", "them",
})
MAX_TOPIC_WORDS = 6
CLAIM_SUPPORT_RATIO = 0.5

HONEST_STATEMENT = "I don't have a record of us discussing {topic} yet."

_WORD = re.compile(r"[a-z0-9']+")
_SENTENCE_END = re.compile(r"[.!?]+|\n")


def _stem(word: str) -> str:
    if len(word) > 3 and word.endswith("s") and not word.endswith("ss"):
        return word[:-1]
    return word


def _words(text: str) -> Set[str]:
    return {_stem(w) for w in _WORD.findall(text.lower())}


def claim_terms(topic: str) -> List[str]:
    """Content words of a claimed topic, stemmed, in order."""
    return [
        _stem(word)
        for word in _WORD.findall(topic.lower())[:MAX_TOPIC_WORDS]
        if len(word) >= 3 and word not in CLAIM_STOP_WORDS
    ]


def display_topic(topic: str) -> str:
    """'photosynthesis yesterday' -> 'photosynthesis'."""
    words = topic.split()[:MAX_TOPIC_WORDS]
    while words and words[-1].lower() in CLAIM_STOP_WORDS:
        words.pop()
    return " ".join(words) or topic.strip()


def is_supported(topic: str, known_words: Set[str]) -> bool:
    """At least half of the topic's content words occur in the conversation."""
    terms = claim_terms(topic)
    if not terms:
        return True
    hits = sum(1 for term in terms if term in known_words)
    return hits / len(terms) >= CLAIM_SUPPORT_RATIO


def _sentence_span(text: str, start: int, end: int) -> Tuple[int, int]:
    """Sentence around [start, end); a closing newline stays outside the span."""
    left = 0
    for m in _SENTENCE_END.finditer(text, 0, start):
        left = m.end()
    right = _SENTENCE_END.search(text, end)
    if right is None:
        return left, len(text)
    return left, (right.start() if right.group(0) == "\n" else right.end())


def _replace_span(text: str, start: int, end: int, replacement: str) -> str:
    before = text[:start].rstrip(" ")
    after = text[end:].lstrip(" ")
    if before and not before.endswith("\n"):
        before += " "
    if after and not after.startswith("\n"):
        after = " " + after
    return before + replacement + after


# ============================================================================
# ARITHMETIC
# ============================================================================

_NUMBER = r"\d+(?:\.\d+)?"
ARITHMETIC_PATTERN = re.compile(
    rf"(?<![\d.\-])(?P<left>{_NUMBER})\s*(?P<op>[+\-*/x×÷^])\s*(?P<right>{_NUMBER})"
    rf"\s*=\s*(?P<result>-?{_NUMBER})(?!\.?\d)"
)

OPERATORS: Dict[str, Callable[[float, float], float]] = {
    "+": operator.add,
    "-": operator.sub,
    "*": operator.mul,
    "x": operator.mul,
    "×": operator.mul,
    "/": operator.truediv,
    "÷": operator.truediv,
    "^": operator.pow,
}
TOLERANCE = 1e-4


def evaluate(left: str, op: str, right: str) -> Optional[float]:
    """Value of `left op right`, or None when it cannot be computed."""
    try:
        value = OPERATORS[op](float(left), float(right))
    except (ArithmeticError, KeyError):
        return None
    return value if math.isfinite(value) else None


def format_number(value: float) -> str:
    """4.0 -> '4', 0.3333333 -> '0.3333'."""
    if value.is_integer():
        return str(int(value))
    return f"{value:.4f}".rstrip("0").rstrip(".")


# ============================================================================
# VALIDATOR
# ============================================================================

class ReplyCheck(BaseModel):
    """Outcome of validating one reply."""
    text: str
    unsupported_claims: List[str] = Field(default_factory=list)
    arithmetic_fixes: List[str] = Field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.unsupported_claims or self.arithmetic_fixes)


class ReplyValidator:
    """Memory-claim and arithmetic checks over generated replies."""

    def __init__(self, claim_patterns: Iterable[Tuple[str, Pattern[str]]] = CLAIM_PATTERNS):
        self.claim_patterns = tuple(claim_patterns)

    def validate(
        self,
        text: str,
        history: Iterable[ChatMessage],
        topics: Iterable[str] = (),
    ) -> ReplyCheck:
        """
        Run both checks.

        Args:
            text: Generated reply.
            history: Messages the reply may legitimately refer to.
            topics: Topic keys already seen this session.
        """
        known: Set[str] = set()
        for message in history:
            known |= _words(message.text)
        for topic in topics:
            known |= _words(topic)

        text, claims = self.check_memory_claims(text, known)
        text, fixes = self.check_arithmetic(text)
        return ReplyCheck(text=text, unsupported_claims=claims, arithmetic_fixes=fixes)

    def check_memory_claims(self, text: str, known_words: Set[str]) -> Tuple[str, List[str]]:
        """Replace each sentence holding an unsupported claim; returns (text, topics)."""
        spans: Dict[Tuple[int, int], str] = {}
        for name, pattern in self.claim_patterns:
            try:
                matches = list(pattern.finditer(text))
            except Exception as e:
                logger.warning(f"Claim pattern '{name}' failed: {e}")
                continue
            for m in matches:
                topic = m.group("topic")
                if is_supported(topic, known_words):
                    continue
                spans.setdefault(_sentence_span(text, m.start(), m.end()), display_topic(topic))

        claims = []
        for (start, end), topic in sorted(spans.items(), reverse=True):
            logger.warning(f"Unsupported memory claim replaced: '{text[start:end].strip()}'")
            text = _replace_span(text, start, end, HONEST_STATEMENT.format(topic=topic))
            claims.append(topic)
        claims.reverse()
        return text, claims

    def check_arithmetic(self, text: str) -> Tuple[str, List[str]]:
        """Correct wrong results of 'a op b = c'; returns (text, corrected equations)."""
        fixes = []
        pieces = []
        last = 0
        for m in ARITHMETIC_PATTERN.finditer(text):
            value = evaluate(m.group("left"), m.group("op"), m.group("right"))
            if value is None or abs(float(m.group("result")) - value) <= TOLERANCE:
                continue
            correct = format_number(value)
            fixes.append(f"{m.group('left')}{m.group('op')}{m.group('right')}={correct}")
            logger.warning(f"Arithmetic corrected: '{m.group(0)}' -> {correct}")
            pieces.append(text[last:m.start("result")])
            pieces.append(correct)
            last = m.end("result")
        pieces.append(text[last:])
        return "".join(pieces), fixes
