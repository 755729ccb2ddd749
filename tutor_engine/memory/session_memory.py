"""
Session Memory Store

Bounded rolling message log plus the statistics derived from classified
queries (topic frequencies, subjects seen, dominant subject/complexity,
last learning approach). One store per TutorSession; created and discarded
with it.
"""

from collections import Counter, deque
from typing import Deque, Dict, List, Optional, Tuple

import tiktoken
from loguru import logger

from ..schema.core_schema import (
    ChatMessage,
    LearningApproach,
    QueryAnalysis,
    QueryComplexity,
    SubjectType,
)


class SessionMemoryStore:
    """Bounded conversational memory for one tutoring session."""

    def __init__(
        self,
        capacity: int = 100,
        analysis_window: int = 10,
        use_tokenizer: bool = True,
    ):
        """
        Args:
            capacity: Maximum number of messages kept; oldest evicted first.
            analysis_window: Number of recent QueryAnalysis results used for
                             dominant subject / complexity votes.
            use_tokenizer: Whether to use tiktoken for context-size reporting.
        """
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.capacity = capacity
        self.analysis_window = analysis_window
        self.use_tokenizer = use_tokenizer

        self._messages: List[ChatMessage] = []
        self._analysis_history: Deque[QueryAnalysis] = deque(maxlen=analysis_window)
        self.topic_frequency: Dict[str, int] = {}
        self.subjects_seen: List[SubjectType] = []
        self.dominant_subject: Optional[SubjectType] = None
        self.dominant_complexity: Optional[QueryComplexity] = None
        self.last_learning_approach: Optional[LearningApproach] = None

        if self.use_tokenizer:
            try:
                self.tokenizer = tiktoken.get_encoding("cl100k_base")
            except Exception as e:
                logger.warning(f"tiktoken not available ({e}), using character-based counting")
                self.use_tokenizer = False

    # ------------------------------------------------------------------
    # Message log
    # ------------------------------------------------------------------
    def add_message(self, message: ChatMessage) -> None:
        """Append a message, evicting the oldest ones past capacity."""
        self._messages.append(message)
        overflow = len(self._messages) - self.capacity
        if overflow > 0:
            del self._messages[:overflow]

    def get_recent_messages(self, n: int = 10) -> List[ChatMessage]:
        """Last n messages, in original order."""
        if n <= 0:
            return []
        return list(self._messages[-n:])

    def get_all_messages(self) -> Tuple[ChatMessage, ...]:
        return tuple(self._messages)

    def __len__(self) -> int:
        return len(self._messages)

    # ------------------------------------------------------------------
    # Analysis statistics
    # ------------------------------------------------------------------
    def update_from_analysis(self, analysis: QueryAnalysis) -> None:
        """Fold one QueryAnalysis into the topic and dominance statistics."""
        self._analysis_history.append(analysis)

        for keyword in analysis.keywords:
            self.topic_frequency[keyword] = self.topic_frequency.get(keyword, 0) + 1

        if analysis.subject not in self.subjects_seen:
            self.subjects_seen.append(analysis.subject)

        history = list(self._analysis_history)
        self.dominant_subject = _majority([a.subject for a in history])
        self.dominant_complexity = _majority([a.complexity for a in history])
        self.last_learning_approach = analysis.learning_approach

    @property
    def analysis_history(self) -> Tuple[QueryAnalysis, ...]:
        return tuple(self._analysis_history)

    def frequent_topics(self, top_k: int = 3, min_count: int = 2) -> List[str]:
        """Most frequent keywords (ties keep first-seen order)."""
        ranked = sorted(
            (item for item in self.topic_frequency.items() if item[1] >= min_count),
            key=lambda item: -item[1],
        )
        return [topic for topic, _ in ranked[:top_k]]

    def get_context_summary(self) -> str:
        """Short digest of the session, used by the search gateway."""
        lines = ["Session Context:", f"Messages: {len(self._messages)}"]
        if self.dominant_subject is not None:
            lines.append(f"Dominant subject: {self.dominant_subject.value}")
        if self.dominant_complexity is not None:
            lines.append(f"Complexity level: {self.dominant_complexity.value}")
        topics = self.frequent_topics(top_k=5, min_count=1)
        if topics:
            lines.append(f"Frequent topics: {', '.join(topics)}")
        return "\n".join(lines)

    # ------------------------------------------------------------------
    # Size / lifecycle
    # ------------------------------------------------------------------
    def get_context_size(self, messages: Optional[List[ChatMessage]] = None) -> int:
        """Token count of the given messages (all stored messages by default)."""
        if messages is None:
            messages = self._messages
        if not messages:
            return 0

        full_context = "\n".join(f"{m.role.value}: {m.text}" for m in messages)
        if self.use_tokenizer:
            return len(self.tokenizer.encode(full_context))
        # Fallback: approximate 1 token = 4 characters
        return len(full_context) // 4

    def clear(self) -> None:
        self._messages.clear()
        self._analysis_history.clear()
        self.topic_frequency.clear()
        self.subjects_seen.clear()
        self.dominant_subject = None
        self.dominant_complexity = None
        self.last_learning_approach = None


def _majority(values: list):
    """Most common value; ties go to the value seen most recently."""
    if not values:
        return None
    counts = Counter(values)
    best = max(counts.values())
    for value in reversed(values):
        if counts[value] == best:
            return value
    return None
