"""
Relevance Retriever

Ranks earlier messages against a recall query ("what's my favorite
subject?", "remember when we talked about Newton?"). Non-recall queries get
nothing back, so ordinary questions never drag old context into the prompt.

Score per candidate:
    keyword match       +1.0 substring, +0.5 more for a whole-word hit
    proper-noun match   +5.0 case-sensitive, +2.0 case-insensitive
Only candidates with a positive match score are ranked; those then get
    recency bonus       0.3 * 1 / (1 + age_hours)
    user-authored       +0.5
"""

import re
from datetime import datetime
from typing import Iterable, List, Optional, Sequence, Set, Tuple

from ..schema.core_schema import ChatMessage, utcnow


RECALL_KEYWORDS: Tuple[str, ...] = (
    "remember",
    "recall",
    "favorite",
    "favourite",
    "told you",
    "mentioned",
    "discussed",
    "we talked",
    "you said",
    "i said",
    "earlier",
    "my name",
    "preference",
)

# Capitalised words that are not names.
COMMON_WORDS: Set[str] = {
    "The", "This", "That", "These", "Those", "There", "Then", "What", "When",
    "Where", "Which", "Who", "Whom", "Why", "How", "And", "But", "For", "Not",
    "You", "Your", "Yes", "Can", "Could", "Would", "Should", "Will", "Did",
    "Does", "Have", "Has", "Had", "Are", "Was", "Were", "Its", "Our", "Their",
    "They", "She", "Her", "His", "Him", "Let", "Please", "Thanks", "Thank",
    "Remember", "Recall", "Also", "Just", "Maybe", "Sure", "Okay", "Hello",
    "True", "False", "Answer", "Correct", "Great", "Good", "Well", "Now",
    "Today", "Yesterday", "Tomorrow", "Monday", "Tuesday", "Wednesday",
    "Thursday", "Friday", "Saturday", "Sunday",
}

_WORD_RE = re.compile(r"[A-Za-z][A-Za-z'-]*")
_SENTENCE_END = (".", "!", "?")

KEYWORD_SUBSTRING_SCORE = 1.0
KEYWORD_WHOLE_WORD_BONUS = 0.5
PROPER_NOUN_EXACT_SCORE = 5.0
PROPER_NOUN_FOLDED_SCORE = 2.0
RECENCY_WEIGHT = 0.3
USER_AUTHORED_BONUS = 0.5


def is_recall_query(text: str) -> bool:
    lower = (text or "").lower()
    return any(re.search(r"(?<!\w)" + re.escape(k) + r"(?!\w)", lower) for k in RECALL_KEYWORDS)


def extract_proper_nouns(text: str) -> List[str]:
    """Capitalised tokens longer than 2 chars that are not sentence-initial or common words."""
    nouns: List[str] = []
    sentence_start = True
    for match in _WORD_RE.finditer(text or ""):
        word = match.group(0)
        preceding = text[: match.start()].rstrip()
        sentence_start = not preceding or preceding.endswith(_SENTENCE_END)
        if (
            len(word) > 2
            and word[0].isupper()
            and not sentence_start
            and word not in COMMON_WORDS
            and word not in nouns
        ):
            nouns.append(word)
    return nouns


class RelevanceRetriever:
    """Keyword / proper-noun / recency ranking over a message snapshot."""

    def __init__(self, top_n: int = 5):
        self.top_n = top_n

    def retrieve(
        self,
        query: str,
        keywords: Sequence[str],
        messages: Iterable[ChatMessage],
        exclude_ids: Iterable[str] = (),
        top_n: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> List[ChatMessage]:
        """
        Rank candidate messages for a recall query.

        Args:
            query: The learner's utterance.
            keywords: Keywords from the utterance's QueryAnalysis.
            messages: Candidate messages (current session and carryover).
                      Read only; never modified.
            exclude_ids: Ids to skip, normally the utterance's own message.
            top_n: Override of the configured result size.

        Returns:
            Up to top_n messages, highest score first; [] for non-recall queries.
        """
        if not is_recall_query(query):
            return []

        limit = self.top_n if top_n is None else top_n
        now = now or utcnow()
        excluded = set(exclude_ids)
        terms = [k.lower() for k in keywords if k]
        nouns = extract_proper_nouns(query)

        scored: List[Tuple[float, int, ChatMessage]] = []
        for position, message in enumerate(messages):
            if message.id in excluded or not message.text:
                continue
            match_score = self._match_score(message.text, terms, nouns)
            if match_score <= 0:
                continue
            age_hours = max((now - message.timestamp).total_seconds() / 3600.0, 0.0)
            score = match_score + RECENCY_WEIGHT * (1.0 / (1.0 + age_hours))
            if message.is_user:
                score += USER_AUTHORED_BONUS
            scored.append((score, position, message))

        # Highest score first; equal scores favour the later message
        scored.sort(key=lambda item: (-item[0], -item[1]))
        return [message for _, _, message in scored[:limit]]

    @staticmethod
    def _match_score(text: str, terms: Sequence[str], nouns: Sequence[str]) -> float:
        lower = text.lower()
        score = 0.0
        for term in terms:
            if term in lower:
                score += KEYWORD_SUBSTRING_SCORE
                if re.search(r"(?<!\w)" + re.escape(term) + r"(?!\w)", lower):
                    score += KEYWORD_WHOLE_WORD_BONUS
        for noun in nouns:
            if re.search(r"(?<!\w)" + re.escape(noun) + r"(?!\w)", text):
                score += PROPER_NOUN_EXACT_SCORE
            elif noun.lower() in lower:
                score += PROPER_NOUN_FOLDED_SCORE
        return score
