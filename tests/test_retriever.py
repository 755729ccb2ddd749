"""
Unit tests for the relevance retriever.

Tests:
- Non-recall queries return nothing
- The current utterance is never retrieved as its own context
- Keyword / proper-noun / recency / authorship ranking
"""

from datetime import timedelta

import pytest

from conftest import make_message
from tutor_engine.memory.retriever import RelevanceRetriever, extract_proper_nouns, is_recall_query
from tutor_engine.schema.core_schema import MessageRole, utcnow


NOW = utcnow()


def msg(message_id, text, role=MessageRole.USER, hours_ago=0.0):
    return make_message(message_id, text, role=role, timestamp=NOW - timedelta(hours=hours_ago))


@pytest.fixture
def retriever():
    return RelevanceRetriever(top_n=5)


class TestRecallDetection:
    @pytest.mark.parametrize(
        "text",
        ["What's my favorite subject?", "Do you remember Newton?", "As I said earlier", "What's my name?"],
    )
    def test_recall_queries(self, text):
        assert is_recall_query(text)

    @pytest.mark.parametrize("text", ["Explain gravity", "2+2", "Who wrote Hamlet?"])
    def test_ordinary_queries(self, text):
        assert not is_recall_query(text)

    def test_proper_nouns_skip_sentence_initial_and_common_words(self):
        assert extract_proper_nouns("Do you remember what I said about Newton?") == ["Newton"]
        assert extract_proper_nouns("Newton met Leibniz. Then Euler arrived") == ["Leibniz", "Euler"]


class TestRetrieve:
    def test_non_recall_query_returns_nothing(self, retriever):
        messages = [msg("u1", "Gravity pulls things down")]
        assert retriever.retrieve("Explain gravity", ("gravity",), messages, now=NOW) == []

    def test_current_message_is_excluded(self, retriever):
        greeting = msg(
            "a0",
            "Welcome! Let's study Mathematics at the Intermediate level. "
            "Ask me anything, or say 'give me a quiz' to practice.",
            role=MessageRole.ASSISTANT,
        )
        current = msg("u1", "What's my favorite subject?")
        result = retriever.retrieve(
            "What's my favorite subject?",
            ("favorite", "subject"),
            [greeting, current],
            exclude_ids=["u1"],
            now=NOW,
        )
        assert result == []

    def test_ranks_by_keyword_matches(self, retriever):
        messages = [
            msg("u1", "My favorite subject is chemistry"),
            msg("a1", "Chemistry is a great subject", role=MessageRole.ASSISTANT),
            msg("u2", "I like pizza"),
        ]
        result = retriever.retrieve("What's my favorite subject?", ("favorite", "subject"), messages, now=NOW)
        assert [m.id for m in result] == ["u1", "a1"]

    def test_exact_case_proper_noun_beats_folded(self, retriever):
        messages = [
            msg("m2", "We covered Newton yesterday"),
            msg("m1", "newton's laws were fun"),
        ]
        result = retriever.retrieve("Do you remember what I said about Newton?", (), messages, now=NOW)
        assert [m.id for m in result] == ["m2", "m1"]

    def test_newer_message_wins_on_equal_match(self, retriever):
        messages = [
            msg("new", "My favorite color is green", hours_ago=0),
            msg("old", "My favorite color is green", hours_ago=10),
        ]
        result = retriever.retrieve("What's my favorite color?", ("favorite", "color"), messages, now=NOW)
        assert [m.id for m in result] == ["new", "old"]

    def test_user_authored_bonus(self, retriever):
        messages = [
            msg("u1", "My favorite color is green"),
            msg("a1", "My favorite color is green", role=MessageRole.ASSISTANT),
        ]
        result = retriever.retrieve("What's my favorite color?", ("favorite", "color"), messages, now=NOW)
        assert result[0].id == "u1"

    def test_top_n_limit(self, retriever):
        messages = [msg(f"u{i}", f"favorite thing number {i}") for i in range(4)]
        result = retriever.retrieve("my favorite?", ("favorite",), messages, top_n=2, now=NOW)
        assert len(result) == 2

    def test_input_is_not_mutated(self, retriever):
        messages = [msg("u1", "My favorite subject is chemistry"), msg("u2", "I like pizza")]
        before = list(messages)
        retriever.retrieve("What's my favorite subject?", ("favorite", "subject"), messages, now=NOW)
        assert messages == before
