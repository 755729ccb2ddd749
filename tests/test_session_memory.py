"""
Unit tests for SessionMemoryStore.

Tests:
- Capacity eviction keeps the newest messages in order
- Majority vote for dominant subject / complexity (ties → most recent)
- Topic frequencies and context digest
- Context size fallback counting
"""

import pytest

from conftest import make_message
from tutor_engine.chatbot.query_understanding import classify
from tutor_engine.memory.session_memory import SessionMemoryStore
from tutor_engine.schema.core_schema import QueryAnalysis, QueryComplexity, SubjectType


@pytest.fixture
def memory():
    return SessionMemoryStore(capacity=100, analysis_window=10, use_tokenizer=False)


class TestCapacity:
    def test_capacity_three_keeps_last_three_in_order(self):
        memory = SessionMemoryStore(capacity=3, use_tokenizer=False)
        for i in range(1, 6):
            memory.add_message(make_message(f"m{i}", f"message {i}"))

        assert len(memory) == 3
        assert [m.id for m in memory.get_all_messages()] == ["m3", "m4", "m5"]

    @pytest.mark.parametrize("capacity,extra", [(1, 1), (5, 3), (10, 10)])
    def test_capacity_plus_k_evicts_oldest_k(self, capacity, extra):
        memory = SessionMemoryStore(capacity=capacity, use_tokenizer=False)
        ids = [f"m{i}" for i in range(capacity + extra)]
        for message_id in ids:
            memory.add_message(make_message(message_id, "text"))

        assert len(memory) == capacity
        assert [m.id for m in memory.get_all_messages()] == ids[extra:]

    def test_invalid_capacity(self):
        with pytest.raises(ValueError):
            SessionMemoryStore(capacity=0)

    def test_recent_messages(self, memory):
        for i in range(5):
            memory.add_message(make_message(f"m{i}", "text"))
        assert [m.id for m in memory.get_recent_messages(2)] == ["m3", "m4"]
        assert memory.get_recent_messages(0) == []
        assert len(memory.get_recent_messages(50)) == 5

    def test_all_messages_is_a_snapshot(self, memory):
        memory.add_message(make_message("m1", "text"))
        snapshot = memory.get_all_messages()
        memory.add_message(make_message("m2", "text"))
        assert isinstance(snapshot, tuple)
        assert len(snapshot) == 1


class TestAnalysisStatistics:
    def test_majority_vote(self, memory):
        for text in ["Explain gravity", "What is an atom?", "Solve this equation"]:
            memory.update_from_analysis(classify(text))
        assert memory.dominant_subject == SubjectType.SCIENCE

    def test_tie_goes_to_most_recent(self, memory):
        memory.update_from_analysis(QueryAnalysis(subject=SubjectType.SCIENCE))
        memory.update_from_analysis(QueryAnalysis(subject=SubjectType.HISTORY))
        assert memory.dominant_subject == SubjectType.HISTORY

        memory.update_from_analysis(QueryAnalysis(subject=SubjectType.SCIENCE))
        assert memory.dominant_subject == SubjectType.SCIENCE

    def test_rolling_window_forgets_old_analyses(self):
        memory = SessionMemoryStore(analysis_window=2, use_tokenizer=False)
        memory.update_from_analysis(QueryAnalysis(complexity=QueryComplexity.BASIC))
        memory.update_from_analysis(QueryAnalysis(complexity=QueryComplexity.BASIC))
        memory.update_from_analysis(QueryAnalysis(complexity=QueryComplexity.ADVANCED))
        memory.update_from_analysis(QueryAnalysis(complexity=QueryComplexity.ADVANCED))
        assert len(memory.analysis_history) == 2
        assert memory.dominant_complexity == QueryComplexity.ADVANCED

    def test_topic_frequency_and_subjects_seen(self, memory):
        memory.update_from_analysis(classify("Explain photosynthesis"))
        memory.update_from_analysis(classify("Why does photosynthesis need light?"))
        memory.update_from_analysis(classify("Who wrote Hamlet?"))

        assert memory.topic_frequency["photosynthesis"] == 2
        assert memory.frequent_topics() == ["photosynthesis"]
        assert memory.subjects_seen == [SubjectType.SCIENCE, SubjectType.GENERAL]

    def test_context_summary(self, memory):
        memory.add_message(make_message("m1", "Explain gravity"))
        memory.update_from_analysis(classify("Explain gravity"))
        summary = memory.get_context_summary()
        assert "Messages: 1" in summary
        assert "Dominant subject: science" in summary
        assert "gravity" in summary


class TestContextSize:
    def test_empty(self, memory):
        assert memory.get_context_size() == 0

    def test_character_fallback(self, memory):
        memory.add_message(make_message("m1", "abcdefgh"))
        # "user: abcdefgh" is 14 characters
        assert memory.get_context_size() == 14 // 4

    def test_clear(self, memory):
        memory.add_message(make_message("m1", "text"))
        memory.update_from_analysis(classify("Explain gravity"))
        memory.clear()
        assert len(memory) == 0
        assert memory.dominant_subject is None
        assert memory.topic_frequency == {}
