"""
Unit tests for FactExtractor.
"""

import pytest
from loguru import logger

from conftest import make_message
from tutor_engine.memory.fact_extractor import FACT_PATTERNS, FactExtractor
from tutor_engine.schema.core_schema import MessageRole


class BrokenPattern:
    def finditer(self, text):
        raise RuntimeError("boom")


@pytest.fixture
def extractor():
    return FactExtractor(max_facts=10)


class TestExtractFromText:
    def test_self_introduction(self, extractor):
        assert extractor.extract_from_text("My name is Ana") == ["My name is Ana"]

    def test_questions_are_not_facts(self, extractor):
        assert extractor.extract_from_text("What is photosynthesis?") == []
        assert extractor.extract_from_text("Can you explain gravity?") == []

    def test_studying_and_institution(self, extractor):
        facts = extractor.extract_from_text("I'm studying biology at Stanford University.")
        assert facts[0] == "I'm studying biology at Stanford University"
        assert "at Stanford University" in facts

    def test_numeric_equality(self, extractor):
        assert extractor.extract_from_text("2 + 2 = 4") == ["2 + 2 = 4"]

    def test_short_candidates_are_dropped(self, extractor):
        assert extractor.extract_from_text("ok") == []

    def test_excluded_phrases_match_whole_words(self, extractor):
        # "show" contains "how" but is not the word "how"
        facts = extractor.extract_from_text("Paris is the city I will show you")
        assert facts == ["Paris is the city I will show you"]

    def test_failing_pattern_is_logged_and_skipped(self):
        messages = []
        sink_id = logger.add(messages.append, level="WARNING")
        try:
            extractor = FactExtractor(patterns=[("broken", BrokenPattern()), FACT_PATTERNS[1]])
            facts = extractor.extract_from_text("My name is Ana")
        finally:
            logger.remove(sink_id)

        assert facts == ["My name is Ana"]
        assert any("broken" in str(m) for m in messages)


class TestExtract:
    def test_most_recent_first(self, extractor):
        messages = [
            make_message("m1", "My name is Ana"),
            make_message("m2", "I'm interested in chess"),
        ]
        assert extractor.extract(messages) == ["I'm interested in chess", "My name is Ana"]

    def test_assistant_messages_are_ignored(self, extractor):
        messages = [make_message("a1", "My name is Tutor", role=MessageRole.ASSISTANT)]
        assert extractor.extract(messages) == []

    def test_deduplicated_case_insensitively(self, extractor):
        messages = [
            make_message("m1", "My name is Ana"),
            make_message("m2", "my name is ana"),
        ]
        assert extractor.extract(messages) == ["my name is ana"]

    def test_capped_at_max_facts(self):
        extractor = FactExtractor(max_facts=2)
        messages = [
            make_message("m1", "My name is Ana"),
            make_message("m2", "My name is Bob"),
            make_message("m3", "My name is Cal"),
        ]
        assert extractor.extract(messages) == ["My name is Cal", "My name is Bob"]
