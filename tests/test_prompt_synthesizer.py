"""
Unit tests for PromptSynthesizer.
"""

import pytest

from conftest import make_message
from tutor_engine.chatbot.prompt_synthesizer import PromptSynthesizer
from tutor_engine.chatbot.query_understanding import classify
from tutor_engine.memory.session_memory import SessionMemoryStore
from tutor_engine.schema.core_schema import MessageRole, ResponseType


BASE_SECTIONS = [
    "persona",
    "conversation_history",
    "current_query",
    "query_analysis",
    "session_insights",
    "response_structure",
    "pedagogical_techniques",
    "learning_approach",
    "memory_directive",
    "quality_standards",
]


@pytest.fixture
def memory():
    memory = SessionMemoryStore(use_tokenizer=False)
    memory.add_message(make_message("a0", "Welcome!", role=MessageRole.SYSTEM))
    memory.add_message(make_message("u1", "Explain gravity"))
    return memory


@pytest.fixture
def synthesizer():
    return PromptSynthesizer(history_window=20, simple_token_ceiling=15)


class TestSections:
    def test_fixed_order_without_relevant_context(self, synthesizer, memory):
        request = synthesizer.build("Explain gravity", classify("Explain gravity"), memory, exclude_ids=["u1"])
        assert request.sections == BASE_SECTIONS
        assert "RELEVANT PAST CONTEXT" not in request.prompt
        assert request.response_type == ResponseType.MEDIUM
        assert not request.fast_path

    def test_relevant_context_follows_history(self, synthesizer, memory):
        relevant = [make_message("u0", "My favorite subject is chemistry")]
        request = synthesizer.build(
            "What's my favorite subject?",
            classify("What's my favorite subject?"),
            memory,
            relevant=relevant,
        )
        assert request.sections[:3] == ["persona", "conversation_history", "relevant_context"]
        assert "RELEVANT PAST CONTEXT:" in request.prompt
        assert "My favorite subject is chemistry" in request.prompt

    def test_special_requirements_when_steps_needed(self, synthesizer, memory):
        text = "How to balance a chemical equation, step by step?"
        request = synthesizer.build(text, classify(text), memory)
        assert request.sections[-3:] == ["special_requirements", "memory_directive", "quality_standards"]
        assert "step-by-step breakdown" in request.prompt

    def test_blocks_appear_in_section_order(self, synthesizer, memory):
        request = synthesizer.build("Explain gravity", classify("Explain gravity"), memory)
        headers = ["CONVERSATION HISTORY:", "CURRENT STUDENT QUERY:", "QUERY ANALYSIS:", "SESSION INSIGHTS:",
                   "MEMORY INSTRUCTIONS:", "QUALITY STANDARDS:"]
        positions = [request.prompt.index(h) for h in headers]
        assert positions == sorted(positions)


class TestContent:
    def test_simple_tier_states_ceiling(self, memory):
        request = PromptSynthesizer(simple_token_ceiling=10).build("2+2=?", classify("2+2=?"), memory)
        assert request.response_type == ResponseType.SIMPLE
        assert "at most 10 words" in request.prompt

    def test_answer_line_contract(self, synthesizer, memory):
        request = synthesizer.build("Give me a quiz", classify("Give me a quiz"), memory)
        assert "Answer: <letter>" in request.prompt

    def test_history_excludes_current_utterance(self, synthesizer, memory):
        request = synthesizer.build("Explain gravity", classify("Explain gravity"), memory, exclude_ids=["u1"])
        assert "[STUDENT - just now]: Explain gravity" not in request.prompt
        assert 'CURRENT STUDENT QUERY: "Explain gravity"' in request.prompt

    def test_history_window(self):
        memory = SessionMemoryStore(use_tokenizer=False)
        for i in range(5):
            memory.add_message(make_message(f"u{i}", f"message {i}"))
        request = PromptSynthesizer(history_window=2).build("next", classify("next"), memory)
        assert "2 most recent of 5 messages" in request.prompt
        assert "message 0" not in request.prompt
        assert "message 4" in request.prompt

    def test_facts_and_carryover(self, synthesizer, memory):
        carryover = [make_message("p1", "Yesterday we did fractions")]
        request = synthesizer.build(
            "Explain gravity",
            classify("Explain gravity"),
            memory,
            facts=["My name is Ana"],
            carryover=carryover,
        )
        assert "KEY FACTS FROM CONVERSATION:\n1. My name is Ana" in request.prompt
        assert "[PAST - STUDENT" in request.prompt

    def test_history_shows_only_dialogue_turns(self, synthesizer, memory):
        memory.add_message(make_message("e1", "Sorry, I encountered an error.", role=MessageRole.ERROR))
        memory.add_message(make_message("a1", "Gravity pulls masses together.", role=MessageRole.ASSISTANT))
        request = synthesizer.build("Explain more", classify("Explain more"), memory)

        assert "Welcome!" not in request.prompt
        assert "encountered an error" not in request.prompt
        assert "[TUTOR - just now]: Gravity pulls masses together." in request.prompt
        assert "2 most recent of 2 messages" in request.prompt

    def test_analysis_block_lists_tier_and_requirements(self, synthesizer, memory):
        text = "How to balance a chemical equation, step by step?"
        analysis = classify(text)
        request = synthesizer.build(text, analysis, memory)

        assert f"- Response Type: {analysis.response_type.value}" in request.prompt
        assert "- Requires Steps: yes" in request.prompt
        assert "- Requires Examples:" in request.prompt

    def test_empty_history(self, synthesizer):
        memory = SessionMemoryStore(use_tokenizer=False)
        request = synthesizer.build("Explain gravity", classify("Explain gravity"), memory)
        assert "(No prior messages in this session)" in request.prompt


class TestFastPath:
    def test_fast_path_request(self, synthesizer):
        request = synthesizer.build_fast_path("2+2")
        assert request.fast_path
        assert request.sections == ["fast_path"]
        assert request.response_type == ResponseType.SIMPLE
        assert "at most 15 words" in request.prompt
        assert '"2+2"' in request.prompt

    def test_fast_path_follows_configured_ceiling(self):
        request = PromptSynthesizer(simple_token_ceiling=8).build_fast_path("3*4")
        assert "at most 8 words" in request.prompt
