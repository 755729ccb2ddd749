"""
Unit tests for the rule-based query classifier.

Tests:
- Subject / complexity / intent / response-length tier
- Arithmetic and true/false forms always land in the simple tier
- Determinism (same text, same analysis)
- Fast-path math and web-search detectors
"""

import pytest

from tutor_engine.chatbot import rule_tables
from tutor_engine.chatbot.query_understanding import (
    QueryClassifier,
    classify,
    contains_phrase,
    is_simple_math,
    needs_web_search,
)
from tutor_engine.schema.core_schema import (
    LearningApproach,
    QueryComplexity,
    ResponseType,
    SubjectType,
    UserIntent,
)


class TestSubject:
    def test_arithmetic_symbols_mean_mathematics(self):
        assert classify("2+2=?").subject == SubjectType.MATHEMATICS

    def test_keyword_subjects(self):
        assert classify("Explain gravity").subject == SubjectType.SCIENCE
        assert classify("What caused the French Revolution?").subject == SubjectType.HISTORY
        assert classify("What is a metaphor in a poem?").subject == SubjectType.LITERATURE

    def test_priority_order_mathematics_before_science(self):
        # "equation" (mathematics) and "energy" (science) both present
        assert classify("Write the equation for kinetic energy").subject == SubjectType.MATHEMATICS

    def test_keywords_match_whole_words_only(self):
        # "cell" must not fire inside "excellent", "art" not inside "start"
        assert classify("That was an excellent start").subject == SubjectType.GENERAL

    def test_hyphen_alone_is_not_mathematics(self):
        assert classify("A well-known story").subject == SubjectType.LITERATURE

    def test_unknown_defaults_to_general(self):
        assert classify("Hello there").subject == SubjectType.GENERAL


class TestComplexity:
    def test_advanced_indicator(self):
        analysis = classify("Analyze the consequences of the industrial revolution on cities")
        assert analysis.complexity == QueryComplexity.ADVANCED

    def test_short_queries_are_basic(self):
        assert classify("Explain gravity").complexity == QueryComplexity.BASIC

    def test_longer_neutral_queries_are_intermediate(self):
        analysis = classify("Tell me more about how plants grow in the spring")
        assert analysis.complexity == QueryComplexity.INTERMEDIATE


class TestIntent:
    @pytest.mark.parametrize(
        "text",
        [
            "The sun sets in the west",
            "True or false: water boils at 100 degrees",
            "water is wet",
            "1+1=2",
            "Is this true?",
            "correct?",
        ],
    )
    def test_confirmatory_forms_are_confirmatory_and_simple(self, text):
        analysis = classify(text)
        assert analysis.intent == UserIntent.CONFIRMATORY
        assert analysis.response_type == ResponseType.SIMPLE

    def test_questions_are_not_bare_assertions(self):
        assert classify("What is the capital of France?").intent == UserIntent.FACTUAL
        assert classify("Who wrote Hamlet?").intent == UserIntent.FACTUAL

    def test_procedural(self):
        assert classify("How do I solve quadratic equations").intent == UserIntent.PROCEDURAL

    def test_analytical(self):
        assert classify("Compare mitosis with meiosis").intent == UserIntent.ANALYTICAL

    def test_creative(self):
        assert classify("Brainstorm some science fair projects").intent == UserIntent.CREATIVE

    def test_default_conceptual(self):
        assert classify("Explain gravity").intent == UserIntent.CONCEPTUAL


class TestResponseType:
    @pytest.mark.parametrize("text", ["2+2", "12*34", "7 - 3", "100/5", "9 + 10"])
    def test_arithmetic_is_simple(self, text):
        assert classify(text).response_type == ResponseType.SIMPLE

    def test_explicit_brevity_cue_overrides(self):
        text = "Briefly explain the whole history of the Roman empire and its fall"
        assert classify(text).response_type == ResponseType.SIMPLE

    def test_explicit_verbosity_cue_overrides(self):
        assert classify("Who wrote Hamlet? Explain in detail").response_type == ResponseType.LONGER

    def test_open_conceptual_is_medium(self):
        assert classify("Explain gravity").response_type == ResponseType.MEDIUM

    def test_procedural_cue_is_longer(self):
        text = "Can you show the process plants use to turn sunlight into food"
        assert classify(text).response_type == ResponseType.LONGER

    def test_quiz_request_leaves_room_for_options(self):
        assert classify("Give me a quiz").response_type == ResponseType.LONGER

    def test_direct_factual_is_simple(self):
        assert classify("Who wrote Romeo and Juliet?").response_type == ResponseType.SIMPLE


class TestOtherAxes:
    def test_keywords_are_filtered_deduplicated_and_capped(self):
        analysis = classify("What's my favorite subject?")
        assert analysis.keywords == ("favorite", "subject")

        many = classify("photosynthesis chlorophyll sunlight glucose oxygen carbon water photosynthesis")
        assert len(many.keywords) == rule_tables.MAX_KEYWORDS
        assert len(set(many.keywords)) == len(many.keywords)

    def test_learning_approach(self):
        assert classify("Why is the sky blue?").learning_approach == LearningApproach.SOCRATIC
        assert classify("Give me an example of inertia").learning_approach == LearningApproach.EXAMPLE_BASED
        assert classify("Tell me about gravity").learning_approach == LearningApproach.DIRECT

    def test_requirements_and_question_type(self):
        analysis = classify("How to balance a chemical equation, step by step?")
        assert analysis.requires_steps
        assert analysis.question_type == "Process/Method"

    def test_empty_input_yields_defaults(self):
        analysis = classify("   ")
        assert analysis.subject == SubjectType.GENERAL
        assert analysis.keywords == ()


class TestDeterminism:
    @pytest.mark.parametrize(
        "text", ["2+2=?", "The sun sets in the west", "Explain gravity", "What's my favorite subject?"]
    )
    def test_same_text_same_analysis(self, text):
        assert classify(text) == classify(text)
        assert QueryClassifier().classify(text) == classify(text)

    def test_analysis_is_frozen(self):
        analysis = classify("Explain gravity")
        with pytest.raises(Exception):
            analysis.subject = SubjectType.HISTORY


class TestDetectors:
    @pytest.mark.parametrize("text", ["2+2", "what is 3*4?", "1+1=?", " 10 / 2 "])
    def test_simple_math(self, text):
        assert is_simple_math(text)

    @pytest.mark.parametrize("text", ["why is 2+2 equal to 4", "2+2 and 3+3", "solve x+1=2"])
    def test_not_simple_math(self, text):
        assert not is_simple_math(text)

    def test_web_search_for_real_world_lookups(self):
        assert needs_web_search("Who is the current president of France?")
        assert needs_web_search("What's the latest news on the Mars rover?")

    def test_no_web_search_for_teaching_requests(self):
        assert not needs_web_search("Can you explain photosynthesis?")
        assert not needs_web_search("Give me a practice quiz about the current topic")
        assert not needs_web_search("Explain gravity")

    def test_contains_phrase_allows_plurals(self):
        assert contains_phrase("two equations", ("equation",))
        assert not contains_phrase("equational", ("equation",))
