"""
Prompt Synthesizer

Turns (utterance, QueryAnalysis, session memory, retrieved context) into a
single GenerationRequest. Blocks are emitted in a fixed order:

  persona → conversation_history → relevant_context (only when something was
  retrieved) → current_query → query_analysis → session_insights →
  response_structure → pedagogical_techniques → learning_approach →
  special_requirements → memory_directive → quality_standards

Each emitted block name is recorded in GenerationRequest.sections.
"""

from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from ..memory.session_memory import SessionMemoryStore
from ..schema.core_schema import (
    ChatMessage,
    GenerationRequest,
    LearningApproach,
    MessageRole,
    QueryAnalysis,
    QueryComplexity,
    ResponseType,
    SubjectType,
    UserIntent,
    utcnow,
)


SYSTEM_PROMPT = (
    "You are a patient, knowledgeable tutor. Answer accurately, adapt to the "
    "learner's level and keep to the requested response length."
)

SUBJECT_PERSONAS: Dict[SubjectType, str] = {
    SubjectType.MATHEMATICS: "mathematics with focus on problem-solving, logical reasoning and practical applications",
    SubjectType.SCIENCE: "science with emphasis on the scientific method and evidence-based reasoning",
    SubjectType.HISTORY: "history with attention to chronology, cause and effect, and historical context",
    SubjectType.LITERATURE: "literature with focus on analysis, interpretation and literary devices",
    SubjectType.LANGUAGE: "language with emphasis on communication, grammar and linguistic patterns",
    SubjectType.PHILOSOPHY: "philosophy with focus on logical arguments and ethical reasoning",
    SubjectType.ARTS: "the arts with attention to creativity, expression and aesthetic appreciation",
    SubjectType.TECHNOLOGY: "technology with focus on problem-solving and digital literacy",
    SubjectType.SOCIAL_STUDIES: "social studies with emphasis on civic understanding and cultural awareness",
    SubjectType.GENERAL: "general education with interdisciplinary connections",
}

INTENT_TECHNIQUES: Dict[UserIntent, Tuple[str, ...]] = {
    UserIntent.FACTUAL: (
        "Use clear definitions",
        "Provide accurate, verified information",
    ),
    UserIntent.CONCEPTUAL: (
        "Connect to prior knowledge",
        "Use more than one representation (verbal, symbolic, visual)",
    ),
    UserIntent.PROCEDURAL: (
        "Break the task into clear, sequential steps",
        "Demonstrate with a worked example",
    ),
    UserIntent.ANALYTICAL: (
        "Encourage critical evaluation",
        "Present multiple perspectives",
    ),
    UserIntent.CREATIVE: (
        "Encourage divergent thinking",
        "Support brainstorming and open-ended exploration",
    ),
    UserIntent.CONFIRMATORY: (
        "Validate correct understanding",
        "Gently correct misconceptions",
    ),
}

COMPLEXITY_TECHNIQUES: Dict[QueryComplexity, str] = {
    QueryComplexity.BASIC: "Use simple language and concrete examples",
    QueryComplexity.INTERMEDIATE: "Connect concepts and encourage deeper thinking",
    QueryComplexity.ADVANCED: "Challenge assumptions and encourage synthesis",
}

APPROACH_STRATEGIES: Dict[LearningApproach, str] = {
    LearningApproach.DIRECT: (
        "DIRECT INSTRUCTION:\n"
        "- Present information logically and in sequence\n"
        "- Use precise terminology, defined when needed"
    ),
    LearningApproach.SOCRATIC: (
        "SOCRATIC METHOD:\n"
        "- Ask probing questions that guide discovery\n"
        "- Help the learner surface their own assumptions"
    ),
    LearningApproach.EXAMPLE_BASED: (
        "EXAMPLE-BASED LEARNING:\n"
        "- Give concrete examples, simple before complex\n"
        "- Tie examples to real-world applications"
    ),
    LearningApproach.ANALOGICAL: (
        "ANALOGICAL REASONING:\n"
        "- Explain the new idea through a familiar one\n"
        "- Use 'think of it like...' comparisons"
    ),
    LearningApproach.SCAFFOLDED: (
        "SCAFFOLDED INSTRUCTION:\n"
        "- Break the concept into small parts\n"
        "- Check understanding at each step"
    ),
}

SIMPLE_EXAMPLES: Tuple[Tuple[str, str], ...] = (
    ("Who wrote Romeo and Juliet?", "William Shakespeare"),
    ("What is DNA?", "DNA is the molecule that carries genetic information"),
    ("The sun sets in the west", "True"),
    ("2+2=?", "4"),
)


def format_age(timestamp: datetime, now: Optional[datetime] = None) -> str:
    """'just now', '5m ago', '3h ago', '2d ago'."""
    seconds = ((now or utcnow()) - timestamp).total_seconds()
    minutes = int(seconds // 60)
    if minutes < 1:
        return "just now"
    if minutes < 60:
        return f"{minutes}m ago"
    hours = minutes // 60
    if hours < 24:
        return f"{hours}h ago"
    return f"{hours // 24}d ago"


def _speaker(message: ChatMessage) -> str:
    return "STUDENT" if message.is_user else "TUTOR"


def _dialogue(messages: Sequence[ChatMessage]) -> List[ChatMessage]:
    """Learner and tutor turns only; greetings and error notices are not history."""
    return [m for m in messages if m.role in (MessageRole.USER, MessageRole.ASSISTANT)]


class PromptSynthesizer:
    """Assembles the adaptive tutoring prompt."""

    def __init__(self, history_window: int = 20, simple_token_ceiling: int = 15):
        self.history_window = history_window
        self.simple_token_ceiling = simple_token_ceiling

    def build(
        self,
        utterance: str,
        analysis: QueryAnalysis,
        memory: SessionMemoryStore,
        *,
        relevant: Sequence[ChatMessage] = (),
        facts: Sequence[str] = (),
        carryover: Sequence[ChatMessage] = (),
        difficulty: str = "Intermediate",
        exclude_ids: Sequence[str] = (),
        temperature: float = 0.7,
    ) -> GenerationRequest:
        """
        Build the full prompt for one utterance.

        Args:
            utterance: The learner's message.
            analysis: Its QueryAnalysis.
            memory: Session memory (history window and session statistics).
            relevant: Messages returned by the retriever; block omitted when empty.
            facts: Key facts from the fact extractor.
            carryover: Messages from the learner's recent earlier sessions.
            difficulty: Session difficulty label.
            exclude_ids: Message ids left out of the history (the utterance itself).
        """
        blocks: List[Tuple[str, str]] = [
            ("persona", self._persona(analysis)),
            ("conversation_history", self._history(memory, carryover, facts, exclude_ids)),
        ]
        if relevant:
            blocks.append(("relevant_context", self._relevant_context(relevant)))
        blocks.extend(
            [
                ("current_query", f'CURRENT STUDENT QUERY: "{utterance}"'),
                ("query_analysis", f"QUERY ANALYSIS:\n{analysis.summary()}"),
                ("session_insights", f"SESSION INSIGHTS:\n{self._session_insights(memory)}"),
                ("response_structure", self._response_structure(analysis.response_type)),
                ("pedagogical_techniques", self._techniques(analysis)),
                ("learning_approach", APPROACH_STRATEGIES[analysis.learning_approach]),
            ]
        )
        special = self._special_requirements(analysis)
        if special:
            blocks.append(("special_requirements", special))
        blocks.append(("memory_directive", self._memory_directive()))
        blocks.append(("quality_standards", self._quality_standards(difficulty)))

        return GenerationRequest(
            prompt="\n\n".join(text for _, text in blocks),
            system_prompt=SYSTEM_PROMPT,
            response_type=analysis.response_type,
            temperature=temperature,
            sections=[name for name, _ in blocks],
        )

    def build_fast_path(self, utterance: str) -> GenerationRequest:
        """Minimal prompt for bare arithmetic."""
        prompt = f"""Answer this simple math problem VERY briefly (at most {self.simple_token_ceiling} words):
"{utterance}"

Give just the answer, then offer a short practice quiz in one question.
Do not write the quiz itself.
Example: 2+2=4. Want to try a quick quiz?"""
        return GenerationRequest(
            prompt=prompt,
            system_prompt=SYSTEM_PROMPT,
            response_type=ResponseType.SIMPLE,
            fast_path=True,
            temperature=0.2,
            sections=["fast_path"],
        )

    # ------------------------------------------------------------------
    # Blocks
    # ------------------------------------------------------------------
    @staticmethod
    def _persona(analysis: QueryAnalysis) -> str:
        return f"You are an expert tutor specializing in {SUBJECT_PERSONAS[analysis.subject]}."

    def _history(
        self,
        memory: SessionMemoryStore,
        carryover: Sequence[ChatMessage],
        facts: Sequence[str],
        exclude_ids: Sequence[str],
    ) -> str:
        excluded = set(exclude_ids)
        current = [m for m in _dialogue(memory.get_all_messages()) if m.id not in excluded]
        carryover = _dialogue(carryover)
        recent = current[-self.history_window:] if self.history_window > 0 else []

        if not recent and not carryover and not facts:
            return "CONVERSATION HISTORY:\n(No prior messages in this session)"

        lines = ["CONVERSATION HISTORY:"]
        if carryover:
            lines.append("Past session messages (recent days):")
            lines.extend(f"[PAST - {_speaker(m)} - {format_age(m.timestamp)}]: {m.text}" for m in carryover)
            lines.append("")

        lines.append(f"Current session ({len(recent)} most recent of {len(current)} messages):")
        lines.extend(f"[{_speaker(m)} - {format_age(m.timestamp)}]: {m.text}" for m in recent)

        if facts:
            lines.append("")
            lines.append("KEY FACTS FROM CONVERSATION:")
            lines.extend(f"{i}. {fact}" for i, fact in enumerate(facts, 1))

        topics = memory.frequent_topics(top_k=5, min_count=1)
        if topics:
            lines.append("")
            lines.append(f"KEY TOPICS: {', '.join(topics)}")
        return "\n".join(lines)

    @staticmethod
    def _relevant_context(relevant: Sequence[ChatMessage]) -> str:
        lines = [
            "RELEVANT PAST CONTEXT:",
            "These earlier messages are closely related to the current query.",
        ]
        lines.extend(f"[{_speaker(m)} - {format_age(m.timestamp)}]: {m.text}" for m in relevant)
        return "\n".join(lines)

    @staticmethod
    def _session_insights(memory: SessionMemoryStore) -> str:
        insights = []
        if memory.dominant_subject is not None:
            insights.append(f"- Primary subject focus: {memory.dominant_subject.value}")
        if memory.dominant_complexity is not None:
            insights.append(f"- Learner complexity level: {memory.dominant_complexity.value}")
        if memory.last_learning_approach is not None:
            insights.append(f"- Preferred learning approach: {memory.last_learning_approach.value}")
        if memory.subjects_seen:
            insights.append(f"- Previous subjects: {', '.join(s.value for s in memory.subjects_seen[:3])}")
        frequent = memory.frequent_topics(top_k=3, min_count=2)
        if frequent:
            insights.append(f"- Frequent topics: {', '.join(frequent)}")
        return "\n".join(insights) if insights else "No prior context available"

    def _response_structure(self, response_type: ResponseType) -> str:
        if response_type == ResponseType.SIMPLE:
            examples = "\n".join(f'- "{q}" → "{a}"' for q, a in SIMPLE_EXAMPLES)
            return (
                f"RESPONSE LENGTH: ULTRA-CONCISE, at most {self.simple_token_ceiling} words.\n"
                f"Examples of good simple answers:\n{examples}\n"
                "Rules:\n"
                "- Factual questions: only the direct answer\n"
                "- True/False or yes/no: a single word\n"
                "- Math: just the result\n"
                '- No filler such as "Sure!" or "Hope this helps"'
            )
        if response_type == ResponseType.MEDIUM:
            return (
                "RESPONSE LENGTH: 3-5 sentences (one focused paragraph). "
                "State the main concept plus its key supporting points."
            )
        return (
            "RESPONSE LENGTH: Detailed and well structured. Use sections, bullet points "
            "or numbered steps, with a short introduction and summary."
        )

    @staticmethod
    def _techniques(analysis: QueryAnalysis) -> str:
        techniques = list(INTENT_TECHNIQUES[analysis.intent])
        techniques.append(COMPLEXITY_TECHNIQUES[analysis.complexity])
        return "EDUCATIONAL TECHNIQUES:\n" + "\n".join(f"- {t}" for t in techniques)

    @staticmethod
    def _special_requirements(analysis: QueryAnalysis) -> str:
        items = []
        if analysis.requires_examples:
            items.append("- Include concrete examples and real-world applications")
        if analysis.requires_steps:
            items.append("- Provide a step-by-step breakdown")
        return "SPECIAL REQUIREMENTS:\n" + "\n".join(items) if items else ""

    @staticmethod
    def _memory_directive() -> str:
        return (
            "MEMORY INSTRUCTIONS:\n"
            "Before answering, read the conversation history, key facts and relevant "
            "past context above. If the learner asks about something they said earlier "
            "and it appears above, use it and refer to what they said. Do not claim you "
            "have no record of information that is present in the context."
        )

    @staticmethod
    def _quality_standards(difficulty: str) -> str:
        return (
            "QUALITY STANDARDS:\n"
            f"- Adapt language to the {difficulty} level\n"
            "- Build on what was established earlier in this conversation\n"
            "- Provide accurate, verified information\n"
            "- If you ask a multiple-choice question, label the options A) B) C) D) and "
            "end with a line 'Answer: <letter> - <one-sentence explanation>'"
        )
