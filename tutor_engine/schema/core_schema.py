"""
Core Schema Definitions for the Tutoring Dialogue Engine

Everything the engine passes between its stages is a pydantic model:

  (1) ChatMessage / TutorSession      → transcript and session lifecycle
  (2) QueryAnalysis                   → classifier output, one per utterance
  (3) GenerationRequest               → what we ask the generation gateway
  (4) ActiveQuiz / QuizOutcome        → the multiple-choice sub-dialogue
  (5) LearnerProfile / SessionMetrics → learner aggregates and session stats
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# ENUMS
# ============================================================================

class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    ERROR = "error"


class MessageTag(str, Enum):
    """Structured tag attached to special transcript entries."""
    QUIZ = "quiz"
    QUIZ_ANSWER = "quiz_answer"
    QUIZ_RESULT = "quiz_result"
    SESSION_SUMMARY = "session_summary"
    WEB_SEARCH = "web_search"


class SessionStatus(str, Enum):
    ACTIVE = "active"
    ENDED = "ended"


class SubjectType(str, Enum):
    MATHEMATICS = "mathematics"
    SCIENCE = "science"
    HISTORY = "history"
    LITERATURE = "literature"
    LANGUAGE = "language"
    PHILOSOPHY = "philosophy"
    ARTS = "arts"
    TECHNOLOGY = "technology"
    SOCIAL_STUDIES = "social_studies"
    GENERAL = "general"


class QueryComplexity(str, Enum):
    BASIC = "basic"                # Simple facts, definitions
    INTERMEDIATE = "intermediate"  # Explanations, comparisons
    ADVANCED = "advanced"          # Analysis, synthesis, evaluation


class UserIntent(str, Enum):
    FACTUAL = "factual"
    CONCEPTUAL = "conceptual"
    PROCEDURAL = "procedural"
    ANALYTICAL = "analytical"
    CREATIVE = "creative"
    CONFIRMATORY = "confirmatory"


class ResponseType(str, Enum):
    """Response-length tier."""
    SIMPLE = "simple"  # 1-2 sentences
    MEDIUM = "medium"  # one focused paragraph
    LONGER = "longer"  # structured, detailed


class LearningApproach(str, Enum):
    DIRECT = "direct"
    SOCRATIC = "socratic"
    EXAMPLE_BASED = "example_based"
    ANALOGICAL = "analogical"
    SCAFFOLDED = "scaffolded"


# ============================================================================
# TRANSCRIPT & SESSION
# ============================================================================

class ChatMessage(BaseModel):
    """One transcript entry."""
    id: str = Field(..., description="Unique message identifier")
    role: MessageRole
    text: str
    timestamp: datetime = Field(default_factory=utcnow)
    author_id: Optional[str] = Field(None, description="User id of the author, if any")
    tag: Optional[MessageTag] = Field(None, description="Structured tag (quiz, quiz_answer, ...)")
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def is_user(self) -> bool:
        return self.role == MessageRole.USER


class TutorSession(BaseModel):
    """A tutoring session. Owns one session memory for its lifetime."""
    id: str
    user_id: str = "anonymous"
    subject: str = "Mathematics"
    difficulty: str = "Intermediate"
    goals: List[str] = Field(default_factory=list)
    status: SessionStatus = SessionStatus.ACTIVE
    created_at: datetime = Field(default_factory=utcnow)
    ended_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status == SessionStatus.ACTIVE


# ============================================================================
# QUERY ANALYSIS
# ============================================================================

class QueryAnalysis(BaseModel):
    """
    Structured classification of one utterance.
    Frozen: recomputed per utterance, never mutated.
    """
    model_config = ConfigDict(frozen=True)

    subject: SubjectType = SubjectType.GENERAL
    complexity: QueryComplexity = QueryComplexity.INTERMEDIATE
    intent: UserIntent = UserIntent.CONCEPTUAL
    response_type: ResponseType = ResponseType.MEDIUM
    learning_approach: LearningApproach = LearningApproach.DIRECT
    keywords: Tuple[str, ...] = ()
    question_type: str = "Statement/Request"
    requires_examples: bool = False
    requires_steps: bool = False

    def summary(self) -> str:
        return (
            f"- Subject: {self.subject.value}\n"
            f"- Complexity: {self.complexity.value}\n"
            f"- Intent: {self.intent.value}\n"
            f"- Response Type: {self.response_type.value}\n"
            f"- Learning Style: {self.learning_approach.value}\n"
            f"- Question Type: {self.question_type}\n"
            f"- Requires Examples: {'yes' if self.requires_examples else 'no'}\n"
            f"- Requires Steps: {'yes' if self.requires_steps else 'no'}\n"
            f"- Keywords: {', '.join(self.keywords) or '(none)'}"
        )


# ============================================================================
# GATEWAY PAYLOADS
# ============================================================================

class GenerationRequest(BaseModel):
    """Single structured request handed to the generation gateway."""
    prompt: str
    system_prompt: Optional[str] = None
    response_type: ResponseType = ResponseType.MEDIUM
    fast_path: bool = False
    temperature: float = 0.7
    sections: List[str] = Field(
        default_factory=list,
        description="Ordered names of the prompt blocks that were emitted",
    )


class SearchResult(BaseModel):
    """Result returned by the search gateway."""
    answer: str
    timestamp: datetime = Field(default_factory=utcnow)
    query: str = ""
    from_cache: bool = False
    error: Optional[str] = None

    @property
    def has_error(self) -> bool:
        return self.error is not None


# ============================================================================
# QUIZ
# ============================================================================

class QuizAnswerKey(BaseModel):
    """
    Answer key for a multiple-choice question.
    Filled by the generator (structured output) or parsed from an explicit
    'Answer: X' line.
    """
    correct_letter: str = Field(..., description="One of A, B, C, D")
    explanation: str = Field("", description="One-sentence explanation of the correct option")


class ActiveQuiz(BaseModel):
    """The single pending multiple-choice question of a session."""
    id: str
    question: str = ""
    options: List[str] = Field(default_factory=list)
    correct_index: Optional[int] = Field(
        None, description="0-3; None when the generator supplied no answer key"
    )
    explanation: str = ""
    concept_id: str = "general"

    @property
    def is_graded(self) -> bool:
        return self.correct_index is not None


class QuizOutcome(BaseModel):
    quiz_id: str
    concept_id: str
    answer_index: int
    correct_index: Optional[int] = None
    is_correct: Optional[bool] = None
    points_awarded: int = 0


# ============================================================================
# LEARNER AGGREGATES
# ============================================================================

class LearnerProfile(BaseModel):
    user_id: str
    total_points: int = 0
    quizzes_taken: int = 0
    correct_answers: int = 0
    concept_mastery: Dict[str, float] = Field(default_factory=dict)
    concept_attempts: Dict[str, int] = Field(default_factory=dict)

    def mastery_for(self, concept_id: str) -> float:
        return self.concept_mastery.get(concept_id, 0.3)


class SessionMetrics(BaseModel):
    total_messages: int = 0
    user_messages: int = 0
    assistant_messages: int = 0
    duration_minutes: int = 0
    quizzes_taken: int = 0
    correct_answers: int = 0
    engagement_score: float = 0.0
    start_points: int = 0
    context_tokens: int = 0
