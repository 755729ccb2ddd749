"""
Adaptive tutoring dialogue engine.

This package exposes a clean public API while the actual implementation
is organized into subpackages:

- tutor_engine.schema:   Pydantic data model (messages, sessions, analyses, quizzes)
- tutor_engine.memory:   Session memory, fact extraction, retrieval, persistence
- tutor_engine.chatbot:  Classifier, prompt synthesis, post-processing, gateways, engine
"""

from .config import TutorConfig
from .errors import (
    GenerationError,
    PersistenceError,
    SessionStateError,
    TutorEngineError,
)
from .logging_config import configure_logging

# Core schemas
from .schema.core_schema import (
    ActiveQuiz,
    ChatMessage,
    GenerationRequest,
    LearnerProfile,
    MessageRole,
    MessageTag,
    QueryAnalysis,
    QuizAnswerKey,
    QuizOutcome,
    ResponseType,
    SearchResult,
    SessionMetrics,
    TutorSession,
    UserIntent,
)

# Core classes
from .memory.session_memory import SessionMemoryStore
from .memory.fact_extractor import FactExtractor
from .memory.retriever import RelevanceRetriever, is_recall_query
from .memory.session_store import InMemorySessionStore, JsonlSessionStore, SessionStore
from .chatbot.query_understanding import QueryClassifier, classify, is_simple_math, needs_web_search
from .chatbot.prompt_synthesizer import PromptSynthesizer
from .chatbot.post_processor import ResponsePostProcessor
from .chatbot.reply_validator import ReplyCheck, ReplyValidator
from .chatbot.events import EngineEvent, EngineState, EventKind
from .chatbot.llm_client import GenerationGateway, LLMClient
from .chatbot.web_search import SearchGateway, WebSearchClient
from .chatbot.tutor_engine import TutorDialogueEngine
from .chatbot.chat_assistant import ChatAssistant

__all__ = [
    "TutorConfig",
    "configure_logging",
    "TutorEngineError",
    "GenerationError",
    "PersistenceError",
    "SessionStateError",
    "ActiveQuiz",
    "ChatMessage",
    "GenerationRequest",
    "LearnerProfile",
    "MessageRole",
    "MessageTag",
    "QueryAnalysis",
    "QuizAnswerKey",
    "QuizOutcome",
    "ResponseType",
    "SearchResult",
    "SessionMetrics",
    "TutorSession",
    "UserIntent",
    "SessionMemoryStore",
    "FactExtractor",
    "RelevanceRetriever",
    "is_recall_query",
    "SessionStore",
    "InMemorySessionStore",
    "JsonlSessionStore",
    "QueryClassifier",
    "classify",
    "is_simple_math",
    "needs_web_search",
    "PromptSynthesizer",
    "ResponsePostProcessor",
    "ReplyValidator",
    "ReplyCheck",
    "EngineEvent",
    "EngineState",
    "EventKind",
    "GenerationGateway",
    "LLMClient",
    "SearchGateway",
    "WebSearchClient",
    "TutorDialogueEngine",
    "ChatAssistant",
]
