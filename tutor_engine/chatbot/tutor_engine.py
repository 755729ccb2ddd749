"""
Tutoring Dialogue Engine

Session state machine that drives one learner conversation:

    IDLE → STARTING → ACTIVE ⇄ {GENERATING, QUIZ_PENDING} → ENDED → IDLE

Per message (ACTIVE):
- drop blanks, duplicates (same trimmed text within the duplicate window) and
  anything arriving while a generation is in flight
- a single A-D token while a quiz is pending is a quiz answer
- everything else: classify → update memory → optional web search →
  retrieval + fact extraction → prompt (or math fast path) → generate →
  validate claims and arithmetic → post-process → append reply → detect
  quiz → refresh metrics

Gateway and persistence failures during a turn become one error message; the
session stays ACTIVE.
"""

import asyncio
import time
import uuid
from typing import Awaitable, Callable, List, Optional, Tuple

from loguru import logger

from ..config import TutorConfig
from ..errors import SessionStateError
from ..memory.fact_extractor import FactExtractor
from ..memory.retriever import RelevanceRetriever
from ..memory.session_memory import SessionMemoryStore
from ..memory.session_store import SessionStore
from ..schema.core_schema import (
    ActiveQuiz,
    ChatMessage,
    GenerationRequest,
    LearnerProfile,
    MessageRole,
    MessageTag,
    QueryAnalysis,
    QuizAnswerKey,
    ResponseType,
    SessionMetrics,
    SessionStatus,
    TutorSession,
    utcnow,
)
from . import quiz as quiz_contract
from .events import EngineEvent, EngineState, EventChannel, EventKind, Observer
from .llm_client import GenerationGateway
from .post_processor import ResponsePostProcessor, token_count
from .prompt_synthesizer import PromptSynthesizer
from .query_understanding import QueryClassifier, is_simple_math, needs_web_search
from .reply_validator import ReplyValidator
from .web_search import SearchGateway


ERROR_MESSAGE = "Sorry, I encountered an error. Please try again."

START_SUGGESTIONS = ["Start learning session", "Show my progress", "Give me a quiz"]
STUDY_SUGGESTIONS = [
    "Give me a quiz",
    "Show my progress",
    "I need a hint",
    "Explain this differently",
    "Next topic",
    "Practice problems",
]

QuizKeyResolver = Callable[[str], Awaitable[Optional[QuizAnswerKey]]]


def default_id_factory(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def engagement_score(user_messages: int, quizzes_taken: int, correct_answers: int) -> float:
    """0.6 * participation (saturating at 10 messages) + 0.4 * quiz accuracy."""
    participation = min(user_messages / 10.0, 1.0)
    accuracy = correct_answers / quizzes_taken if quizzes_taken else 0.0
    return round(0.6 * participation + 0.4 * accuracy, 4)


def session_feedback(score: float) -> str:
    if score >= 0.8:
        return "Outstanding session! You're making incredible progress!"
    if score >= 0.6:
        return "Great work! You're really engaged and learning well!"
    if score >= 0.4:
        return "Good session! Keep up the steady progress!"
    return "Every step counts! Come back tomorrow to continue learning!"


class TutorDialogueEngine:
    """Adaptive tutoring dialogue for one learner at a time."""

    def __init__(
        self,
        generator: GenerationGateway,
        store: Optional[SessionStore] = None,
        search: Optional[SearchGateway] = None,
        config: Optional[TutorConfig] = None,
        *,
        classifier: Optional[QueryClassifier] = None,
        quiz_key_resolver: Optional[QuizKeyResolver] = None,
        id_factory: Callable[[str], str] = default_id_factory,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Args:
            generator: Generation gateway (e.g. LLMClient).
            store: Persistence collaborator; the engine runs without one.
            search: Optional search gateway for real-world lookups.
            config: Tunables; defaults when omitted.
            quiz_key_resolver: Async callable returning the answer key of a quiz
                               text that carries no explicit "Answer:" line.
            id_factory: Produces ids for sessions, messages and quizzes from a prefix.
            clock: Monotonic clock used for duplicate suppression.
            sleep: Awaitable used for the end-of-session clear delay.
        """
        self.generator = generator
        self.store = store
        self.search = search
        self.config = config or TutorConfig()
        self.classifier = classifier or QueryClassifier()
        self.quiz_key_resolver = quiz_key_resolver
        self._new_id = id_factory
        self._clock = clock
        self._sleep = sleep

        self.synthesizer = PromptSynthesizer(
            history_window=self.config.history_window,
            simple_token_ceiling=self.config.simple_token_ceiling,
        )
        self.post_processor = ResponsePostProcessor(token_ceiling=self.config.simple_token_ceiling)
        self.validator = ReplyValidator() if self.config.validate_replies else None
        self.retriever = RelevanceRetriever(top_n=self.config.recall_top_n)
        self.fact_extractor = FactExtractor(max_facts=self.config.max_facts)
        self.events = EventChannel()

        self.session: Optional[TutorSession] = None
        self.memory: Optional[SessionMemoryStore] = None
        self.messages: List[ChatMessage] = []
        self.carryover: Tuple[ChatMessage, ...] = ()
        self.active_quiz: Optional[ActiveQuiz] = None
        self.profile: Optional[LearnerProfile] = None
        self.metrics = SessionMetrics()
        self.error: Optional[str] = None
        self.is_starting = False
        self.last_analysis: Optional[QueryAnalysis] = None
        self.last_request: Optional[GenerationRequest] = None

        self._generation_token: Optional[object] = None
        self._last_text: Optional[str] = None
        self._last_text_at: Optional[float] = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------
    @property
    def is_generating(self) -> bool:
        return self._generation_token is not None

    @property
    def has_active_session(self) -> bool:
        return self.session is not None and self.session.is_active

    @property
    def state(self) -> EngineState:
        if self.is_starting:
            return EngineState.STARTING
        if self.session is None:
            return EngineState.IDLE
        if not self.session.is_active:
            return EngineState.ENDED
        if self.is_generating:
            return EngineState.GENERATING
        if self.active_quiz is not None:
            return EngineState.QUIZ_PENDING
        return EngineState.ACTIVE

    @property
    def quick_replies(self) -> List[str]:
        if self.active_quiz is not None:
            return list(quiz_contract.OPTION_LETTERS)
        if not self.has_active_session:
            return list(START_SUGGESTIONS)
        start = self.metrics.user_messages % len(STUDY_SUGGESTIONS)
        return [STUDY_SUGGESTIONS[(start + i) % len(STUDY_SUGGESTIONS)] for i in range(4)]

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        return self.events.subscribe(observer)

    def _emit(self, kind: EventKind, message: Optional[ChatMessage] = None, **data) -> None:
        self.events.emit(
            EngineEvent(
                kind=kind,
                session_id=self.session.id if self.session else None,
                state=self.state,
                message=message,
                data=data,
            )
        )

    def _emit_state(self) -> None:
        self._emit(EventKind.STATE_CHANGED)

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------
    async def start_session(
        self,
        subject: str = "Mathematics",
        difficulty: str = "Intermediate",
        goals: Optional[List[str]] = None,
        user_id: str = "anonymous",
        session_id: Optional[str] = None,
    ) -> Optional[TutorSession]:
        """
        Start (or resume, when session_id names a stored session) a session.

        Returns:
            The new session, or None if the start was rejected or failed
            (see `error`).
        """
        if self.is_starting:
            logger.warning("Session start already in progress, ignoring duplicate request")
            return None
        if self.has_active_session:
            logger.warning(f"Session {self.session.id} is already active")
            return self.session

        self.is_starting = True
        self.error = None
        self._emit_state()
        try:
            session = TutorSession(
                id=session_id or self._new_id("session"),
                user_id=user_id,
                subject=subject,
                difficulty=difficulty,
                goals=list(goals or []),
            )
            prior: List[ChatMessage] = []
            carryover: List[ChatMessage] = []
            profile = LearnerProfile(user_id=user_id)
            if self.store is not None:
                await self.store.save_session(session)
                prior = await self.store.load_session_messages(session.id)
                carryover = await self.store.load_cross_session_messages(
                    session.id, self.config.cross_session_days
                )
                profile = await self.store.get_user_profile(user_id)

            memory = SessionMemoryStore(
                capacity=self.config.memory_capacity,
                analysis_window=self.config.analysis_window,
                use_tokenizer=self.config.use_tokenizer,
            )
            for message in prior:
                memory.add_message(message)

            self.session = session
            self.memory = memory
            self.messages = list(prior)
            self.carryover = tuple(carryover)
            self.profile = profile
            self.active_quiz = None
            self.metrics = SessionMetrics(start_points=profile.total_points)
            self._last_text = self._last_text_at = None

            if not self.messages:
                greeting = ChatMessage(
                    id=self._new_id("system"),
                    role=MessageRole.SYSTEM,
                    text=(
                        f"Welcome! Let's study {subject} at the {difficulty} level. "
                        "Ask me anything, or say 'give me a quiz' to practice."
                    ),
                )
                await self._append(greeting)

            self._refresh_metrics()
            logger.info(
                f"Session {session.id} started: subject={subject}, difficulty={difficulty}, "
                f"{len(prior)} prior messages, {len(carryover)} carryover messages"
            )
            return session
        except Exception as e:
            logger.exception(f"Failed to start session: {e}")
            self.error = f"Failed to start session: {e}"
            self._clear()
            self._emit(EventKind.ERROR, error=self.error)
            return None
        finally:
            self.is_starting = False
            self._emit_state()

    async def end_session(self) -> ChatMessage:
        """
        End the active session and emit its summary message. In-memory state
        is cleared after the configured delay.

        Raises:
            SessionStateError: if there is no active session.
        """
        if not self.has_active_session:
            raise SessionStateError("No active session to end")

        ended = self.session.model_copy(
            update={"status": SessionStatus.ENDED, "ended_at": utcnow()}
        )
        self.session = ended
        self.active_quiz = None
        self._refresh_metrics()

        summary = ChatMessage(
            id=self._new_id("summary"),
            role=MessageRole.ASSISTANT,
            text=self.build_summary(),
            tag=MessageTag.SESSION_SUMMARY,
            metadata={"metrics": self.metrics.model_dump()},
        )
        try:
            if self.store is not None:
                await self.store.save_session(ended)
            await self._append(summary)
        except Exception as e:
            logger.error(f"Failed to persist end of session {ended.id}: {e}")
            self.error = f"Failed to end session: {e}"
            self._record(summary)

        self._emit(EventKind.SESSION_SUMMARY, summary, metrics=self.metrics.model_dump())
        self._emit_state()
        logger.info(f"Session {ended.id} ended")

        if self.config.end_session_clear_delay > 0:
            await self._sleep(self.config.end_session_clear_delay)
        # a new session may have started during the delay
        if self.session is ended:
            self._clear()
            self._emit_state()
        return summary

    def reset(self) -> None:
        """Discard all session state immediately."""
        self._clear()
        self.error = None
        self._emit_state()

    def _clear(self) -> None:
        self.session = None
        self.memory = None
        self.messages = []
        self.carryover = ()
        self.active_quiz = None
        self.metrics = SessionMetrics()
        self.last_analysis = None
        self.last_request = None
        self._generation_token = None
        self._last_text = self._last_text_at = None

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------
    async def send_message(self, text: str, author_id: Optional[str] = None) -> Optional[ChatMessage]:
        """
        Process one learner message.

        Returns:
            The reply appended to the transcript (assistant, quiz result or
            error message), or None when the message was dropped.
        """
        if not self.has_active_session:
            logger.debug("No active session; message dropped")
            return None
        trimmed = (text or "").strip()
        if not trimmed:
            return None
        if self.is_generating:
            logger.warning("Generation in progress; message dropped")
            return None

        now = self._clock()
        if (
            trimmed == self._last_text
            and self._last_text_at is not None
            and now - self._last_text_at < self.config.duplicate_window_seconds
        ):
            logger.warning(f'Duplicate message ignored: "{trimmed}"')
            return None
        self._last_text, self._last_text_at = trimmed, now

        if self.active_quiz is not None:
            answer_index = quiz_contract.parse_answer(trimmed)
            if answer_index is not None:
                return await self._answer_quiz(trimmed, answer_index, author_id)
            superseded = self.active_quiz
            self.active_quiz = None
            self._emit(EventKind.QUIZ_RESOLVED, quiz_id=superseded.id, superseded=True)

        return await self._generate_reply(trimmed, author_id)

    async def _answer_quiz(
        self, text: str, answer_index: int, author_id: Optional[str]
    ) -> Optional[ChatMessage]:
        session = self.session
        quiz = self.active_quiz
        self.active_quiz = None
        token = self._begin_generation()
        try:
            await self._append(
                ChatMessage(
                    id=self._new_id("user"),
                    role=MessageRole.USER,
                    text=text,
                    author_id=author_id or session.user_id,
                    tag=MessageTag.QUIZ_ANSWER,
                    metadata={"quiz_id": quiz.id},
                )
            )
            outcome = quiz_contract.score_answer(quiz, answer_index)
            if self.store is not None:
                profile = await self.store.record_quiz_result(session.id, session.user_id, outcome)
            else:
                profile = quiz_contract.apply_outcome(self.profile, outcome)
            if self.session is not session:
                logger.warning(f"Session {session.id} ended while grading quiz {quiz.id}; result discarded")
                return None
            self.profile = profile
            self.metrics.quizzes_taken += 1
            if outcome.is_correct:
                self.metrics.correct_answers += 1

            result = ChatMessage(
                id=self._new_id("quiz_result"),
                role=MessageRole.ASSISTANT,
                text=quiz_contract.result_text(quiz, outcome),
                tag=MessageTag.QUIZ_RESULT,
                metadata={"outcome": outcome.model_dump()},
            )
            await self._append(result)
            self._emit(EventKind.QUIZ_RESOLVED, result, outcome=outcome.model_dump())
            logger.info(
                f"Quiz {quiz.id} answered {quiz_contract.OPTION_LETTERS[answer_index]}: "
                f"correct={outcome.is_correct}, +{outcome.points_awarded} points"
            )
            return result
        except Exception as e:
            return await self._fail(session, e)
        finally:
            self._end_generation(token)

    async def _generate_reply(self, text: str, author_id: Optional[str]) -> Optional[ChatMessage]:
        session = self.session
        user_message = ChatMessage(
            id=self._new_id("user"),
            role=MessageRole.USER,
            text=text,
            author_id=author_id or session.user_id,
        )
        token = self._begin_generation()
        try:
            await self._append(user_message)

            analysis = self.classifier.classify(text)
            self.memory.update_from_analysis(analysis)
            self.last_analysis = analysis
            logger.debug(
                f"Analysis: subject={analysis.subject.value}, intent={analysis.intent.value}, "
                f"tier={analysis.response_type.value}"
            )

            raw: Optional[str] = None
            search_metadata = None
            if self.search is not None and self.search.is_available and needs_web_search(text):
                raw, search_metadata = await self._search(text, session)

            response_type = analysis.response_type
            if raw is None:
                request = self._build_request(text, analysis, user_message, session)
                self.last_request = request
                response_type = request.response_type
                raw = await self.generator.generate(request)

            if self.session is not session:
                logger.warning(f"Session {session.id} ended during generation; late reply discarded")
                return None

            visible, answer_key = quiz_contract.split_answer_key(raw)
            if quiz_contract.is_quiz(visible):
                # options and question must survive intact
                final_text = visible.strip()
                if response_type == ResponseType.SIMPLE and token_count(final_text) > self.config.simple_token_ceiling:
                    logger.warning(
                        f"Quiz reply kept whole at {token_count(final_text)} tokens, "
                        f"over the simple ceiling of {self.config.simple_token_ceiling}"
                    )
            else:
                if self.validator is not None:
                    visible = self._validate_reply(visible)
                final_text = self.post_processor.process(visible, response_type, analysis.intent)

            reply = ChatMessage(
                id=self._new_id("assistant"),
                role=MessageRole.ASSISTANT,
                text=final_text,
                tag=MessageTag.WEB_SEARCH if search_metadata else None,
                metadata={"web_search": search_metadata} if search_metadata else {},
            )
            await self._append(reply)

            if quiz_contract.is_quiz(final_text):
                await self._open_quiz(final_text, answer_key, analysis, session)
            return reply
        except Exception as e:
            return await self._fail(session, e)
        finally:
            self._end_generation(token)
            if self.session is session:
                self._refresh_metrics()

    def _validate_reply(self, text: str) -> str:
        history = (*self.carryover, *self.memory.get_all_messages())
        check = self.validator.validate(text, history, self.memory.topic_frequency)
        if check.changed:
            logger.info(
                f"Reply corrected: {len(check.unsupported_claims)} memory claim(s), "
                f"{len(check.arithmetic_fixes)} arithmetic fix(es)"
            )
        return check.text

    def _build_request(
        self,
        text: str,
        analysis: QueryAnalysis,
        user_message: ChatMessage,
        session: TutorSession,
    ) -> GenerationRequest:
        if is_simple_math(text):
            return self.synthesizer.build_fast_path(text)

        snapshot = self.memory.get_all_messages()
        history = [
            m for m in (*self.carryover, *snapshot)
            if m.role in (MessageRole.USER, MessageRole.ASSISTANT)
        ]
        relevant = self.retriever.retrieve(
            text, analysis.keywords, history, exclude_ids=[user_message.id]
        )
        facts = self.fact_extractor.extract(history)
        return self.synthesizer.build(
            text,
            analysis,
            self.memory,
            relevant=relevant,
            facts=facts,
            carryover=self.carryover,
            difficulty=session.difficulty,
            exclude_ids=[user_message.id],
            temperature=self.config.temperature,
        )

    async def _search(self, text: str, session: TutorSession):
        """Returns (answer, provenance) or (None, None) to fall back to generation."""
        try:
            result = await self.search.search(
                text, self.memory.get_context_summary(), session.user_id
            )
        except Exception as e:
            logger.error(f"Web search raised, falling back to generation: {e}")
            return None, None
        if result.has_error:
            logger.warning(f"Web search failed, falling back to generation: {result.error}")
            return None, None
        logger.info(f"Web search answered ({'cached' if result.from_cache else 'fresh'})")
        return result.answer, {
            "retrieved_at": result.timestamp.isoformat(),
            "from_cache": result.from_cache,
            "query": result.query,
        }

    async def _open_quiz(
        self,
        text: str,
        answer_key: Optional[QuizAnswerKey],
        analysis: QueryAnalysis,
        session: TutorSession,
    ) -> None:
        if answer_key is None and self.quiz_key_resolver is not None:
            try:
                answer_key = await self.quiz_key_resolver(text)
            except Exception as e:
                logger.warning(f"Quiz answer key lookup failed; quiz will be ungraded: {e}")
                answer_key = None
        if self.session is not session:
            return

        self.active_quiz = quiz_contract.parse_quiz(
            self._new_id("quiz"), text, answer_key, concept_id=analysis.subject.value
        )
        if not self.active_quiz.is_graded:
            logger.warning(f"Quiz {self.active_quiz.id} has no answer key; answers will not be graded")
        self._emit(EventKind.QUIZ_OPENED, quiz=self.active_quiz.model_dump())

    async def _fail(self, session: TutorSession, error: Exception) -> Optional[ChatMessage]:
        logger.exception(f"Turn failed: {error}")
        if self.session is not session:
            return None
        self.error = str(error)
        message = ChatMessage(id=self._new_id("error"), role=MessageRole.ERROR, text=ERROR_MESSAGE)
        self._record(message)
        if self.store is not None:
            try:
                await self.store.append_message(session.id, message)
            except Exception as e:
                logger.error(f"Could not persist error message: {e}")
        self._emit(EventKind.ERROR, message, error=str(error))
        return message

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _begin_generation(self) -> object:
        token = object()
        self._generation_token = token
        self._emit_state()
        return token

    def _end_generation(self, token: object) -> None:
        if self._generation_token is token:
            self._generation_token = None
            self._emit_state()

    async def _append(self, message: ChatMessage) -> None:
        """Persist, then record in transcript and memory."""
        if self.store is not None:
            await self.store.append_message(self.session.id, message)
        self._record(message)

    def _record(self, message: ChatMessage) -> None:
        self.messages.append(message)
        if self.memory is not None:
            self.memory.add_message(message)
        self._emit(EventKind.MESSAGE_APPENDED, message)

    def _refresh_metrics(self) -> None:
        if self.session is None:
            return
        user = sum(1 for m in self.messages if m.role == MessageRole.USER)
        assistant = sum(1 for m in self.messages if m.role == MessageRole.ASSISTANT)
        elapsed = (self.session.ended_at or utcnow()) - self.session.created_at
        self.metrics.total_messages = len(self.messages)
        self.metrics.user_messages = user
        self.metrics.assistant_messages = assistant
        self.metrics.duration_minutes = int(elapsed.total_seconds() // 60)
        self.metrics.engagement_score = engagement_score(
            user, self.metrics.quizzes_taken, self.metrics.correct_answers
        )
        self.metrics.context_tokens = self.memory.get_context_size() if self.memory else 0

    def build_summary(self) -> str:
        m = self.metrics
        total_points = self.profile.total_points if self.profile else m.start_points
        return (
            "Session Complete!\n\n"
            f"Duration: {m.duration_minutes} minutes\n"
            f"Quizzes Taken: {m.quizzes_taken}\n"
            f"Correct Answers: {m.correct_answers}\n"
            f"Engagement Score: {m.engagement_score * 100:.0f}%\n"
            f"Points Earned: +{total_points - m.start_points}\n\n"
            f"{session_feedback(m.engagement_score)}"
        )
