"""
Session persistence

SessionStore is the protocol the dialogue engine talks to. Two implementations:

  InMemorySessionStore  arena of session records indexed by id. Cross-session
                        history is read through a read-only accessor; records
                        never point at each other.
  JsonlSessionStore     the same arena, plus one JSONL transcript per session
                        (one JSON object per line: id, role, content, timestamp,
                        optional tag / metadata).
"""

import json
import os
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Protocol, Tuple

from loguru import logger

from ..chatbot.quiz import apply_outcome
from ..errors import PersistenceError
from ..schema.core_schema import (
    ChatMessage,
    LearnerProfile,
    MessageRole,
    MessageTag,
    QuizOutcome,
    TutorSession,
    utcnow,
)


class SessionStore(Protocol):
    async def save_session(self, session: TutorSession) -> None: ...

    async def load_session_messages(self, session_id: str) -> List[ChatMessage]: ...

    async def append_message(self, session_id: str, message: ChatMessage) -> None: ...

    async def load_cross_session_messages(
        self, session_id: str, within_days: int = 7
    ) -> List[ChatMessage]: ...

    async def get_user_profile(self, user_id: str) -> LearnerProfile: ...

    async def record_quiz_result(
        self, session_id: str, user_id: str, outcome: QuizOutcome
    ) -> LearnerProfile: ...


@dataclass
class SessionRecord:
    session: TutorSession
    messages: List[ChatMessage] = field(default_factory=list)
    quiz_outcomes: List[QuizOutcome] = field(default_factory=list)


class SessionArenaView:
    """Read-only accessor over the arena, used for cross-session reads."""

    def __init__(self, records: Mapping[str, SessionRecord]):
        self._records = MappingProxyType(records)

    def session(self, session_id: str) -> Optional[TutorSession]:
        record = self._records.get(session_id)
        return record.session if record else None

    def messages(self, session_id: str) -> Tuple[ChatMessage, ...]:
        record = self._records.get(session_id)
        return tuple(record.messages) if record else ()

    def sessions_for_user(self, user_id: str) -> List[TutorSession]:
        return [r.session for r in self._records.values() if r.session.user_id == user_id]


class InMemorySessionStore:
    """Arena of session records plus per-user learner profiles."""

    def __init__(self):
        self._records: Dict[str, SessionRecord] = {}
        self._profiles: Dict[str, LearnerProfile] = {}
        self.view = SessionArenaView(self._records)

    def _record(self, session_id: str) -> SessionRecord:
        record = self._records.get(session_id)
        if record is None:
            raise PersistenceError(f"Unknown session: {session_id}")
        return record

    async def save_session(self, session: TutorSession) -> None:
        record = self._records.get(session.id)
        if record is None:
            self._records[session.id] = SessionRecord(session=session)
        else:
            record.session = session

    async def load_session_messages(self, session_id: str) -> List[ChatMessage]:
        return list(self.view.messages(session_id))

    async def append_message(self, session_id: str, message: ChatMessage) -> None:
        self._record(session_id).messages.append(message)

    async def load_cross_session_messages(
        self, session_id: str, within_days: int = 7
    ) -> List[ChatMessage]:
        """
        Messages from the same user's other sessions created within the
        lookback window, oldest first.
        """
        current = self.view.session(session_id)
        if current is None:
            return []
        cutoff = utcnow() - timedelta(days=within_days)
        messages: List[ChatMessage] = []
        for other in self.view.sessions_for_user(current.user_id):
            if other.id == session_id or other.created_at < cutoff:
                continue
            messages.extend(self.view.messages(other.id))
        messages.sort(key=lambda m: m.timestamp)
        return messages

    async def get_user_profile(self, user_id: str) -> LearnerProfile:
        return self._profiles.get(user_id) or LearnerProfile(user_id=user_id)

    async def record_quiz_result(
        self, session_id: str, user_id: str, outcome: QuizOutcome
    ) -> LearnerProfile:
        self._record(session_id).quiz_outcomes.append(outcome)
        profile = apply_outcome(await self.get_user_profile(user_id), outcome)
        self._profiles[user_id] = profile
        return profile


class JsonlSessionStore(InMemorySessionStore):
    """
    Arena store that also writes each session's transcript to
    <log_dir>/<session_id>.jsonl and reloads it on demand.
    """

    def __init__(self, log_dir: str):
        super().__init__()
        self.log_dir = log_dir
        try:
            os.makedirs(log_dir, exist_ok=True)
        except OSError as e:
            raise PersistenceError(f"Cannot create log directory {log_dir}: {e}") from e

    def log_path(self, session_id: str) -> str:
        return os.path.join(self.log_dir, f"{session_id}.jsonl")

    async def load_session_messages(self, session_id: str) -> List[ChatMessage]:
        messages = await super().load_session_messages(session_id)
        if messages:
            return messages

        path = self.log_path(session_id)
        if not os.path.exists(path):
            return []
        loaded = self._read_jsonl(path)
        record = self._records.get(session_id)
        if record is not None:
            record.messages = list(loaded)
        logger.info(f"Loaded {len(loaded)} messages from {path}")
        return loaded

    async def append_message(self, session_id: str, message: ChatMessage) -> None:
        await super().append_message(session_id, message)
        entry = {
            "id": message.id,
            "role": message.role.value,
            "content": message.text,
            "timestamp": message.timestamp.isoformat(),
        }
        if message.author_id:
            entry["author_id"] = message.author_id
        if message.tag:
            entry["tag"] = message.tag.value
        if message.metadata:
            entry["metadata"] = message.metadata

        try:
            with open(self.log_path(session_id), "a", encoding="utf-8") as f:
                f.write(json.dumps(entry, ensure_ascii=False, default=str) + "\n")
        except OSError as e:
            raise PersistenceError(f"Failed to append to {self.log_path(session_id)}: {e}") from e

    @staticmethod
    def _read_jsonl(path: str) -> List[ChatMessage]:
        messages: List[ChatMessage] = []
        try:
            with open(path, "r", encoding="utf-8") as f:
                for line_no, line in enumerate(f, 1):
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        data = json.loads(line)
                    except json.JSONDecodeError:
                        logger.warning(f"Skipping malformed line {line_no} in {path}")
                        continue
                    messages.append(
                        ChatMessage(
                            id=data.get("id") or f"{os.path.basename(path)}:{line_no}",
                            role=MessageRole(data.get("role", "user")),
                            text=data.get("content", ""),
                            timestamp=datetime.fromisoformat(data["timestamp"])
                            if data.get("timestamp")
                            else utcnow(),
                            author_id=data.get("author_id"),
                            tag=MessageTag(data["tag"]) if data.get("tag") else None,
                            metadata=data.get("metadata") or {},
                        )
                    )
        except OSError as e:
            raise PersistenceError(f"Failed to read {path}: {e}") from e
        return messages
