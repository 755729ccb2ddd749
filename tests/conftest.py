"""
Pytest Configuration and Fixtures.

Fake gateways (generation, search), a controllable clock and a ready-made
engine factory shared by all tests.
"""

import asyncio
import itertools
import sys
from pathlib import Path
from typing import Callable, List, Optional, Union

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from tutor_engine.config import TutorConfig
from tutor_engine.chatbot.tutor_engine import TutorDialogueEngine
from tutor_engine.memory.session_store import InMemorySessionStore
from tutor_engine.schema.core_schema import ChatMessage, GenerationRequest, MessageRole, SearchResult


Reply = Union[str, Exception, Callable[[GenerationRequest], str]]


class FakeGenerator:
    """Generation gateway returning scripted replies (last one repeats)."""

    def __init__(self, *replies: Reply):
        self.replies: List[Reply] = list(replies) or ["OK"]
        self.requests: List[GenerationRequest] = []
        self.gate: Optional[asyncio.Event] = None

    async def generate(self, request: GenerationRequest) -> str:
        self.requests.append(request)
        if self.gate is not None:
            await self.gate.wait()
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            return reply(request)
        return reply

    @property
    def calls(self) -> int:
        return len(self.requests)


class FakeSearch:
    """Search gateway with a fixed result (or exception)."""

    def __init__(self, result: Union[SearchResult, Exception], available: bool = True):
        self.result = result
        self.available = available
        self.queries: List[str] = []

    @property
    def is_available(self) -> bool:
        return self.available

    async def search(self, query, context_summary=None, user_id=None) -> SearchResult:
        self.queries.append(query)
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_id_factory() -> Callable[[str], str]:
    counter = itertools.count(1)
    return lambda prefix: f"{prefix}_{next(counter)}"


def make_message(message_id: str, text: str, role: MessageRole = MessageRole.USER, **kwargs) -> ChatMessage:
    return ChatMessage(id=message_id, role=role, text=text, **kwargs)


@pytest.fixture
def config():
    """Test configuration: no clear delay, no tokenizer download."""
    return TutorConfig(end_session_clear_delay=0, use_tokenizer=False)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return InMemorySessionStore()


@pytest.fixture
def make_engine(config, clock, store):
    """Factory: make_engine(generator, **overrides) -> TutorDialogueEngine."""

    def _make(generator=None, **kwargs):
        kwargs.setdefault("store", store)
        kwargs.setdefault("config", config)
        kwargs.setdefault("clock", clock)
        kwargs.setdefault("id_factory", make_id_factory())
        return TutorDialogueEngine(generator or FakeGenerator(), **kwargs)

    return _make
