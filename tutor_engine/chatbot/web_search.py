"""
Web Search Client

Search gateway backed by the Gemini generation gateway. Answers real-world /
current-event questions with a short, student-oriented answer.

- results cached per normalised query (lower-cased, trimmed) for 5 minutes,
  at most 20 entries (oldest evicted)
- per-user minimum interval between requests (1 s), at most 100 tracked users
- never raises: failures come back as a SearchResult with `error` set
"""

import asyncio
import time
from collections import OrderedDict
from typing import Awaitable, Callable, Dict, Optional, Protocol, Tuple

from loguru import logger

from ..config import TutorConfig
from ..schema.core_schema import GenerationRequest, ResponseType, SearchResult
from .llm_client import GenerationGateway


class SearchGateway(Protocol):
    @property
    def is_available(self) -> bool: ...

    async def search(
        self, query: str, context_summary: Optional[str] = None, user_id: Optional[str] = None
    ) -> SearchResult: ...


class WebSearchClient:
    """Cached, rate-limited search gateway."""

    def __init__(
        self,
        generator: Optional[GenerationGateway],
        config: Optional[TutorConfig] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.generator = generator
        self.config = config or TutorConfig()
        self._clock = clock
        self._sleep = sleep
        self._cache: "OrderedDict[str, Tuple[float, SearchResult]]" = OrderedDict()
        self._last_request: "OrderedDict[str, float]" = OrderedDict()

    @property
    def is_available(self) -> bool:
        return self.generator is not None and self.config.enable_web_search

    async def search(
        self, query: str, context_summary: Optional[str] = None, user_id: Optional[str] = None
    ) -> SearchResult:
        if not self.is_available:
            return SearchResult(
                answer="Web search is not available. Please check your API configuration.",
                query=query,
                error="Service not initialized",
            )

        try:
            if user_id is not None:
                await self._wait_for_rate_limit(user_id)

            key = self.cache_key(query)
            cached = self._cache.get(key)
            if cached is not None:
                stored_at, result = cached
                if self._clock() - stored_at < self.config.search_cache_ttl_seconds:
                    logger.debug(f"Returning cached search result for: {query}")
                    return result.model_copy(update={"query": query, "from_cache": True})
                del self._cache[key]

            logger.info(f"Performing web search for: {query}")
            started = self._clock()
            answer = await self.generator.generate(
                GenerationRequest(
                    prompt=self.build_search_prompt(query, context_summary),
                    response_type=ResponseType.MEDIUM,
                    temperature=0.3,
                )
            )
            result = SearchResult(answer=answer or "No results found.", query=query)

            self._cache[key] = (self._clock(), result)
            while len(self._cache) > self.config.search_cache_size:
                self._cache.popitem(last=False)

            logger.info(f"Web search completed in {(self._clock() - started) * 1000:.0f}ms")
            return result
        except Exception as e:
            logger.error(f"Web search failed: {e}")
            return SearchResult(
                answer="Sorry, I couldn't search for that information right now.",
                query=query,
                error=str(e),
            )

    @staticmethod
    def cache_key(query: str) -> str:
        return (query or "").lower().strip()

    @staticmethod
    def build_search_prompt(query: str, context_summary: Optional[str] = None) -> str:
        context_block = ""
        if context_summary:
            context_block = f"CONVERSATION CONTEXT:\n{context_summary}\n\n"
        return f"""You are helping a student find current, accurate information.

{context_block}STUDENT QUESTION: {query}

INSTRUCTIONS:
1. Give a clear, concise answer suitable for a student
2. Include specific facts (names, dates, numbers) when you have them
3. If the information may be outdated or uncertain, say so
4. Keep the response under 300 words unless more detail is needed

Please provide your answer:"""

    async def _wait_for_rate_limit(self, user_id: str) -> None:
        last = self._last_request.get(user_id)
        if last is not None:
            elapsed = self._clock() - last
            wait = self.config.search_min_interval_seconds - elapsed
            if wait > 0:
                logger.debug(f"Rate limiting {user_id}: waiting {wait * 1000:.0f}ms")
                await self._sleep(wait)

        self._last_request[user_id] = self._clock()
        self._last_request.move_to_end(user_id)
        while len(self._last_request) > self.config.search_max_tracked_users:
            self._last_request.popitem(last=False)

    def clear_cache(self) -> None:
        self._cache.clear()
        logger.info("Search cache cleared")

    def get_cache_stats(self) -> Dict[str, object]:
        return {
            "cache_size": len(self._cache),
            "rate_limiter_size": len(self._last_request),
            "is_available": self.is_available,
        }
