import asyncio
from typing import Iterable, Optional

import httpx

from app.logging_config import get_logger
from app.services.normalizer import normalize_text
from app.services.result import EMPTY_ANSWER, KEYS_EXHAUSTED, NO_KEYS, SEARCH_ERROR, Result
from app.services.stats_service import UsageStats

logger = get_logger("search_service")

# Interrogative phrases that suggest the user is asking for a fact.
SEARCH_TRIGGERS = (
    "کیست",
    "کیه",
    "چیست",
    "چیه",
    "کجاست",
    "کجا بود",
    "چه زمانی",
    "تاریخ",
    "چقدر",
    "قیمت",
    "تعداد",
    "آخرین خبر",
    "چه خبر از",
)
_NORMALIZED_TRIGGERS = tuple(normalize_text(trigger) for trigger in SEARCH_TRIGGERS)

ROTATE_STATUS_CODES = {402, 429}


def needs_web_search(message_text: str) -> bool:
    """Decide if a message likely needs a web search."""
    normalized = normalize_text(message_text)
    return any(trigger in normalized for trigger in _NORMALIZED_TRIGGERS)


class SearchKeyPool:
    """Ordered API keys with one shared cursor.

    The cursor only moves forward. It is not rewound after a successful call
    or after the pool runs dry; a fresh process starts again at the first key.
    """

    def __init__(self, keys: Iterable[str]):
        self._keys = tuple(key for key in keys if key)
        self._cursor = 0
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._keys)

    @property
    def cursor(self) -> int:
        return self._cursor

    async def current(self) -> tuple[int, Optional[str]]:
        async with self._lock:
            if self._cursor >= len(self._keys):
                return self._cursor, None
            return self._cursor, self._keys[self._cursor]

    async def advance_from(self, index: int) -> int:
        """Move past ``index`` unless another task already did."""
        async with self._lock:
            if self._cursor == index:
                self._cursor += 1
            return self._cursor


class SearchService:
    def __init__(
        self,
        api_url: str,
        key_pool: SearchKeyPool,
        stats: UsageStats,
        timeout_seconds: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_url = api_url
        self.key_pool = key_pool
        self.stats = stats
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    async def search(self, query: str) -> Result[str]:
        """Return a short synthesized answer for ``query``, rotating keys on quota errors."""
        if len(self.key_pool) == 0:
            logger.error("No search API keys configured")
            return Result.failure("No search API keys configured", NO_KEYS)

        while True:
            index, api_key = await self.key_pool.current()
            if api_key is None:
                logger.error("All search API keys have been tried and failed")
                self.stats.incr_search_failures()
                return Result.failure("All search API keys exhausted", KEYS_EXHAUSTED)

            logger.info(
                "Performing search",
                extra={"context": {"query": query, "key_index": index}},
            )
            try:
                async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
                    response = await client.post(
                        self.api_url,
                        json={
                            "api_key": api_key,
                            "query": query,
                            "search_depth": "basic",
                            "include_answer": True,
                            "max_results": 3,
                        },
                    )
            except httpx.HTTPError as exc:
                logger.error(f"Search request failed: {exc}")
                self.stats.incr_search_failures()
                return Result.failure(str(exc), SEARCH_ERROR)

            if response.status_code in ROTATE_STATUS_CODES:
                logger.warning(f"Search key at index {index} is exhausted or unpaid. Rotating to the next key.")
                await self.key_pool.advance_from(index)
                continue

            if response.status_code != 200:
                logger.error(f"Search API error: {response.status_code} - {response.text[:200]}")
                self.stats.incr_search_failures()
                return Result.failure(f"Search API error: {response.status_code}", SEARCH_ERROR)

            try:
                data = response.json()
            except ValueError as exc:
                logger.error(f"Search response decode failed: {exc}")
                self.stats.incr_search_failures()
                return Result.failure(str(exc), SEARCH_ERROR)

            answer = data.get("answer") if isinstance(data, dict) else None
            if not isinstance(answer, str) or not answer.strip():
                return Result.failure("Search returned no answer", EMPTY_ANSWER)
            return Result.success(answer.strip())
