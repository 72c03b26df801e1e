import asyncio
import threading
from datetime import date, datetime, timedelta
from typing import Awaitable, Callable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.logging_config import get_logger
from app.models import DailyStats

logger = get_logger("stats_service")

# DeepSeek on OpenRouter: ~$0.20 per 1M tokens, input and output averaged.
COST_PER_TOKEN = 0.0000002

COUNTER_FIELDS = (
    "messages_processed",
    "ai_responses",
    "search_calls",
    "tokens_used",
    "estimated_cost",
    "ai_failures",
    "search_failures",
)


class UsageStats:
    """Process-wide usage counters. Safe to update from any task or thread."""

    def __init__(self, cost_per_token: float = COST_PER_TOKEN):
        self.cost_per_token = cost_per_token
        self._lock = threading.Lock()
        self._counters: dict[str, float] = {name: 0 for name in COUNTER_FIELDS}

    def increment(self, name: str, amount: float = 1) -> None:
        if name not in self._counters:
            raise KeyError(name)
        with self._lock:
            self._counters[name] += amount

    def incr_messages_processed(self) -> None:
        self.increment("messages_processed")

    def incr_ai_responses(self) -> None:
        self.increment("ai_responses")

    def incr_search_calls(self) -> None:
        self.increment("search_calls")

    def incr_ai_failures(self) -> None:
        self.increment("ai_failures")

    def incr_search_failures(self) -> None:
        self.increment("search_failures")

    def add_tokens(self, token_count) -> None:
        """Accumulate reported token usage and its estimated cost."""
        if not isinstance(token_count, int) or isinstance(token_count, bool):
            return
        with self._lock:
            self._counters["tokens_used"] += token_count
            self._counters["estimated_cost"] += token_count * self.cost_per_token

    def snapshot(self) -> dict:
        with self._lock:
            return dict(self._counters)

    def reset(self) -> None:
        logger.info("Resetting live counters")
        with self._lock:
            for name in self._counters:
                self._counters[name] = 0

    def drain(self) -> dict:
        """Return the current counters and reset them in one step."""
        with self._lock:
            values = dict(self._counters)
            for name in self._counters:
                self._counters[name] = 0
        return values

    def load(self, row: Optional[DailyStats]) -> None:
        if row is None:
            return
        with self._lock:
            for name in COUNTER_FIELDS:
                self._counters[name] = getattr(row, name) or 0
        logger.info("Loaded stats from database", extra={"context": self.snapshot()})


async def save_daily_stats(
    session_factory: async_sessionmaker[AsyncSession],
    values: dict,
    day: Optional[date] = None,
) -> bool:
    """Upsert the counters into the row for ``day``. Returns False on storage failure."""
    day_key = (day or date.today()).isoformat()
    logger.info(f"Saving stats for date: {day_key}")
    try:
        async with session_factory() as db:
            result = await db.execute(select(DailyStats).where(DailyStats.date == day_key))
            row = result.scalars().first()
            if row is None:
                row = DailyStats(date=day_key)
                db.add(row)
            for name in COUNTER_FIELDS:
                setattr(row, name, values.get(name, 0))
            await db.commit()
        return True
    except Exception as exc:
        logger.error(f"Failed to save daily stats: {exc}", exc_info=True)
        return False


async def load_today_stats(
    session_factory: async_sessionmaker[AsyncSession],
    stats: UsageStats,
    day: Optional[date] = None,
) -> None:
    day_key = (day or date.today()).isoformat()
    try:
        async with session_factory() as db:
            result = await db.execute(select(DailyStats).where(DailyStats.date == day_key))
            row = result.scalars().first()
    except Exception as exc:
        logger.error(f"Failed to load initial stats: {exc}", exc_info=True)
        return
    if row is None:
        logger.info("No stats found for today. Starting fresh.")
        return
    stats.load(row)


def seconds_until_midnight(now: datetime) -> float:
    next_midnight = datetime.combine(now.date() + timedelta(days=1), datetime.min.time(), tzinfo=now.tzinfo)
    return (next_midnight - now).total_seconds()


async def run_daily_flush_loop(
    session_factory: async_sessionmaker[AsyncSession],
    stats: UsageStats,
    clock: Callable[[], datetime] = datetime.now,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> None:
    """Save the finished day's counters once the clock passes midnight, then start from zero.

    A wake-up before the date has changed (DST fall-back, clock adjustment)
    only reschedules; the counters always belong to ``day`` until it is over.
    """
    day = clock().date()
    while True:
        try:
            now = clock()
            if now.date() != day:
                await save_daily_stats(session_factory, stats.drain(), day=day)
                day = now.date()
            delay = seconds_until_midnight(now)
            logger.info(f"Next stats save scheduled in {round(delay / 60)} minutes")
            await sleep(delay)
        except asyncio.CancelledError:
            break
        except Exception as exc:
            logger.error(
                "Stats flush loop failed",
                extra={"context": {"error": str(exc)}},
            )
            await sleep(60)
