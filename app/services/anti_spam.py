import time
from dataclasses import dataclass
from typing import Callable, Optional

from app.logging_config import get_logger
from app.schemas.message import InboundMessage

logger = get_logger("anti_spam")

REASON_ALLOWED = "allowed"
REASON_STALE = "stale"
REASON_REPLY_TO_OTHER = "reply_to_other"
REASON_COOLDOWN = "cooldown"
REASON_DUPLICATE = "duplicate"


@dataclass
class GateDecision:
    allowed: bool
    reason: str


@dataclass
class _LastSeen:
    time_ms: float
    text: str


def _now_ms() -> float:
    return time.time() * 1000


class AntiSpamGate:
    """Per-user rate limiter run before the response pipeline."""

    def __init__(
        self,
        general_cooldown_ms: int = 1000,
        duplicate_cooldown_ms: int = 10000,
        old_message_threshold_ms: int = 15000,
        marker_ttl_seconds: int = 600,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.general_cooldown_ms = general_cooldown_ms
        self.duplicate_cooldown_ms = duplicate_cooldown_ms
        self.old_message_threshold_ms = old_message_threshold_ms
        self.marker_ttl_ms = marker_ttl_seconds * 1000
        self._clock = clock or _now_ms
        self._last_seen: dict[int, _LastSeen] = {}
        self._last_sweep_ms = 0.0

    def __len__(self) -> int:
        return len(self._last_seen)

    def check(self, message: InboundMessage) -> GateDecision:
        now = self._clock()
        self._evict_expired(now)
        context = {"user_id": message.user_id, "chat_id": message.chat_id}

        if now - message.timestamp_ms > self.old_message_threshold_ms:
            logger.info("Ignored old message", extra={"context": context})
            return GateDecision(False, REASON_STALE)

        if message.is_reply_to_other:
            logger.info("Ignored reply to another user", extra={"context": context})
            return GateDecision(False, REASON_REPLY_TO_OTHER)

        last_seen = self._last_seen.get(message.user_id)
        if last_seen is not None:
            elapsed = now - last_seen.time_ms
            if elapsed < self.general_cooldown_ms:
                logger.info("General cooldown triggered", extra={"context": context})
                return GateDecision(False, REASON_COOLDOWN)
            if message.text == last_seen.text and elapsed < self.duplicate_cooldown_ms:
                logger.info("Duplicate message cooldown triggered", extra={"context": context})
                return GateDecision(False, REASON_DUPLICATE)

        self._last_seen[message.user_id] = _LastSeen(time_ms=now, text=message.text)
        return GateDecision(True, REASON_ALLOWED)

    def _evict_expired(self, now: float) -> None:
        if self.marker_ttl_ms <= 0 or now - self._last_sweep_ms < self.marker_ttl_ms:
            return
        self._last_sweep_ms = now
        expired = [user_id for user_id, seen in self._last_seen.items() if now - seen.time_ms > self.marker_ttl_ms]
        for user_id in expired:
            del self._last_seen[user_id]
