from collections import deque
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.logging_config import get_logger
from app.models import KnownChat
from app.schemas.message import InboundMessage

logger = get_logger("event_service")

EVENT_NEW_USER = "New User"
EVENT_CONTEXTUAL_RESPONSE = "Contextual Response"
EVENT_TRIGGERED_RESPONSE = "Triggered Response"
EVENT_UNANSWERED_DM = "Unanswered DM"
EVENT_UNANSWERED_REPLY = "Unanswered Reply"
EVENT_AI_RESPONSE = "AI Response"
EVENT_AI_SEARCH_RESPONSE = "AI Search Response"
EVENT_ADMIN_ACTION = "ADMIN_ACTION"


def create_log_entry(message: InboundMessage, event_type: str, trigger: str = "") -> dict:
    """Standard telemetry event for a handled message."""
    chat_info = "Direct Message" if message.is_private else f"Group: {message.chat_title or message.chat_id}"
    return {
        "eventType": event_type,
        "user": message.display_name,
        "userId": message.user_id,
        "chatInfo": chat_info,
        "chatId": message.chat_id,
        "messageId": message.message_id,
        "trigger": trigger or message.text,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


def create_admin_entry(action: str) -> dict:
    return {
        "eventType": EVENT_ADMIN_ACTION,
        "user": "admin",
        "userId": None,
        "chatInfo": "Admin API",
        "chatId": None,
        "messageId": None,
        "trigger": action,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


class EventFeed:
    """Recent telemetry events for the dashboard, plus the registry of group chats seen."""

    def __init__(self, session_factory: Optional[async_sessionmaker[AsyncSession]] = None, max_events: int = 200):
        self._session_factory = session_factory
        self._events: deque[dict] = deque(maxlen=max_events)

    def publish(self, entry: dict) -> dict:
        self._events.append(entry)
        logger.info(entry.get("eventType", "event"), extra={"context": entry})
        return entry

    async def emit(self, message: InboundMessage, event_type: str, trigger: str = "") -> dict:
        if not message.is_private:
            await self.remember_chat(message.chat_id, message.chat_title)
        return self.publish(create_log_entry(message, event_type, trigger))

    def recent(self, limit: Optional[int] = None) -> list[dict]:
        events = list(self._events)
        return events[-limit:] if limit else events

    async def remember_chat(self, chat_id: int, title: Optional[str] = None) -> bool:
        """Store a group chat id the first time it is seen. Never raises."""
        if self._session_factory is None or chat_id > 0:
            return False
        try:
            async with self._session_factory() as db:
                if await db.get(KnownChat, chat_id) is not None:
                    return False
                db.add(KnownChat(chat_id=chat_id, title=title, first_seen_at=datetime.now(timezone.utc)))
                await db.commit()
            logger.info(f"New group chat saved: {chat_id}")
            return True
        except Exception as exc:
            logger.error(f"Failed to save known chat {chat_id}: {exc}")
            return False

    async def known_chats(self) -> list[int]:
        if self._session_factory is None:
            return []
        try:
            async with self._session_factory() as db:
                result = await db.execute(select(KnownChat.chat_id).order_by(KnownChat.first_seen_at))
                return list(result.scalars().all())
        except Exception as exc:
            logger.error(f"Failed to read known chats: {exc}")
            return []
