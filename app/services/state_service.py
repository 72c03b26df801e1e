from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.logging_config import get_logger
from app.models import ConversationState
from app.services.state_machine import UserState, consume_context, open_context, state_for

logger = get_logger("state_service")


class ConversationStateStore:
    """Durable per-user "awaiting answer to X" slot."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get(self, user_id: int) -> Optional[str]:
        async with self._session_factory() as db:
            row = await db.get(ConversationState, user_id)
            return row.state if row else None

    async def set(self, user_id: int, context: str) -> None:
        """Upsert the user's context, replacing any existing one."""
        now = datetime.now(timezone.utc)
        async with self._session_factory() as db:
            row = await db.get(ConversationState, user_id)
            if row is None:
                db.add(ConversationState(user_id=user_id, state=context, updated_at=now))
            else:
                row.state = context
                row.updated_at = now
            await db.commit()

    async def clear(self, user_id: int) -> None:
        async with self._session_factory() as db:
            await db.execute(delete(ConversationState).where(ConversationState.user_id == user_id))
            await db.commit()

    async def current_state(self, user_id: int) -> tuple[UserState, Optional[str]]:
        context = await self.get(user_id)
        return state_for(context), context

    async def open(self, user_id: int, context: str, current: UserState = UserState.IDLE) -> UserState:
        """idle -> awaiting:<context>."""
        new_state = open_context(current)
        await self.set(user_id, context)
        logger.info(f"Set state for user {user_id} to: {context}")
        return new_state

    async def consume(self, user_id: int, current: UserState = UserState.AWAITING) -> UserState:
        """awaiting -> idle. The slot is single-shot."""
        new_state = consume_context(current)
        await self.clear(user_id)
        return new_state
