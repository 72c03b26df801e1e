from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models import ConversationHistory


def trim_history(turns: list[dict], max_entries: int) -> list[dict]:
    """Keep the newest ``max_entries`` entries."""
    if max_entries <= 0:
        return []
    return turns[-max_entries:]


class ConversationHistoryStore:
    """Short private-chat history, persisted so a restart keeps the last turns."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], max_entries: int = 4):
        self._session_factory = session_factory
        self.max_entries = max_entries

    async def load(self, user_id: int) -> list[dict]:
        async with self._session_factory() as db:
            row = await db.get(ConversationHistory, user_id)
            if row is None or not row.turns:
                return []
            turns = [
                {"role": turn["role"], "content": turn["content"]}
                for turn in row.turns
                if isinstance(turn, dict) and turn.get("role") and turn.get("content")
            ]
            return trim_history(turns, self.max_entries)

    async def append_turn(self, user_id: int, user_text: str, reply: str) -> list[dict]:
        now = datetime.now(timezone.utc)
        async with self._session_factory() as db:
            row = await db.get(ConversationHistory, user_id)
            turns = list(row.turns or []) if row is not None else []
            turns.append({"role": "user", "content": user_text})
            turns.append({"role": "assistant", "content": reply})
            turns = trim_history(turns, self.max_entries)
            if row is None:
                db.add(ConversationHistory(user_id=user_id, turns=turns, updated_at=now))
            else:
                # reassign so the JSON column is flagged dirty
                row.turns = turns
                row.updated_at = now
            await db.commit()
        return turns

