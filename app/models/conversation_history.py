from sqlalchemy import JSON, BigInteger, Column, DateTime

from app.database import Base


class ConversationHistory(Base):
    __tablename__ = "conversation_history"

    user_id = Column(BigInteger, primary_key=True, autoincrement=False)
    turns = Column(JSON, nullable=False, default=list)  # [{"role": ..., "content": ...}]
    updated_at = Column(DateTime(timezone=True))
