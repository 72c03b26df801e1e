from sqlalchemy import BigInteger, Column, DateTime, Text

from app.database import Base


class ConversationState(Base):
    __tablename__ = "conversation_state"

    user_id = Column(BigInteger, primary_key=True, autoincrement=False)
    state = Column(Text, nullable=False)  # context the bot is waiting an answer for
    updated_at = Column(DateTime(timezone=True))
