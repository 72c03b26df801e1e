from sqlalchemy import BigInteger, Column, DateTime, Text

from app.database import Base


class KnownChat(Base):
    __tablename__ = "known_chats"

    chat_id = Column(BigInteger, primary_key=True, autoincrement=False)
    title = Column(Text)
    first_seen_at = Column(DateTime(timezone=True))
