from sqlalchemy import JSON, Column, DateTime, Integer, Text

from app.database import Base


class ResponseRule(Base):
    __tablename__ = "responses"

    id = Column(Integer, primary_key=True, autoincrement=True)
    trigger = Column(JSON, nullable=False)  # list of trigger strings
    response = Column(JSON, nullable=False)  # list of reply strings
    type = Column(Text, nullable=False, default="text")
    match_type = Column(Text, nullable=False, default="smart")  # exact, smart
    exclude_words = Column(JSON, nullable=False, default=list)
    context_required = Column(Text)
    sets_state = Column(Text)
    created_at = Column(DateTime(timezone=True))
