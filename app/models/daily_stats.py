from sqlalchemy import Column, Float, Integer, Text

from app.database import Base


class DailyStats(Base):
    __tablename__ = "daily_stats"

    id = Column(Integer, primary_key=True, autoincrement=True)
    date = Column(Text, nullable=False, unique=True)  # YYYY-MM-DD
    messages_processed = Column(Integer, default=0)
    ai_responses = Column(Integer, default=0)
    search_calls = Column(Integer, default=0)
    tokens_used = Column(Integer, default=0)
    estimated_cost = Column(Float, default=0.0)
    ai_failures = Column(Integer, default=0)
    search_failures = Column(Integer, default=0)
