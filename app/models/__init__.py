from app.models.conversation_history import ConversationHistory
from app.models.conversation_state import ConversationState
from app.models.daily_stats import DailyStats
from app.models.known_chat import KnownChat
from app.models.response_rule import ResponseRule

__all__ = [
    "ResponseRule",
    "ConversationState",
    "ConversationHistory",
    "DailyStats",
    "KnownChat",
]
