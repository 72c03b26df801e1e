from app.schemas.message import ChatType, InboundMessage, MessageResponse
from app.schemas.rule import IgnoreRequest, RuleCreate, RuleResponse

__all__ = ["ChatType", "InboundMessage", "MessageResponse", "RuleCreate", "RuleResponse", "IgnoreRequest"]
