from enum import Enum
from typing import Optional

from pydantic import BaseModel


class ChatType(str, Enum):
    PRIVATE = "private"
    GROUP = "group"


class InboundMessage(BaseModel):
    """A text message as seen by the router, independent of the transport."""

    user_id: int
    chat_id: int
    chat_type: ChatType = ChatType.PRIVATE
    text: str
    timestamp_ms: int
    message_id: Optional[int] = None
    is_reply_to_self: bool = False
    is_reply_to_other: bool = False
    username: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    chat_title: Optional[str] = None

    @property
    def is_private(self) -> bool:
        return self.chat_type == ChatType.PRIVATE

    @property
    def display_name(self) -> str:
        if self.username:
            return f"@{self.username}"
        return f"{self.first_name or ''} {self.last_name or ''}".strip() or str(self.user_id)


class MessageResponse(BaseModel):
    success: bool
    handled: bool
    tier: str
    reply: Optional[str] = None
    reply_to_message_id: Optional[int] = None
    message: Optional[str] = None
