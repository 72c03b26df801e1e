from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class TelegramUser(BaseModel):
    id: int
    is_bot: bool = False
    first_name: str
    last_name: Optional[str] = None
    username: Optional[str] = None


class TelegramChat(BaseModel):
    id: int
    type: str  # private, group, supergroup, channel
    title: Optional[str] = None

    @property
    def is_private(self) -> bool:
        return self.type == "private"


class TelegramMessage(BaseModel):
    """Only the fields the router reads; unknown Telegram fields are ignored."""

    model_config = ConfigDict(populate_by_name=True)

    message_id: int
    date: int  # unix seconds
    chat: TelegramChat
    from_user: Optional[TelegramUser] = Field(default=None, alias="from")
    text: Optional[str] = None
    reply_to_message: Optional["TelegramMessage"] = None

    @property
    def replied_sender_id(self) -> Optional[int]:
        if self.reply_to_message is None or self.reply_to_message.from_user is None:
            return None
        return self.reply_to_message.from_user.id


TelegramMessage.model_rebuild()


class TelegramUpdate(BaseModel):
    update_id: int
    message: Optional[TelegramMessage] = None
    edited_message: Optional[TelegramMessage] = None

    @property
    def effective_message(self) -> Optional[TelegramMessage]:
        return self.message or self.edited_message


class WebhookAck(BaseModel):
    success: bool
    message: Optional[str] = None
