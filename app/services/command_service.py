import random
from dataclasses import dataclass
from typing import Optional

from app.schemas.message import InboundMessage
from app.services.event_service import EVENT_NEW_USER, EVENT_TRIGGERED_RESPONSE, EventFeed
from app.services.persona_service import Persona
from app.services.stats_service import UsageStats

START_RESPONSE = "Hello! I am your friendly bot. I am ready to go!"
EMPTY_MEMORY_RESPONSE = "ذهنم در حال حاضر خالیه، چیزی برای به یاد آوردن ندارم."


@dataclass
class CommandReply:
    command: str
    text: str
    reply_to_message_id: Optional[int] = None


def parse_command(text: str) -> Optional[str]:
    """'/memory@SomeBot extra' -> 'memory'."""
    if not text or not text.startswith("/"):
        return None
    head = text[1:].split(maxsplit=1)[0] if len(text) > 1 else ""
    return head.split("@", 1)[0].lower() or None


class CommandHandler:
    def __init__(self, persona: Persona, events: EventFeed, stats: UsageStats):
        self.persona = persona
        self.events = events
        self.stats = stats

    async def handle(self, message: InboundMessage) -> Optional[CommandReply]:
        """Answer bot commands; None means the message is not a known command."""
        command = parse_command(message.text)
        if command == "start":
            self.stats.incr_messages_processed()
            await self.events.emit(message, EVENT_NEW_USER, "/start")
            return CommandReply(command, START_RESPONSE)
        if command == "memory":
            self.stats.incr_messages_processed()
            text = random.choice(self.persona.memories) if self.persona.memories else EMPTY_MEMORY_RESPONSE
            await self.events.emit(message, EVENT_TRIGGERED_RESPONSE, "/memory")
            return CommandReply(command, text, reply_to_message_id=message.message_id)
        return None
