import json
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Request

from app.config import settings
from app.logging_config import get_logger
from app.schemas.message import ChatType, InboundMessage
from app.schemas.telegram import TelegramUpdate, WebhookAck
from app.services.anti_spam import AntiSpamGate
from app.services.command_service import CommandHandler
from app.services.pipeline import PipelineResult, ResponsePipeline, Tier
from app.services.runtime import get_commands, get_gate, get_pipeline, get_telegram, user_lock
from app.services.telegram_service import TelegramService

logger = get_logger("telegram_webhook")

router = APIRouter()


async def parse_telegram_update(request: Request) -> Optional[dict]:
    """Decode the update body, replacing undecodable bytes instead of failing."""
    raw = await request.body()
    try:
        return json.loads(raw.decode("utf-8", errors="replace"))
    except ValueError as e:
        logger.error(f"Undecodable Telegram webhook payload: {e}")
        return None


def to_inbound_message(update: TelegramUpdate, bot_id: int) -> Optional[InboundMessage]:
    """Flatten a Telegram update into the router's message; None for anything without text."""
    message = update.effective_message
    if message is None or not message.text or message.from_user is None:
        return None
    if message.from_user.is_bot:
        return None

    replied_sender_id = message.replied_sender_id

    return InboundMessage(
        user_id=message.from_user.id,
        chat_id=message.chat.id,
        chat_type=ChatType.PRIVATE if message.chat.is_private else ChatType.GROUP,
        text=message.text,
        timestamp_ms=message.date * 1000,
        message_id=message.message_id,
        is_reply_to_self=replied_sender_id is not None and replied_sender_id == bot_id,
        is_reply_to_other=replied_sender_id is not None and replied_sender_id != bot_id,
        username=message.from_user.username,
        first_name=message.from_user.first_name,
        last_name=message.from_user.last_name,
        chat_title=message.chat.title,
    )


async def resolve_reply(
    message: InboundMessage,
    commands: CommandHandler,
    pipeline: ResponsePipeline,
) -> PipelineResult:
    """Bot commands first, then the response pipeline."""
    command_reply = await commands.handle(message)
    if command_reply is not None:
        return PipelineResult(
            handled=True,
            tier=Tier.COMMAND,
            reply=command_reply.text,
            reply_to_message_id=command_reply.reply_to_message_id,
            trigger=f"/{command_reply.command}",
        )
    return await pipeline.handle(message)


async def deliver_reply(telegram: TelegramService, chat_id: int, result: PipelineResult) -> bool:
    """Send the reply; on failure try the fallback text once. Never raises."""
    if not result.reply:
        return False

    response = await telegram.send_message(chat_id, result.reply, reply_to_message_id=result.reply_to_message_id)
    if response.get("ok"):
        return True

    logger.error(
        "Failed to send reply",
        extra={
            "context": {
                "chat_id": chat_id,
                "tier": result.tier.value,
                "error": response.get("description") or response.get("error"),
            }
        },
    )
    if result.fallback_reply:
        fallback = await telegram.send_message(
            chat_id, result.fallback_reply, reply_to_message_id=result.reply_to_message_id
        )
        if not fallback.get("ok"):
            logger.error(f"Failed to send fallback reply to chat {chat_id}")
    return False


async def process_message(
    message: InboundMessage,
    commands: CommandHandler,
    pipeline: ResponsePipeline,
    telegram: TelegramService,
) -> None:
    try:
        async with user_lock(message.user_id):
            result = await resolve_reply(message, commands, pipeline)
            if result.reply:
                await deliver_reply(telegram, message.chat_id, result)
    except Exception as e:
        logger.error(f"Message processing failed: {e}", exc_info=True)


@router.post("/telegram-webhook", response_model=WebhookAck)
async def handle_telegram_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    gate: AntiSpamGate = Depends(get_gate),
    commands: CommandHandler = Depends(get_commands),
    pipeline: ResponsePipeline = Depends(get_pipeline),
    telegram: TelegramService = Depends(get_telegram),
):
    """
    Handle Telegram webhook updates:
    - Text messages -> anti-spam gate -> commands / response pipeline
    - Everything else is acknowledged and dropped
    """
    try:
        body = await parse_telegram_update(request)
        if body is None:
            return WebhookAck(success=False, message="Invalid telegram payload")

        logger.debug(f"Telegram webhook received: {body}")

        update = TelegramUpdate(**body)
        message = to_inbound_message(update, settings.telegram_bot_id)
        if message is None:
            return WebhookAck(success=True, message="No actionable content")

        decision = gate.check(message)
        if not decision.allowed:
            return WebhookAck(success=True, message=f"Ignored: {decision.reason}")

        # Telegram retries slow webhooks, so answer first and reply from the background task.
        background_tasks.add_task(process_message, message, commands, pipeline, telegram)
        return WebhookAck(success=True, message="Accepted")

    except Exception as e:
        logger.error(f"Telegram webhook error: {e}", exc_info=True)
        return WebhookAck(success=False, message=str(e))
