from fastapi import APIRouter, Depends

from app.routers.telegram_webhook import resolve_reply
from app.schemas.message import InboundMessage, MessageResponse
from app.services.anti_spam import AntiSpamGate
from app.services.command_service import CommandHandler
from app.services.pipeline import ResponsePipeline, Tier
from app.services.runtime import get_commands, get_gate, get_pipeline, user_lock

router = APIRouter()


@router.post("/message", response_model=MessageResponse)
async def handle_message(
    request: InboundMessage,
    gate: AntiSpamGate = Depends(get_gate),
    commands: CommandHandler = Depends(get_commands),
    pipeline: ResponsePipeline = Depends(get_pipeline),
):
    """Resolve a reply for a transport-agnostic message and return it instead of sending it."""
    decision = gate.check(request)
    if not decision.allowed:
        return MessageResponse(success=True, handled=False, tier=Tier.IGNORED.value, message=decision.reason)

    async with user_lock(request.user_id):
        result = await resolve_reply(request, commands, pipeline)

    return MessageResponse(
        success=True,
        handled=result.handled,
        tier=result.tier.value,
        reply=result.reply,
        reply_to_message_id=result.reply_to_message_id,
    )
