"""Response resolution for one inbound message.

Tiers run in a fixed order and the first one that produces a reply ends the
message:

    context  -> the user owes an answer to a previous question
    catalog  -> curated triggers (exact lookup, then smart scoring)
    ai       -> generative fallback, optionally grounded by a web search

Group chatter that matches nothing and does not reply to the bot is left
unanswered.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable, Optional

from app.logging_config import LoggerAdapter, bind_message, get_logger
from app.schemas.message import InboundMessage
from app.services.ai_service import AIOrchestrator, GenerateOptions
from app.services.event_service import (
    EVENT_AI_RESPONSE,
    EVENT_AI_SEARCH_RESPONSE,
    EVENT_CONTEXTUAL_RESPONSE,
    EVENT_TRIGGERED_RESPONSE,
    EVENT_UNANSWERED_DM,
    EVENT_UNANSWERED_REPLY,
    EventFeed,
)
from app.services.persona_service import Persona
from app.services.search_service import SearchService, needs_web_search
from app.services.state_machine import UserState
from app.services.state_service import ConversationStateStore
from app.services.stats_service import UsageStats
from app.services.triage_service import TriageLog
from app.services.trigger_index import MATCH_SMART, MatchResult, TriggerIndex

logger = get_logger("pipeline")

GENERIC_ERROR_RESPONSE = "متاسفانه مشکلی پیش آمده، لطفا دوباره تلاش کنید."
SEND_FAILURE_RESPONSE = "متاسفانه مشکلی در ارسال پاسخ پیش آمد."
CONTEXT_RESTART_RESPONSE = (
    "بنظر میرسه که ممکنه پیامت رو نفهمیده باشم، بیا از اول شروع کنیم"
    " ( پیامت برای قرارگیری در آپدیت بعدی برای سازنده ارسال شد )."
)


class Tier(str, Enum):
    COMMAND = "command"
    CONTEXT = "context"
    CATALOG = "catalog"
    AI = "ai"
    SEARCH_AI = "search_ai"
    IGNORED = "ignored"
    ERROR = "error"


@dataclass
class PipelineResult:
    handled: bool
    tier: Tier
    reply: Optional[str] = None
    reply_to_message_id: Optional[int] = None
    trigger: Optional[str] = None
    # sent instead when delivering ``reply`` fails
    fallback_reply: Optional[str] = None


class ResponsePipeline:
    def __init__(
        self,
        *,
        index: TriggerIndex,
        state_store: ConversationStateStore,
        orchestrator: AIOrchestrator,
        search: SearchService,
        triage: TriageLog,
        events: EventFeed,
        stats: UsageStats,
        persona: Persona,
        ai_enabled_in_groups: bool = True,
        group_whitelist: Iterable[int] = (),
        typing_indicator: Optional[Callable[[InboundMessage], Awaitable[Any]]] = None,
    ):
        self.index = index
        self.state_store = state_store
        self.orchestrator = orchestrator
        self.search = search
        self.triage = triage
        self.events = events
        self.stats = stats
        self.persona = persona
        self.ai_enabled_in_groups = ai_enabled_in_groups
        self.group_whitelist = set(group_whitelist)
        self.typing_indicator = typing_indicator

    async def handle(self, message: InboundMessage) -> PipelineResult:
        self.stats.incr_messages_processed()
        log = bind_message(logger, message.user_id, message.chat_id)

        try:
            state, context = await self.state_store.current_state(message.user_id)
            if state is UserState.AWAITING:
                return await self._resolve_context(message, context, log)

            match = self.index.match(message.text)
            if match is not None:
                return await self._reply_from_catalog(message, match, log)

            if not self.is_ai_eligible(message):
                return PipelineResult(handled=False, tier=Tier.IGNORED)

            return await self._answer_with_ai(message, log)
        except Exception:
            log.error("Unexpected error in response pipeline", exc_info=True, context={"text": message.text})
            return PipelineResult(handled=True, tier=Tier.ERROR, reply=GENERIC_ERROR_RESPONSE)

    async def _resolve_context(self, message: InboundMessage, context: str, log: LoggerAdapter) -> PipelineResult:
        log.info(f"User is in state: {context}. Processing answer.")
        try:
            match = await self.index.match_context(context, message.text)
        finally:
            await self.state_store.consume(message.user_id)

        if match is None:
            log.info("No contextual match and no wildcard, restarting conversation", context={"state": context})
            await self._record_for_triage(message, log)
            return PipelineResult(
                handled=True,
                tier=Tier.CONTEXT,
                reply=CONTEXT_RESTART_RESPONSE,
                reply_to_message_id=message.message_id,
            )

        trigger = ", ".join(match.rule.triggers)
        await self.events.emit(message, EVENT_CONTEXTUAL_RESPONSE, trigger)
        return PipelineResult(
            handled=True,
            tier=Tier.CONTEXT,
            reply=match.rule.pick_response(),
            reply_to_message_id=message.message_id,
            trigger=trigger,
        )

    async def _reply_from_catalog(self, message: InboundMessage, match: MatchResult, log: LoggerAdapter) -> PipelineResult:
        if match.kind == MATCH_SMART and not match.is_perfect:
            await self.triage.record_false_positive(
                {
                    "userInput": message.text,
                    "matchedTrigger": match.trigger,
                    "score": match.score,
                    "extraWords": match.extra_words,
                    "user": message.display_name,
                    "timestamp": message.timestamp_ms,
                }
            )

        if match.rule.sets_context:
            await self.state_store.open(message.user_id, match.rule.sets_context, current=UserState.IDLE)

        await self.events.emit(message, EVENT_TRIGGERED_RESPONSE, match.trigger)
        log.info("Catalog match", context={"rule_id": match.rule.id, "kind": match.kind, "score": match.score})
        return PipelineResult(
            handled=True,
            tier=Tier.CATALOG,
            reply=match.rule.pick_response(),
            reply_to_message_id=message.message_id,
            trigger=match.trigger,
        )

    def is_ai_eligible(self, message: InboundMessage) -> bool:
        """Private chats always; groups only for direct replies to the bot in an enabled chat."""
        if message.is_private:
            return True
        if not message.is_reply_to_self:
            return False
        if self.ai_enabled_in_groups or message.chat_id in self.group_whitelist:
            return True
        logger.info(f"AI response blocked in group {message.chat_id} because it's not whitelisted")
        return False

    async def _record_for_triage(self, message: InboundMessage, log: LoggerAdapter) -> None:
        try:
            await self.triage.record_unanswered(message)
        except OSError as exc:
            log.error(f"Failed to log unanswered question: {exc}")

    async def _show_typing(self, message: InboundMessage, log: LoggerAdapter) -> None:
        if self.typing_indicator is None:
            return
        try:
            await self.typing_indicator(message)
        except Exception as exc:
            log.warning(f"Failed to send typing action: {exc}")

    async def _answer_with_ai(self, message: InboundMessage, log: LoggerAdapter) -> PipelineResult:
        await self._record_for_triage(message, log)
        event_type = EVENT_UNANSWERED_DM if message.is_private else EVENT_UNANSWERED_REPLY
        await self.events.emit(message, event_type, message.text)

        try:
            await self._show_typing(message, log)

            if needs_web_search(message.text):
                self.stats.incr_search_calls()
                log.info("Message triggered a web search")
                search_result = await self.search.search(message.text)
                if search_result.ok:
                    prompt = self.persona.grounded_prompt(search_result.value, message.text)
                    # grounded answers stay out of the conversation history
                    reply = await self.orchestrator.generate(message.text, prompt, GenerateOptions(history=[]))
                    self.stats.incr_ai_responses()
                    await self.events.emit(message, f'{EVENT_AI_SEARCH_RESPONSE}: "{reply[:50]}..."', message.text)
                    return PipelineResult(
                        handled=True,
                        tier=Tier.SEARCH_AI,
                        reply=reply,
                        reply_to_message_id=message.message_id,
                        fallback_reply=SEND_FAILURE_RESPONSE,
                    )
                log.info(
                    "No search context found, proceeding with standard AI call",
                    context={"error_code": search_result.error_code},
                )

            if message.is_private:
                reply = await self.orchestrator.reply_with_history(message.user_id, message.text, self.persona.full)
            else:
                reply = await self.orchestrator.generate(message.text, self.persona.full, GenerateOptions(history=[]))
            self.stats.incr_ai_responses()
            await self.events.emit(message, f'{EVENT_AI_RESPONSE}: "{reply[:50]}..."', message.text)
            return PipelineResult(
                handled=True,
                tier=Tier.AI,
                reply=reply,
                reply_to_message_id=message.message_id,
                fallback_reply=SEND_FAILURE_RESPONSE,
            )
        except Exception:
            log.warning("Failed to produce AI response", exc_info=True)
            return PipelineResult(handled=True, tier=Tier.AI, reply=SEND_FAILURE_RESPONSE)
