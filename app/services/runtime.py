"""Process-wide service instances, built lazily from settings.

Routers take these through ``Depends`` so tests can swap any of them with
``app.dependency_overrides``.
"""

import asyncio
import weakref
from typing import Optional

from app.config import settings
from app.database import SessionLocal
from app.schemas.message import InboundMessage
from app.services.ai_service import AIOrchestrator, build_providers
from app.services.anti_spam import AntiSpamGate
from app.services.command_service import CommandHandler
from app.services.event_service import EventFeed
from app.services.history_service import ConversationHistoryStore
from app.services.persona_service import Persona, load_persona
from app.services.pipeline import ResponsePipeline
from app.services.search_service import SearchKeyPool, SearchService
from app.services.state_service import ConversationStateStore
from app.services.stats_service import UsageStats
from app.services.telegram_service import TelegramService
from app.services.triage_service import TriageLog
from app.services.trigger_index import TriggerIndex

_stats: Optional[UsageStats] = None
_index: Optional[TriggerIndex] = None
_events: Optional[EventFeed] = None
_triage: Optional[TriageLog] = None
_gate: Optional[AntiSpamGate] = None
_telegram: Optional[TelegramService] = None
_orchestrator: Optional[AIOrchestrator] = None
_search: Optional[SearchService] = None
_pipeline: Optional[ResponsePipeline] = None
_commands: Optional[CommandHandler] = None


def get_persona() -> Persona:
    return load_persona(settings.persona_path)


def get_stats() -> UsageStats:
    global _stats
    if _stats is None:
        _stats = UsageStats(cost_per_token=settings.ai_cost_per_token)
    return _stats


def get_index() -> TriggerIndex:
    global _index
    if _index is None:
        _index = TriggerIndex(
            SessionLocal,
            score_threshold=settings.smart_match_score_threshold,
            state_priority_boost=settings.smart_match_state_priority_boost,
        )
    return _index


def get_events() -> EventFeed:
    global _events
    if _events is None:
        _events = EventFeed(SessionLocal, max_events=settings.events_buffer_size)
    return _events


def get_triage() -> TriageLog:
    global _triage
    if _triage is None:
        _triage = TriageLog(settings.triage_dir)
    return _triage


def get_gate() -> AntiSpamGate:
    global _gate
    if _gate is None:
        _gate = AntiSpamGate(
            general_cooldown_ms=settings.antispam_general_cooldown_ms,
            duplicate_cooldown_ms=settings.antispam_duplicate_cooldown_ms,
            old_message_threshold_ms=settings.antispam_old_message_threshold_ms,
            marker_ttl_seconds=settings.antispam_marker_ttl_seconds,
        )
    return _gate


def get_telegram() -> TelegramService:
    global _telegram
    if _telegram is None:
        _telegram = TelegramService(settings.telegram_bot_token)
    return _telegram


def get_orchestrator() -> AIOrchestrator:
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = AIOrchestrator(
            build_providers(settings.provider_table(), timeout_seconds=settings.ai_timeout_seconds),
            get_stats(),
            default_provider=settings.ai_default_provider,
            persona_summary=get_persona().summary,
            history_store=ConversationHistoryStore(SessionLocal, max_entries=settings.history_max_entries),
            max_retries=settings.ai_max_retries,
            initial_backoff_seconds=settings.ai_initial_backoff_seconds,
        )
    return _orchestrator


def get_search() -> SearchService:
    global _search
    if _search is None:
        _search = SearchService(
            settings.search_api_url,
            SearchKeyPool(settings.search_api_keys),
            get_stats(),
            timeout_seconds=settings.search_timeout_seconds,
        )
    return _search


async def _send_typing(message: InboundMessage) -> None:
    await get_telegram().send_chat_action(message.chat_id)


def get_pipeline() -> ResponsePipeline:
    global _pipeline
    if _pipeline is None:
        _pipeline = ResponsePipeline(
            index=get_index(),
            state_store=ConversationStateStore(SessionLocal),
            orchestrator=get_orchestrator(),
            search=get_search(),
            triage=get_triage(),
            events=get_events(),
            stats=get_stats(),
            persona=get_persona(),
            ai_enabled_in_groups=settings.ai_enabled_in_groups,
            group_whitelist=settings.ai_group_whitelist,
            typing_indicator=_send_typing if settings.telegram_bot_token else None,
        )
    return _pipeline


def get_commands() -> CommandHandler:
    global _commands
    if _commands is None:
        _commands = CommandHandler(get_persona(), get_events(), get_stats())
    return _commands


def get_session_factory():
    return SessionLocal


# Entries disappear once no task holds the lock.
_user_locks: "weakref.WeakValueDictionary[int, asyncio.Lock]" = weakref.WeakValueDictionary()


def user_lock(user_id: int) -> asyncio.Lock:
    """Lock that serializes the handling of one user's messages."""
    lock = _user_locks.get(user_id)
    if lock is None:
        lock = asyncio.Lock()
        _user_locks[user_id] = lock
    return lock
