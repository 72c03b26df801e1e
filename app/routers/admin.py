"""Admin API endpoints for managing the response catalog and reviewing traffic."""

from datetime import date, datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import get_db
from app.logging_config import get_logger
from app.models import ResponseRule
from app.schemas.rule import IgnoreRequest, RuleCreate, RuleResponse
from app.services.event_service import EventFeed, create_admin_entry
from app.services.runtime import get_events, get_index, get_session_factory, get_stats, get_triage
from app.services.stats_service import UsageStats, save_daily_stats
from app.services.triage_service import TriageLog
from app.services.trigger_index import TriggerIndex

logger = get_logger("admin")


def _require_admin_token(x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token")) -> None:
    """Only enforced when ADMIN_TOKEN is configured."""
    expected = settings.admin_token
    if not expected:
        return
    if not x_admin_token or x_admin_token != expected:
        raise HTTPException(status_code=401, detail="Invalid admin token")


router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(_require_admin_token)])


# === SCHEMAS ===


class ReloadResponse(BaseModel):
    exact_triggers: int
    smart_rules: int


class StatsResponse(BaseModel):
    date: str
    messages_processed: int
    ai_responses: int
    search_calls: int
    tokens_used: int
    estimated_cost: float
    ai_failures: int
    search_failures: int


class FlushResponse(BaseModel):
    date: str
    saved: bool


# === RESPONSE CATALOG ===


@router.get("/responses", response_model=list[RuleResponse])
async def list_responses(db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(ResponseRule).order_by(ResponseRule.id))
    return result.scalars().all()


@router.post("/responses", response_model=RuleResponse, status_code=201)
async def create_response(
    data: RuleCreate,
    db: AsyncSession = Depends(get_db),
    index: TriggerIndex = Depends(get_index),
    events: EventFeed = Depends(get_events),
):
    """Store a rule and rebuild the catalog so it answers immediately."""
    rule = ResponseRule(
        trigger=data.trigger,
        response=data.response,
        type=data.type,
        match_type=data.match_type,
        exclude_words=data.exclude_words,
        context_required=data.context_required,
        sets_state=data.sets_state,
        created_at=datetime.now(timezone.utc),
    )
    db.add(rule)
    await db.commit()
    await db.refresh(rule)

    await index.reload()
    events.publish(create_admin_entry(f"Created response {rule.id}: {', '.join(data.trigger)}"))
    logger.info(
        "Response created",
        extra={"context": {"rule_id": rule.id, "match_type": rule.match_type, "context_required": rule.context_required}},
    )
    return rule


@router.post("/reload", response_model=ReloadResponse)
async def reload_responses(
    index: TriggerIndex = Depends(get_index),
    events: EventFeed = Depends(get_events),
):
    snapshot = await index.reload()
    events.publish(create_admin_entry("Reloaded responses"))
    return ReloadResponse(exact_triggers=len(snapshot.exact), smart_rules=len(snapshot.smart))


# === STATS ===


@router.get("/stats", response_model=StatsResponse)
async def get_stats_snapshot(stats: UsageStats = Depends(get_stats)):
    values = stats.snapshot()
    return StatsResponse(
        date=date.today().isoformat(),
        messages_processed=int(values["messages_processed"]),
        ai_responses=int(values["ai_responses"]),
        search_calls=int(values["search_calls"]),
        tokens_used=int(values["tokens_used"]),
        estimated_cost=float(values["estimated_cost"]),
        ai_failures=int(values["ai_failures"]),
        search_failures=int(values["search_failures"]),
    )


@router.post("/stats/flush", response_model=FlushResponse)
async def flush_stats(
    stats: UsageStats = Depends(get_stats),
    session_factory=Depends(get_session_factory),
):
    """Write today's counters now without resetting them."""
    today = date.today()
    saved = await save_daily_stats(session_factory, stats.snapshot(), day=today)
    if not saved:
        raise HTTPException(status_code=500, detail="Failed to save stats")
    return FlushResponse(date=today.isoformat(), saved=saved)


# === EVENTS ===


@router.get("/events")
async def recent_events(limit: int = 50, events: EventFeed = Depends(get_events)):
    safe_limit = max(1, min(int(limit), 500))
    return {"events": events.recent(safe_limit)}


# === TRIAGE ===


@router.get("/triage")
async def pending_triage(limit: Optional[int] = None, triage: TriageLog = Depends(get_triage)):
    questions = await triage.pending_questions(limit)
    return {"count": len(questions), "questions": questions}


@router.post("/triage/ignore")
async def ignore_question(
    data: IgnoreRequest,
    triage: TriageLog = Depends(get_triage),
    events: EventFeed = Depends(get_events),
):
    if not data.text.strip():
        raise HTTPException(status_code=400, detail="text must not be empty")
    await triage.ignore(data.text)
    events.publish(create_admin_entry(f"Ignored question: {data.text.strip()}"))
    return {"success": True, "ignored": data.text.strip()}
