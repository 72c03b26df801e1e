import asyncio
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.database import SessionLocal, init_db
from app.logging_config import get_logger, setup_logging
from app.routers import admin, message, telegram_webhook
from app.services.runtime import get_index, get_stats
from app.services.stats_service import load_today_stats, run_daily_flush_loop, save_daily_stats

setup_logging(settings.log_level)

logger = get_logger("main")

app = FastAPI(
    title="Reply Router API",
    description="Routes chat messages to curated, contextual or generated replies",
    version="0.1.0",
)

cors_env = os.environ.get("CORS_ALLOW_ORIGINS", "*")
cors_origins = [origin.strip() for origin in cors_env.split(",") if origin.strip()]
if not cors_origins:
    cors_origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(message.router)
app.include_router(telegram_webhook.router)
app.include_router(admin.router)

_stats_flush_task: asyncio.Task | None = None


def _is_stats_flush_enabled() -> bool:
    if os.environ.get("PYTEST_CURRENT_TEST"):
        return False
    return settings.stats_flush_enabled


@app.on_event("startup")
async def startup() -> None:
    global _stats_flush_task
    await init_db()
    await get_index().load()
    await load_today_stats(SessionLocal, get_stats())

    if not _is_stats_flush_enabled():
        return
    if _stats_flush_task is None or _stats_flush_task.done():
        _stats_flush_task = asyncio.create_task(run_daily_flush_loop(SessionLocal, get_stats()))
        logger.info("Daily stats flush loop started")


@app.on_event("shutdown")
async def shutdown() -> None:
    global _stats_flush_task
    if _stats_flush_task is not None:
        _stats_flush_task.cancel()
        try:
            await _stats_flush_task
        except asyncio.CancelledError:
            pass
        _stats_flush_task = None

    logger.info("Saving stats before shutdown")
    await save_daily_stats(SessionLocal, get_stats().snapshot())


@app.get("/health")
async def health():
    return {"status": "ok"}
