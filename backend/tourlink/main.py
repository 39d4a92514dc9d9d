import logging
import os
from contextlib import asynccontextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tourlink.config import settings

# ─── Logging setup (file + console) ───
_LOG_DIR = Path(__file__).resolve().parent.parent / "logs"
_LOG_DIR.mkdir(exist_ok=True)

_log_level = getattr(logging, os.environ.get("LOG_LEVEL", "INFO").upper(), logging.INFO)

logging.basicConfig(
    level=_log_level,
    format="%(asctime)s %(levelname)-8s [%(name)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    handlers=[
        logging.StreamHandler(),
        RotatingFileHandler(
            _LOG_DIR / "tourlink.log",
            maxBytes=10 * 1024 * 1024,  # 10 MB
            backupCount=5,
            encoding="utf-8",
        ),
    ],
)

# Quiet noisy libraries
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

from tourlink.routers import tours, viator

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup — periodic tour sync
    scheduler = None
    if settings.scheduler_enabled:
        try:
            from apscheduler.schedulers.asyncio import AsyncIOScheduler
            from apscheduler.triggers.interval import IntervalTrigger

            scheduler = AsyncIOScheduler()

            async def _run_tour_sync():
                from tourlink.database import async_session_factory
                from tourlink.services.tour_sync import summarize_outcomes, tour_sync_service
                async with async_session_factory() as db:
                    try:
                        outcomes = await tour_sync_service.run_batch(db)
                    except Exception as e:
                        logger.error(f"Scheduled tour sync failed: {e}")
                        return
                    if outcomes:
                        logger.info(f"Scheduled tour sync: {summarize_outcomes(outcomes)}")

            scheduler.add_job(
                _run_tour_sync,
                IntervalTrigger(minutes=settings.tour_sync_interval_minutes),
                id="tour_sync",
                max_instances=1,
                coalesce=True,
            )

            scheduler.start()
            logger.info("Background scheduler started")
        except Exception as e:
            logger.error(f"Scheduler failed to start: {e}")

    yield

    # Shutdown
    if scheduler:
        scheduler.shutdown(wait=False)
        logger.info("Background scheduler stopped")

    from tourlink.services.cache_service import cache_service
    from tourlink.services.viator_client import viator_client
    await viator_client.close()
    await cache_service.close()


app = FastAPI(
    title="Tourlink",
    description="Viator tour acquisition and ranking for catalog sites",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(viator.router, prefix="/api/admin", tags=["viator-sync"])
app.include_router(tours.router, prefix="/api/sites", tags=["tours"])


@app.get("/api/health")
async def health_check():
    return {"status": "ok", "service": "tourlink"}
