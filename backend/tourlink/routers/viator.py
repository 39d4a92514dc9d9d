"""Viator sync router — batch trigger and destination catalog refresh for operators."""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from tourlink.database import get_db
from tourlink.schemas.viator import SyncAllRequest, SyncRequest, SyncResponse
from tourlink.services.destination_cache import DestinationCache, destination_cache
from tourlink.services.tour_sync import (
    SyncOutcome,
    TourSyncService,
    format_outcome,
    summarize_outcomes,
    tour_sync_service,
)
from tourlink.services.viator_client import ViatorAPIError, ViatorConfigError

logger = logging.getLogger(__name__)

router = APIRouter()


def get_tour_sync_service() -> TourSyncService:
    return tour_sync_service


def get_destination_cache() -> DestinationCache:
    return destination_cache


def _error_response(e: Exception) -> JSONResponse:
    status_code = 502 if isinstance(e, ViatorAPIError) else 500
    return JSONResponse(status_code=status_code, content={"success": False, "error": str(e)})


def _sync_response(outcomes: list[SyncOutcome]) -> SyncResponse:
    return SyncResponse(
        results=[o.to_dict() for o in outcomes],
        summary=summarize_outcomes(outcomes),
        log=[format_outcome(o) for o in outcomes],
    )


@router.post("/viator-sync", response_model=SyncResponse)
async def trigger_sync(
    body: SyncRequest | None = None,
    db: AsyncSession = Depends(get_db),
    service: TourSyncService = Depends(get_tour_sync_service),
):
    """Sync one batch of sites: explicit ids, a name search, or the stalest sites."""
    body = body or SyncRequest()
    try:
        outcomes = await service.run_batch(db, body.site_ids, body.search_query, body.limit)
    except (ViatorAPIError, ViatorConfigError) as e:
        return _error_response(e)
    except Exception as e:
        logger.exception("Tour sync batch failed")
        return _error_response(e)
    return _sync_response(outcomes)


@router.post("/viator-sync/all", response_model=SyncResponse)
async def trigger_full_sync(
    body: SyncAllRequest | None = None,
    db: AsyncSession = Depends(get_db),
    service: TourSyncService = Depends(get_tour_sync_service),
):
    """Keep running default batches until every site has been synced once."""
    body = body or SyncAllRequest()
    try:
        outcomes = await service.run_full_cycle(db, body.batch_size, body.max_batches)
    except (ViatorAPIError, ViatorConfigError) as e:
        return _error_response(e)
    except Exception as e:
        logger.exception("Tour sync cycle failed")
        return _error_response(e)
    return _sync_response(outcomes)


@router.post("/viator/destinations/refresh")
async def refresh_destinations(
    db: AsyncSession = Depends(get_db),
    cache: DestinationCache = Depends(get_destination_cache),
):
    """Re-fetch the Viator destination catalog and replace the cached copy."""
    try:
        regions = await cache.refresh(db)
    except (ViatorAPIError, ViatorConfigError) as e:
        return _error_response(e)
    return {"success": True, "destinations": len(regions)}
