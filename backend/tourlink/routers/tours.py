"""Site tours router — ranked, display-ready Viator tours for a site."""

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tourlink.config import settings
from tourlink.database import get_db
from tourlink.models.site import Site
from tourlink.schemas.viator import SiteToursResponse
from tourlink.services.tour_ranking import tour_ranking_service

router = APIRouter()


@router.get("/{site_id}/tours", response_model=SiteToursResponse)
async def get_site_tours(
    site_id: uuid.UUID,
    limit: int = Query(settings.ranking_top_n, ge=1, le=50),
    db: AsyncSession = Depends(get_db),
):
    """Top tours for a site after relevance filtering and quality ranking."""
    result = await db.execute(select(Site.name).where(Site.id == site_id))
    name = result.scalar_one_or_none()
    if name is None:
        raise HTTPException(status_code=404, detail="Site not found")

    tours = await tour_ranking_service.get_ranked_tours(db, site_id, name, limit)
    return {"site_id": site_id, "site": name, "tours": tours}
