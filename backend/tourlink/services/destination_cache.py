"""Destination cache — Viator's region catalog held in memory for nearest-region lookup.

The catalog is a slow-changing reference dataset: it is read from the
``viator_destinations`` table on first use and, when that table is empty,
fetched from Viator in one call and written back as a full replacement.
It is never diffed incrementally.
"""

import asyncio
import logging
import math
from datetime import datetime, timezone

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from tourlink.config import settings
from tourlink.models.viator import ViatorDestination
from tourlink.services.geo import Coordinate, distance_km, make_coordinate
from tourlink.services.viator_client import Region, ViatorClient, viator_client

logger = logging.getLogger(__name__)


class DestinationCache:
    """Owns the region catalog and answers nearest-region queries."""

    def __init__(self, client: ViatorClient | None = None):
        self._client = client or viator_client
        self._regions: list[Region] = []
        # Serialises catalog population so concurrent callers share one fetch
        self._lock = asyncio.Lock()

    @property
    def loaded(self) -> bool:
        return bool(self._regions)

    @property
    def regions(self) -> list[Region]:
        return list(self._regions)

    def seed(self, regions: list[Region]) -> None:
        """Install a catalog directly, bypassing storage and the provider."""
        self._regions = list(regions)

    def clear(self) -> None:
        self._regions = []

    async def ensure_loaded(self, db: AsyncSession) -> list[Region]:
        """Load the catalog from storage, fetching it from Viator if storage is empty.

        Provider failures propagate; callers treat them as fatal.
        """
        if self._regions:
            return self._regions

        async with self._lock:
            if not self._regions:
                regions = await self._load_stored(db)
                if regions:
                    logger.info(f"Loaded {len(regions)} destinations from cache table")
                else:
                    regions = await self._fetch_and_store(db)
                self._regions = regions
        return self._regions

    async def refresh(self, db: AsyncSession) -> list[Region]:
        """Re-fetch the whole catalog from Viator and replace the stored copy."""
        async with self._lock:
            self._regions = await self._fetch_and_store(db)
        return self._regions

    def nearest(self, point: Coordinate | None, max_distance_km: float | None = None) -> Region | None:
        """Closest cached region to ``point``, or None if it lies beyond the cutoff.

        Regions without a center are ignored. On equal distances the region
        seen first in catalog order wins.
        """
        if point is None:
            return None
        if max_distance_km is None:
            max_distance_km = settings.sync_max_region_distance_km

        best: Region | None = None
        best_distance = math.inf
        for region in self._regions:
            if region.center is None:
                continue
            d = distance_km(point, region.center)
            if d < best_distance:
                best_distance = d
                best = region

        if best is None or best_distance > max_distance_km:
            return None
        return best

    async def _load_stored(self, db: AsyncSession) -> list[Region]:
        result = await db.execute(
            select(ViatorDestination).order_by(
                ViatorDestination.position, ViatorDestination.destination_id
            )
        )
        return [
            Region(
                destination_id=row.destination_id,
                name=row.destination_name,
                center=make_coordinate(row.longitude, row.latitude),
                parent_id=row.parent_id,
                destination_type=row.destination_type,
                lookup_id=row.lookup_id,
                url=row.primary_url,
            )
            for row in result.scalars().all()
        ]

    async def _fetch_and_store(self, db: AsyncSession) -> list[Region]:
        fetched = await self._client.list_destinations()

        regions: list[Region] = []
        seen: set[str] = set()
        for region in fetched:
            if region.destination_id in seen:
                continue
            seen.add(region.destination_id)
            regions.append(region)

        now = datetime.now(timezone.utc)
        await db.execute(delete(ViatorDestination))
        db.add_all([
            ViatorDestination(
                destination_id=r.destination_id,
                destination_name=r.name,
                latitude=r.center.latitude if r.center else None,
                longitude=r.center.longitude if r.center else None,
                parent_id=r.parent_id,
                lookup_id=r.lookup_id,
                destination_type=r.destination_type,
                primary_url=r.url,
                position=i,
                last_updated=now,
            )
            for i, r in enumerate(regions)
        ])
        await db.commit()

        logger.info(f"Stored {len(regions)} Viator destinations")
        return regions


destination_cache = DestinationCache()
