"""Tour sync — attaches Viator tours to sites in batches with per-site failure isolation.

Every site selected for a batch ends with exactly one ``SyncOutcome`` and one
stamp of ``tours_synced_at``/``tours_sync_status``, whatever happened to it.
The stamp is what moves a site to the back of the default selection queue.
"""

import logging
import uuid
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tourlink.config import settings
from tourlink.models.site import Site
from tourlink.models.viator import ViatorTour
from tourlink.services.cache_service import cache_service
from tourlink.services.destination_cache import DestinationCache, destination_cache
from tourlink.services.geo import Coordinate, coordinate_from_location
from tourlink.services.viator_client import TourOffer, ViatorClient, viator_client

logger = logging.getLogger(__name__)


class SyncStatus(str, Enum):
    UPDATED = "updated"
    NO_TOURS_FOUND = "no_tours_found"
    NO_NEARBY_REGION = "no_nearby_region"
    SKIPPED_NO_COORDS = "skipped_no_coords"
    ERROR = "error"

    @property
    def site_tag(self) -> str:
        """Value written to ``sites.tours_sync_status``."""
        if self is SyncStatus.UPDATED:
            return "synced_found"
        return self.value


@dataclass(frozen=True)
class SiteRecord:
    """Plain snapshot of the site columns the sync reads."""
    id: uuid.UUID
    name: str
    coordinate: Coordinate | None
    tours_synced_at: datetime | None = None

    @classmethod
    def from_model(cls, site: Site) -> "SiteRecord":
        return cls(
            id=site.id,
            name=site.name,
            coordinate=coordinate_from_location(site.location),
            tours_synced_at=site.tours_synced_at,
        )


@dataclass(frozen=True)
class SyncOutcome:
    site_id: uuid.UUID
    site_name: str
    status: SyncStatus
    tours_found: int | None = None
    error: str | None = None

    def to_dict(self) -> dict:
        d = {
            "site_id": str(self.site_id),
            "site": self.site_name,
            "status": self.status.value,
        }
        if self.tours_found is not None:
            d["tours_found"] = self.tours_found
        if self.error is not None:
            d["error"] = self.error
        return d


def format_outcome(outcome: SyncOutcome) -> str:
    """One human-readable log line for an outcome."""
    name = outcome.site_name
    if outcome.status is SyncStatus.UPDATED:
        return f"{name}: Found {outcome.tours_found} tours"
    if outcome.status is SyncStatus.NO_TOURS_FOUND:
        return f"{name}: No tours"
    if outcome.status is SyncStatus.NO_NEARBY_REGION:
        return f"{name}: No nearby destination"
    if outcome.status is SyncStatus.SKIPPED_NO_COORDS:
        return f"{name}: No coordinates"
    return f"{name}: Error - {outcome.error}"


def summarize_outcomes(outcomes: list[SyncOutcome]) -> dict:
    counts = Counter(o.status.value for o in outcomes)
    return {
        "processed": len(outcomes),
        "tours_found": sum(o.tours_found or 0 for o in outcomes),
        **{status.value: counts.get(status.value, 0) for status in SyncStatus},
    }


def error_message(e: Exception) -> str:
    """Short reason for an outcome. Database errors keep only the driver message."""
    if isinstance(e, SQLAlchemyError) and getattr(e, "orig", None) is not None:
        e = e.orig
    text = str(e).strip().splitlines()
    return text[0] if text else type(e).__name__


class TourSyncService:
    """Selects sites, resolves their Viator destination, and stores fetched tours."""

    def __init__(
        self,
        client: ViatorClient | None = None,
        cache: DestinationCache | None = None,
    ):
        self._client = client or viator_client
        self._cache = cache or destination_cache

    async def select_sites(
        self,
        db: AsyncSession,
        site_ids: list[uuid.UUID] | None = None,
        search_query: str | None = None,
        limit: int | None = None,
        synced_before: datetime | None = None,
    ) -> list[SiteRecord]:
        """Pick the batch: explicit ids, else a name match, else the stalest sites."""
        if site_ids:
            ids = [uuid.UUID(str(i)) for i in site_ids]
            result = await db.execute(select(Site).where(Site.id.in_(ids)))
            found = {s.id: s for s in result.scalars().all()}
            missing = [i for i in ids if i not in found]
            if missing:
                logger.warning(f"Tour sync: {len(missing)} requested site ids not found")
            ordered = dict.fromkeys(i for i in ids if i in found)
            return [SiteRecord.from_model(found[i]) for i in ordered]

        if search_query and search_query.strip():
            q = search_query.strip().lower()
            result = await db.execute(
                select(Site)
                .where(func.lower(Site.name).contains(q, autoescape=True))
                .order_by(Site.name)
            )
            return [SiteRecord.from_model(s) for s in result.scalars().all()]

        limit = settings.sync_batch_limit if limit is None else limit
        if limit <= 0:
            return []

        stmt = select(Site)
        if synced_before is not None:
            stmt = stmt.where(
                or_(Site.tours_synced_at.is_(None), Site.tours_synced_at < synced_before)
            )
        result = await db.execute(
            stmt.order_by(Site.tours_synced_at.asc().nulls_first(), Site.id).limit(limit)
        )
        return [SiteRecord.from_model(s) for s in result.scalars().all()]

    async def run_batch(
        self,
        db: AsyncSession,
        site_ids: list[uuid.UUID] | None = None,
        search_query: str | None = None,
        limit: int | None = None,
        *,
        synced_before: datetime | None = None,
    ) -> list[SyncOutcome]:
        """Sync one batch of sites and return their outcomes in processing order.

        Per-site failures become ``error`` outcomes. A failure to load the
        destination catalog is raised, since no site can be resolved without it.
        """
        sites = await self.select_sites(db, site_ids, search_query, limit, synced_before)
        if not sites:
            logger.info("Tour sync: no sites selected")
            return []

        logger.info(f"Tour sync: processing {len(sites)} sites")

        if any(site.coordinate is not None for site in sites):
            try:
                await self._cache.ensure_loaded(db)
            except Exception as e:
                logger.error(f"Tour sync aborted, destination catalog unavailable: {e}")
                raise

        outcomes = []
        for site in sites:
            outcomes.append(await self._process_site(db, site))

        logger.info(f"Tour sync finished: {summarize_outcomes(outcomes)}")
        return outcomes

    async def run_full_cycle(
        self,
        db: AsyncSession,
        batch_size: int | None = None,
        max_batches: int | None = None,
    ) -> list[SyncOutcome]:
        """Run default batches until every site has been synced since the cycle began."""
        started = datetime.now(timezone.utc)
        outcomes: list[SyncOutcome] = []
        seen: set[uuid.UUID] = set()
        batches = 0

        while max_batches is None or batches < max_batches:
            batch = await self.run_batch(db, limit=batch_size, synced_before=started)
            if not batch:
                break
            new_ids = {o.site_id for o in batch} - seen
            if not new_ids:
                # Sites whose stamp could not be written are selected again
                logger.warning("Tour sync cycle stopped: batch selected only already-processed sites")
                break
            seen |= new_ids
            outcomes.extend(batch)
            batches += 1

        logger.info(f"Tour sync cycle: {batches} batches, {len(outcomes)} sites")
        return outcomes

    async def _process_site(self, db: AsyncSession, site: SiteRecord) -> SyncOutcome:
        try:
            outcome = await self._sync_site(db, site)
        except Exception as e:
            await self._rollback(db)
            logger.error(f"Error processing {site.name} ({site.id}): {e}")
            outcome = SyncOutcome(
                site_id=site.id,
                site_name=site.name,
                status=SyncStatus.ERROR,
                error=error_message(e),
            )

        try:
            await self._stamp_site(db, site.id, outcome.status)
        except Exception as e:
            await self._rollback(db)
            logger.error(f"Failed to record sync status for {site.name} ({site.id}): {e}")
            return SyncOutcome(
                site_id=site.id,
                site_name=site.name,
                status=SyncStatus.ERROR,
                error=error_message(e),
            )

        if outcome.status is SyncStatus.UPDATED:
            await cache_service.invalidate_site(str(site.id))
        return outcome

    @staticmethod
    async def _rollback(db: AsyncSession) -> None:
        """Roll back a failed site's work; a broken connection is logged, not raised."""
        try:
            await db.rollback()
        except Exception as e:
            logger.error(f"Rollback after site failure failed: {e}")

    async def _sync_site(self, db: AsyncSession, site: SiteRecord) -> SyncOutcome:
        if site.coordinate is None:
            return SyncOutcome(site.id, site.name, SyncStatus.SKIPPED_NO_COORDS)

        region = self._cache.nearest(site.coordinate, settings.sync_max_region_distance_km)
        if region is None:
            return SyncOutcome(site.id, site.name, SyncStatus.NO_NEARBY_REGION)

        tours = await self._client.search_tours(region.destination_id, site.name)
        if not tours:
            return SyncOutcome(site.id, site.name, SyncStatus.NO_TOURS_FOUND, tours_found=0)

        await self._store_tours(db, site.id, tours)
        return SyncOutcome(site.id, site.name, SyncStatus.UPDATED, tours_found=len(tours))

    async def _store_tours(self, db: AsyncSession, site_id: uuid.UUID, tours: list[TourOffer]) -> None:
        """Upsert a site's tours by tour id; rows missing from this fetch are removed."""
        now = datetime.now(timezone.utc)
        fresh: dict[str, TourOffer] = {}
        for tour in tours:
            fresh.setdefault(tour.tour_id, tour)

        result = await db.execute(select(ViatorTour).where(ViatorTour.site_id == site_id))
        existing = {row.tour_id: row for row in result.scalars().all()}

        for tour_id, tour in fresh.items():
            row = existing.pop(tour_id, None)
            if row is None:
                row = ViatorTour(site_id=site_id, tour_id=tour_id)
                db.add(row)
            row.title = tour.title
            row.description = tour.description or ""
            row.price = Decimal(str(tour.price)) if tour.price is not None else None
            row.currency = tour.currency or "USD"
            row.url = tour.url
            row.image_url = tour.image_url
            row.rating = tour.rating
            row.review_count = tour.review_count or 0
            row.last_updated = now

        for stale in existing.values():
            await db.delete(stale)

        await db.flush()

    async def _stamp_site(self, db: AsyncSession, site_id: uuid.UUID, status: SyncStatus) -> None:
        await db.execute(
            update(Site)
            .where(Site.id == site_id)
            .values(
                tours_synced_at=datetime.now(timezone.utc),
                tours_sync_status=status.site_tag,
            )
        )
        await db.commit()


tour_sync_service = TourSyncService()
