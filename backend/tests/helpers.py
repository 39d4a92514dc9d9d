"""Test helpers: a stub Viator client, offer builders, and site fixtures."""
from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tourlink.models.site import Site
from tourlink.services.geo import Coordinate
from tourlink.services.viator_client import Region, TourOffer, ViatorAPIError


CAIRO = Region(destination_id="782", name="Cairo", center=Coordinate(31.2357, 30.0444), destination_type="CITY")
ROME = Region(destination_id="511", name="Rome", center=Coordinate(12.4964, 41.9028), destination_type="CITY")


class StubViatorClient:
    """In-memory stand-in for :class:`ViatorClient`."""

    def __init__(
        self,
        regions: list[Region] | None = None,
        tours: dict[str, list[TourOffer]] | None = None,
        failing_sites: set[str] | None = None,
        catalog_error: Exception | None = None,
    ) -> None:
        self.regions = list(regions or [])
        self.tours = dict(tours or {})
        self.failing_sites = set(failing_sites or ())
        self.catalog_error = catalog_error
        self.destination_calls = 0
        self.search_calls: list[tuple[str, str]] = []

    async def list_destinations(self) -> list[Region]:
        self.destination_calls += 1
        if self.catalog_error is not None:
            raise self.catalog_error
        return list(self.regions)

    async def search_tours(self, destination_id: str, text: str) -> list[TourOffer]:
        self.search_calls.append((destination_id, text))
        if text in self.failing_sites:
            raise ViatorAPIError(
                "Viator POST /products/search failed: 500 Internal Server Error", status_code=500
            )
        return list(self.tours.get(destination_id, []))


def make_offer(
    tour_id: str,
    title: str,
    price: float | None = 50.0,
    rating: float | None = 4.5,
    review_count: int = 100,
) -> TourOffer:
    return TourOffer(
        tour_id=tour_id,
        title=title,
        price=price,
        rating=rating,
        review_count=review_count,
        url=f"https://www.viator.com/tours/{tour_id}",
    )


async def add_site(
    db: AsyncSession,
    name: str,
    lng: float | None = None,
    lat: float | None = None,
    synced_at: datetime | None = None,
) -> uuid.UUID:
    location = None
    if lng is not None and lat is not None:
        location = {"type": "Point", "coordinates": [lng, lat]}
    site = Site(name=name, location=location, tours_synced_at=synced_at)
    db.add(site)
    await db.commit()
    return site.id


async def site_state(db: AsyncSession, site_id: uuid.UUID) -> tuple[datetime | None, str | None]:
    result = await db.execute(
        select(Site.tours_synced_at, Site.tours_sync_status).where(Site.id == site_id)
    )
    return tuple(result.one())
