"""Tests for the destination cache: loading, refreshing and nearest-region lookup."""
from __future__ import annotations

import asyncio

import pytest
from sqlalchemy import func, select

from tourlink.models.viator import ViatorDestination
from tourlink.services.destination_cache import DestinationCache
from tourlink.services.geo import Coordinate
from tourlink.services.viator_client import Region, ViatorAPIError

from tests.helpers import CAIRO, ROME, StubViatorClient

GIZA = Coordinate(longitude=31.1342, latitude=29.9792)
COLOSSEUM = Coordinate(longitude=12.4922, latitude=41.8902)


def test_nearest_returns_closest_region() -> None:
    cache = DestinationCache(StubViatorClient())
    cache.seed([ROME, CAIRO])

    assert cache.nearest(GIZA, 100) is CAIRO
    assert cache.nearest(COLOSSEUM, 100) is ROME


def test_nearest_returns_none_beyond_cutoff() -> None:
    cache = DestinationCache(StubViatorClient())
    cache.seed([ROME, CAIRO])

    mid_pacific = Coordinate(longitude=-140.0, latitude=0.0)
    assert cache.nearest(mid_pacific, 100) is None
    # Giza is ~12 km from the Cairo center
    assert cache.nearest(GIZA, 5) is None
    assert cache.nearest(None, 100) is None


def test_regions_without_center_are_ignored_and_ties_keep_catalog_order() -> None:
    no_center = Region(destination_id="1", name="Egypt", center=None)
    first = Region(destination_id="2", name="Giza A", center=GIZA)
    second = Region(destination_id="3", name="Giza B", center=GIZA)
    cache = DestinationCache(StubViatorClient())
    cache.seed([no_center, first, second])

    assert cache.nearest(GIZA, 100) is first


def test_empty_catalog_matches_nothing() -> None:
    cache = DestinationCache(StubViatorClient())
    assert cache.nearest(GIZA, 100) is None


@pytest.mark.anyio
async def test_empty_table_is_filled_from_provider(db) -> None:
    egypt = Region(destination_id="722", name="Egypt", center=None, destination_type="COUNTRY")
    client = StubViatorClient(regions=[CAIRO, egypt, ROME, CAIRO])
    cache = DestinationCache(client)

    regions = await cache.ensure_loaded(db)

    assert [r.destination_id for r in regions] == ["782", "722", "511"]
    assert client.destination_calls == 1
    stored = await db.scalar(select(func.count()).select_from(ViatorDestination))
    assert stored == 3

    # A second call is served from memory
    await cache.ensure_loaded(db)
    assert client.destination_calls == 1


@pytest.mark.anyio
async def test_stored_catalog_is_used_without_provider_call(db) -> None:
    await DestinationCache(StubViatorClient(regions=[ROME, CAIRO])).ensure_loaded(db)

    failing = StubViatorClient(catalog_error=ViatorAPIError("should not be called"))
    cache = DestinationCache(failing)
    regions = await cache.ensure_loaded(db)

    assert failing.destination_calls == 0
    assert [r.destination_id for r in regions] == ["511", "782"]
    assert regions[1].center == CAIRO.center
    assert cache.nearest(GIZA, 100).destination_id == "782"


@pytest.mark.anyio
async def test_provider_failure_propagates(db) -> None:
    cache = DestinationCache(
        StubViatorClient(catalog_error=ViatorAPIError("Failed to fetch destinations: 503", status_code=503))
    )
    with pytest.raises(ViatorAPIError):
        await cache.ensure_loaded(db)
    assert not cache.loaded


@pytest.mark.anyio
async def test_concurrent_callers_share_one_fetch(db) -> None:
    class SlowClient(StubViatorClient):
        async def list_destinations(self):
            await asyncio.sleep(0.01)
            return await super().list_destinations()

    client = SlowClient(regions=[CAIRO])
    cache = DestinationCache(client)

    await asyncio.gather(cache.ensure_loaded(db), cache.ensure_loaded(db))

    assert client.destination_calls == 1


@pytest.mark.anyio
async def test_refresh_replaces_the_whole_catalog(db) -> None:
    client = StubViatorClient(regions=[CAIRO, ROME])
    cache = DestinationCache(client)
    await cache.ensure_loaded(db)

    client.regions = [ROME]
    regions = await cache.refresh(db)

    assert [r.destination_id for r in regions] == ["511"]
    ids = (await db.execute(select(ViatorDestination.destination_id))).scalars().all()
    assert ids == ["511"]
    assert cache.nearest(GIZA, 100) is None
