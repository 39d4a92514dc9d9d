"""Viator Partner API client — destination catalog and product search."""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import httpx

from tourlink.config import settings
from tourlink.services.geo import Coordinate, make_coordinate

logger = logging.getLogger(__name__)

ACCEPT_HEADER = "application/json;version=2.0"


class ViatorAPIError(Exception):
    """Non-success response or transport failure from the Viator API."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ViatorConfigError(Exception):
    """Raised when the client is used without an API key."""


@dataclass
class Region:
    """A Viator destination node (city/area) used to scope product search."""
    destination_id: str
    name: str
    center: Coordinate | None = None
    parent_id: str | None = None
    destination_type: str | None = None
    lookup_id: str | None = None
    url: str | None = None


@dataclass
class TourOffer:
    tour_id: str
    title: str
    description: str = ""
    price: float | None = None
    currency: str = "USD"
    url: str | None = None
    image_url: str | None = None
    rating: float | None = None
    review_count: int = 0
    site_id: uuid.UUID | None = None
    last_updated: datetime | None = None


class ViatorClient:
    """Adapter for the Viator Partner API (v2)."""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        backoff_base: float = 1.0,
    ):
        self._api_key = api_key if api_key is not None else settings.viator_api_key
        self._base_url = base_url or settings.viator_base_url
        self._timeout = timeout or settings.viator_timeout_seconds
        self._transport = transport
        self._backoff_base = backoff_base
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._client

    def _headers(self) -> dict[str, str]:
        if not self._api_key:
            raise ViatorConfigError("VIATOR_API_KEY is missing")
        return {
            "exp-api-key": self._api_key,
            "Accept": ACCEPT_HEADER,
            "Accept-Language": "en-US",
        }

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict:
        """Send a request, retrying on 429 and transport errors."""
        headers = self._headers()
        client = await self._get_client()
        attempts = max(1, settings.viator_max_retries)

        for attempt in range(attempts):
            last_try = attempt == attempts - 1
            try:
                resp = await client.request(method, path, headers=headers, **kwargs)
            except httpx.RequestError as e:
                if not last_try:
                    await asyncio.sleep(self._backoff_base * 2 ** attempt)
                    continue
                raise ViatorAPIError(f"Viator request failed: {e}") from e

            if resp.status_code == 429 and not last_try:
                await asyncio.sleep(self._backoff_base * 2 ** attempt)
                continue

            if resp.is_error:
                logger.error(f"Viator API error body ({path}): {resp.text[:500]}")
                raise ViatorAPIError(
                    f"Viator {method} {path} failed: {resp.status_code} {resp.reason_phrase}",
                    status_code=resp.status_code,
                )
            return resp.json()

        raise ViatorAPIError(f"Viator {method} {path} failed after {attempts} attempts")

    async def list_destinations(self) -> list[Region]:
        """Fetch the complete destination taxonomy."""
        logger.info("Fetching all Viator destinations")
        data = await self._request("GET", "/destinations")
        destinations = [
            self._parse_destination(d) for d in data.get("destinations") or []
        ]
        logger.info(f"Fetched {data.get('totalCount', len(destinations))} destinations")
        return destinations

    async def search_tours(self, destination_id: str, text: str) -> list[TourOffer]:
        """Fetch the first page of products for a destination matching free text."""
        logger.info(f"Fetching tours for destination {destination_id} ({text})")
        body = {
            "filtering": {"text": text, "destination": destination_id},
            "sorting": {"sort": "PRICE", "order": "DESCENDING"},
            "pagination": {"start": 1, "count": settings.viator_page_size},
            "currency": settings.viator_currency,
        }
        data = await self._request("POST", "/products/search", json=body)
        return [self._parse_product(p) for p in data.get("products") or []]

    @staticmethod
    def _parse_destination(raw: dict) -> Region:
        center = raw.get("center") or {}
        parent = raw.get("parentDestinationId")
        return Region(
            destination_id=str(raw["destinationId"]),
            name=raw.get("name", ""),
            center=make_coordinate(center.get("longitude"), center.get("latitude")),
            parent_id=str(parent) if parent is not None else None,
            destination_type=raw.get("type"),
            lookup_id=raw.get("lookupId"),
            url=raw.get("destinationUrl"),
        )

    @staticmethod
    def _parse_product(raw: dict) -> TourOffer:
        pricing = raw.get("pricing") or {}
        from_price = (pricing.get("summary") or {}).get("fromPrice")

        # First image, variant at the preferred display height
        image_url = None
        images = raw.get("images") or []
        if images:
            for variant in images[0].get("variants") or []:
                if variant.get("height") == settings.viator_image_height:
                    image_url = variant.get("url")
                    break

        reviews = raw.get("reviews") or {}
        sources = reviews.get("sources") or []
        rating = sources[0].get("averageRating") if sources else None

        return TourOffer(
            tour_id=str(raw["productCode"]),
            title=raw.get("title") or "",
            description=raw.get("description") or "",
            price=float(from_price) if from_price is not None else None,
            currency=pricing.get("currency") or "USD",
            url=raw.get("productUrl"),
            image_url=image_url,
            rating=float(rating) if rating is not None else None,
            review_count=int(reviews.get("totalReviews") or 0),
        )

    async def close(self):
        if self._client:
            await self._client.aclose()
            self._client = None


viator_client = ViatorClient()
