import uuid

from pydantic import BaseModel, Field


class SyncRequest(BaseModel):
    site_ids: list[uuid.UUID] | None = None
    search_query: str | None = None
    limit: int | None = Field(default=None, ge=1, le=500)


class SyncAllRequest(BaseModel):
    batch_size: int | None = Field(default=None, ge=1, le=500)
    max_batches: int | None = Field(default=None, ge=1)


class SyncOutcomeResponse(BaseModel):
    site_id: uuid.UUID
    site: str
    status: str
    tours_found: int | None = None
    error: str | None = None


class SyncResponse(BaseModel):
    success: bool = True
    results: list[SyncOutcomeResponse]
    summary: dict[str, int]
    log: list[str]


class TourResponse(BaseModel):
    tour_id: str
    title: str
    description: str = ""
    price: float | None = None
    currency: str = "USD"
    url: str | None = None
    image_url: str | None = None
    rating: float | None = None
    review_count: int = 0
    score: float


class SiteToursResponse(BaseModel):
    site_id: uuid.UUID
    site: str
    tours: list[TourResponse]
