"""Tour ranking — relevance filter plus a Bayesian quality score with a price penalty."""

import logging
import uuid
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tourlink.config import settings
from tourlink.models.viator import ViatorTour
from tourlink.services.cache_service import cache_service
from tourlink.services.viator_client import TourOffer

logger = logging.getLogger(__name__)

STOP_WORDS = frozenset({
    "the", "a", "an", "of", "in", "at",
    "archaeological", "site", "ruins", "park", "great", "complex", "city", "ancient",
})


@dataclass(frozen=True)
class RankingWeights:
    prior_weight: float = 10.0     # m: pseudo-reviews at the prior mean
    prior_mean: float = 4.5        # C: rating an unreviewed tour is assumed to have
    price_per_point: float = 1000.0  # price that costs one quality point

    @classmethod
    def from_settings(cls) -> "RankingWeights":
        return cls(
            prior_weight=settings.ranking_prior_weight,
            prior_mean=settings.ranking_prior_mean,
            price_per_point=settings.ranking_price_per_point,
        )


@dataclass
class ScoredTour:
    tour: TourOffer
    score: float

    def to_dict(self) -> dict:
        t = self.tour
        return {
            "tour_id": t.tour_id,
            "title": t.title,
            "description": t.description,
            "price": t.price,
            "currency": t.currency,
            "url": t.url,
            "image_url": t.image_url,
            "rating": t.rating,
            "review_count": t.review_count,
            "score": round(self.score, 4),
        }


def site_keywords(site_name: str) -> list[str]:
    """Lowercased words of a site name minus stop words and tokens of two chars or less."""
    return [
        word for word in site_name.lower().split()
        if word not in STOP_WORDS and len(word) > 2
    ]


def bayesian_score(rating: float | None, review_count: int, weights: RankingWeights) -> float:
    """Regress a rating toward the prior mean by its review evidence.

    With no reviews (or no rating) the score is exactly the prior mean.
    """
    n = max(review_count or 0, 0)
    if rating is None or n == 0:
        return weights.prior_mean
    return (n * rating + weights.prior_weight * weights.prior_mean) / (n + weights.prior_weight)


def score_tour(tour: TourOffer, weights: RankingWeights) -> float:
    penalty = (tour.price or 0) / weights.price_per_point
    return bayesian_score(tour.rating, tour.review_count, weights) - penalty


def is_priced(tour: TourOffer) -> bool:
    """False only for a present, non-positive price. Absent price means price on request."""
    return tour.price is None or tour.price > 0


def is_relevant(tour: TourOffer, keywords: list[str]) -> bool:
    if not keywords:
        return True
    title = tour.title.lower()
    return any(k in title for k in keywords)


def score_tours(
    site_name: str,
    tours: list[TourOffer],
    top_n: int | None = None,
    weights: RankingWeights | None = None,
) -> list[ScoredTour]:
    """Filter and rank tours for a site, returning at most ``top_n`` with their scores.

    Sorting is stable, so equal scores keep their input order.
    """
    if not tours:
        return []
    if weights is None:
        weights = RankingWeights.from_settings()
    if top_n is None:
        top_n = settings.ranking_top_n

    keywords = site_keywords(site_name)
    survivors = [t for t in tours if is_priced(t) and is_relevant(t, keywords)]

    scored = [ScoredTour(tour=t, score=score_tour(t, weights)) for t in survivors]
    scored.sort(key=lambda s: s.score, reverse=True)
    return scored[:max(top_n, 0)]


def rank_tours(
    site_name: str,
    tours: list[TourOffer],
    top_n: int | None = None,
    weights: RankingWeights | None = None,
) -> list[TourOffer]:
    return [s.tour for s in score_tours(site_name, tours, top_n, weights)]


def tour_from_row(row: ViatorTour) -> TourOffer:
    return TourOffer(
        tour_id=row.tour_id,
        title=row.title,
        description=row.description or "",
        price=float(row.price) if row.price is not None else None,
        currency=row.currency or "USD",
        url=row.url,
        image_url=row.image_url,
        rating=row.rating,
        review_count=row.review_count or 0,
        site_id=row.site_id,
        last_updated=row.last_updated,
    )


class TourRankingService:
    """Reads a site's stored tours and returns the display-ready ranking."""

    async def get_candidate_pool(
        self, db: AsyncSession, site_id: uuid.UUID, pool_size: int | None = None
    ) -> list[TourOffer]:
        result = await db.execute(
            select(ViatorTour)
            .where(ViatorTour.site_id == site_id)
            .order_by(ViatorTour.review_count.desc(), ViatorTour.tour_id)
            .limit(pool_size or settings.ranking_candidate_pool)
        )
        return [tour_from_row(row) for row in result.scalars().all()]

    async def get_ranked_tours(
        self,
        db: AsyncSession,
        site_id: uuid.UUID,
        site_name: str,
        top_n: int | None = None,
    ) -> list[dict]:
        top_n = top_n or settings.ranking_top_n

        cached = await cache_service.get_ranked_tours(str(site_id), site_name, top_n)
        if cached is not None:
            return cached

        pool = await self.get_candidate_pool(db, site_id)
        ranked = [s.to_dict() for s in score_tours(site_name, pool, top_n)]
        logger.debug(f"Ranked {len(ranked)} of {len(pool)} tours for site {site_id}")

        await cache_service.set_ranked_tours(str(site_id), site_name, top_n, ranked)
        return ranked


tour_ranking_service = TourRankingService()
