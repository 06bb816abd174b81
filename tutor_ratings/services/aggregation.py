"""Rating statistics computed from a full rating set.

Everything here is a pure function of its input: no database access, no
mutation of the ratings passed in. The coordinator re-reads the complete
rating set for a user on every mutation and feeds it through these helpers,
so the stored aggregate is always a function of the current ratings rather
than a running delta.

Statistics
----------
``average_rating``
    Mean of ``overall_rating`` over all ratings, ``0`` for an empty set.
``dimension_stats``
    For each dimension, the mean over only the ratings that carry a value
    for it. Ratings without the dimension are left out of both the sum and
    the denominator.
``common_tags``
    Tag frequencies across all ratings, highest count first. Ties keep the
    order in which tags were first seen.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Iterable, Sequence

from tutor_ratings.config import settings
from tutor_ratings.models.rating import DIMENSIONS
from tutor_ratings.schemas.ratings import DimensionStats, RatingStatsResponse, TagCount


@dataclass(frozen=True)
class TutorAggregate:
    """Values written to a tutor profile."""

    average_rating: float
    rating_count: int


def average_overall(ratings: Sequence[Any]) -> float:
    if not ratings:
        return 0
    return sum(r.overall_rating for r in ratings) / len(ratings)


def dimension_average(ratings: Sequence[Any], dimension: str) -> float:
    """Mean of *dimension* over the ratings that supply it, else 0."""
    values = [getattr(r, dimension, None) for r in ratings]
    values = [v for v in values if v]
    if not values:
        return 0
    return sum(values) / len(values)


def common_tags(ratings: Iterable[Any], limit: int | None = None) -> list[tuple[str, int]]:
    """Return the *limit* most frequent tags as ``(tag, count)`` pairs."""
    if limit is None:
        limit = settings.RATINGS_TOP_TAGS

    # Counter keeps first-seen order and sorted() is stable, so ties
    # come out in encounter order.
    counts: Counter[str] = Counter()
    for rating in ratings:
        counts.update(rating.tags or [])

    ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)
    return ranked[:limit]


def compute_rating_stats(ratings: Iterable[Any], top_tags: int | None = None) -> RatingStatsResponse:
    """Build the statistics payload for one rated user."""
    ratings = list(ratings)
    if not ratings:
        return RatingStatsResponse()

    return RatingStatsResponse(
        average_rating=average_overall(ratings),
        total_ratings=len(ratings),
        dimension_stats=DimensionStats(
            **{dimension: dimension_average(ratings, dimension) for dimension in DIMENSIONS}
        ),
        common_tags=[TagCount(tag=tag, count=count) for tag, count in common_tags(ratings, top_tags)],
    )


def round_rating(value: float) -> float:
    """Round to one decimal place, halves away from zero (4.25 -> 4.3)."""
    return float(Decimal(str(value)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def compute_tutor_aggregate(ratings: Iterable[Any]) -> TutorAggregate:
    """Average and count for a tutor's profile from its parent-authored ratings."""
    ratings = list(ratings)
    return TutorAggregate(
        average_rating=round_rating(average_overall(ratings)),
        rating_count=len(ratings),
    )
