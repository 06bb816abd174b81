"""
Recompute tutor profile rating aggregates from the stored parent ratings.

averageRating / ratingCount are normally kept in sync on every rating write.
Run this after a propagation failure, or after importing ratings directly.

Usage:
    python scripts/recalculate_tutor_ratings.py [--tutor-id ID] [--dry-run]

Options:
    --tutor-id ID   Process a single tutor (public custom_id)
    --dry-run       Show what would change without writing
"""

import asyncio
import argparse
import logging

from tutor_ratings.database import AsyncSessionLocal
from tutor_ratings.models.rating import RaterType
from tutor_ratings.services.aggregation import compute_tutor_aggregate
from tutor_ratings.services.coordinator import RatingCoordinator

logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
logger = logging.getLogger(__name__)


async def preview(coordinator: RatingCoordinator, tutor_ids: list[str]) -> int:
    """Log the aggregate each tutor would get. Returns how many would change."""
    changed = 0
    for tutor_id in tutor_ids:
        profile = await coordinator.profiles.get(tutor_id)
        if profile is None:
            logger.info(f"  - Skipped {tutor_id}: no tutor profile")
            continue
        ratings = await coordinator.store.list_for_rated_user(tutor_id, RaterType.PARENT)
        aggregate = compute_tutor_aggregate(ratings)
        before = (profile.average_rating, profile.rating_count)
        after = (aggregate.average_rating, aggregate.rating_count)
        if before != after:
            changed += 1
            logger.info(f"  [DRY RUN] Would set {tutor_id}: {before} -> {after}")
    return changed


async def main(tutor_id: str | None = None, dry_run: bool = False):
    async with AsyncSessionLocal() as db:
        coordinator = RatingCoordinator(db)

        if dry_run:
            tutor_ids = [tutor_id] if tutor_id else await coordinator.profiles.list_tutor_ids()
            changed = await preview(coordinator, tutor_ids)
            logger.info(f"\nSummary: {changed} of {len(tutor_ids)} tutors would change")
            return

        if tutor_id:
            aggregate = await coordinator.refresh_tutor_aggregate(tutor_id)
            if aggregate is None:
                logger.info(f"Tutor {tutor_id} has no parent ratings; aggregate left unchanged")
            else:
                logger.info(
                    f"Updated {tutor_id}: average_rating={aggregate.average_rating}, "
                    f"rating_count={aggregate.rating_count}"
                )
            return

        updated_count, total = await coordinator.recalculate_all()
        logger.info(f"\nSummary: {updated_count} of {total} tutors updated")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(
        description="Recompute tutor rating aggregates from parent ratings"
    )
    parser.add_argument("--tutor-id", help="Process a single tutor")
    parser.add_argument("--dry-run", action="store_true", help="Show changes without writing")
    args = parser.parse_args()

    asyncio.run(main(tutor_id=args.tutor_id, dry_run=args.dry_run))
