"""Field-level access to the entities the rating engine keeps in sync.

The match and tutor profile lifecycles are owned elsewhere; these gateways
only fetch them and write the denormalized rating fields. Updates are
``UPDATE ... WHERE`` statements so a missing row is a no-op, reported
through the returned row count.
"""
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from tutor_ratings.models.match import Match
from tutor_ratings.models.tutor_profile import TutorProfile

MATCH_SUMMARY_FIELDS = frozenset({"parent_rating", "parent_review", "tutor_rating", "tutor_review"})


class MatchGateway:
    """Reads matches and writes their rating/review summary pair."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, match_id: str) -> Optional[Match]:
        result = await self.db.execute(
            select(Match).where(Match.uuid == match_id).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def update_fields(self, match_id: str, fields: dict) -> bool:
        """Write summary fields (``None`` clears). Returns False if the match is gone."""
        unknown = set(fields) - MATCH_SUMMARY_FIELDS
        if unknown:
            raise ValueError(f"Not a match rating field: {', '.join(sorted(unknown))}")

        result = await self.db.execute(
            update(Match)
            .where(Match.uuid == match_id)
            .values(**fields)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0


class TutorProfileGateway:
    """Writes the aggregate rating fields of a tutor profile."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, tutor_id: str) -> Optional[TutorProfile]:
        result = await self.db.execute(
            select(TutorProfile)
            .where(TutorProfile.custom_id == tutor_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_tutor_ids(self) -> List[str]:
        result = await self.db.execute(select(TutorProfile.custom_id).order_by(TutorProfile.custom_id))
        return list(result.scalars().all())

    async def set_aggregate(self, tutor_id: str, average_rating: float, rating_count: int) -> bool:
        """Write ``average_rating``/``rating_count``. Returns False if no profile matched."""
        result = await self.db.execute(
            update(TutorProfile)
            .where(TutorProfile.custom_id == tutor_id)
            .values(average_rating=average_rating, rating_count=rating_count)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0
