"""Rating Store: SQLAlchemy access to the ratings table."""
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc, func
from tutor_ratings.models.rating import Rating, RaterType


class RatingStore:
    """Read shapes and writes for individual rating records.

    Writes only ``flush``; committing is left to the caller so the
    coordinator decides where the primary write ends and propagation begins.
    The unique index on (match_id, rated_by, rater_type) is the authority
    for one-rating-per-party-per-match; ``exists_for`` is a fast pre-check.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, rating_id: str) -> Optional[Rating]:
        result = await self.db.execute(select(Rating).where(Rating.uuid == rating_id))
        return result.scalar_one_or_none()

    async def list_by_match(self, match_id: str) -> List[Rating]:
        result = await self.db.execute(select(Rating).where(Rating.match_id == match_id))
        return list(result.scalars().all())

    async def exists_for(self, match_id: str, rated_by: str, rater_type: RaterType) -> bool:
        result = await self.db.execute(
            select(Rating.uuid).where(
                (Rating.match_id == match_id) &
                (Rating.rated_by == rated_by) &
                (Rating.rater_type == RaterType(rater_type).value)
            )
        )
        return result.first() is not None

    async def list_for_rated_user(
        self,
        rated_user: str,
        rater_type: RaterType,
        skip: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[Rating]:
        """Ratings addressed to *rated_user* from *rater_type*, newest first."""
        query = (
            select(Rating)
            .where(
                (Rating.rated_user == rated_user) &
                (Rating.rater_type == RaterType(rater_type).value)
            )
            .order_by(desc(Rating.created_at), desc(Rating.uuid))
        )
        if skip:
            query = query.offset(skip)
        if limit is not None:
            query = query.limit(limit)

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def count_for_rated_user(self, rated_user: str, rater_type: RaterType) -> int:
        result = await self.db.execute(
            select(func.count(Rating.uuid)).where(
                (Rating.rated_user == rated_user) &
                (Rating.rater_type == RaterType(rater_type).value)
            )
        )
        return result.scalar() or 0

    async def add(self, rating: Rating) -> Rating:
        self.db.add(rating)
        await self.db.flush()
        return rating

    async def apply_changes(self, rating: Rating, changes: dict) -> Rating:
        for field, value in changes.items():
            setattr(rating, field, value)
        await self.db.flush()
        return rating

    async def delete(self, rating: Rating) -> None:
        await self.db.delete(rating)
        await self.db.flush()
