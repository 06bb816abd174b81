"""Consistency coordinator for rating writes.

Each mutation runs in two steps:

1. The primary write (insert, update or delete of the rating) is committed
   on its own. It is the source of truth and is never rolled back because
   a later step failed.
2. Propagation writes the match's rating/review pair and, for roles that
   feed it, recomputes the tutor profile aggregate from the full set of
   parent ratings. Propagation commits separately; if it fails it is rolled
   back and reported as ``DependencyWriteFailure``. Every propagation step
   is an overwrite or a full recomputation, so retrying the operation is safe.
"""
import logging
from datetime import datetime
from typing import Callable, Optional, Tuple
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from tutor_ratings.config import settings
from tutor_ratings.exceptions import Conflict, DependencyWriteFailure, NotFound
from tutor_ratings.models.rating import DIMENSIONS, IMMUTABLE_FIELDS, Rating, RaterType
from tutor_ratings.services.aggregation import TutorAggregate, compute_tutor_aggregate
from tutor_ratings.services.collaborators import MatchGateway, TutorProfileGateway
from tutor_ratings.services.rater_roles import RaterRole, parse_rater_type, role_for
from tutor_ratings.services.rating_store import RatingStore

logger = logging.getLogger(__name__)

MUTABLE_FIELDS = frozenset({"overall_rating", "review_text", "tags", *DIMENSIONS})

# PostgreSQL names the violated constraint; SQLite lists its columns.
UNIQUE_RATING_MARKERS = (
    "uq_rating_match_rater",
    "ratings.match_id, ratings.rated_by, ratings.rater_type",
)


def _violates_rating_uniqueness(error: IntegrityError) -> bool:
    message = str(error.orig)
    return any(marker in message for marker in UNIQUE_RATING_MARKERS)


class RatingCoordinator:
    """Runs create/update/delete and keeps matches and tutor profiles in step."""

    def __init__(
        self,
        db: AsyncSession,
        store: Optional[RatingStore] = None,
        matches: Optional[MatchGateway] = None,
        profiles: Optional[TutorProfileGateway] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
        reset_on_empty: Optional[bool] = None,
    ):
        self.db = db
        self.store = store or RatingStore(db)
        self.matches = matches or MatchGateway(db)
        self.profiles = profiles or TutorProfileGateway(db)
        self.clock = clock
        self.reset_on_empty = (
            settings.TUTOR_AGGREGATE_RESET_ON_EMPTY if reset_on_empty is None else reset_on_empty
        )

    async def create(self, data: dict) -> Rating:
        """Persist a new rating, then write the match summary and tutor aggregate.

        ``data`` must already carry ``rated_by`` and ``rater_type`` from the
        author's identity.
        """
        match_id = data["match_id"]
        rater_type = parse_rater_type(data["rater_type"])

        if await self.matches.get(match_id) is None:
            raise NotFound("Match not found")

        if await self.store.exists_for(match_id, data["rated_by"], rater_type):
            raise Conflict("This match has already been rated by this user")

        now = self.clock()
        fields = {key: value for key, value in data.items() if key in MUTABLE_FIELDS}
        fields["tags"] = list(fields.get("tags") or [])
        rating = Rating(
            match_id=match_id,
            rated_by=data["rated_by"],
            rater_type=rater_type.value,
            rated_user=data["rated_user"],
            created_at=now,
            updated_at=now,
            **fields,
        )

        try:
            await self.store.add(rating)
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            if _violates_rating_uniqueness(e):
                # Lost the race against a concurrent create; the unique index decided.
                raise Conflict("This match has already been rated by this user") from None
            if await self.matches.get(match_id) is None:
                raise NotFound("Match not found") from None
            raise
        await self.db.refresh(rating)

        logger.info(
            f"Created rating {rating.uuid} for match {match_id} "
            f"by {rating.rater_type} {rating.rated_by} (overall={rating.overall_rating})"
        )

        role = role_for(rater_type)
        await self._propagate(
            rating.uuid,
            rating.match_id,
            rating.rated_user,
            role,
            {role.match_rating_field: rating.overall_rating, role.match_review_field: rating.review_text},
        )
        return rating

    async def update(self, rating_id: str, changes: dict) -> Rating:
        """Apply a partial update; propagate only when ``overall_rating`` is supplied."""
        rating = await self.store.get(rating_id)
        if rating is None:
            raise NotFound("Rating not found")

        ignored = sorted(key for key in changes if key in IMMUTABLE_FIELDS)
        if ignored:
            logger.debug(f"Ignoring immutable fields on rating {rating_id}: {', '.join(ignored)}")

        applied = {key: value for key, value in changes.items() if key in MUTABLE_FIELDS}
        if applied.get("overall_rating") is None:
            applied.pop("overall_rating", None)
        if "tags" in applied:
            applied["tags"] = list(applied["tags"] or [])
        applied["updated_at"] = self.clock()

        await self.store.apply_changes(rating, applied)
        await self.db.commit()
        await self.db.refresh(rating)
        logger.info(f"Updated rating {rating_id}: {', '.join(sorted(applied))}")

        if "overall_rating" in applied:
            role = role_for(rating.rater_type)
            await self._propagate(
                rating.uuid,
                rating.match_id,
                rating.rated_user,
                role,
                {role.match_rating_field: rating.overall_rating, role.match_review_field: rating.review_text},
            )
        return rating

    async def delete(self, rating_id: str) -> None:
        """Remove a rating, clear its match summary pair and recompute the aggregate."""
        rating = await self.store.get(rating_id)
        if rating is None:
            raise NotFound("Rating not found")

        match_id, rated_user = rating.match_id, rating.rated_user
        role = role_for(rating.rater_type)

        await self.store.delete(rating)
        await self.db.commit()
        logger.info(f"Deleted rating {rating_id} ({role.rater_type.value} rating on match {match_id})")

        await self._propagate(
            rating_id,
            match_id,
            rated_user,
            role,
            {role.match_rating_field: None, role.match_review_field: None},
        )

    async def refresh_tutor_aggregate(self, tutor_id: str) -> Optional[TutorAggregate]:
        """Recompute and store one tutor's aggregate from all parent ratings."""
        try:
            aggregate = await self._write_tutor_aggregate(tutor_id)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to refresh aggregate for tutor {tutor_id}: {e}", exc_info=True)
            raise DependencyWriteFailure(f"Failed to update rating aggregate for tutor {tutor_id}") from e
        return aggregate

    async def recalculate_all(self) -> Tuple[int, int]:
        """Recompute every tutor profile. Returns ``(updated_count, total_tutors)``."""
        updated_count = 0
        try:
            tutor_ids = await self.profiles.list_tutor_ids()
            for tutor_id in tutor_ids:
                profile = await self.profiles.get(tutor_id)
                before = (profile.average_rating, profile.rating_count)
                aggregate = await self._write_tutor_aggregate(tutor_id)
                if aggregate is not None and before != (aggregate.average_rating, aggregate.rating_count):
                    updated_count += 1
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Tutor aggregate recalculation failed: {e}", exc_info=True)
            raise DependencyWriteFailure("Failed to recalculate tutor rating aggregates") from e

        logger.info(f"Recalculated aggregates for {len(tutor_ids)} tutors ({updated_count} changed)")
        return updated_count, len(tutor_ids)

    async def _propagate(
        self,
        rating_id: str,
        match_id: str,
        rated_user: str,
        role: RaterRole,
        match_fields: dict,
    ) -> None:
        try:
            if not await self.matches.update_fields(match_id, match_fields):
                logger.warning(f"Match {match_id} not found; rating summary for rating {rating_id} not written")
            if role.feeds_tutor_aggregate:
                await self._write_tutor_aggregate(rated_user)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Propagation failed for rating {rating_id}: {e}", exc_info=True)
            raise DependencyWriteFailure(
                f"Rating {rating_id} was saved but dependent records could not be updated",
                rating_id=rating_id,
            ) from e

    async def _write_tutor_aggregate(self, tutor_id: str) -> Optional[TutorAggregate]:
        ratings = await self.store.list_for_rated_user(tutor_id, RaterType.PARENT)
        if not ratings and not self.reset_on_empty:
            logger.info(f"Tutor {tutor_id} has no parent ratings; keeping last aggregate")
            return None

        aggregate = compute_tutor_aggregate(ratings)
        if not await self.profiles.set_aggregate(tutor_id, aggregate.average_rating, aggregate.rating_count):
            logger.warning(f"Tutor profile {tutor_id} not found; aggregate not stored")
        return aggregate
