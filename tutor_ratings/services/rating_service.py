"""Rating service: the public operation surface used by the API layer."""
import logging
import math
import re
from typing import List, Type, TypeVar, Union
from pydantic import BaseModel, ValidationError
from sqlalchemy.ext.asyncio import AsyncSession
from tutor_ratings.config import settings
from tutor_ratings.exceptions import InvalidInput, NotFound
from tutor_ratings.models.rating import IMMUTABLE_FIELDS, Rating
from tutor_ratings.schemas.ratings import (
    Pagination,
    RatingCreate,
    RatingListResponse,
    RatingResponse,
    RatingStatsResponse,
    RatingUpdate,
    RecalculateResponse,
)
from tutor_ratings.services.aggregation import compute_rating_stats
from tutor_ratings.services.coordinator import RatingCoordinator
from tutor_ratings.services.rater_roles import parse_rater_type, rater_type_addressing

logger = logging.getLogger(__name__)

SchemaT = TypeVar("SchemaT", bound=BaseModel)
Payload = Union[dict, BaseModel]


def _validate(schema: Type[SchemaT], payload: Payload) -> SchemaT:
    """Validate *payload* against *schema*, reporting failures as InvalidInput."""
    if isinstance(payload, schema):
        return payload
    if isinstance(payload, BaseModel):
        payload = payload.model_dump(exclude_unset=True)
    try:
        return schema.model_validate(payload)
    except ValidationError as e:
        details = "; ".join(
            f"{'.'.join(str(part) for part in err['loc']) or 'body'}: {err['msg']}"
            for err in e.errors()
        )
        raise InvalidInput(f"Invalid rating data: {details}") from None


_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


def _positive_int(value, default: int) -> int:
    """Leading integer of *value* (so "2.5" is 2); *default* when absent or below 1."""
    if isinstance(value, str):
        found = _LEADING_INT.match(value)
        value = found.group(1) if found else None
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number >= 1 else default


class RatingService:
    """Business rules in front of the coordinator and the rating store."""

    def __init__(self, db: AsyncSession, coordinator: RatingCoordinator = None):
        self.db = db
        self.coordinator = coordinator or RatingCoordinator(db)
        self.store = self.coordinator.store

    async def create_rating(self, payload: Payload, author_id: str, author_role: str) -> Rating:
        """
        Create a rating authored by ``author_id``.

        The rater type is derived from the author's role; any authorship
        fields present in the payload are ignored.

        Raises:
            InvalidInput: bad scores or text, or a role that cannot rate
            NotFound: the match does not exist
            Conflict: the author already rated this match
            DependencyWriteFailure: the rating was saved but propagation failed
        """
        try:
            rater_type = parse_rater_type(author_role)
        except InvalidInput:
            raise InvalidInput(f"Users with role {author_role!r} cannot submit ratings") from None

        data = _validate(RatingCreate, payload).model_dump()
        data.update(rated_by=author_id, rater_type=rater_type)
        return await self.coordinator.create(data)

    async def get_rating(self, rating_id: str) -> Rating:
        rating = await self.store.get(rating_id)
        if rating is None:
            raise NotFound("Rating not found")
        return rating

    async def get_user_ratings(
        self,
        user_id: str,
        user_type: str,
        page=1,
        limit=None,
    ) -> RatingListResponse:
        """Ratings received by ``user_id`` from the opposite role, newest first."""
        rater_type = rater_type_addressing(user_type)
        page = _positive_int(page, 1)
        limit = min(
            _positive_int(limit, settings.RATINGS_DEFAULT_PAGE_SIZE),
            settings.RATINGS_MAX_PAGE_SIZE,
        )

        total = await self.store.count_for_rated_user(user_id, rater_type)
        ratings = await self.store.list_for_rated_user(
            user_id, rater_type, skip=(page - 1) * limit, limit=limit
        )

        return RatingListResponse(
            ratings=[RatingResponse.model_validate(r) for r in ratings],
            pagination=Pagination(
                total=total,
                page=page,
                limit=limit,
                pages=math.ceil(total / limit),
            ),
        )

    async def get_user_rating_stats(self, user_id: str, user_type: str) -> RatingStatsResponse:
        """Statistics over every rating ``user_id`` received; all zeros when none."""
        rater_type = rater_type_addressing(user_type)
        ratings = await self.store.list_for_rated_user(user_id, rater_type)
        return compute_rating_stats(ratings)

    async def get_match_ratings(self, match_id: str) -> List[Rating]:
        return await self.store.list_by_match(match_id)

    async def update_rating(self, rating_id: str, payload: Payload) -> Rating:
        """Partially update a rating. Immutable fields in the payload are dropped."""
        if isinstance(payload, BaseModel):
            payload = payload.model_dump(exclude_unset=True)
        payload = {key: value for key, value in payload.items() if key not in IMMUTABLE_FIELDS}

        changes = _validate(RatingUpdate, payload).model_dump(exclude_unset=True)
        return await self.coordinator.update(rating_id, changes)

    async def delete_rating(self, rating_id: str) -> bool:
        await self.coordinator.delete(rating_id)
        return True

    async def recalculate_tutor_aggregates(self) -> RecalculateResponse:
        """Recompute every tutor profile aggregate from the stored ratings."""
        updated_count, total = await self.coordinator.recalculate_all()
        return RecalculateResponse(
            message=f"Successfully recalculated ratings for {total} tutors",
            updated_count=updated_count,
            total_tutors=total,
        )
