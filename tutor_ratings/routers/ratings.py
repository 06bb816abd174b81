"""Ratings router for parent/tutor match reviews."""
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from tutor_ratings.database import get_db
from tutor_ratings.auth.dependencies import Identity, get_current_identity, admin_required
from tutor_ratings.services.rating_service import RatingService
from tutor_ratings.schemas.ratings import (
    RatingCreate,
    RatingUpdate,
    RatingResponse,
    RatingListResponse,
    RatingStatsResponse,
    RatingDeleteResponse,
    RecalculateResponse,
)

router = APIRouter()


def get_rating_service(db: AsyncSession = Depends(get_db)) -> RatingService:
    return RatingService(db)


async def _own_rating(service: RatingService, rating_id: str, identity: Identity, action: str):
    rating = await service.get_rating(rating_id)
    if rating.rated_by != identity.user_id and not identity.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"You can only {action} your own ratings"
        )
    return rating


@router.post("/api/ratings", response_model=RatingResponse, status_code=status.HTTP_201_CREATED)
async def create_rating(
    rating_data: RatingCreate,
    identity: Identity = Depends(get_current_identity),
    service: RatingService = Depends(get_rating_service)
):
    """
    Rate the other party of a match.
    One rating per user per role per match.
    """
    return await service.create_rating(rating_data, identity.user_id, identity.role)


@router.get("/api/ratings/users/{user_id}/{user_type}", response_model=RatingListResponse)
async def get_user_ratings(
    user_id: str,
    user_type: str,
    page: Optional[str] = None,
    limit: Optional[str] = None,
    service: RatingService = Depends(get_rating_service)
):
    """Get ratings a user received (paginated, newest first)."""
    return await service.get_user_ratings(user_id, user_type, page=page, limit=limit)


@router.get("/api/ratings/stats/users/{user_id}/{user_type}", response_model=RatingStatsResponse)
async def get_user_rating_stats(
    user_id: str,
    user_type: str,
    service: RatingService = Depends(get_rating_service)
):
    """Get rating statistics for a user."""
    return await service.get_user_rating_stats(user_id, user_type)


@router.get("/api/ratings/matches/{match_id}", response_model=List[RatingResponse])
async def get_match_ratings(
    match_id: str,
    identity: Identity = Depends(get_current_identity),
    service: RatingService = Depends(get_rating_service)
):
    """Get both sides' ratings for a match."""
    return await service.get_match_ratings(match_id)


@router.get("/api/ratings/{rating_id}", response_model=RatingResponse)
async def get_rating(
    rating_id: str,
    service: RatingService = Depends(get_rating_service)
):
    """Get a single rating."""
    return await service.get_rating(rating_id)


@router.put("/api/ratings/{rating_id}", response_model=RatingResponse)
async def update_rating(
    rating_id: str,
    rating_data: RatingUpdate,
    identity: Identity = Depends(get_current_identity),
    service: RatingService = Depends(get_rating_service)
):
    """Update own rating."""
    await _own_rating(service, rating_id, identity, "update")
    return await service.update_rating(rating_id, rating_data.model_dump(exclude_unset=True))


@router.delete("/api/ratings/{rating_id}", response_model=RatingDeleteResponse)
async def delete_rating(
    rating_id: str,
    identity: Identity = Depends(get_current_identity),
    service: RatingService = Depends(get_rating_service)
):
    """Delete a rating. Author or admin."""
    await _own_rating(service, rating_id, identity, "delete")
    await service.delete_rating(rating_id)
    return RatingDeleteResponse(message="Rating deleted successfully")


@router.post("/api/admin/ratings/recalculate-all", response_model=RecalculateResponse)
async def recalculate_all_ratings(
    admin: Identity = Depends(admin_required),
    service: RatingService = Depends(get_rating_service)
):
    """
    Recalculate average ratings for all tutor profiles.
    Useful for repairing inconsistencies after a failed propagation.
    Admin only.
    """
    return await service.recalculate_tutor_aggregates()
