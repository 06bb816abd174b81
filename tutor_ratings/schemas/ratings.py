"""Schemas for rating endpoints."""
from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, Field
from tutor_ratings.config import settings
from tutor_ratings.models.rating import RaterType

Score = Optional[int]


class RatingCreate(BaseModel):
    """Schema for creating a rating.

    Authorship (``rated_by`` / ``rater_type``) is never read from the body;
    it is taken from the caller's resolved identity.
    """

    match_id: str = Field(..., min_length=1, description="Match being rated")
    rated_user: str = Field(..., min_length=1, description="Party being rated")
    overall_rating: int = Field(..., ge=1, le=5, description="Overall score 1-5")
    teaching_quality: Score = Field(None, ge=1, le=5)
    classroom_performance: Score = Field(None, ge=1, le=5)
    student_progress: Score = Field(None, ge=1, le=5)
    communication: Score = Field(None, ge=1, le=5)
    punctuality: Score = Field(None, ge=1, le=5)
    review_text: Optional[str] = Field(None, max_length=settings.REVIEW_MAX_LENGTH, description="Optional review text")
    tags: Optional[List[str]] = Field(default_factory=list)


class RatingUpdate(BaseModel):
    """Schema for a partial rating update. Unknown and immutable keys are ignored."""

    overall_rating: Score = Field(None, ge=1, le=5)
    teaching_quality: Score = Field(None, ge=1, le=5)
    classroom_performance: Score = Field(None, ge=1, le=5)
    student_progress: Score = Field(None, ge=1, le=5)
    communication: Score = Field(None, ge=1, le=5)
    punctuality: Score = Field(None, ge=1, le=5)
    review_text: Optional[str] = Field(None, max_length=settings.REVIEW_MAX_LENGTH)
    tags: Optional[List[str]] = None


class RatingResponse(BaseModel):
    """Schema for rating response."""

    uuid: str
    match_id: str
    rated_by: str
    rater_type: RaterType
    rated_user: str
    overall_rating: int
    teaching_quality: Score = None
    classroom_performance: Score = None
    student_progress: Score = None
    communication: Score = None
    punctuality: Score = None
    review_text: Optional[str] = None
    tags: List[str] = []
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class Pagination(BaseModel):
    """Pagination metadata; ``pages`` is ``ceil(total / limit)``."""

    total: int
    page: int
    limit: int
    pages: int


class RatingListResponse(BaseModel):
    """Schema for paginated rating list."""

    ratings: List[RatingResponse]
    pagination: Pagination


class DimensionStats(BaseModel):
    """Per-dimension averages; 0 where no rating supplies the dimension."""

    teaching_quality: float = 0
    classroom_performance: float = 0
    student_progress: float = 0
    communication: float = 0
    punctuality: float = 0


class TagCount(BaseModel):
    tag: str
    count: int


class RatingStatsResponse(BaseModel):
    """Aggregate statistics over the ratings a user received."""

    average_rating: float = 0
    total_ratings: int = 0
    dimension_stats: DimensionStats = Field(default_factory=DimensionStats)
    common_tags: List[TagCount] = []


class RatingDeleteResponse(BaseModel):
    status: str = "success"
    message: str


class RecalculateResponse(BaseModel):
    message: str
    updated_count: int
    total_tutors: int
