"""Rating model for parent/tutor match reviews."""
import enum
from datetime import datetime
from uuid import uuid4
from sqlalchemy import String, Integer, DateTime, Text, JSON, ForeignKey, Index, UniqueConstraint, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from tutor_ratings.database import Base


class RaterType(str, enum.Enum):
    """Role of the party that authored a rating."""

    PARENT = "parent"
    TUTOR = "tutor"


DIMENSIONS = (
    "teaching_quality",
    "classroom_performance",
    "student_progress",
    "communication",
    "punctuality",
)

IMMUTABLE_FIELDS = frozenset({"match_id", "rated_by", "rater_type", "rated_user", "created_at"})


def _score_check(column: str) -> CheckConstraint:
    return CheckConstraint(
        f"{column} IS NULL OR ({column} >= 1 AND {column} <= 5)",
        name=f"ck_rating_{column}_range",
    )


class Rating(Base):
    """One party's evaluation of the other party for a match."""

    __tablename__ = "ratings"

    # Primary key
    uuid: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))

    # Authorship
    match_id: Mapped[str] = mapped_column(String(36), ForeignKey("matches.uuid"), nullable=False)
    rated_by: Mapped[str] = mapped_column(String(64), nullable=False)
    rater_type: Mapped[str] = mapped_column(String(16), nullable=False)
    rated_user: Mapped[str] = mapped_column(String(64), nullable=False)

    # Scores
    overall_rating: Mapped[int] = mapped_column(Integer, nullable=False)
    teaching_quality: Mapped[int | None] = mapped_column(Integer, nullable=True)
    classroom_performance: Mapped[int | None] = mapped_column(Integer, nullable=True)
    student_progress: Mapped[int | None] = mapped_column(Integer, nullable=True)
    communication: Mapped[int | None] = mapped_column(Integer, nullable=True)
    punctuality: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Review
    review_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    tags: Mapped[list] = mapped_column(JSON, default=list, nullable=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    # Relationships
    match: Mapped["Match"] = relationship("Match", back_populates="ratings", foreign_keys=[match_id])

    # Constraints
    __table_args__ = (
        UniqueConstraint("match_id", "rated_by", "rater_type", name="uq_rating_match_rater"),
        CheckConstraint("rater_type IN ('parent', 'tutor')", name="ck_rating_rater_type"),
        CheckConstraint("overall_rating >= 1 AND overall_rating <= 5", name="ck_rating_overall_range"),
        *(_score_check(dimension) for dimension in DIMENSIONS),
        Index("idx_rating_match_id", "match_id"),
        Index("idx_rating_rated_user", "rated_user", "rater_type", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<Rating(uuid={self.uuid}, match_id={self.match_id}, rated_by={self.rated_by}, "
            f"rater_type={self.rater_type}, overall_rating={self.overall_rating})>"
        )
