"""Tutor profile model (aggregate rating fields)."""
from datetime import datetime
from uuid import uuid4
from sqlalchemy import String, Integer, Float, DateTime
from sqlalchemy.orm import Mapped, mapped_column
from tutor_ratings.database import Base


class TutorProfile(Base):
    """Public tutor profile carrying the parent-rating aggregate."""

    __tablename__ = "tutor_profiles"

    # Primary key
    uuid: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))

    # Public tutor identifier, the value stored in Rating.rated_user
    custom_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    display_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Aggregate
    average_rating: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    rating_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self) -> str:
        return (
            f"<TutorProfile(custom_id={self.custom_id}, average_rating={self.average_rating}, "
            f"rating_count={self.rating_count})>"
        )
