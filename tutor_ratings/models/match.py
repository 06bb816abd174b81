"""Match model (only the fields the rating engine reads or writes)."""
from datetime import datetime
from uuid import uuid4
from sqlalchemy import String, Integer, DateTime, Text, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship
from tutor_ratings.database import Base


class Match(Base):
    """A parent/tutor pairing that can be rated by both sides."""

    __tablename__ = "matches"

    # Primary key
    uuid: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))

    # Parties
    parent_id: Mapped[str] = mapped_column(String(64), nullable=False)
    tutor_id: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="pending")

    # Rating summary, written by the rating engine only
    parent_rating: Mapped[int | None] = mapped_column(Integer, nullable=True)
    parent_review: Mapped[str | None] = mapped_column(Text, nullable=True)
    tutor_rating: Mapped[int | None] = mapped_column(Integer, nullable=True)
    tutor_review: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    ratings: Mapped[list["Rating"]] = relationship("Rating", back_populates="match")

    # Indexes
    __table_args__ = (
        Index("idx_match_parent_id", "parent_id"),
        Index("idx_match_tutor_id", "tutor_id"),
    )

    def __repr__(self) -> str:
        return f"<Match(uuid={self.uuid}, parent_id={self.parent_id}, tutor_id={self.tutor_id}, status={self.status})>"
