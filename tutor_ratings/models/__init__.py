"""Database models for the tutor rating service."""
from tutor_ratings.models.match import Match
from tutor_ratings.models.tutor_profile import TutorProfile
from tutor_ratings.models.rating import Rating, RaterType

__all__ = [
    "Match",
    "TutorProfile",
    "Rating",
    "RaterType",
]
