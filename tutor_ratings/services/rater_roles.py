"""Per-role propagation rules.

Which match fields a rating writes and whether it feeds the tutor's public
aggregate depend only on the author's role. Adding a role means adding a
row to ``RATER_ROLES``.
"""
from dataclasses import dataclass
from typing import Dict

from tutor_ratings.exceptions import InvalidInput
from tutor_ratings.models.rating import RaterType


@dataclass(frozen=True)
class RaterRole:
    rater_type: RaterType
    # Role of the party this author rates
    rates: RaterType
    match_rating_field: str
    match_review_field: str
    feeds_tutor_aggregate: bool


RATER_ROLES: Dict[RaterType, RaterRole] = {
    RaterType.PARENT: RaterRole(
        rater_type=RaterType.PARENT,
        rates=RaterType.TUTOR,
        match_rating_field="parent_rating",
        match_review_field="parent_review",
        feeds_tutor_aggregate=True,
    ),
    RaterType.TUTOR: RaterRole(
        rater_type=RaterType.TUTOR,
        rates=RaterType.PARENT,
        match_rating_field="tutor_rating",
        match_review_field="tutor_review",
        feeds_tutor_aggregate=False,
    ),
}


def parse_rater_type(value) -> RaterType:
    """Coerce *value* to a RaterType, raising InvalidInput for anything else."""
    try:
        return RaterType(value)
    except ValueError:
        raise InvalidInput(f"Invalid user type: {value!r} (expected 'tutor' or 'parent')") from None


def role_for(rater_type) -> RaterRole:
    return RATER_ROLES[parse_rater_type(rater_type)]


def rater_type_addressing(user_type) -> RaterType:
    """Return the role whose ratings are addressed to a user of *user_type*."""
    rated = parse_rater_type(user_type)
    for role in RATER_ROLES.values():
        if role.rates == rated:
            return role.rater_type
    raise InvalidInput(f"No role rates users of type {rated.value!r}")
