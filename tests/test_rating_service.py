"""Tests for the rating service and its cross-entity consistency rules."""
import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError

from tutor_ratings.exceptions import Conflict, DependencyWriteFailure, InvalidInput, NotFound
from tutor_ratings.models.match import Match
from tutor_ratings.models.tutor_profile import TutorProfile
from tutor_ratings.services.collaborators import MatchGateway, TutorProfileGateway
from tutor_ratings.services.coordinator import RatingCoordinator
from tutor_ratings.services.rating_service import RatingService


def parent_payload(match, overall=4, **extra):
    payload = {"match_id": match.uuid, "rated_user": match.tutor_id, "overall_rating": overall}
    payload.update(extra)
    return payload


def tutor_payload(match, overall=5, **extra):
    payload = {"match_id": match.uuid, "rated_user": match.parent_id, "overall_rating": overall}
    payload.update(extra)
    return payload


async def reload(db, model, **filters):
    """Fetch a row fresh from the database."""
    query = select(model).filter_by(**filters).execution_options(populate_existing=True)
    return (await db.execute(query)).scalar_one()


@pytest.mark.asyncio
async def test_parent_rating_writes_match_summary_and_tutor_aggregate(service, test_db, make_match, make_tutor):
    match = await make_match()
    await make_tutor("T1")

    rating = await service.create_rating(
        parent_payload(match, 4, review_text="Very patient", teaching_quality=5, tags=["patient"]),
        author_id="P1",
        author_role="parent",
    )

    assert rating.rated_by == "P1"
    assert rating.rater_type == "parent"
    assert rating.created_at == rating.updated_at
    assert rating.tags == ["patient"]

    stored_match = await reload(test_db, Match, uuid=match.uuid)
    assert stored_match.parent_rating == 4
    assert stored_match.parent_review == "Very patient"
    assert stored_match.tutor_rating is None

    profile = await reload(test_db, TutorProfile, custom_id="T1")
    assert profile.average_rating == 4.0
    assert profile.rating_count == 1


@pytest.mark.asyncio
async def test_tutor_rating_writes_match_summary_only(service, test_db, make_match, make_tutor):
    match = await make_match()
    await make_tutor("T1", average_rating=3.5, rating_count=2)

    await service.create_rating(tutor_payload(match, 5, review_text="Engaged student"), "T1", "tutor")

    stored_match = await reload(test_db, Match, uuid=match.uuid)
    assert stored_match.tutor_rating == 5
    assert stored_match.tutor_review == "Engaged student"
    assert stored_match.parent_rating is None

    profile = await reload(test_db, TutorProfile, custom_id="T1")
    assert (profile.average_rating, profile.rating_count) == (3.5, 2)


@pytest.mark.asyncio
async def test_authorship_comes_from_identity_not_payload(service, make_match):
    match = await make_match()

    rating = await service.create_rating(
        parent_payload(match, rated_by="someone-else", rater_type="tutor"), "P1", "parent"
    )

    assert rating.rated_by == "P1"
    assert rating.rater_type == "parent"


@pytest.mark.asyncio
async def test_duplicate_rating_is_conflict(service, make_match):
    match = await make_match()
    await service.create_rating(parent_payload(match), "P1", "parent")

    with pytest.raises(Conflict):
        await service.create_rating(parent_payload(match, 2), "P1", "parent")

    # The other side of the same match may still rate
    await service.create_rating(tutor_payload(match), "T1", "tutor")
    assert len(await service.get_match_ratings(match.uuid)) == 2


@pytest.mark.asyncio
async def test_unique_index_closes_the_check_then_insert_race(service, coordinator, make_match, monkeypatch):
    """A create that slips past the existence check is still refused by the store."""
    match = await make_match()
    match_id = match.uuid
    duplicate = parent_payload(match, 1)
    await service.create_rating(parent_payload(match), "P1", "parent")

    async def stale_check(*args, **kwargs):
        return False

    monkeypatch.setattr(coordinator.store, "exists_for", stale_check)

    with pytest.raises(Conflict):
        await service.create_rating(duplicate, "P1", "parent")

    ratings = await service.get_match_ratings(match_id)
    assert [r.overall_rating for r in ratings] == [4]


@pytest.mark.asyncio
async def test_create_for_missing_match_is_not_found(service):
    with pytest.raises(NotFound):
        await service.create_rating(
            {"match_id": "no-such-match", "rated_user": "T1", "overall_rating": 4}, "P1", "parent"
        )


def foreign_key_failure():
    return IntegrityError("INSERT INTO ratings", {}, Exception("FOREIGN KEY constraint failed"))


@pytest.mark.asyncio
async def test_match_removed_during_create_is_not_found(service, coordinator, make_match, monkeypatch):
    match = await make_match()
    match_id = match.uuid
    payload = parent_payload(match)

    async def gone(*args, **kwargs):
        return None

    async def insert_after_match_removed(rating):
        monkeypatch.setattr(coordinator.matches, "get", gone)
        raise foreign_key_failure()

    monkeypatch.setattr(coordinator.store, "add", insert_after_match_removed)

    with pytest.raises(NotFound):
        await service.create_rating(payload, "P1", "parent")

    assert await service.get_match_ratings(match_id) == []


@pytest.mark.asyncio
async def test_other_integrity_errors_are_not_reported_as_conflict(service, coordinator, make_match, monkeypatch):
    match = await make_match()
    payload = parent_payload(match)

    async def failing_insert(rating):
        raise foreign_key_failure()

    monkeypatch.setattr(coordinator.store, "add", failing_insert)

    with pytest.raises(IntegrityError):
        await service.create_rating(payload, "P1", "parent")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "extra",
    [
        {"overall_rating": 0},
        {"overall_rating": 6},
        {"punctuality": 9},
        {"review_text": "x" * 1001},
    ],
)
async def test_invalid_payload_is_invalid_input(service, make_match, extra):
    match = await make_match()

    with pytest.raises(InvalidInput):
        await service.create_rating(parent_payload(match, **extra), "P1", "parent")

    assert await service.get_match_ratings(match.uuid) == []


@pytest.mark.asyncio
async def test_admin_cannot_author_ratings(service, make_match):
    match = await make_match()

    with pytest.raises(InvalidInput):
        await service.create_rating(parent_payload(match), "A1", "admin")


@pytest.mark.asyncio
async def test_review_text_at_limit_is_accepted(service, make_match):
    match = await make_match()

    rating = await service.create_rating(parent_payload(match, review_text="x" * 1000), "P1", "parent")

    assert len(rating.review_text) == 1000


@pytest.mark.asyncio
async def test_create_accepts_null_tags(service, make_match):
    match = await make_match()

    rating = await service.create_rating(parent_payload(match, tags=None), "P1", "parent")

    assert rating.tags == []


@pytest.mark.asyncio
async def test_aggregate_follows_create_create_delete(service, test_db, make_match, make_tutor):
    await make_tutor("T1")
    m1 = await make_match(parent_id="P1", tutor_id="T1")
    m2 = await make_match(parent_id="P2", tutor_id="T1")

    first = await service.create_rating(parent_payload(m1, 4), "P1", "parent")
    profile = await reload(test_db, TutorProfile, custom_id="T1")
    assert (profile.average_rating, profile.rating_count) == (4.0, 1)

    await service.create_rating(parent_payload(m2, 2), "P2", "parent")
    profile = await reload(test_db, TutorProfile, custom_id="T1")
    assert (profile.average_rating, profile.rating_count) == (3.0, 2)

    await service.delete_rating(first.uuid)
    profile = await reload(test_db, TutorProfile, custom_id="T1")
    assert (profile.average_rating, profile.rating_count) == (2.0, 1)


@pytest.mark.asyncio
async def test_update_overall_recomputes_aggregate_and_match(service, test_db, make_match, make_tutor, clock):
    await make_tutor("T1")
    m1 = await make_match(parent_id="P1")
    m2 = await make_match(parent_id="P2")
    rating = await service.create_rating(parent_payload(m1, 4, review_text="Good"), "P1", "parent")
    await service.create_rating(parent_payload(m2, 5), "P2", "parent")
    created_at = rating.created_at

    updated = await service.update_rating(rating.uuid, {"overall_rating": 1})

    assert updated.overall_rating == 1
    assert updated.review_text == "Good"
    assert updated.created_at == created_at
    assert updated.updated_at > created_at

    profile = await reload(test_db, TutorProfile, custom_id="T1")
    assert (profile.average_rating, profile.rating_count) == (3.0, 2)

    stored_match = await reload(test_db, Match, uuid=m1.uuid)
    assert (stored_match.parent_rating, stored_match.parent_review) == (1, "Good")


@pytest.mark.asyncio
async def test_update_propagates_new_review_text_with_overall(service, test_db, make_match):
    match = await make_match()
    rating = await service.create_rating(tutor_payload(match, 3, review_text="Quiet"), "T1", "tutor")

    await service.update_rating(rating.uuid, {"overall_rating": 4, "review_text": "Opening up"})

    stored_match = await reload(test_db, Match, uuid=match.uuid)
    assert (stored_match.tutor_rating, stored_match.tutor_review) == (4, "Opening up")


@pytest.mark.asyncio
async def test_update_without_overall_does_not_propagate(service, test_db, make_match, make_tutor):
    await make_tutor("T1")
    match = await make_match()
    rating = await service.create_rating(parent_payload(match, 4, review_text="Good"), "P1", "parent")

    updated = await service.update_rating(rating.uuid, {"review_text": "Great", "communication": 5})

    assert updated.review_text == "Great"
    assert updated.communication == 5
    stored_match = await reload(test_db, Match, uuid=match.uuid)
    assert stored_match.parent_review == "Good"


@pytest.mark.asyncio
async def test_update_ignores_immutable_fields(service, make_match):
    match = await make_match()
    other = await make_match(parent_id="P7", tutor_id="T7")
    rating = await service.create_rating(parent_payload(match, 4), "P1", "parent")
    created_at = rating.created_at

    updated = await service.update_rating(rating.uuid, {
        "match_id": other.uuid,
        "rated_by": "P7",
        "rater_type": "tutor",
        "rated_user": "T7",
        "created_at": "2020-01-01T00:00:00",
        "punctuality": 2,
        "tags": ["late"],
    })

    assert updated.match_id == match.uuid
    assert updated.rated_by == "P1"
    assert updated.rater_type == "parent"
    assert updated.rated_user == "T1"
    assert updated.created_at == created_at
    assert updated.punctuality == 2
    assert updated.tags == ["late"]


@pytest.mark.asyncio
async def test_update_missing_rating_is_not_found(service):
    with pytest.raises(NotFound):
        await service.update_rating("missing", {"overall_rating": 3})


@pytest.mark.asyncio
async def test_update_out_of_range_is_invalid_input(service, make_match):
    match = await make_match()
    rating = await service.create_rating(parent_payload(match), "P1", "parent")

    with pytest.raises(InvalidInput):
        await service.update_rating(rating.uuid, {"overall_rating": 7})


@pytest.mark.asyncio
async def test_delete_clears_match_summary(service, test_db, make_match):
    match = await make_match()
    rating = await service.create_rating(tutor_payload(match, 5, review_text="Great kid"), "T1", "tutor")

    assert await service.delete_rating(rating.uuid) is True

    stored_match = await reload(test_db, Match, uuid=match.uuid)
    assert stored_match.tutor_rating is None
    assert stored_match.tutor_review is None
    assert await service.get_match_ratings(match.uuid) == []


@pytest.mark.asyncio
async def test_delete_missing_rating_is_not_found(service):
    with pytest.raises(NotFound):
        await service.delete_rating("missing")


@pytest.mark.asyncio
async def test_deleting_last_parent_rating_resets_aggregate(service, test_db, make_match, make_tutor):
    await make_tutor("T1")
    match = await make_match()
    rating = await service.create_rating(parent_payload(match, 5), "P1", "parent")

    await service.delete_rating(rating.uuid)

    profile = await reload(test_db, TutorProfile, custom_id="T1")
    assert (profile.average_rating, profile.rating_count) == (0.0, 0)


@pytest.mark.asyncio
async def test_deleting_last_parent_rating_can_keep_aggregate(test_db, clock, make_match, make_tutor):
    service = RatingService(test_db, RatingCoordinator(test_db, clock=clock, reset_on_empty=False))
    await make_tutor("T1")
    match = await make_match()
    rating = await service.create_rating(parent_payload(match, 5), "P1", "parent")

    await service.delete_rating(rating.uuid)

    profile = await reload(test_db, TutorProfile, custom_id="T1")
    assert (profile.average_rating, profile.rating_count) == (5.0, 1)


@pytest.mark.asyncio
async def test_missing_tutor_profile_does_not_fail_create(service, test_db, make_match):
    match = await make_match(tutor_id="T-unknown")

    rating = await service.create_rating(parent_payload(match, 3), "P1", "parent")

    assert rating.overall_rating == 3
    stored_match = await reload(test_db, Match, uuid=match.uuid)
    assert stored_match.parent_rating == 3


class BrokenProfiles(TutorProfileGateway):
    async def set_aggregate(self, tutor_id, average_rating, rating_count):
        raise OperationalError("UPDATE tutor_profiles", {}, Exception("connection lost"))


@pytest.mark.asyncio
async def test_propagation_failure_keeps_rating_and_reports_error(test_db, clock, make_match, make_tutor):
    await make_tutor("T1")
    match = await make_match()
    payload = parent_payload(match, 4)
    coordinator = RatingCoordinator(test_db, profiles=BrokenProfiles(test_db), clock=clock)
    service = RatingService(test_db, coordinator)

    with pytest.raises(DependencyWriteFailure) as exc_info:
        await service.create_rating(payload, "P1", "parent")

    rating_id = exc_info.value.rating_id
    assert rating_id is not None
    assert (await service.get_rating(rating_id)).overall_rating == 4

    # Retrying the create is refused by the uniqueness rule; the repair job fixes the aggregate.
    with pytest.raises(Conflict):
        await service.create_rating(payload, "P1", "parent")

    repaired = RatingService(test_db, RatingCoordinator(test_db, clock=clock))
    result = await repaired.recalculate_tutor_aggregates()
    assert result.updated_count == 1
    assert result.total_tutors == 1
    profile = await reload(test_db, TutorProfile, custom_id="T1")
    assert (profile.average_rating, profile.rating_count) == (4.0, 1)


class BrokenMatches(MatchGateway):
    async def update_fields(self, match_id, fields):
        raise OperationalError("UPDATE matches", {}, Exception("connection lost"))


@pytest.mark.asyncio
async def test_match_write_failure_on_update_keeps_new_rating(service, test_db, clock, make_match):
    match = await make_match()
    rating = await service.create_rating(parent_payload(match, 4), "P1", "parent")
    rating_id = rating.uuid
    broken = RatingService(test_db, RatingCoordinator(test_db, matches=BrokenMatches(test_db), clock=clock))

    with pytest.raises(DependencyWriteFailure) as exc_info:
        await broken.update_rating(rating_id, {"overall_rating": 2})

    assert exc_info.value.rating_id == rating_id
    assert (await service.get_rating(rating_id)).overall_rating == 2


@pytest.mark.asyncio
async def test_match_write_failure_on_delete_keeps_rating_deleted(service, test_db, clock, make_match):
    match = await make_match()
    match_id = match.uuid
    rating = await service.create_rating(parent_payload(match, 4), "P1", "parent")
    rating_id = rating.uuid
    broken = RatingService(test_db, RatingCoordinator(test_db, matches=BrokenMatches(test_db), clock=clock))

    with pytest.raises(DependencyWriteFailure) as exc_info:
        await broken.delete_rating(rating_id)

    assert exc_info.value.rating_id == rating_id
    with pytest.raises(NotFound):
        await service.get_rating(rating_id)
    assert await service.get_match_ratings(match_id) == []


@pytest.mark.asyncio
async def test_get_user_ratings_returns_opposite_role_newest_first(service, make_match):
    for i in range(3):
        match = await make_match(parent_id=f"P{i}", tutor_id="T1")
        await service.create_rating(parent_payload(match, i + 3), f"P{i}", "parent")
        await service.create_rating(tutor_payload(match, 2), "T1", "tutor")

    result = await service.get_user_ratings("T1", "tutor", page=1, limit=2)

    assert [r.overall_rating for r in result.ratings] == [5, 4]
    assert all(r.rater_type == "parent" for r in result.ratings)
    assert result.pagination.model_dump() == {"total": 3, "page": 1, "limit": 2, "pages": 2}

    last_page = await service.get_user_ratings("T1", "tutor", page=2, limit=2)
    assert [r.overall_rating for r in last_page.ratings] == [3]

    received_by_parent = await service.get_user_ratings("P0", "parent")
    assert received_by_parent.pagination.total == 1
    assert received_by_parent.ratings[0].rater_type == "tutor"


@pytest.mark.asyncio
async def test_get_user_ratings_coerces_page_and_limit(service):
    result = await service.get_user_ratings("T1", "tutor", page=0, limit=-5)

    assert result.ratings == []
    assert result.pagination.model_dump() == {"total": 0, "page": 1, "limit": 10, "pages": 0}

    capped = await service.get_user_ratings("T1", "tutor", page="2", limit=10_000)
    assert capped.pagination.page == 2
    assert capped.pagination.limit == 100


@pytest.mark.asyncio
async def test_unknown_user_type_is_invalid_input(service):
    with pytest.raises(InvalidInput):
        await service.get_user_ratings("T1", "student")

    with pytest.raises(InvalidInput):
        await service.get_user_rating_stats("T1", "admin")


@pytest.mark.asyncio
async def test_user_rating_stats(service, make_match):
    m1 = await make_match(parent_id="P1")
    m2 = await make_match(parent_id="P2")
    m3 = await make_match(parent_id="P3")
    await service.create_rating(parent_payload(m1, 5, teaching_quality=4, tags=["patient", "fun"]), "P1", "parent")
    await service.create_rating(parent_payload(m2, 4, tags=["patient", "fun"]), "P2", "parent")
    await service.create_rating(parent_payload(m3, 3, teaching_quality=5, tags=["pro"]), "P3", "parent")

    stats = await service.get_user_rating_stats("T1", "tutor")

    assert stats.total_ratings == 3
    assert stats.average_rating == pytest.approx(4.0)
    assert stats.dimension_stats.teaching_quality == pytest.approx(4.5)
    assert stats.dimension_stats.communication == 0
    assert [(t.tag, t.count) for t in stats.common_tags] == [("patient", 2), ("fun", 2), ("pro", 1)]


@pytest.mark.asyncio
async def test_user_rating_stats_empty(service):
    stats = await service.get_user_rating_stats("nobody", "tutor")

    assert stats.average_rating == 0
    assert stats.total_ratings == 0
    assert stats.common_tags == []
    assert set(stats.dimension_stats.model_dump().values()) == {0}


@pytest.mark.asyncio
async def test_get_rating_missing_is_not_found(service):
    with pytest.raises(NotFound):
        await service.get_rating("missing")
