"""Tests for exact and similarity template matching."""

import copy

from coachforge.templates.fingerprint import input_fingerprint
from coachforge.templates.matcher import find_match, find_similar


def _with_weeks(content: dict, weeks: int) -> dict:
    content = copy.deepcopy(content)
    content["workout_program"]["duration"]["weeks"] = weeks
    return content


def test_exact_match_found(db_session, template_factory, request_factory) -> None:
    """Test that a request hashing to a template's fingerprint matches exactly."""
    template = template_factory()

    result = find_match(db_session, request_factory(goals=["strength"]))

    assert result.match_type == "exact"
    assert result.template.id == template.id
    assert result.input_fingerprint == template.input_fingerprint
    assert result.is_hit


def test_exact_match_wins_over_better_rated_similar(db_session, template_factory, request_factory, sample_content) -> None:
    """Test that similarity search never overrides an exact hit."""
    exact = template_factory(average_rating=2.0)
    template_factory(
        request=request_factory(duration_weeks=10),
        content=_with_weeks(sample_content, 10),
        average_rating=5.0,
        times_used=50,
    )

    result = find_match(db_session, request_factory(), allow_similar=True)

    assert result.match_type == "exact"
    assert result.template.id == exact.id
    assert result.alternatives == []


def test_exact_match_prefers_rating_then_usage(db_session, template_factory, request_factory) -> None:
    template_factory(average_rating=4.0, times_used=30)
    best = template_factory(average_rating=4.5, times_used=2)
    template_factory(average_rating=4.5, times_used=1)

    result = find_match(db_session, request_factory())

    assert result.template.id == best.id


def test_archived_template_does_not_match(db_session, template_factory, request_factory) -> None:
    template = template_factory()
    template.status = "archived"
    db_session.flush()

    result = find_match(db_session, request_factory(), allow_similar=False)

    assert result.match_type == "none"
    assert result.template is None


def test_private_template_of_other_producer_is_skipped(db_session, template_factory, request_factory) -> None:
    template_factory(visibility="private", producer_id="coach-2")

    other = find_match(db_session, request_factory(), allow_similar=False, producer_id="coach-1")
    owner = find_match(db_session, request_factory(), allow_similar=False, producer_id="coach-2")

    assert other.match_type == "none"
    assert owner.match_type == "exact"


def test_similar_match_within_duration_tolerance(db_session, template_factory, request_factory, sample_content) -> None:
    """Test that a 10-week public template matches a 12-week request as similar."""
    lower = template_factory(
        request=request_factory(duration_weeks=10),
        content=_with_weeks(sample_content, 10),
        average_rating=3.0,
    )
    higher = template_factory(
        request=request_factory(duration_weeks=11),
        content=_with_weeks(sample_content, 11),
        average_rating=4.0,
    )
    request = request_factory(duration_weeks=12)

    result = find_match(db_session, request, allow_similar=True)

    assert result.match_type == "similar"
    assert result.template.id == higher.id
    assert [t.id for t in result.alternatives] == [lower.id]
    assert result.input_fingerprint == input_fingerprint(request)


def test_similar_match_disabled_returns_none(db_session, template_factory, request_factory, sample_content) -> None:
    template_factory(request=request_factory(duration_weeks=10), content=_with_weeks(sample_content, 10))

    result = find_match(db_session, request_factory(duration_weeks=12), allow_similar=False)

    assert result.match_type == "none"


def test_similar_requires_public_visibility(db_session, template_factory, request_factory, sample_content) -> None:
    template_factory(
        request=request_factory(duration_weeks=10),
        content=_with_weeks(sample_content, 10),
        visibility="private",
    )

    assert find_similar(db_session, request_factory(duration_weeks=12)) == []


def test_similar_requires_equipment_subset(db_session, template_factory, request_factory, sample_content) -> None:
    template_factory(request=request_factory(duration_weeks=10), content=_with_weeks(sample_content, 10))

    home_request = request_factory(duration_weeks=12, equipment=["dumbbells"])

    assert find_similar(db_session, home_request) == []


def test_similar_requires_goal_overlap_and_tolerance(db_session, template_factory, request_factory, sample_content) -> None:
    template_factory(request=request_factory(duration_weeks=10), content=_with_weeks(sample_content, 10))

    assert find_similar(db_session, request_factory(duration_weeks=12, goals=["endurance"])) == []
    assert find_similar(db_session, request_factory(duration_weeks=16)) == []
    assert len(find_similar(db_session, request_factory(duration_weeks=12, goals=["endurance", "strength"]))) == 1
