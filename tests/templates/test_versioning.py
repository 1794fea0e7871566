"""Tests for template version chains."""

import pytest
from sqlalchemy import func, select

from coachforge.core.errors import ConflictError, InvalidStateError, UnauthorizedError
from coachforge.db.models import ProgramTemplate
from coachforge.templates.matcher import find_match
from coachforge.templates.versioning import (
    archive_old_versions,
    compare_versions,
    create_new_version,
    get_active_version,
    get_history,
    rollback_to_version,
)

OWNER = "coach-1"


def _latest_count(session, chain_root_id: str) -> int:
    query = (
        select(func.count())
        .select_from(ProgramTemplate)
        .where(ProgramTemplate.chain_root_id == chain_root_id, ProgramTemplate.is_latest_version.is_(True))
    )
    return session.execute(query).scalar_one()


def test_new_version_increments_and_moves_latest_flag(db_session, template_factory) -> None:
    """Test that a new version is parent + 1 and the only latest version."""
    root = template_factory()

    v2 = create_new_version(db_session, root.id, {"name": "Strength Builder v2"}, actor_id=OWNER)

    assert v2.version == 2
    assert v2.parent_id == root.id
    assert v2.chain_root_id == root.id
    assert v2.derived_from_id == root.id
    assert v2.name == "Strength Builder v2"
    assert v2.is_latest_version is True
    assert root.is_latest_version is False
    assert _latest_count(db_session, root.id) == 1


def test_new_version_resets_counters(db_session, template_factory) -> None:
    root = template_factory(times_used=12, average_rating=4.5)

    v2 = create_new_version(db_session, root.id, {"description": "Tweaked"}, actor_id=OWNER)

    assert v2.times_used == 0
    assert v2.average_rating == 0.0
    assert v2.rating_count == 0


def test_every_version_points_at_the_chain_root(db_session, template_factory) -> None:
    root = template_factory()
    v2 = create_new_version(db_session, root.id, {"name": "v2"}, actor_id=OWNER)

    v3 = create_new_version(db_session, v2.id, {"name": "v3"}, actor_id=OWNER)

    assert v3.version == 3
    assert v3.parent_id == root.id
    assert v3.derived_from_id == v2.id


def test_history_is_strictly_descending(db_session, template_factory) -> None:
    root = template_factory()
    create_new_version(db_session, root.id, {"name": "v2"}, actor_id=OWNER)
    create_new_version(db_session, root.id, {"name": "v3"}, actor_id=OWNER)

    versions = [template.version for template in get_history(db_session, root.id)]

    assert versions == [3, 2, 1]


def test_content_update_recomputes_content_fingerprint(db_session, template_factory) -> None:
    root = template_factory()
    content = dict(root.content)
    content["workout_program"] = {**content["workout_program"], "name": "Renamed Program"}

    v2 = create_new_version(db_session, root.id, {"content": content}, actor_id=OWNER)

    assert v2.content_fingerprint != root.content_fingerprint
    assert v2.input_fingerprint == root.input_fingerprint


def test_characteristics_update_refreshes_input_fingerprint(db_session, template_factory, request_factory) -> None:
    """Test that exact matching follows the facets of the new latest version."""
    root = template_factory()
    characteristics = {**root.characteristics, "experience_level": "advanced", "duration": {"weeks": 4, "days": 28}}

    v2 = create_new_version(db_session, root.id, {"characteristics": characteristics}, actor_id=OWNER)

    assert v2.input_snapshot["experience_level"] == "advanced"
    assert v2.input_snapshot["duration"] == 4
    assert v2.input_fingerprint != root.input_fingerprint
    assert find_match(db_session, request_factory()).match_type == "none"
    advanced = find_match(db_session, request_factory(experience_level="advanced", duration_weeks=4))
    assert advanced.match_type == "exact"
    assert advanced.template.id == v2.id


def test_rollback_keeps_single_latest_version(db_session, template_factory) -> None:
    """Test that rollback moves the flag without deleting any version."""
    root = template_factory()
    v2 = create_new_version(db_session, root.id, {"name": "v2"}, actor_id=OWNER)
    v3 = create_new_version(db_session, root.id, {"name": "v3"}, actor_id=OWNER)

    rolled = rollback_to_version(db_session, root.id, actor_id=OWNER)

    assert rolled.id == root.id
    assert root.is_latest_version is True
    assert v2.is_latest_version is False
    assert v3.is_latest_version is False
    assert _latest_count(db_session, root.id) == 1
    assert len(get_history(db_session, root.id)) == 3
    assert get_active_version(db_session, v3.id).id == root.id


def test_version_after_rollback_takes_next_free_number(db_session, template_factory) -> None:
    root = template_factory()
    create_new_version(db_session, root.id, {"name": "v2"}, actor_id=OWNER)
    rollback_to_version(db_session, root.id, actor_id=OWNER)

    v3 = create_new_version(db_session, root.id, {"name": "from v1"}, actor_id=OWNER)

    assert v3.version == 3
    assert v3.derived_from_id == root.id
    assert _latest_count(db_session, root.id) == 1


def test_stale_expected_version_conflicts(db_session, template_factory) -> None:
    root = template_factory()
    create_new_version(db_session, root.id, {"name": "v2"}, actor_id=OWNER, expected_version=1)

    with pytest.raises(ConflictError):
        create_new_version(db_session, root.id, {"name": "lost update"}, actor_id=OWNER, expected_version=1)

    assert [t.version for t in get_history(db_session, root.id)] == [2, 1]


def test_only_owner_can_change_the_chain(db_session, template_factory) -> None:
    root = template_factory()
    create_new_version(db_session, root.id, {"name": "v2"}, actor_id=OWNER)

    with pytest.raises(UnauthorizedError):
        create_new_version(db_session, root.id, {"name": "hijack"}, actor_id="coach-2")
    with pytest.raises(UnauthorizedError):
        rollback_to_version(db_session, root.id, actor_id="coach-2")
    with pytest.raises(UnauthorizedError):
        archive_old_versions(db_session, root.id, actor_id="coach-2", keep=0)
    assert root.status == "active"
    assert root.is_latest_version is False


def test_rollback_reactivates_archived_version(db_session, template_factory) -> None:
    root = template_factory()
    for index in range(3):
        create_new_version(db_session, root.id, {"name": f"v{index + 2}"}, actor_id=OWNER)
    archive_old_versions(db_session, root.id, actor_id=OWNER, keep=1)
    assert root.status == "archived"

    rollback_to_version(db_session, root.id, actor_id=OWNER)

    assert root.status == "active"
    assert root.archived_reason is None
    assert root.is_latest_version is True


def test_archive_old_versions_keeps_latest_and_recent(db_session, template_factory) -> None:
    root = template_factory()
    for index in range(3):
        create_new_version(db_session, root.id, {"name": f"v{index + 2}"}, actor_id=OWNER)

    archived = archive_old_versions(db_session, root.id, actor_id=OWNER, keep=1)

    statuses = {t.version: (t.status, t.archived_reason) for t in get_history(db_session, root.id)}
    assert archived == 2
    assert statuses[4] == ("active", None)
    assert statuses[3] == ("active", None)
    assert statuses[2] == ("archived", "superseded")
    assert statuses[1] == ("archived", "superseded")
    assert archive_old_versions(db_session, root.id, actor_id=OWNER, keep=1) == 0


def test_compare_versions_reports_changes(db_session, template_factory) -> None:
    root = template_factory()
    content = dict(root.content)
    workout_program = dict(content["workout_program"])
    workout_program["workouts"] = workout_program["workouts"][:1]
    content["workout_program"] = workout_program
    v2 = create_new_version(db_session, root.id, {"name": "Short", "content": content}, actor_id=OWNER)

    comparison = compare_versions(db_session, root.id, v2.id)

    assert comparison.name_changed is True
    assert comparison.description_changed is False
    assert comparison.content_changed is True
    assert comparison.workouts_changed is True
    assert comparison.first.workout_count == 2
    assert comparison.second.workout_count == 1
    assert "name" in comparison.changed_fields
    assert "content" in comparison.changed_fields


def test_compare_versions_rejects_different_chains(db_session, template_factory) -> None:
    first = template_factory()
    second = template_factory()

    with pytest.raises(InvalidStateError):
        compare_versions(db_session, first.id, second.id)
