"""Tests for review, approval, application and archival of programs."""

from datetime import date

import pytest

from coachforge.core.errors import InvalidStateError, UnauthorizedError
from coachforge.db.models import AssignedPlan
from coachforge.programs.lifecycle import (
    apply_generated_program,
    approve_program,
    archive_program,
    mark_generated,
    rate_program,
    reject_program,
    review_program,
)

OWNER = "coach-1"


def test_review_approve_apply(db_session, program_factory) -> None:
    """Test the full path from generated to applied with plan references."""
    program = program_factory(status="generated")

    review_program(db_session, program.id, actor_id=OWNER, notes="Looks solid")
    approve_program(db_session, program.id, actor_id=OWNER)
    apply_generated_program(db_session, program.id, actor_id=OWNER, start_date=date(2026, 3, 2))

    assert program.status == "applied"
    assert program.review_notes == "Looks solid"
    assert program.approved_by == OWNER
    assert program.applied_by == OWNER
    assert program.applied_at is not None

    workout_plan = db_session.get(AssignedPlan, program.program_ref)
    meal_plan = db_session.get(AssignedPlan, program.meal_plan_ref)
    assert workout_plan.kind == "program"
    assert workout_plan.name == "Strength Builder"
    assert workout_plan.recipient_id == program.recipient_id
    assert workout_plan.start_date == date(2026, 3, 2)
    assert meal_plan.kind == "meal_plan"
    assert meal_plan.payload["daily_targets"]["calories"] == 2500


def test_apply_workout_only_program_skips_meal_plan(db_session, program_factory, sample_content) -> None:
    program = program_factory(status="approved", content={"workout_program": sample_content["workout_program"]})

    apply_generated_program(db_session, program.id, actor_id=OWNER)

    assert program.program_ref is not None
    assert program.meal_plan_ref is None


def test_apply_requires_approval(db_session, program_factory) -> None:
    program = program_factory(status="reviewed")

    with pytest.raises(InvalidStateError):
        apply_generated_program(db_session, program.id, actor_id=OWNER)
    assert db_session.query(AssignedPlan).count() == 0


def test_approve_requires_review(db_session, program_factory) -> None:
    program = program_factory(status="generated")

    with pytest.raises(InvalidStateError):
        approve_program(db_session, program.id, actor_id=OWNER)


def test_reject_then_archive(db_session, program_factory) -> None:
    program = program_factory(status="reviewed")

    reject_program(db_session, program.id, actor_id=OWNER, reason="Too much volume")
    archive_program(db_session, program.id, actor_id=OWNER)

    assert program.status == "archived"
    assert program.review_notes == "Too much volume"
    assert program.archived_at is not None
    with pytest.raises(InvalidStateError):
        archive_program(db_session, program.id, actor_id=OWNER)


def test_lifecycle_actions_require_owner(db_session, program_factory) -> None:
    program = program_factory(status="generated")

    with pytest.raises(UnauthorizedError):
        review_program(db_session, program.id, actor_id="coach-2")


def test_mark_generated_requires_content(db_session, program_factory) -> None:
    program = program_factory(status="generating", content={})

    with pytest.raises(InvalidStateError):
        mark_generated(program, {})

    mark_generated(program, {"workout_program": {"name": "Plan"}}, ai_metadata={"model": "gpt-4o"})
    assert program.status == "generated"
    assert program.ai_metadata == {"model": "gpt-4o"}


def test_rate_program_by_producer_and_recipient(db_session, program_factory) -> None:
    program = program_factory()

    rate_program(db_session, program.id, actor_id="coach-1", rating=4)
    rate_program(db_session, program.id, actor_id="client-1", rating=5, feedback="Great plan")

    assert program.quality == {"coach_rating": 4, "client_rating": 5, "feedback": "Great plan"}


def test_rate_program_rejects_strangers_and_bad_scores(db_session, program_factory) -> None:
    program = program_factory()

    with pytest.raises(UnauthorizedError):
        rate_program(db_session, program.id, actor_id="someone-else", rating=3)
    with pytest.raises(InvalidStateError):
        rate_program(db_session, program.id, actor_id="coach-1", rating=0)
