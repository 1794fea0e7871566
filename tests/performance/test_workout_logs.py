"""Tests for workout performance logging."""

from datetime import datetime, timezone

import pytest

from coachforge.core.errors import InvalidStateError, NotFoundError, UnauthorizedError
from coachforge.performance.workout_logs import (
    complete_workout_session,
    get_workout_logs,
    log_set,
    mark_complete,
    start_workout_session,
)

RECIPIENT = "client-1"


def test_start_session_seeds_planned_exercises(db_session, program_factory) -> None:
    program = program_factory(status="applied")

    log, planned = start_workout_session(db_session, program.id, user_id=RECIPIENT, workout_index=0)

    assert planned["name"] == "Upper A"
    assert log.completed is False
    assert log.workout_name == "Upper A"
    assert [e["name"] for e in log.exercises] == ["Bench Press", "Overhead Press"]
    bench = log.exercises[0]
    assert (bench["target_sets"], bench["target_reps"], bench["target_weight"]) == (4, 8, 60)
    assert bench["sets"] == []


def test_start_session_rejects_unknown_workout(db_session, program_factory) -> None:
    program = program_factory(status="applied")

    with pytest.raises(InvalidStateError):
        start_workout_session(db_session, program.id, user_id=RECIPIENT, workout_index=7)


def test_start_session_for_other_recipient(db_session, program_factory) -> None:
    program = program_factory(status="applied")

    with pytest.raises(UnauthorizedError):
        start_workout_session(db_session, program.id, user_id="client-2", workout_index=0)


def test_log_set_upserts_by_set_number(db_session, program_factory) -> None:
    """Test that logging the same set number replaces the earlier entry."""
    program = program_factory(status="applied")
    log, _ = start_workout_session(db_session, program.id, user_id=RECIPIENT, workout_index=0)

    log_set(db_session, log.id, user_id=RECIPIENT, exercise_index=0, set_number=1, data={"reps": 8, "weight": 60, "rpe": 7})
    log_set(db_session, log.id, user_id=RECIPIENT, exercise_index=0, set_number=2, data={"reps": 8, "weight": 60, "rpe": 8})
    log_set(
        db_session,
        log.id,
        user_id=RECIPIENT,
        exercise_index=0,
        set_number=1,
        data={"reps": 10, "weight": 60, "rpe": 9, "completed": False},
    )

    sets = log.exercises[0]["sets"]
    assert [s["set_number"] for s in sets] == [1, 2]
    assert sets[0]["reps"] == 10
    assert sets[0]["completed"] is True
    assert log.exercises[0]["average_rpe"] == pytest.approx(8.5)
    assert log.total_volume == pytest.approx(1080.0)
    assert log.average_rpe == pytest.approx(8.5)


def test_log_set_errors(db_session, program_factory) -> None:
    program = program_factory(status="applied")
    log, _ = start_workout_session(db_session, program.id, user_id=RECIPIENT, workout_index=0)

    with pytest.raises(InvalidStateError):
        log_set(db_session, log.id, user_id=RECIPIENT, exercise_index=5, set_number=1, data={"reps": 5})
    with pytest.raises(UnauthorizedError):
        log_set(db_session, log.id, user_id="client-2", exercise_index=0, set_number=1, data={"reps": 5})
    with pytest.raises(NotFoundError):
        log_set(db_session, "missing", user_id=RECIPIENT, exercise_index=0, set_number=1, data={"reps": 5})


def test_complete_session_applies_feedback(db_session, program_factory) -> None:
    program = program_factory(status="applied")
    log, _ = start_workout_session(db_session, program.id, user_id=RECIPIENT, workout_index=0)
    log_set(db_session, log.id, user_id=RECIPIENT, exercise_index=0, set_number=1, data={"reps": 8, "weight": 60, "rpe": 8})

    complete_workout_session(
        db_session,
        log.id,
        user_id=RECIPIENT,
        feedback={
            "duration_minutes": 55,
            "rating": 4,
            "difficulty": "just_right",
            "recovery": {"sleep_quality": 4, "energy": 3},
        },
    )

    assert log.completed is True
    assert log.completed_at is not None
    assert log.duration_minutes == 55
    assert log.difficulty == "just_right"
    assert log.recovery == {"sleep_quality": 4, "energy": 3}
    with pytest.raises(InvalidStateError):
        complete_workout_session(db_session, log.id, user_id=RECIPIENT)


def test_mark_complete_reconciles_with_plan(db_session, program_factory) -> None:
    """Test that logged exercises pick up targets by id, then by name."""
    program = program_factory(status="applied")

    log = mark_complete(
        db_session,
        program.id,
        user_id=RECIPIENT,
        workout_index=1,
        workout_data={
            "date": datetime(2026, 3, 4, 18, 0, tzinfo=timezone.utc),
            "rating": 5,
            "difficulty": "too_hard",
            "exercises": [
                {
                    "exercise_id": "barbell_squat",
                    "name": "Back Squat",
                    "sets": [
                        {"set_number": 1, "reps": 5, "weight": 100, "rpe": 8},
                        {"set_number": 2, "reps": 5, "weight": 100, "rpe": 9},
                    ],
                },
                {"name": "Plank", "sets": [{"set_number": 1, "duration": 60}]},
                {"name": "Farmer Carry", "sets": [{"set_number": 1, "reps": 1, "weight": 40}]},
            ],
        },
    )

    squat, plank, carry = log.exercises
    assert log.completed is True
    assert log.workout_name == "Lower A"
    assert log.total_volume == pytest.approx(1040.0)
    assert log.average_rpe == pytest.approx(8.5)
    assert (squat["target_sets"], squat["target_reps"], squat["target_weight"]) == (5, 5, 100)
    assert plank["exercise_id"] == "plank"
    assert plank["sets"][0]["duration"] == 60
    assert carry["target_sets"] is None
    assert log.difficulty == "too_hard"


def test_mark_complete_checks_recipient_and_workout(db_session, program_factory) -> None:
    program = program_factory(status="applied")

    with pytest.raises(UnauthorizedError):
        mark_complete(db_session, program.id, user_id="client-2", workout_index=0, workout_data={})
    with pytest.raises(InvalidStateError):
        mark_complete(db_session, program.id, user_id=RECIPIENT, workout_index=3, workout_data={})


def test_get_workout_logs_newest_first(db_session, program_factory, days_after) -> None:
    program = program_factory(status="applied")
    for day in (0, 2, 4):
        mark_complete(db_session, program.id, user_id=RECIPIENT, workout_index=0, workout_data={"date": days_after(day)})
    start_workout_session(db_session, program.id, user_id=RECIPIENT, workout_index=1, date=days_after(5))

    all_logs = get_workout_logs(db_session, program.id, user_id=RECIPIENT)
    completed = get_workout_logs(db_session, program.id, user_id=RECIPIENT, completed_only=True, limit=2)

    assert len(all_logs) == 4
    assert all_logs[0].completed is False
    assert len(completed) == 2
    assert all(log.completed for log in completed)
    assert completed[0].date > completed[1].date
