"""Workout performance logging for generated programs.

Two ways to log a session:
1. Progressive: start_workout_session creates a draft seeded from the
   planned workout, log_set upserts sets as they happen, and
   complete_workout_session freezes the draft.
2. One shot: mark_complete stores a finished workout in a single call.

Derived fields (total_volume, average_rpe, per-exercise average_rpe) are
recomputed on every mutation so readers always see current values.
"""

import copy
from datetime import datetime

from loguru import logger
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import flag_modified

from coachforge.core.errors import InvalidStateError
from coachforge.db.models import GeneratedProgram, WorkoutLog
from coachforge.performance import repository
from coachforge.performance.aggregation import (
    calculate_average_rpe,
    calculate_exercise_average_rpe,
    calculate_total_volume,
)
from coachforge.performance.types import ExerciseLogInput, SetInput, WorkoutFeedback, WorkoutLogInput
from coachforge.programs.repository import require_recipient_program
from coachforge.utils.timezone import to_utc, utc_now


def _planned_workout(program: GeneratedProgram, workout_index: int) -> dict:
    workouts = ((program.content or {}).get("workout_program") or {}).get("workouts") or []
    if workout_index < 0 or workout_index >= len(workouts):
        raise InvalidStateError(f"Workout {workout_index} not found in program {program.id}")
    return workouts[workout_index]


def _find_planned_exercise(planned: dict, exercise: ExerciseLogInput) -> dict | None:
    planned_exercises = planned.get("exercises") or []
    if exercise.exercise_id:
        for candidate in planned_exercises:
            if candidate.get("exercise_id") == exercise.exercise_id:
                return candidate
    for candidate in planned_exercises:
        if candidate.get("name") == exercise.name:
            return candidate
    return None


def _stored_set(workout_set: SetInput) -> dict:
    return {
        "set_number": workout_set.set_number,
        "reps": workout_set.reps or 0,
        "weight": workout_set.weight or 0,
        "duration": workout_set.duration or 0,
        "rpe": workout_set.rpe,
        "completed": workout_set.completed,
        "notes": workout_set.notes or "",
    }


def _recompute(log: WorkoutLog) -> None:
    log.total_volume = calculate_total_volume(log.exercises)
    log.average_rpe = calculate_average_rpe(log.exercises)


def _apply_feedback(log: WorkoutLog, feedback: WorkoutFeedback) -> None:
    if feedback.duration_minutes is not None:
        log.duration_minutes = feedback.duration_minutes
    if feedback.rating is not None:
        log.rating = feedback.rating
    if feedback.difficulty is not None:
        log.difficulty = feedback.difficulty
    if feedback.mood is not None:
        log.mood = feedback.mood
    if feedback.notes is not None:
        log.notes = feedback.notes
    if feedback.recovery is not None:
        log.recovery = feedback.recovery.model_dump(exclude_none=True)


def start_workout_session(
    session: Session,
    instance_id: str,
    *,
    user_id: str,
    workout_index: int,
    workout_name: str | None = None,
    date: datetime | None = None,
) -> tuple[WorkoutLog, dict]:
    """Create a draft log for a planned workout.

    Each planned exercise is copied in with an empty sets list and its
    target sets/reps/weight.

    Returns:
        Tuple of (draft log, planned workout)

    Raises:
        NotFoundError: If the program does not exist
        UnauthorizedError: If the program was not issued to user_id
        InvalidStateError: If workout_index does not name a planned workout
    """
    program = require_recipient_program(session, instance_id, user_id)
    planned = _planned_workout(program, workout_index)

    exercises = [
        {
            "exercise_id": exercise.get("exercise_id"),
            "name": exercise.get("name"),
            "sets": [],
            "target_sets": exercise.get("sets"),
            "target_reps": exercise.get("reps"),
            "target_weight": exercise.get("weight"),
            "average_rpe": 0.0,
        }
        for exercise in planned.get("exercises") or []
    ]
    log = WorkoutLog(
        instance_id=instance_id,
        user_id=user_id,
        workout_index=workout_index,
        workout_name=workout_name or planned.get("name"),
        date=to_utc(date) if date else utc_now(),
        exercises=exercises,
        total_volume=0.0,
        average_rpe=0.0,
        completed=False,
    )
    repository.add_log(session, log)

    logger.info("Workout session started", log_id=log.id, instance_id=instance_id, user_id=user_id)
    return log, planned


def log_set(
    session: Session,
    log_id: str,
    *,
    user_id: str,
    exercise_index: int,
    set_number: int,
    data: SetInput | dict,
) -> WorkoutLog:
    """Record one set on a log, replacing any set with the same number.

    Args:
        session: Database session
        log_id: Workout log (usually a draft)
        user_id: Recipient logging the set
        exercise_index: Index into the log's exercises
        set_number: Set number; an existing set with this number is replaced
        data: Reps, weight, duration, RPE and notes for the set

    Returns:
        The updated log with recomputed totals

    Raises:
        NotFoundError: If the log does not exist
        UnauthorizedError: If the log belongs to another user
        InvalidStateError: If exercise_index is out of range
    """
    log = repository.require_owned_log(session, log_id, user_id)
    values = data.model_dump() if isinstance(data, SetInput) else dict(data)
    values["set_number"] = set_number
    workout_set = SetInput.model_validate(values)

    exercises = copy.deepcopy(log.exercises or [])
    if exercise_index < 0 or exercise_index >= len(exercises):
        raise InvalidStateError(f"Exercise {exercise_index} not found in workout log {log_id}")

    exercise = exercises[exercise_index]
    stored = _stored_set(workout_set)
    stored["completed"] = True
    sets = exercise.setdefault("sets", [])
    for position, existing in enumerate(sets):
        if existing.get("set_number") == set_number:
            sets[position] = stored
            break
    else:
        sets.append(stored)
    exercise["average_rpe"] = calculate_exercise_average_rpe(sets)

    log.exercises = exercises
    flag_modified(log, "exercises")
    _recompute(log)
    session.flush()

    logger.info(f"Set logged: exercise {exercise_index}, set {set_number} for workout log {log_id}")
    return log


def mark_complete(
    session: Session,
    instance_id: str,
    *,
    user_id: str,
    workout_index: int,
    workout_data: WorkoutLogInput | dict,
) -> WorkoutLog:
    """Store a finished workout against its planned counterpart.

    Each logged exercise is matched to the planned one by exercise id,
    falling back to name, to record target sets/reps/weight.

    Args:
        session: Database session
        instance_id: Generated program ID
        user_id: Recipient the program was issued to
        workout_index: Index of the planned workout
        workout_data: Exercises, sets and session feedback

    Returns:
        Completed WorkoutLog

    Raises:
        NotFoundError: If the program does not exist
        UnauthorizedError: If the program was not issued to user_id
        InvalidStateError: If workout_index does not name a planned workout
    """
    if isinstance(workout_data, dict):
        workout_data = WorkoutLogInput.model_validate(workout_data)

    program = require_recipient_program(session, instance_id, user_id)
    planned = _planned_workout(program, workout_index)

    exercises = []
    for exercise in workout_data.exercises:
        target = _find_planned_exercise(planned, exercise) or {}
        sets = [_stored_set(s) for s in exercise.sets]
        exercises.append(
            {
                "exercise_id": exercise.exercise_id or target.get("exercise_id"),
                "name": exercise.name,
                "sets": sets,
                "target_sets": target.get("sets"),
                "target_reps": target.get("reps"),
                "target_weight": target.get("weight"),
                "average_rpe": calculate_exercise_average_rpe(sets),
            }
        )

    now = utc_now()
    log = WorkoutLog(
        instance_id=instance_id,
        user_id=user_id,
        workout_index=workout_index,
        workout_name=workout_data.workout_name or planned.get("name"),
        date=to_utc(workout_data.date) if workout_data.date else now,
        exercises=exercises,
        completed=True,
        completed_at=now,
    )
    _apply_feedback(log, workout_data)
    _recompute(log)
    repository.add_log(session, log)

    logger.info(
        "Workout completed",
        log_id=log.id,
        instance_id=instance_id,
        user_id=user_id,
        total_volume=log.total_volume,
    )
    return log


def complete_workout_session(
    session: Session,
    log_id: str,
    *,
    user_id: str,
    feedback: WorkoutFeedback | dict | None = None,
) -> WorkoutLog:
    """Freeze a draft log as completed, with optional session feedback.

    Raises:
        InvalidStateError: If the log is already completed
    """
    log = repository.require_owned_log(session, log_id, user_id)
    if log.completed:
        raise InvalidStateError(f"Workout log {log_id} is already completed")
    if isinstance(feedback, dict):
        feedback = WorkoutFeedback.model_validate(feedback)
    if feedback is not None:
        _apply_feedback(log, feedback)

    _recompute(log)
    log.completed = True
    log.completed_at = utc_now()
    session.flush()

    logger.info("Workout session completed", log_id=log_id, user_id=user_id)
    return log


def get_workout_logs(
    session: Session,
    instance_id: str,
    *,
    user_id: str,
    completed_only: bool = False,
    limit: int = 20,
    offset: int = 0,
) -> list[WorkoutLog]:
    """Return a recipient's logs for a program, newest first."""
    require_recipient_program(session, instance_id, user_id)
    return repository.list_logs(
        session,
        instance_id=instance_id,
        user_id=user_id,
        completed=True if completed_only else None,
        newest_first=True,
        limit=limit,
        offset=offset,
    )
