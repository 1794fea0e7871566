"""Pure aggregate functions over logged exercises.

Exercises and sets are plain dicts as stored in WorkoutLog.exercises.
A set without reps or weight contributes zero volume; a set without RPE is
left out of every RPE mean.
"""


def _set_volume(workout_set: dict) -> float:
    return (workout_set.get("reps") or 0) * (workout_set.get("weight") or 0)


def calculate_total_volume(exercises: list[dict]) -> float:
    """Sum of reps x weight over every set of every exercise.

    Args:
        exercises: Logged exercises, each with a sets list

    Returns:
        Total volume (0.0 for no sets)
    """
    return float(sum(_set_volume(s) for exercise in exercises for s in exercise.get("sets") or []))


def calculate_exercise_average_rpe(sets: list[dict]) -> float:
    rpes = [s["rpe"] for s in sets if s.get("rpe")]
    return sum(rpes) / len(rpes) if rpes else 0.0


def calculate_average_rpe(exercises: list[dict]) -> float:
    """Mean RPE over every set that carries one, across all exercises."""
    rpes = [s["rpe"] for exercise in exercises for s in exercise.get("sets") or [] if s.get("rpe")]
    return sum(rpes) / len(rpes) if rpes else 0.0
