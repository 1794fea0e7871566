"""Volume, RPE and per-exercise trend analysis over completed logs.

All functions take logs in ascending date order.
"""

import math

from coachforge.db.models import WorkoutLog
from coachforge.progression.types import ExerciseProgression, ExerciseSession, RpeTrend, Trend, VolumeTrend
from coachforge.utils.rounding import round_half_up
from coachforge.utils.timezone import to_utc

TREND_WINDOW = 5
RECENT_RPE_WINDOW = 3
VOLUME_CHANGE_PCT = 5.0
RPE_CHANGE = 0.5
MIN_TREND_LOGS = 3


def _mean(values: list[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def volume_trend(logs: list[WorkoutLog]) -> VolumeTrend | None:
    """Compare the first and second half of the last five sessions.

    The first half takes the extra session when the window is odd. A change
    above +5% is increasing, below -5% decreasing.

    Returns:
        VolumeTrend, or None with fewer than three logs
    """
    if len(logs) < MIN_TREND_LOGS:
        return None

    recent = logs[-TREND_WINDOW:]
    volumes = [log.total_volume or 0.0 for log in recent]
    split = math.ceil(len(volumes) / 2)
    first_mean = _mean(volumes[:split])
    second_mean = _mean(volumes[split:])

    if first_mean > 0:
        percent_change = (second_mean - first_mean) / first_mean * 100
    else:
        # No baseline volume: any volume afterwards counts as a full increase
        percent_change = 100.0 if second_mean > 0 else 0.0

    if percent_change > VOLUME_CHANGE_PCT:
        trend: Trend = "increasing"
    elif percent_change < -VOLUME_CHANGE_PCT:
        trend = "decreasing"
    else:
        trend = "stable"

    return VolumeTrend(
        current=recent[-1].total_volume or 0.0,
        average=round_half_up(_mean(volumes)),
        trend=trend,
        percent_change=round_half_up(percent_change, 1),
        data_points=[(to_utc(log.date), log.total_volume or 0.0) for log in recent],
    )


def rpe_trend(logs: list[WorkoutLog]) -> RpeTrend | None:
    """Compare the mean RPE of the last three sessions with the last five.

    Returns:
        RpeTrend, or None with fewer than three logs
    """
    if len(logs) < MIN_TREND_LOGS:
        return None

    recent = logs[-TREND_WINDOW:]
    rpes = [log.average_rpe or 0.0 for log in recent]
    average = _mean(rpes)
    recent_average = _mean(rpes[-RECENT_RPE_WINDOW:])

    if recent_average > average + RPE_CHANGE:
        trend: Trend = "increasing"
    elif recent_average < average - RPE_CHANGE:
        trend = "decreasing"
    else:
        trend = "stable"

    return RpeTrend(
        current=recent[-1].average_rpe,
        average=round_half_up(average, 1),
        recent_average=round_half_up(recent_average, 1),
        trend=trend,
        data_points=[(to_utc(log.date), log.average_rpe) for log in recent],
    )


def exercise_progression(logs: list[WorkoutLog]) -> list[ExerciseProgression]:
    """Max-load progression per exercise name across the log history.

    Exercises seen in fewer than two sessions are skipped. The result is
    ranked by percentage change in max load, best first.
    """
    history: dict[str, list[ExerciseSession]] = {}
    for log in logs:
        for exercise in log.exercises or []:
            sets = exercise.get("sets") or []
            history.setdefault(exercise.get("name"), []).append(
                ExerciseSession(
                    date=to_utc(log.date),
                    max_weight=max((s.get("weight") or 0 for s in sets), default=0),
                    total_reps=sum(s.get("reps") or 0 for s in sets),
                    average_rpe=exercise.get("average_rpe"),
                )
            )

    progression = []
    for name, sessions in history.items():
        if len(sessions) < 2:
            continue
        first, last = sessions[0], sessions[-1]
        increase = last.max_weight - first.max_weight
        percent = increase / first.max_weight * 100 if first.max_weight > 0 else 0.0
        if increase > 0:
            trend = "improving"
        elif increase < 0:
            trend = "declining"
        else:
            trend = "stable"
        progression.append(
            ExerciseProgression(
                exercise=name,
                sessions=len(sessions),
                start_weight=first.max_weight,
                current_weight=last.max_weight,
                weight_increase=increase,
                weight_percent_change=round_half_up(percent, 1),
                trend=trend,
                history=sessions[-TREND_WINDOW:],
            )
        )

    progression.sort(key=lambda item: item.weight_percent_change, reverse=True)
    return progression
