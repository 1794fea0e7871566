"""Deload recommendation from a program's deload protocol and recent logs.

Trigger conditions:
- high_avg_rpe: mean average RPE of the most recent sessions (default 3)
  is at or above the threshold.
- consecutive_failed_workouts: at least threshold of the most recent
  sessions (window defaults to the threshold) were marked too_hard.
- poor_recovery: weighted recovery score (1-5, soreness inverted) of the
  most recent sessions (default 3) is below the threshold.

A scheduled deload for the current program week also counts.
"""

import math
from datetime import datetime

from loguru import logger

from coachforge.db.models import WorkoutLog
from coachforge.programs.types import DeloadProtocol, DeloadTrigger
from coachforge.progression.compliance import week_number
from coachforge.progression.types import DeloadRecommendation, FiredTrigger
from coachforge.utils.rounding import round_half_up

DEFAULT_RPE_WINDOW = 3
DEFAULT_RECOVERY_WINDOW = 3
RECOVERY_METRICS = ("sleep_quality", "soreness_level", "energy")
# soreness is reported 1 (none) to 5 (severe); the score wants higher = better
INVERTED_RECOVERY_METRICS = frozenset({"soreness_level"})

DELOAD_ADVICE = "Consider taking a deload week to recover"
NO_DELOAD_ADVICE = "No deload needed at this time"


def _high_avg_rpe(trigger: DeloadTrigger, logs: list[WorkoutLog]) -> str | None:
    window = trigger.window or DEFAULT_RPE_WINDOW
    if len(logs) < window:
        return None
    recent = logs[-window:]
    average = round_half_up(sum(log.average_rpe or 0 for log in recent) / len(recent), 1)
    if average >= trigger.threshold:
        return f"Recent average RPE ({average}) exceeds threshold ({trigger.threshold})"
    return None


def _consecutive_failed(trigger: DeloadTrigger, logs: list[WorkoutLog]) -> str | None:
    needed = math.ceil(trigger.threshold)
    window = trigger.window or needed
    if needed <= 0:
        return None
    failed = sum(1 for log in logs[-window:] if log.difficulty == "too_hard")
    if failed >= needed:
        return f"{failed} of the last {min(window, len(logs))} workouts marked as too hard"
    return None


def recovery_score(recovery: dict, weights: dict[str, float]) -> float | None:
    """Weighted mean of a log's recovery markers on a 1-5 scale.

    Returns:
        Score, or None when the log carries no recovery markers
    """
    total = 0.0
    weight_sum = 0.0
    for metric in RECOVERY_METRICS:
        value = recovery.get(metric)
        if value is None:
            continue
        if metric in INVERTED_RECOVERY_METRICS:
            value = 6 - value
        weight = weights.get(metric, 1.0)
        total += value * weight
        weight_sum += weight
    return total / weight_sum if weight_sum else None


def _poor_recovery(trigger: DeloadTrigger, logs: list[WorkoutLog], weights: dict[str, float]) -> str | None:
    window = trigger.window or DEFAULT_RECOVERY_WINDOW
    scores = [score for log in logs[-window:] if (score := recovery_score(log.recovery or {}, weights)) is not None]
    if not scores:
        return None
    average = round_half_up(sum(scores) / len(scores), 1)
    if average < trigger.threshold:
        return f"Recovery score ({average}) is below threshold ({trigger.threshold})"
    return None


def check_deload(
    protocol: DeloadProtocol,
    logs: list[WorkoutLog],
    *,
    start: datetime,
    now: datetime,
) -> DeloadRecommendation | None:
    """Evaluate deload triggers and scheduled deloads.

    Args:
        protocol: The program's deload protocol
        logs: Completed logs in ascending date order
        start: Program start (applied_at or created_at), UTC
        now: Reference time, UTC

    Returns:
        DeloadRecommendation, or None when the protocol is disabled
    """
    if not protocol.enabled:
        return None

    weights = {indicator.metric: indicator.weight for indicator in protocol.recovery_indicators}
    fired = []
    for trigger in protocol.auto_deload_triggers:
        if trigger.condition == "high_avg_rpe":
            message = _high_avg_rpe(trigger, logs)
        elif trigger.condition == "consecutive_failed_workouts":
            message = _consecutive_failed(trigger, logs)
        else:
            message = _poor_recovery(trigger, logs, weights)
        if message:
            fired.append(
                FiredTrigger(
                    condition=trigger.condition,
                    message=message,
                    protocol=trigger.protocol,
                    reduction_percentage=trigger.reduction_percentage,
                    recommendation=trigger.notes,
                )
            )

    current_week = week_number(start, now)
    scheduled = next((deload for deload in protocol.scheduled_deloads if deload.week == current_week), None)
    needs_deload = bool(fired) or scheduled is not None

    if needs_deload:
        logger.info(
            "Deload recommended",
            current_week=current_week,
            triggers=[trigger.condition for trigger in fired],
            scheduled=scheduled is not None,
        )

    return DeloadRecommendation(
        needs_deload=needs_deload,
        current_week=current_week,
        triggers=fired,
        scheduled_deload=scheduled.model_dump(exclude_none=True) if scheduled else None,
        recommendation=DELOAD_ADVICE if needs_deload else NO_DELOAD_ADVICE,
    )
