"""Progression insights: trends, deload recommendation and a summary score."""

from datetime import datetime

from loguru import logger
from sqlalchemy.orm import Session

from coachforge.performance import repository as log_repository
from coachforge.programs.repository import require_recipient_program
from coachforge.programs.types import progression_engine_for
from coachforge.progression.compliance import program_start
from coachforge.progression.deload import check_deload
from coachforge.progression.trends import exercise_progression, rpe_trend, volume_trend
from coachforge.progression.types import (
    DeloadRecommendation,
    ProgressionInsights,
    Recommendation,
    RpeTrend,
    VolumeTrend,
)
from coachforge.utils.timezone import to_utc, utc_now

MIN_COMPLETED_LOGS = 2
TOP_EXERCISES = 5
NOT_ENOUGH_DATA = "Not enough data for progression analysis. Complete at least 2 workouts."


def progression_score(volume: VolumeTrend | None, rpe: RpeTrend | None) -> int:
    """Heuristic 0-100 score for dashboards.

    Starts at 50: +25 for increasing volume, -15 for decreasing; +15 for
    stable RPE, +25 for decreasing, -10 for increasing. Without both trends
    the score is 0.
    """
    if volume is None or rpe is None:
        return 0

    score = 50
    if volume.trend == "increasing":
        score += 25
    elif volume.trend == "decreasing":
        score -= 15

    if rpe.trend == "stable":
        score += 15
    elif rpe.trend == "decreasing":
        score += 25
    else:
        score -= 10
    return max(0, min(100, score))


def recommendations_for(
    volume: VolumeTrend | None,
    rpe: RpeTrend | None,
    deload: DeloadRecommendation | None,
) -> list[Recommendation]:
    recommendations = []
    needs_deload = deload is not None and deload.needs_deload
    if needs_deload:
        recommendations.append(Recommendation("high", "recovery", deload.recommendation))

    if volume is not None and volume.trend == "decreasing":
        recommendations.append(
            Recommendation(
                "medium",
                "volume",
                "Volume is decreasing. Check if you need more recovery or should increase effort.",
            )
        )

    if rpe is not None and rpe.recent_average > 8.5 and not needs_deload:
        recommendations.append(
            Recommendation("medium", "intensity", "RPE is consistently high. Monitor recovery and consider reducing volume.")
        )

    if volume is not None and rpe is not None and volume.trend == "increasing" and rpe.trend == "stable":
        recommendations.append(
            Recommendation("low", "progress", "Excellent progress! Volume is increasing while maintaining RPE. Keep it up!")
        )
    return recommendations


def progression_insights(
    session: Session,
    *,
    recipient_id: str,
    instance_id: str,
    now: datetime | None = None,
) -> ProgressionInsights:
    """Analyze completed logs of a program for progression and deload needs.

    Args:
        session: Database session
        recipient_id: Client the program was issued to
        instance_id: Generated program ID
        now: Reference time for the current program week

    Returns:
        ProgressionInsights; has_enough_data is False with fewer than two
        completed logs

    Raises:
        NotFoundError: If the program does not exist
        UnauthorizedError: If the program was not issued to recipient_id
    """
    program = require_recipient_program(session, instance_id, recipient_id)
    logs = log_repository.list_logs(session, instance_id=instance_id, user_id=recipient_id, completed=True)
    if len(logs) < MIN_COMPLETED_LOGS:
        return ProgressionInsights(has_enough_data=False, message=NOT_ENOUGH_DATA)

    now = to_utc(now) if now else utc_now()
    volume = volume_trend(logs)
    rpe = rpe_trend(logs)
    deload = check_deload(
        progression_engine_for(program.content or {}).deload_protocol,
        logs,
        start=program_start(program),
        now=now,
    )
    score = progression_score(volume, rpe)

    logger.debug(
        "Progression insights computed",
        instance_id=instance_id,
        logs=len(logs),
        score=score,
        needs_deload=deload.needs_deload if deload else False,
    )
    return ProgressionInsights(
        has_enough_data=True,
        volume_trend=volume,
        rpe_trend=rpe,
        exercise_progression=exercise_progression(logs)[:TOP_EXERCISES],
        deload_recommendation=deload,
        progression_score=score,
        recommendations=recommendations_for(volume, rpe, deload),
    )
