"""Program compliance metrics for a recipient.

Deterministic computation over completed workout logs: adherence against
the planned session count, trailing-week adherence, streaks, RPE against
weekly targets and short insight messages. No LLM, no inference.
"""

from datetime import datetime, timedelta

from loguru import logger
from sqlalchemy.orm import Session

from coachforge.config.settings import settings
from coachforge.db.models import GeneratedProgram, WorkoutLog
from coachforge.performance import repository as log_repository
from coachforge.programs.repository import require_recipient_program
from coachforge.programs.types import progression_engine_for
from coachforge.progression.types import (
    AdherenceBucket,
    AdherenceSummary,
    ComplianceMetrics,
    Insight,
    PerformanceSummary,
    ProgramSummary,
    RecentWorkout,
    RpeAdherence,
    RpeComparisonPoint,
    StreakSummary,
)
from coachforge.utils.rounding import round_half_up
from coachforge.utils.timezone import to_utc, utc_now

# Maximum gap between consecutive sessions that keeps a streak alive
STREAK_GAP_DAYS = 2
RECENT_WORKOUT_COUNT = 5
ONE_WEEK = timedelta(weeks=1)
ONE_DAY = timedelta(days=1)


def adherence_bucket(adherence_rate: float) -> AdherenceBucket:
    """Bucket an adherence percentage.

    Args:
        adherence_rate: Completed / expected x 100

    Returns:
        excellent (>= 80), good (>= 60) or needs_improvement
    """
    if adherence_rate >= 80:
        return "excellent"
    if adherence_rate >= 60:
        return "good"
    return "needs_improvement"


def program_start(program: GeneratedProgram) -> datetime:
    return to_utc(program.applied_at or program.created_at)


def week_number(start: datetime, moment: datetime) -> int:
    """1-based program week containing moment."""
    return (to_utc(moment) - start) // ONE_WEEK + 1


def sessions_per_week(program: GeneratedProgram) -> int:
    duration = ((program.content or {}).get("workout_program") or {}).get("duration") or {}
    return duration.get("days_per_week") or settings.default_workouts_per_week


def total_weeks(program: GeneratedProgram) -> int | None:
    duration = ((program.content or {}).get("workout_program") or {}).get("duration") or {}
    return duration.get("weeks")


def expected_workouts(weeks_since_start: int, per_week: int, weeks_total: int | None) -> int:
    expected = max(weeks_since_start, 0) * per_week
    if weeks_total is not None:
        expected = min(expected, weeks_total * per_week)
    return expected


def current_streak(logs: list[WorkoutLog], now: datetime) -> int:
    """Sessions in a row, counting back from now, each within two days of the next."""
    streak = 0
    cursor = now
    for log in sorted(logs, key=lambda entry: to_utc(entry.date), reverse=True):
        log_date = to_utc(log.date)
        if (cursor - log_date) // ONE_DAY > STREAK_GAP_DAYS:
            break
        streak += 1
        cursor = log_date
    return streak


def longest_streak(logs: list[WorkoutLog]) -> int:
    if not logs:
        return 0
    dates = sorted(to_utc(log.date) for log in logs)
    longest = running = 1
    for previous, current in zip(dates, dates[1:]):
        if (current - previous) // ONE_DAY <= STREAK_GAP_DAYS:
            running += 1
            longest = max(longest, running)
        else:
            running = 1
    return longest


def rpe_adherence(program: GeneratedProgram, logs: list[WorkoutLog]) -> RpeAdherence | None:
    """Compare each log's average RPE with its week's target.

    Returns None when RPE targets are disabled or there are no logs. The
    adherence rate is 100 - mean(|actual - target|) / 10 x 100.
    """
    rpe_targets = progression_engine_for(program.content or {}).rpe_targets
    if not rpe_targets.enabled or not logs:
        return None

    start = program_start(program)
    targets = {target.week: target.target_rpe for target in rpe_targets.weekly_targets}
    comparisons = []
    for log in sorted(logs, key=lambda entry: to_utc(entry.date)):
        week = week_number(start, log.date)
        target = targets.get(week)
        if target is None:
            continue
        comparisons.append(
            RpeComparisonPoint(
                date=to_utc(log.date),
                week=week,
                actual_rpe=log.average_rpe,
                target_rpe=target,
                difference=(log.average_rpe or 0) - target,
            )
        )

    if not comparisons:
        return RpeAdherence(adherence_rate=0.0, average_difference=0.0)
    average_difference = sum(abs(point.difference) for point in comparisons) / len(comparisons)
    return RpeAdherence(
        adherence_rate=round_half_up(100 - average_difference / 10 * 100, 1),
        average_difference=round_half_up(average_difference, 1),
        recent_comparisons=comparisons[-5:],
    )


def compliance_insights(adherence_rate: float, average_rpe: float, streak: int) -> list[Insight]:
    insights = []
    status = adherence_bucket(adherence_rate)
    if status == "excellent":
        insights.append(Insight("positive", "adherence", f"Excellent adherence at {adherence_rate:.0f}%! Keep it up!"))
    elif status == "good":
        insights.append(
            Insight("neutral", "adherence", f"Good adherence at {adherence_rate:.0f}%. Aim for 80%+ for best results.")
        )
    else:
        insights.append(
            Insight(
                "warning",
                "adherence",
                f"Adherence is {adherence_rate:.0f}%. Try to be more consistent for better results.",
            )
        )

    if average_rpe > 8.5:
        insights.append(Insight("warning", "intensity", f"Average RPE is high ({average_rpe:.1f}). Consider a deload week."))
    elif 0 < average_rpe < 6:
        insights.append(Insight("info", "intensity", f"Average RPE is low ({average_rpe:.1f}). You may be able to push harder."))

    if streak >= 7:
        insights.append(Insight("positive", "consistency", f"Amazing {streak}-workout streak!"))
    elif streak == 0:
        insights.append(Insight("warning", "consistency", "Start a new workout streak today!"))
    return insights


def compliance_metrics(
    session: Session,
    *,
    recipient_id: str,
    instance_id: str,
    now: datetime | None = None,
) -> ComplianceMetrics:
    """Compute adherence, streaks and intensity metrics for a program.

    Args:
        session: Database session
        recipient_id: Client the program was issued to
        instance_id: Generated program ID
        now: Reference time (defaults to the current UTC time)

    Returns:
        ComplianceMetrics for the program

    Raises:
        NotFoundError: If the program does not exist
        UnauthorizedError: If the program was not issued to recipient_id
    """
    program = require_recipient_program(session, instance_id, recipient_id)
    now = to_utc(now) if now else utc_now()
    start = program_start(program)
    per_week = sessions_per_week(program)
    weeks_total = total_weeks(program)

    logs = log_repository.list_logs(
        session,
        instance_id=instance_id,
        user_id=recipient_id,
        completed=True,
        newest_first=True,
    )
    logs = [log for log in logs if to_utc(log.date) >= start]

    expected = expected_workouts((now - start) // ONE_WEEK, per_week, weeks_total)
    completed = len(logs)
    adherence_rate = completed / expected * 100 if expected > 0 else 0.0

    week_ago = now - ONE_WEEK
    this_week = sum(1 for log in logs if to_utc(log.date) >= week_ago)
    this_week_adherence = this_week / per_week * 100

    average_rpe = sum(log.average_rpe or 0 for log in logs) / completed if completed else 0.0
    average_rating = sum(log.rating or 0 for log in logs) / completed if completed else 0.0
    total_volume = sum(log.total_volume or 0 for log in logs)
    streak = current_streak(logs, now)

    logger.debug(
        "Compliance computed",
        instance_id=instance_id,
        expected=expected,
        completed=completed,
        streak=streak,
    )

    return ComplianceMetrics(
        program=ProgramSummary(
            id=program.id,
            name=((program.content or {}).get("workout_program") or {}).get("name"),
            start_date=start,
            total_weeks=weeks_total,
            sessions_per_week=per_week,
        ),
        adherence=AdherenceSummary(
            expected_workouts=expected,
            completed_workouts=completed,
            adherence_rate=round_half_up(adherence_rate, 1),
            this_week_workouts=this_week,
            this_week_adherence=round_half_up(this_week_adherence, 1),
            status=adherence_bucket(adherence_rate),
        ),
        performance=PerformanceSummary(
            average_rpe=round_half_up(average_rpe, 1),
            average_rating=round_half_up(average_rating, 1),
            total_volume=int(round_half_up(total_volume)),
            rpe_comparison=rpe_adherence(program, logs),
        ),
        streaks=StreakSummary(current_streak=streak, longest_streak=longest_streak(logs)),
        recent_workouts=[
            RecentWorkout(
                id=log.id,
                date=to_utc(log.date),
                duration_minutes=log.duration_minutes,
                average_rpe=log.average_rpe,
                rating=log.rating,
                difficulty=log.difficulty,
            )
            for log in logs[:RECENT_WORKOUT_COUNT]
        ],
        insights=compliance_insights(adherence_rate, average_rpe, streak),
    )
