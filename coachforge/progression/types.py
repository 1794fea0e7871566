"""Result types for compliance and progression analysis."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

AdherenceBucket = Literal["excellent", "good", "needs_improvement"]
Trend = Literal["increasing", "decreasing", "stable"]
ExerciseTrend = Literal["improving", "declining", "stable"]


@dataclass
class ProgramSummary:
    id: str
    name: str | None
    start_date: datetime
    total_weeks: int | None
    sessions_per_week: int


@dataclass
class AdherenceSummary:
    """Completed versus expected sessions since the program started.

    Attributes:
        expected_workouts: Sessions due so far, capped at the planned total
        completed_workouts: Completed logs since the start date
        adherence_rate: completed / expected x 100, one decimal
        this_week_workouts: Completed logs in the trailing 7 days
        this_week_adherence: Trailing-week sessions / sessions per week x 100
        status: Bucket for adherence_rate
    """

    expected_workouts: int
    completed_workouts: int
    adherence_rate: float
    this_week_workouts: int
    this_week_adherence: float
    status: AdherenceBucket


@dataclass
class RpeComparisonPoint:
    date: datetime
    week: int
    actual_rpe: float | None
    target_rpe: float
    difference: float


@dataclass
class RpeAdherence:
    adherence_rate: float
    average_difference: float
    recent_comparisons: list[RpeComparisonPoint] = field(default_factory=list)


@dataclass
class PerformanceSummary:
    average_rpe: float
    average_rating: float
    total_volume: int
    rpe_comparison: RpeAdherence | None = None


@dataclass
class StreakSummary:
    current_streak: int
    longest_streak: int


@dataclass
class RecentWorkout:
    id: str
    date: datetime
    duration_minutes: int | None
    average_rpe: float | None
    rating: int | None
    difficulty: str | None


@dataclass
class Insight:
    type: Literal["positive", "neutral", "info", "warning"]
    category: str
    message: str


@dataclass
class ComplianceMetrics:
    program: ProgramSummary
    adherence: AdherenceSummary
    performance: PerformanceSummary
    streaks: StreakSummary
    recent_workouts: list[RecentWorkout] = field(default_factory=list)
    insights: list[Insight] = field(default_factory=list)


@dataclass
class VolumeTrend:
    current: float
    average: float
    trend: Trend
    percent_change: float
    data_points: list[tuple[datetime, float]] = field(default_factory=list)


@dataclass
class RpeTrend:
    current: float | None
    average: float
    recent_average: float
    trend: Trend
    data_points: list[tuple[datetime, float | None]] = field(default_factory=list)


@dataclass
class ExerciseSession:
    date: datetime
    max_weight: float
    total_reps: int
    average_rpe: float | None


@dataclass
class ExerciseProgression:
    exercise: str
    sessions: int
    start_weight: float
    current_weight: float
    weight_increase: float
    weight_percent_change: float
    trend: ExerciseTrend
    history: list[ExerciseSession] = field(default_factory=list)


@dataclass
class FiredTrigger:
    """A deload trigger whose condition was met.

    Attributes:
        condition: Trigger condition name
        message: What was observed
        protocol: Recommended deload action
        reduction_percentage: Recommended load/volume reduction
        recommendation: Free-text notes configured on the trigger
    """

    condition: str
    message: str
    protocol: str
    reduction_percentage: float
    recommendation: str | None = None


@dataclass
class DeloadRecommendation:
    needs_deload: bool
    current_week: int
    triggers: list[FiredTrigger] = field(default_factory=list)
    scheduled_deload: dict | None = None
    recommendation: str = "No deload needed at this time"


@dataclass
class Recommendation:
    priority: Literal["high", "medium", "low"]
    category: str
    message: str


@dataclass
class ProgressionInsights:
    has_enough_data: bool
    message: str | None = None
    volume_trend: VolumeTrend | None = None
    rpe_trend: RpeTrend | None = None
    exercise_progression: list[ExerciseProgression] = field(default_factory=list)
    deload_recommendation: DeloadRecommendation | None = None
    progression_score: int = 0
    recommendations: list[Recommendation] = field(default_factory=list)
