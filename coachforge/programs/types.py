"""Generated program content schema.

Content is stored as JSON on templates and instances. These models validate
content coming back from generation and give the progression rules a
typed shape; every model keeps unknown keys so nothing a generator adds
is lost on the way through.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

ProgramStatus = Literal["generating", "generated", "reviewed", "approved", "rejected", "applied", "archived"]
ProgressionStrategy = Literal["linear", "wave", "double_progression", "percentage_based", "autoregulated", "custom"]
DeloadType = Literal["volume_reduction", "intensity_reduction", "complete_rest", "active_recovery"]
TriggerCondition = Literal["high_avg_rpe", "consecutive_failed_workouts", "poor_recovery"]
DeloadAction = Literal["immediate_deload", "schedule_next_week", "reduce_volume", "reduce_intensity"]
SwapReason = Literal["equipment", "injury", "difficulty", "progression", "variation", "preference"]


class _Content(BaseModel):
    model_config = ConfigDict(extra="allow")


class Exercise(_Content):
    exercise_id: str | None = None
    name: str
    sets: int | None = None
    reps: int | str | None = None
    weight: float | None = None
    rest_seconds: int | None = None
    equipment: list[str] = Field(default_factory=list)
    muscle_group: str | None = None
    notes: str | None = None


class Workout(_Content):
    name: str
    day: int | None = None
    week: int | None = None
    focus: str | None = None
    target_muscles: list[str] = Field(default_factory=list)
    equipment: list[str] = Field(default_factory=list)
    exercises: list[Exercise] = Field(default_factory=list)


class WeeklyRpeTarget(_Content):
    week: int
    target_rpe: float = Field(ge=1, le=10)
    notes: str | None = None


class ExerciseRpeTarget(_Content):
    exercise_id: str
    target_rpe: float = Field(ge=1, le=10)
    adjustment_rules: str | None = None


class RpeTargets(_Content):
    enabled: bool = False
    weekly_targets: list[WeeklyRpeTarget] = Field(default_factory=list)
    exercise_specific_targets: list[ExerciseRpeTarget] = Field(default_factory=list)


class ProgressionRules(_Content):
    strategy: ProgressionStrategy = "linear"
    weight_increment: float = 2.5
    rep_range_progression: dict | None = None
    weekly_load: dict | None = None
    conditions: list[str] = Field(default_factory=list)
    custom_rules: str | None = None


class ScheduledDeload(_Content):
    week: int
    type: DeloadType = "volume_reduction"
    reduction: float = 40
    notes: str | None = None


class DeloadTrigger(_Content):
    """A condition that recommends a deload when its threshold is reached.

    Attributes:
        condition: Signal the trigger watches
        threshold: RPE mean for high_avg_rpe, number of too_hard sessions for
            consecutive_failed_workouts, minimum recovery score for poor_recovery
        protocol: Recommended action when the trigger fires
        reduction_percentage: Recommended load/volume reduction
        window: Sessions inspected (defaults depend on the condition)
    """

    condition: TriggerCondition
    threshold: float
    protocol: DeloadAction = "reduce_volume"
    reduction_percentage: float = 40
    window: int | None = None
    notes: str | None = None


class RecoveryIndicator(_Content):
    metric: str
    target: float | None = None
    weight: float = 1.0


class DeloadProtocol(_Content):
    enabled: bool = True
    scheduled_deloads: list[ScheduledDeload] = Field(default_factory=list)
    auto_deload_triggers: list[DeloadTrigger] = Field(default_factory=list)
    recovery_indicators: list[RecoveryIndicator] = Field(default_factory=list)


class ProgressionEngine(_Content):
    rpe_targets: RpeTargets = Field(default_factory=RpeTargets)
    progression_rules: ProgressionRules = Field(default_factory=ProgressionRules)
    deload_protocol: DeloadProtocol = Field(default_factory=DeloadProtocol)


class ProgramDuration(_Content):
    weeks: int
    days_per_week: int | None = None


class WorkoutProgram(_Content):
    name: str
    description: str | None = None
    duration: ProgramDuration
    workouts: list[Workout] = Field(default_factory=list)
    progression_engine: ProgressionEngine | None = None
    rationale: str | None = None


class DailyTargets(_Content):
    calories: float | None = None
    protein: float | None = None
    carbs: float | None = None
    fat: float | None = None


class NutritionPlan(_Content):
    name: str
    description: str | None = None
    daily_targets: DailyTargets = Field(default_factory=DailyTargets)
    meals: list[dict] = Field(default_factory=list)
    diet_type: str | None = None
    rationale: str | None = None


class ProgramContent(_Content):
    workout_program: WorkoutProgram | None = None
    nutrition_plan: NutritionPlan | None = None
    summary: str | None = None
    key_recommendations: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class Customizations(BaseModel):
    """Customizations requested when a template is applied.

    Attributes:
        duration_weeks: New program length in weeks
        equipment: Equipment available to the recipient
        macros: Daily macro targets merged over the template's targets
    """

    duration_weeks: int | None = Field(default=None, ge=1)
    equipment: list[str] | None = None
    macros: dict[str, float] | None = None


class ProgramEdits(BaseModel):
    """Top-level edits accepted by edit_program."""

    name: str | None = None
    description: str | None = None
    duration_weeks: int | None = Field(default=None, ge=1)
    daily_targets: dict[str, float] | None = None
    nutrition_name: str | None = None


def progression_engine_for(content: dict) -> ProgressionEngine:
    """Typed progression rules of a content payload (defaults when absent)."""
    raw = (content.get("workout_program") or {}).get("progression_engine")
    return ProgressionEngine.model_validate(raw or {})
