"""Input types for workout performance logging."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

Difficulty = Literal["too_easy", "just_right", "too_hard"]


class SetInput(BaseModel):
    """One executed set.

    weight and duration are optional: isometric holds are tracked by
    duration only and contribute nothing to volume.
    """

    set_number: int = Field(ge=1)
    reps: int = Field(default=0, ge=0)
    weight: float | None = Field(default=None, ge=0)
    duration: float | None = Field(default=None, ge=0)
    rpe: float | None = Field(default=None, ge=1, le=10)
    completed: bool = True
    notes: str | None = None


class ExerciseLogInput(BaseModel):
    exercise_id: str | None = None
    name: str
    sets: list[SetInput] = Field(default_factory=list)


class RecoveryInput(BaseModel):
    """Subjective recovery markers, 1 (worst) to 5 (best); soreness 5 is most sore."""

    sleep_quality: int | None = Field(default=None, ge=1, le=5)
    soreness_level: int | None = Field(default=None, ge=1, le=5)
    energy: int | None = Field(default=None, ge=1, le=5)


class WorkoutFeedback(BaseModel):
    """How the session went, given when a workout is finished."""

    duration_minutes: int | None = Field(default=None, ge=0)
    rating: int | None = Field(default=None, ge=1, le=5)
    difficulty: Difficulty | None = None
    mood: str | None = None
    notes: str | None = None
    recovery: RecoveryInput | None = None


class WorkoutLogInput(WorkoutFeedback):
    """Payload for marking a planned workout complete in one call."""

    workout_name: str | None = None
    date: datetime | None = None
    exercises: list[ExerciseLogInput] = Field(default_factory=list)
