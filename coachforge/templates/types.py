"""Template cache types.

Request and option models validated at the edge of the template cache.
Stored template rows themselves are ORM models (coachforge.db.models);
these models describe what callers hand in.
"""

from typing import Literal

from pydantic import BaseModel, Field

TemplateStatus = Literal["active", "archived"]
Visibility = Literal["private", "organization", "public"]
GenerationType = Literal["workout_program", "nutrition_plan", "combined"]
MatchType = Literal["exact", "similar", "none"]
SearchSort = Literal["rating", "popular", "recent"]


class GenerationRequest(BaseModel):
    """Normalized request for a program generation.

    Only goals, experience_level, duration_weeks, equipment and diet_type
    take part in the input fingerprint. The remaining fields are carried
    through to the generated instance as the request snapshot.
    """

    goals: list[str] = Field(default_factory=list)
    experience_level: str | None = None
    duration_weeks: int | None = None
    equipment: list[str] = Field(default_factory=list)
    has_gym_access: bool = False
    diet_type: str | None = None
    sessions_per_week: int | None = None
    generation_type: GenerationType = "combined"
    client_profile: dict = Field(default_factory=dict)
    preferences: dict = Field(default_factory=dict)
    constraints: dict = Field(default_factory=dict)
    additional_requirements: str | None = None


class CalorieRange(BaseModel):
    min: int
    max: int


class DurationSpec(BaseModel):
    weeks: int | None = None
    days: int | None = None


class TemplateCharacteristics(BaseModel):
    """Denormalized facets used for similarity search."""

    experience_level: str | None = None
    goals: list[str] = Field(default_factory=list)
    duration: DurationSpec = Field(default_factory=DurationSpec)
    equipment: list[str] = Field(default_factory=list)
    target_muscles: list[str] = Field(default_factory=list)
    diet_type: str | None = None
    calorie_range: CalorieRange | None = None


class CustomizationOptions(BaseModel):
    allow_duration_adjustment: bool = True
    allow_equipment_substitution: bool = True
    allow_exercise_swaps: bool = True
    allow_macro_adjustment: bool = True


class CreateTemplateOptions(BaseModel):
    """Overrides for a template registered from a generated instance.

    Anything left unset is derived from the instance's inputs and content.
    """

    name: str | None = None
    description: str | None = None
    category: str | None = None
    tags: list[str] | None = None
    visibility: Visibility = "private"
    is_featured: bool = False
    customization_options: CustomizationOptions = Field(default_factory=CustomizationOptions)


class TemplateUpdate(BaseModel):
    """Changes applied on top of the latest version when a new version is cut.

    Only fields explicitly set by the caller are applied.
    """

    name: str | None = None
    description: str | None = None
    content: dict | None = None
    characteristics: TemplateCharacteristics | None = None
    category: str | None = None
    tags: list[str] | None = None
    visibility: Visibility | None = None
    is_featured: bool | None = None
    customization_options: CustomizationOptions | None = None
    version_notes: str | None = None


class TemplateSearchCriteria(BaseModel):
    query: str | None = None
    category: str | None = None
    experience_level: str | None = None
    goals: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    min_duration_weeks: int | None = None
    max_duration_weeks: int | None = None
    equipment: list[str] | None = None
    diet_type: str | None = None
    created_by: str | None = None
    visibility: Visibility | None = None
    featured_only: bool = False
