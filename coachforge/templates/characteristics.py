"""Derive template facets, names and tags from a generated instance."""

import math

from coachforge.templates.types import CalorieRange, DurationSpec, GenerationRequest, TemplateCharacteristics

CATEGORY_BY_GOAL = {
    "muscle_gain": "hypertrophy",
    "weight_loss": "weight_loss",
    "strength": "strength",
    "endurance": "endurance",
    "general_fitness": "general_fitness",
    "sports_performance": "sports_specific",
    "rehabilitation": "rehabilitation",
}

DEFAULT_CATEGORY = "general_fitness"
DESCRIPTION_SNIPPET_LENGTH = 150


def template_type_for(content: dict) -> str:
    has_workout = bool(content.get("workout_program"))
    has_nutrition = bool(content.get("nutrition_plan"))
    if has_workout and not has_nutrition:
        return "workout_program"
    if has_nutrition and not has_workout:
        return "nutrition_plan"
    return "combined"


def _unique(values: list) -> list:
    seen: list = []
    for value in values:
        if value not in seen:
            seen.append(value)
    return seen


def _target_muscles(workout_program: dict) -> list[str]:
    muscles: list[str] = []
    for workout in workout_program.get("workouts") or []:
        muscles.extend(workout.get("target_muscles") or [])
        for exercise in workout.get("exercises") or []:
            if exercise.get("muscle_group"):
                muscles.append(exercise["muscle_group"])
    return _unique(muscles)


def _calorie_range(nutrition_plan: dict | None) -> CalorieRange | None:
    if not nutrition_plan:
        return None
    calories = (nutrition_plan.get("daily_targets") or {}).get("calories")
    if not calories:
        return None
    # +-10%, computed as integer ratios so 2500 kcal gives exactly 2250-2750
    return CalorieRange(min=math.floor(calories * 9 / 10), max=math.ceil(calories * 11 / 10))


def derive_characteristics(request: GenerationRequest, content: dict) -> TemplateCharacteristics:
    """Build the similarity facets for a template.

    Duration prefers the generated program's own week count over the
    requested one; target muscles are collected from workouts and exercises.
    """
    workout_program = content.get("workout_program") or {}
    weeks = (workout_program.get("duration") or {}).get("weeks") or request.duration_weeks

    return TemplateCharacteristics(
        experience_level=request.experience_level,
        goals=list(request.goals),
        duration=DurationSpec(weeks=weeks, days=weeks * 7 if weeks else None),
        equipment=list(request.equipment),
        target_muscles=_target_muscles(workout_program),
        diet_type=request.diet_type,
        calorie_range=_calorie_range(content.get("nutrition_plan")),
    )


def default_name(content: dict) -> str:
    workout_program = content.get("workout_program")
    nutrition_plan = content.get("nutrition_plan")
    if workout_program and nutrition_plan:
        return f"{workout_program.get('name') or 'Workout Program'} + Nutrition"
    if workout_program and workout_program.get("name"):
        return workout_program["name"]
    if nutrition_plan and nutrition_plan.get("name"):
        return nutrition_plan["name"]
    return "Fitness Program"


def default_description(content: dict) -> str:
    parts = []
    for key in ("workout_program", "nutrition_plan"):
        section = content.get(key)
        if not section:
            continue
        text = section.get("description") or (section.get("rationale") or "")[:DESCRIPTION_SNIPPET_LENGTH]
        if text:
            parts.append(text)
    return " | ".join(parts)


def determine_category(goals: list[str]) -> str:
    """Category comes from the first listed goal."""
    if not goals:
        return DEFAULT_CATEGORY
    return CATEGORY_BY_GOAL.get(goals[0], DEFAULT_CATEGORY)


def generate_tags(request: GenerationRequest, content: dict) -> list[str]:
    tags = list(request.goals)

    weeks = ((content.get("workout_program") or {}).get("duration") or {}).get("weeks")
    if weeks:
        tags.append(f"{weeks}-week")

    tags.append("gym" if request.has_gym_access else "home")

    if content.get("nutrition_plan") and request.diet_type:
        tags.append(request.diet_type)

    return _unique(tags)
