"""Exercise substitution catalogue.

Each catalogued exercise lists ranked alternatives with the reason they
suit, the equipment they need, a precomputed similarity score and short
coaching notes. Lookups normalize names to lowercase snake_case, so
"Bench Press" and "bench_press" resolve to the same entry.
"""

import re
from dataclasses import dataclass, field


@dataclass(frozen=True)
class Alternative:
    exercise: str
    reason: str
    similarity: float
    equipment: tuple[str, ...]
    notes: str | None = None


@dataclass(frozen=True)
class CatalogEntry:
    name: str
    muscle_group: str
    equipment: tuple[str, ...]
    difficulty: str
    alternatives: tuple[Alternative, ...]
    secondary_muscles: tuple[str, ...] = ()


@dataclass
class AlternativeLookup:
    original: CatalogEntry
    alternatives: list[Alternative] = field(default_factory=list)


@dataclass
class BestAlternative:
    original: CatalogEntry
    recommended: Alternative
    other_options: list[Alternative] = field(default_factory=list)


def _alt(exercise: str, reason: str, similarity: float, equipment: tuple[str, ...], notes: str | None = None) -> Alternative:
    return Alternative(exercise=exercise, reason=reason, similarity=similarity, equipment=equipment, notes=notes)


_CATALOG: tuple[CatalogEntry, ...] = (
    CatalogEntry("bench_press", "chest", ("barbell", "bench"), "intermediate", (
        _alt("dumbbell_bench_press", "equipment", 0.95, ("dumbbells", "bench"), "Greater range of motion, unilateral strength"),
        _alt("push_ups", "equipment", 0.75, ("bodyweight",), "Bodyweight alternative, can add resistance"),
        _alt("dumbbell_floor_press", "equipment", 0.85, ("dumbbells",), "No bench required, reduced shoulder stress"),
        _alt("machine_chest_press", "injury", 0.80, ("machine",), "Safer for shoulder injuries, guided motion"),
    )),
    CatalogEntry("incline_bench_press", "chest", ("barbell", "bench"), "intermediate", (
        _alt("incline_dumbbell_press", "equipment", 0.95, ("dumbbells", "bench")),
        _alt("pike_push_ups", "equipment", 0.70, ("bodyweight",)),
        _alt("incline_machine_press", "injury", 0.85, ("machine",)),
    ), secondary_muscles=("upper_chest",)),
    CatalogEntry("dumbbell_flyes", "chest", ("dumbbells", "bench"), "intermediate", (
        _alt("cable_flyes", "equipment", 0.90, ("cable",), "Constant tension, better for chest pump"),
        _alt("pec_deck", "injury", 0.85, ("machine",), "Safer for shoulder issues"),
        _alt("resistance_band_flyes", "equipment", 0.80, ("resistance_bands",)),
    ), secondary_muscles=("isolation",)),
    CatalogEntry("barbell_row", "back", ("barbell",), "intermediate", (
        _alt("dumbbell_row", "equipment", 0.90, ("dumbbells",), "Unilateral, reduces lower back stress"),
        _alt("inverted_row", "equipment", 0.80, ("bodyweight", "bar"), "Bodyweight alternative, great for beginners"),
        _alt("cable_row", "injury", 0.85, ("cable",), "Reduced spinal loading"),
        _alt("machine_row", "injury", 0.80, ("machine",), "Most stable, best for back injuries"),
    )),
    CatalogEntry("pull_ups", "back", ("pull_up_bar",), "advanced", (
        _alt("lat_pulldown", "difficulty", 0.90, ("cable", "machine"), "Easier progression, adjustable weight"),
        _alt("assisted_pull_ups", "difficulty", 0.95, ("machine", "resistance_bands"), "Perfect for building up to full pull-ups"),
        _alt("resistance_band_pull_downs", "equipment", 0.75, ("resistance_bands",)),
    )),
    CatalogEntry("deadlift", "back", ("barbell",), "advanced", (
        _alt("trap_bar_deadlift", "injury", 0.90, ("trap_bar",), "Easier on lower back, more quad-dominant"),
        _alt("romanian_deadlift", "injury", 0.80, ("barbell", "dumbbells"), "Less spinal loading, hamstring focus"),
        _alt("rack_pulls", "injury", 0.75, ("barbell",), "Reduced range of motion, upper back focus"),
    )),
    CatalogEntry("barbell_squat", "legs", ("barbell", "rack"), "intermediate", (
        _alt("goblet_squat", "equipment", 0.85, ("dumbbell", "kettlebell"), "Easier to learn, front-loaded"),
        _alt("bulgarian_split_squat", "injury", 0.80, ("dumbbells",), "Unilateral, less spinal loading"),
        _alt("leg_press", "injury", 0.75, ("machine",), "Safest for back issues"),
        _alt("bodyweight_squat", "equipment", 0.65, ("bodyweight",), "No equipment needed"),
    )),
    CatalogEntry("leg_press", "legs", ("machine",), "beginner", (
        _alt("barbell_squat", "progression", 0.80, ("barbell",), "Free weight progression"),
        _alt("hack_squat", "equipment", 0.90, ("machine",)),
    )),
    CatalogEntry("lunges", "legs", ("dumbbells",), "beginner", (
        _alt("bulgarian_split_squat", "progression", 0.85, ("dumbbells",), "More challenging, elevated rear foot"),
        _alt("step_ups", "injury", 0.80, ("dumbbells", "box"), "Less knee stress"),
        _alt("walking_lunges", "variation", 0.95, ("dumbbells",)),
    )),
    CatalogEntry("overhead_press", "shoulders", ("barbell",), "intermediate", (
        _alt("dumbbell_shoulder_press", "equipment", 0.95, ("dumbbells",), "Greater ROM, unilateral strength"),
        _alt("seated_shoulder_press", "injury", 0.90, ("dumbbells", "bench"), "Reduces lower back involvement"),
        _alt("pike_push_ups", "equipment", 0.75, ("bodyweight",)),
        _alt("machine_shoulder_press", "injury", 0.80, ("machine",)),
    )),
    CatalogEntry("lateral_raises", "shoulders", ("dumbbells",), "beginner", (
        _alt("cable_lateral_raises", "equipment", 0.90, ("cable",), "Constant tension"),
        _alt("resistance_band_lateral_raises", "equipment", 0.85, ("resistance_bands",)),
        _alt("machine_lateral_raises", "injury", 0.85, ("machine",)),
    )),
    CatalogEntry("barbell_curl", "biceps", ("barbell",), "beginner", (
        _alt("dumbbell_curl", "equipment", 0.95, ("dumbbells",), "Better ROM, reduced elbow stress"),
        _alt("hammer_curl", "injury", 0.85, ("dumbbells",), "Easier on wrists"),
        _alt("cable_curl", "equipment", 0.90, ("cable",)),
        _alt("resistance_band_curl", "equipment", 0.80, ("resistance_bands",)),
    )),
    CatalogEntry("tricep_dips", "triceps", ("parallel_bars",), "intermediate", (
        _alt("bench_dips", "difficulty", 0.85, ("bench",), "Easier progression"),
        _alt("close_grip_bench_press", "injury", 0.80, ("barbell", "bench"), "Less shoulder stress"),
        _alt("tricep_pushdowns", "equipment", 0.85, ("cable",)),
        _alt("overhead_tricep_extension", "variation", 0.80, ("dumbbell",)),
    )),
    CatalogEntry("hanging_leg_raises", "core", ("pull_up_bar",), "advanced", (
        _alt("lying_leg_raises", "difficulty", 0.85, ("mat",), "Easier progression"),
        _alt("reverse_crunches", "difficulty", 0.80, ("mat",)),
        _alt("ab_wheel", "variation", 0.75, ("ab_wheel",)),
    )),
    CatalogEntry("plank", "core", ("bodyweight",), "beginner", (
        _alt("side_plank", "variation", 0.85, ("bodyweight",), "Targets obliques"),
        _alt("dead_bug", "injury", 0.75, ("bodyweight",), "Better for back pain"),
        _alt("bird_dog", "injury", 0.70, ("bodyweight",)),
    ), secondary_muscles=("isometric",)),
)

CATALOG: dict[str, CatalogEntry] = {entry.name: entry for entry in _CATALOG}


def normalize_name(name: str) -> str:
    return re.sub(r"\s+", "_", name.strip().lower())


def get_entry(exercise_name: str) -> CatalogEntry | None:
    return CATALOG.get(normalize_name(exercise_name))


def get_alternatives(
    exercise_name: str,
    *,
    reason: str | None = None,
    available_equipment: list[str] | None = None,
    min_similarity: float | None = None,
) -> AlternativeLookup | None:
    """Ranked alternatives for an exercise.

    Args:
        exercise_name: Exercise name in any casing/spacing
        reason: Keep only alternatives suited to this swap reason
        available_equipment: Keep only alternatives whose equipment is all available
        min_similarity: Drop alternatives below this similarity

    Returns:
        AlternativeLookup sorted by similarity (highest first), or None when
        the exercise is not catalogued
    """
    entry = get_entry(exercise_name)
    if entry is None:
        return None

    alternatives = list(entry.alternatives)
    if reason:
        alternatives = [alt for alt in alternatives if alt.reason == reason]
    if available_equipment is not None:
        available = set(available_equipment)
        alternatives = [alt for alt in alternatives if set(alt.equipment) <= available]
    if min_similarity is not None:
        alternatives = [alt for alt in alternatives if alt.similarity >= min_similarity]

    alternatives.sort(key=lambda alt: alt.similarity, reverse=True)
    return AlternativeLookup(original=entry, alternatives=alternatives)


def find_best_alternative(
    exercise_name: str,
    *,
    reason: str | None = None,
    available_equipment: list[str] | None = None,
    min_similarity: float | None = None,
) -> BestAlternative | None:
    """Top-ranked alternative plus the remaining ranked options, or None."""
    lookup = get_alternatives(
        exercise_name,
        reason=reason,
        available_equipment=available_equipment,
        min_similarity=min_similarity,
    )
    if lookup is None or not lookup.alternatives:
        return None
    return BestAlternative(
        original=lookup.original,
        recommended=lookup.alternatives[0],
        other_options=lookup.alternatives[1:],
    )


def get_exercises_by_muscle_group(muscle_group: str) -> list[CatalogEntry]:
    return [entry for entry in _CATALOG if entry.muscle_group == muscle_group]


def required_equipment(exercise: dict) -> list[str]:
    """Equipment an exercise needs: its own list, else the catalogue's."""
    if exercise.get("equipment"):
        return list(exercise["equipment"])
    entry = get_entry(exercise.get("name") or "")
    return list(entry.equipment) if entry else []


def display_name(catalog_name: str) -> str:
    return catalog_name.replace("_", " ").title()
