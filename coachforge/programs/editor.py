"""Manual edits on generated programs.

Every field-level change appends one entry to the program's modifications
list: {field, original_value, modified_value, reason, modified_at}. The
list is the undo history; revert_edit writes an entry's original value back
to its field path and drops the entry. Editing a program in status
generated moves it to reviewed with the editor as reviewer.
"""

import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

from loguru import logger
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import flag_modified

from coachforge.config.settings import settings
from coachforge.core.errors import InvalidStateError
from coachforge.db.models import GeneratedProgram
from coachforge.programs import repository
from coachforge.programs.exercise_alternatives import (
    Alternative,
    AlternativeLookup,
    BestAlternative,
    display_name,
    find_best_alternative,
    get_alternatives,
    required_equipment,
)
from coachforge.programs.paths import exercise_path, get_value, set_value
from coachforge.programs.status import ensure_editable, ensure_transition
from coachforge.programs.types import ProgramEdits
from coachforge.utils.rounding import round_half_up

Direction = Literal["increase", "decrease"]
DifficultyParameter = Literal["sets", "reps", "weight", "all"]


@dataclass
class EditResult:
    program: GeneratedProgram
    changed_fields: list[str] = field(default_factory=list)


@dataclass
class SwapRecord:
    workout_index: int
    exercise_index: int
    original: str
    replacement: str
    similarity: float
    notes: str | None = None


@dataclass
class BulkSwapResult:
    program: GeneratedProgram
    swapped: list[SwapRecord] = field(default_factory=list)
    unresolved: list[str] = field(default_factory=list)


@dataclass
class EditHistoryEntry:
    index: int
    field: str
    reason: str | None
    modified_at: str | None
    changes: dict


@dataclass
class EditHistory:
    program_id: str
    status: str
    reviewed_by: str | None
    reviewed_at: datetime | None
    entries: list[EditHistoryEntry]

    @property
    def total_edits(self) -> int:
        return len(self.entries)


class _EditSession:
    """Working copy of a program's content and modification list."""

    def __init__(self, program: GeneratedProgram):
        self.program = program
        self.content = copy.deepcopy(program.content or {})
        self.modifications = copy.deepcopy(program.modifications or [])
        self.changed_fields: list[str] = []

    def change(self, path: str, new_value: Any, reason: str | None) -> bool:
        """Record and apply one field change; unchanged values are skipped."""
        original = copy.deepcopy(get_value(self.content, path)) if _resolves(self.content, path) else None
        if original == new_value:
            return False
        self.modifications.append(
            {
                "field": path,
                "original_value": original,
                "modified_value": copy.deepcopy(new_value),
                "reason": reason,
                "modified_at": datetime.now(timezone.utc).isoformat(),
            }
        )
        set_value(self.content, path, copy.deepcopy(new_value))
        self.changed_fields.append(path)
        return True

    def commit(self, actor_id: str) -> None:
        if not self.changed_fields:
            return
        self.program.content = self.content
        self.program.modifications = self.modifications
        flag_modified(self.program, "content")
        flag_modified(self.program, "modifications")
        if self.program.status == "generated":
            ensure_transition("generated", "reviewed")
            self.program.status = "reviewed"
            self.program.reviewed_by = actor_id
            self.program.reviewed_at = datetime.now(timezone.utc)


def _resolves(content: dict, path: str) -> bool:
    try:
        get_value(content, path)
    except InvalidStateError:
        return False
    return True


def _open(session: Session, program_id: str, actor_id: str) -> _EditSession:
    program = repository.require_owned_program(session, program_id, actor_id)
    ensure_editable(program.status)
    return _EditSession(program)


def _workouts(content: dict) -> list[dict]:
    workout_program = content.get("workout_program")
    if not workout_program:
        raise InvalidStateError("Program has no workout program")
    return workout_program.get("workouts") or []


def edit_program(
    session: Session,
    program_id: str,
    edits: ProgramEdits | dict,
    *,
    actor_id: str,
    reason: str | None = None,
) -> EditResult:
    """Edit top-level program fields.

    Args:
        session: Database session
        program_id: Generated program ID
        edits: New name/description/duration and nutrition targets/name
        actor_id: Editing coach; must own the program
        reason: Human-readable reason stored on each modification

    Returns:
        EditResult with the changed field paths

    Raises:
        NotFoundError: If the program does not exist
        UnauthorizedError: If actor_id does not own the program
        InvalidStateError: If the program is not editable or lacks the edited section
    """
    if isinstance(edits, dict):
        edits = ProgramEdits.model_validate(edits)
    editor = _open(session, program_id, actor_id)
    content = editor.content

    workout_fields = {
        "workout_program.name": edits.name,
        "workout_program.description": edits.description,
        "workout_program.duration.weeks": edits.duration_weeks,
    }
    if any(value is not None for value in workout_fields.values()) and not content.get("workout_program"):
        raise InvalidStateError("Program has no workout program")
    for path, value in workout_fields.items():
        if value is None:
            continue
        if path.endswith("duration.weeks"):
            content["workout_program"].setdefault("duration", {})
        editor.change(path, value, reason)

    if edits.daily_targets is not None or edits.nutrition_name is not None:
        nutrition_plan = content.get("nutrition_plan")
        if not nutrition_plan:
            raise InvalidStateError("Program has no nutrition plan")
        if edits.daily_targets is not None:
            merged = {**(nutrition_plan.get("daily_targets") or {}), **edits.daily_targets}
            editor.change("nutrition_plan.daily_targets", merged, reason)
        if edits.nutrition_name is not None:
            editor.change("nutrition_plan.name", edits.nutrition_name, reason)

    editor.commit(actor_id)
    session.flush()
    logger.info(f"Program {program_id} edited by {actor_id}: {len(editor.changed_fields)} field(s) changed")
    return EditResult(program=editor.program, changed_fields=editor.changed_fields)


def swap_exercise(
    session: Session,
    program_id: str,
    *,
    actor_id: str,
    workout_index: int,
    exercise_index: int,
    new_exercise: dict,
    reason: str | None = None,
) -> EditResult:
    """Replace one exercise, keeping its prescription unless overridden.

    Raises:
        InvalidStateError: If the workout or exercise index does not exist
    """
    editor = _open(session, program_id, actor_id)
    workouts = _workouts(editor.content)
    if not 0 <= workout_index < len(workouts):
        raise InvalidStateError(f"Workout index {workout_index} out of range")
    exercises = workouts[workout_index].get("exercises") or []
    if not 0 <= exercise_index < len(exercises):
        raise InvalidStateError(f"Exercise index {exercise_index} out of range")

    original = exercises[exercise_index]
    replacement = {
        **original,
        **new_exercise,
        "swapped": True,
        "swapped_at": datetime.now(timezone.utc).isoformat(),
        "swap_reason": reason,
        "original_exercise": original.get("name"),
    }
    editor.change(exercise_path(workout_index, exercise_index), replacement, reason)
    editor.commit(actor_id)
    session.flush()

    logger.info(
        "Exercise swapped",
        instance_id=program_id,
        original=original.get("name"),
        replacement=replacement.get("name"),
    )
    return EditResult(program=editor.program, changed_fields=editor.changed_fields)


def _pick_equipment_alternative(name: str, available: list[str], min_similarity: float) -> Alternative | None:
    # Equipment-tagged alternatives first, then any alternative that fits
    for reason in ("equipment", None):
        best = find_best_alternative(name, reason=reason, available_equipment=available, min_similarity=min_similarity)
        if best is not None:
            return best.recommended
    return None


def needs_equipment_swap(exercise: dict, available: list[str]) -> bool:
    return not set(required_equipment(exercise)) <= set(available)


def bulk_swap_by_equipment(
    session: Session,
    program_id: str,
    *,
    actor_id: str,
    available_equipment: list[str],
    min_similarity: float | None = None,
) -> BulkSwapResult:
    """Swap every exercise whose equipment is not available.

    Each replacement's equipment is a subset of available_equipment.
    Exercises without a fitting catalogued alternative are reported as
    unresolved and left unchanged.
    """
    min_similarity = settings.swap_min_similarity if min_similarity is None else min_similarity
    editor = _open(session, program_id, actor_id)
    result = BulkSwapResult(program=editor.program)
    swapped_at = datetime.now(timezone.utc).isoformat()

    for workout_index, workout in enumerate(_workouts(editor.content)):
        for exercise_index, exercise in enumerate(workout.get("exercises") or []):
            if not needs_equipment_swap(exercise, available_equipment):
                continue
            name = exercise.get("name") or ""
            alternative = _pick_equipment_alternative(name, available_equipment, min_similarity)
            if alternative is None:
                result.unresolved.append(name)
                continue
            replacement = {
                **exercise,
                "name": display_name(alternative.exercise),
                "exercise_id": alternative.exercise,
                "equipment": list(alternative.equipment),
                "swapped": True,
                "swapped_at": swapped_at,
                "swap_reason": "equipment",
                "original_exercise": name,
                "substitution_notes": alternative.notes,
            }
            editor.change(
                exercise_path(workout_index, exercise_index),
                replacement,
                f"Equipment not available: swapped {name} for {replacement['name']}",
            )
            result.swapped.append(
                SwapRecord(
                    workout_index=workout_index,
                    exercise_index=exercise_index,
                    original=name,
                    replacement=replacement["name"],
                    similarity=alternative.similarity,
                    notes=alternative.notes,
                )
            )

    editor.commit(actor_id)
    session.flush()
    logger.info(
        "Bulk equipment swap finished",
        instance_id=program_id,
        swapped=len(result.swapped),
        unresolved=len(result.unresolved),
    )
    return result


def _scaled_exercise(exercise: dict, multiplier: float, parameter: DifficultyParameter = "all") -> dict:
    scaled = dict(exercise)
    for key in ("sets", "reps"):
        if parameter not in (key, "all"):
            continue
        value = exercise.get(key)
        if isinstance(value, int | float) and not isinstance(value, bool):
            scaled[key] = max(1, int(round_half_up(value * multiplier)))
    weight = exercise.get("weight")
    if parameter in ("weight", "all") and isinstance(weight, int | float) and not isinstance(weight, bool):
        scaled["weight"] = int(round_half_up(weight * multiplier))
    return scaled


def adjust_difficulty(
    session: Session,
    program_id: str,
    *,
    actor_id: str,
    direction: Direction,
    parameter: DifficultyParameter = "all",
    workout_indexes: list[int] | None = None,
) -> EditResult:
    """Scale sets, reps or weight (or all three) by one difficulty step.

    The step (DIFFICULTY_STEP, 10% by default) is applied once per call.
    Only exercises whose values actually change get a modification entry.

    Args:
        session: Database session
        program_id: Generated program ID
        actor_id: Editing coach; must own the program
        direction: increase or decrease
        parameter: Prescription value to scale, or all of them
        workout_indexes: Limit the adjustment to these workouts (default all)
    """
    if direction not in ("increase", "decrease"):
        raise InvalidStateError(f"Unknown difficulty direction: {direction}")
    if parameter not in ("sets", "reps", "weight", "all"):
        raise InvalidStateError(f"Unknown difficulty parameter: {parameter}")
    multiplier = 1 + settings.difficulty_step if direction == "increase" else 1 - settings.difficulty_step

    editor = _open(session, program_id, actor_id)
    workouts = _workouts(editor.content)
    targets = range(len(workouts)) if workout_indexes is None else workout_indexes
    reason = f"Difficulty {direction}d by {round(settings.difficulty_step * 100)}% ({parameter})"

    for workout_index in targets:
        if not 0 <= workout_index < len(workouts):
            raise InvalidStateError(f"Workout index {workout_index} out of range")
        for exercise_index, exercise in enumerate(workouts[workout_index].get("exercises") or []):
            editor.change(exercise_path(workout_index, exercise_index), _scaled_exercise(exercise, multiplier, parameter), reason)

    editor.commit(actor_id)
    session.flush()
    logger.info(f"Difficulty {direction} applied to program {program_id}: {len(editor.changed_fields)} exercise(s) changed")
    return EditResult(program=editor.program, changed_fields=editor.changed_fields)


def revert_edit(session: Session, program_id: str, modification_index: int, *, actor_id: str) -> GeneratedProgram:
    """Undo one modification entry.

    Writes the entry's original value back to its field path and removes
    the entry; later entries shift down by one.

    Raises:
        InvalidStateError: If no modification exists at that index
    """
    program = repository.require_owned_program(session, program_id, actor_id)
    ensure_editable(program.status)
    modifications = copy.deepcopy(program.modifications or [])
    if not 0 <= modification_index < len(modifications):
        raise InvalidStateError(f"Modification {modification_index} not found")

    entry = modifications.pop(modification_index)
    content = copy.deepcopy(program.content or {})
    set_value(content, entry["field"], copy.deepcopy(entry["original_value"]))

    program.content = content
    program.modifications = modifications
    flag_modified(program, "content")
    flag_modified(program, "modifications")
    session.flush()

    logger.info("Edit reverted", instance_id=program_id, field=entry["field"], index=modification_index)
    return program


def _summarize_change(original: Any, modified: Any) -> dict:
    if isinstance(original, dict) and isinstance(modified, dict):
        return {
            key: {"from": original.get(key), "to": value}
            for key, value in modified.items()
            if original.get(key) != value
        }
    return {"from": original, "to": modified}


def get_edit_history(session: Session, program_id: str, *, actor_id: str) -> EditHistory:
    program = repository.require_owned_program(session, program_id, actor_id)
    entries = [
        EditHistoryEntry(
            index=index,
            field=entry["field"],
            reason=entry.get("reason"),
            modified_at=entry.get("modified_at"),
            changes=_summarize_change(entry.get("original_value"), entry.get("modified_value")),
        )
        for index, entry in enumerate(program.modifications or [])
    ]
    return EditHistory(
        program_id=program.id,
        status=program.status,
        reviewed_by=program.reviewed_by,
        reviewed_at=program.reviewed_at,
        entries=entries,
    )


def get_exercise_alternatives(
    exercise_name: str,
    *,
    reason: str | None = None,
    available_equipment: list[str] | None = None,
    min_similarity: float | None = None,
) -> AlternativeLookup | None:
    return get_alternatives(
        exercise_name,
        reason=reason,
        available_equipment=available_equipment,
        min_similarity=min_similarity,
    )


def get_best_alternative(
    exercise_name: str,
    *,
    reason: str | None = None,
    available_equipment: list[str] | None = None,
    min_similarity: float | None = None,
) -> BestAlternative | None:
    """Best catalogued alternative, defaulting to SWAP_MIN_SIMILARITY."""
    return find_best_alternative(
        exercise_name,
        reason=reason,
        available_equipment=available_equipment,
        min_similarity=settings.swap_min_similarity if min_similarity is None else min_similarity,
    )
