"""Fingerprints for generation inputs and generated content.

Both fingerprints are sha256 digests over a canonical JSON form. The
canonical form sorts dictionary keys and sorts every list by the canonical
JSON text of its elements, so reordering any list-valued field never changes
the digest. Fingerprints are persisted and compared across processes, so the
canonicalization rule must stay fixed.
"""

import hashlib
import json
from typing import Any

from coachforge.core.errors import InvalidStateError
from coachforge.templates.types import GenerationRequest

CONTENT_KEYS = ("workout_program", "nutrition_plan")


def _canonical_text(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def canonicalize(value: Any) -> Any:
    """Return a copy of value with every list sorted, recursively."""
    if isinstance(value, dict):
        return {str(key): canonicalize(item) for key, item in value.items()}
    if isinstance(value, list | tuple | set | frozenset):
        items = [canonicalize(item) for item in value]
        return sorted(items, key=_canonical_text)
    return value


def digest(value: Any) -> str:
    """sha256 hex digest of the canonical JSON form of value."""
    return hashlib.sha256(_canonical_text(canonicalize(value)).encode("utf-8")).hexdigest()


def normalize_inputs(request: GenerationRequest) -> dict:
    """Reduce a generation request to the fields the input fingerprint covers.

    Raises:
        InvalidStateError: If goals, experience_level or duration_weeks is missing
    """
    missing = []
    if not request.goals:
        missing.append("goals")
    if not request.experience_level:
        missing.append("experience_level")
    if request.duration_weeks is None:
        missing.append("duration_weeks")
    if missing:
        raise InvalidStateError(f"Generation request is missing required fields: {', '.join(missing)}")

    return {
        "goals": sorted(request.goals),
        "experience_level": request.experience_level,
        "duration": request.duration_weeks,
        "equipment": sorted(request.equipment),
        "diet_type": request.diet_type,
    }


def input_fingerprint(request: GenerationRequest) -> str:
    return digest(normalize_inputs(request))


def input_fingerprint_from_snapshot(snapshot: dict) -> str:
    """Recompute an input fingerprint from a stored normalized snapshot."""
    return digest(
        {
            "goals": snapshot.get("goals") or [],
            "experience_level": snapshot.get("experience_level"),
            "duration": snapshot.get("duration"),
            "equipment": snapshot.get("equipment") or [],
            "diet_type": snapshot.get("diet_type"),
        }
    )


def content_fingerprint(content: dict) -> str:
    """Fingerprint of the workout/nutrition payload.

    Rationale text and metadata outside the two plan sections are ignored.
    """
    return digest({key: content.get(key) for key in CONTENT_KEYS})
