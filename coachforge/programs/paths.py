"""Field paths into program content.

Modification entries name the field they changed with a dotted path such
as ``workout_program.workouts[0].exercises[2]``. The path is parsed into
explicit key/index segments; reverting an edit reads and writes through
those segments only.
"""

import re
from dataclasses import dataclass
from typing import Any

from coachforge.core.errors import InvalidStateError

_PART = re.compile(r"^(?P<key>[A-Za-z_][A-Za-z0-9_]*)(?P<indexes>(\[\d+\])*)$")
_INDEX = re.compile(r"\[(\d+)\]")


@dataclass(frozen=True)
class Key:
    name: str


@dataclass(frozen=True)
class Index:
    position: int


Segment = Key | Index


def parse_path(path: str) -> tuple[Segment, ...]:
    """Parse a field path into key and index segments.

    Raises:
        InvalidStateError: If the path is empty or malformed
    """
    if not path:
        raise InvalidStateError("Field path is empty")

    segments: list[Segment] = []
    for part in path.split("."):
        match = _PART.match(part)
        if match is None:
            raise InvalidStateError(f"Malformed field path: {path}")
        segments.append(Key(match.group("key")))
        segments.extend(Index(int(position)) for position in _INDEX.findall(match.group("indexes")))
    return tuple(segments)


def format_path(*segments: Segment) -> str:
    text = ""
    for segment in segments:
        if isinstance(segment, Index):
            text += f"[{segment.position}]"
        else:
            text += f".{segment.name}" if text else segment.name
    return text


def exercise_path(workout_index: int, exercise_index: int) -> str:
    return format_path(Key("workout_program"), Key("workouts"), Index(workout_index), Key("exercises"), Index(exercise_index))


def _step(container: Any, segment: Segment, path: str) -> Any:
    if isinstance(segment, Key):
        if not isinstance(container, dict) or segment.name not in container:
            raise InvalidStateError(f"Field path does not resolve: {path}")
        return container[segment.name]
    if not isinstance(container, list) or not 0 <= segment.position < len(container):
        raise InvalidStateError(f"Field path does not resolve: {path}")
    return container[segment.position]


def get_value(content: dict, path: str) -> Any:
    value: Any = content
    for segment in parse_path(path):
        value = _step(value, segment, path)
    return value


def set_value(content: dict, path: str, value: Any) -> None:
    """Write value at path. Intermediate containers must already exist.

    A final key segment may name a key that is not present yet; a final
    index segment must point at an existing element.
    """
    segments = parse_path(path)
    parent: Any = content
    for segment in segments[:-1]:
        parent = _step(parent, segment, path)

    last = segments[-1]
    if isinstance(last, Key):
        if not isinstance(parent, dict):
            raise InvalidStateError(f"Field path does not resolve: {path}")
        parent[last.name] = value
        return
    if not isinstance(parent, list) or not 0 <= last.position < len(parent):
        raise InvalidStateError(f"Field path does not resolve: {path}")
    parent[last.position] = value
