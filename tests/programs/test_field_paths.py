"""Tests for dotted field paths into program content."""

import pytest

from coachforge.core.errors import InvalidStateError
from coachforge.programs.paths import Index, Key, exercise_path, get_value, parse_path, set_value


def test_parse_path_splits_keys_and_indexes() -> None:
    segments = parse_path("workout_program.workouts[1].exercises[0].name")

    assert segments == (
        Key("workout_program"),
        Key("workouts"),
        Index(1),
        Key("exercises"),
        Index(0),
        Key("name"),
    )


@pytest.mark.parametrize("path", ["", "workouts[x]", "a..b", "workouts[1", "1abc"])
def test_parse_path_rejects_malformed(path: str) -> None:
    with pytest.raises(InvalidStateError):
        parse_path(path)


def test_exercise_path_round_trips() -> None:
    assert exercise_path(2, 3) == "workout_program.workouts[2].exercises[3]"


def test_get_and_set_value(sample_content) -> None:
    path = "workout_program.workouts[1].exercises[0].weight"

    set_value(sample_content, path, 105)

    assert get_value(sample_content, path) == 105
    assert sample_content["workout_program"]["workouts"][1]["exercises"][0]["weight"] == 105


def test_set_value_adds_missing_final_key(sample_content) -> None:
    set_value(sample_content, "workout_program.workouts[0].notes", "Warm up first")

    assert sample_content["workout_program"]["workouts"][0]["notes"] == "Warm up first"


def test_unresolvable_paths_raise(sample_content) -> None:
    with pytest.raises(InvalidStateError):
        get_value(sample_content, "workout_program.workouts[9].name")
    with pytest.raises(InvalidStateError):
        set_value(sample_content, "workout_program.workouts[9]", {})
    with pytest.raises(InvalidStateError):
        set_value(sample_content, "missing.name", "x")
