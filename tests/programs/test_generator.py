"""Tests for template-first program generation."""

import pytest

from coachforge.core.errors import GenerationError
from coachforge.db.models import GeneratedProgram
from coachforge.programs.generator import generate_program


def test_miss_generates_and_registers_template(db_session, request_factory, completion_client) -> None:
    """Test that a cache miss calls the completion service once per section."""
    outcome = generate_program(
        db_session,
        request_factory(),
        producer_id="coach-1",
        recipient_id="client-1",
        client=completion_client,
    )

    program = outcome.program
    assert outcome.source == "generated"
    assert outcome.match_type == "none"
    assert completion_client.call_count == 2
    assert program.status == "generated"
    assert program.content["workout_program"]["name"] == "Strength Builder"
    assert program.content["nutrition_plan"]["name"] == "Performance Fuel"
    assert program.content["summary"] == "Strength block"
    assert program.ai_metadata["source"] == "generated"
    assert program.ai_metadata["model"] == "gpt-4o-mini"
    assert program.ai_metadata["tokens_used"] == {"prompt": 200, "completion": 800, "total": 1000}
    assert outcome.estimated_cost == pytest.approx(0.02)
    assert outcome.template is not None
    assert program.template_id == outcome.template.id
    assert outcome.warnings == []


def test_repeat_request_reuses_template_without_completion(db_session, request_factory, completion_client) -> None:
    """Test that the second identical request is served from the template cache."""
    first = generate_program(
        db_session,
        request_factory(),
        producer_id="coach-1",
        recipient_id="client-1",
        client=completion_client,
    )

    second = generate_program(
        db_session,
        request_factory(equipment=["rack", "bench", "barbell"]),
        producer_id="coach-1",
        recipient_id="client-2",
        client=completion_client,
    )

    assert completion_client.call_count == 2
    assert second.source == "template"
    assert second.match_type == "exact"
    assert second.template.id == first.template.id
    assert second.program.id != first.program.id
    assert second.program.recipient_id == "client-2"
    assert second.program.content == first.template.content
    assert second.usage.total_tokens == 0
    assert first.template.times_used == 1


def test_use_templates_false_always_generates(db_session, request_factory, completion_client) -> None:
    generate_program(db_session, request_factory(), producer_id="coach-1", recipient_id="client-1", client=completion_client)

    outcome = generate_program(
        db_session,
        request_factory(),
        producer_id="coach-1",
        recipient_id="client-1",
        client=completion_client,
        use_templates=False,
        save_as_template=False,
    )

    assert outcome.source == "generated"
    assert outcome.template is None
    assert completion_client.call_count == 4


def test_workout_only_request_makes_one_call(db_session, request_factory, completion_client) -> None:
    outcome = generate_program(
        db_session,
        request_factory(generation_type="workout_program"),
        producer_id="coach-1",
        recipient_id="client-1",
        client=completion_client,
    )

    assert completion_client.call_count == 1
    assert "nutrition_plan" not in outcome.program.content
    assert outcome.template.template_type == "workout_program"


def test_template_registration_failure_is_a_warning(db_session, request_factory, completion_client) -> None:
    """Test that a failed template registration never fails the generation."""
    outcome = generate_program(
        db_session,
        request_factory(goals=[]),
        producer_id="coach-1",
        recipient_id="client-1",
        client=completion_client,
        use_templates=False,
    )

    assert outcome.program.status == "generated"
    assert outcome.template is None
    assert len(outcome.warnings) == 1
    assert outcome.warnings[0].startswith("Template creation failed")
    assert db_session.get(GeneratedProgram, outcome.program.id) is not None


def test_unparseable_completion_raises(db_session, request_factory, fake_client_class) -> None:
    client = fake_client_class(raw="I cannot help with that.")

    with pytest.raises(GenerationError):
        generate_program(db_session, request_factory(), producer_id="coach-1", recipient_id="client-1", client=client)


def test_completion_missing_section_raises(db_session, request_factory, fake_client_class) -> None:
    client = fake_client_class(raw='{"summary": "no program here"}')

    with pytest.raises(GenerationError):
        generate_program(
            db_session,
            request_factory(generation_type="workout_program"),
            producer_id="coach-1",
            recipient_id="client-1",
            client=client,
        )
