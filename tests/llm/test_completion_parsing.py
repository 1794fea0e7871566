"""Tests for completion parsing and cost estimation."""

from types import SimpleNamespace

import pytest

from coachforge.core.errors import GenerationError
from coachforge.llm import client as client_module
from coachforge.llm.client import (
    CompletionOptions,
    CompletionUsage,
    PydanticAICompletionClient,
    estimate_cost,
    parse_json_completion,
)


@pytest.mark.parametrize(
    "text",
    [
        '{"workout_program": {"name": "A"}}',
        'Sure!\n```json\n{"workout_program": {"name": "A"}}\n```\nEnjoy.',
        '```\n{"workout_program": {"name": "A"}}\n```',
        'Here you go: {"workout_program": {"name": "A"}} Good luck!',
    ],
)
def test_parse_json_completion_formats(text: str) -> None:
    assert parse_json_completion(text) == {"workout_program": {"name": "A"}}


@pytest.mark.parametrize("text", ["no json here", "[1, 2, 3]", '{"broken": '])
def test_parse_json_completion_rejects(text: str) -> None:
    with pytest.raises(GenerationError):
        parse_json_completion(text)


def test_estimate_cost_known_model() -> None:
    usage = CompletionUsage(prompt_tokens=1000, completion_tokens=2000)

    assert estimate_cost("gpt-4o-mini", usage) == pytest.approx(0.00015 + 0.0012)


def test_estimate_cost_unknown_model_uses_gpt4_pricing() -> None:
    usage = CompletionUsage(prompt_tokens=1000, completion_tokens=1000)

    assert estimate_cost("some-new-model", usage) == pytest.approx(0.09)


class _FakeRunResult:
    output = '{"nutrition_plan": {"name": "Fuel"}}'

    def usage(self):
        return SimpleNamespace(input_tokens=1000, output_tokens=500)


class _FakeAgent:
    instances: list["_FakeAgent"] = []

    def __init__(self, model, system_prompt: str, output_type):
        self.model = model
        self.system_prompt = system_prompt
        self.calls: list[tuple[str, dict]] = []
        _FakeAgent.instances.append(self)

    def run_sync(self, prompt: str, model_settings: dict):
        self.calls.append((prompt, model_settings))
        return _FakeRunResult()


def test_pydantic_ai_client_reports_usage_and_cost(monkeypatch) -> None:
    _FakeAgent.instances = []
    monkeypatch.setattr(client_module, "Agent", _FakeAgent)
    monkeypatch.setattr(client_module, "get_model", lambda provider, model_name: f"{provider}:{model_name}")
    client = PydanticAICompletionClient(provider="openai", model_name="gpt-4o")

    result = client.complete(
        [{"role": "system", "content": "You are a nutritionist."}, {"role": "user", "content": "Plan meals"}],
        CompletionOptions(temperature=0.2, max_tokens=800),
    )

    agent = _FakeAgent.instances[0]
    assert agent.model == "openai:gpt-4o"
    assert agent.system_prompt == "You are a nutritionist."
    assert agent.calls == [("Plan meals", {"temperature": 0.2, "max_tokens": 800})]
    assert result.model == "gpt-4o"
    assert result.usage.total_tokens == 1500
    assert result.estimated_cost == pytest.approx(0.0025 + 0.005)
    assert parse_json_completion(result.content) == {"nutrition_plan": {"name": "Fuel"}}
