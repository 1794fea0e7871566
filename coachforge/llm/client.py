"""Completion service boundary.

The generator talks to a CompletionClient. The default implementation runs
a pydantic_ai Agent; tests and other deployments can plug in any object
with the same complete() method. Usage and estimated cost are passed back
unchanged for billing.
"""

import json
import re
from dataclasses import dataclass, field
from typing import Protocol

from loguru import logger
from pydantic_ai import Agent

from coachforge.config.settings import settings
from coachforge.core.errors import GenerationError
from coachforge.llm.model import get_model

# USD per 1K tokens: (prompt, completion)
PRICING_PER_1K: dict[str, tuple[float, float]] = {
    "gpt-4": (0.03, 0.06),
    "gpt-4-turbo": (0.01, 0.03),
    "gpt-4-turbo-preview": (0.01, 0.03),
    "gpt-4o": (0.0025, 0.01),
    "gpt-4o-mini": (0.00015, 0.0006),
    "gpt-3.5-turbo": (0.0005, 0.0015),
    "gpt-3.5-turbo-16k": (0.003, 0.004),
}
FALLBACK_PRICING_MODEL = "gpt-4"

_FENCED_JSON = re.compile(r"```(?:json)?\s*([\s\S]*?)```")
_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


@dataclass
class CompletionUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


@dataclass
class CompletionOptions:
    model: str | None = None
    temperature: float = 0.7
    max_tokens: int | None = None


@dataclass
class CompletionResult:
    content: str
    usage: CompletionUsage = field(default_factory=CompletionUsage)
    estimated_cost: float = 0.0
    model: str | None = None


class CompletionClient(Protocol):
    def complete(self, messages: list[dict[str, str]], options: CompletionOptions | None = None) -> CompletionResult: ...


def estimate_cost(model: str, usage: CompletionUsage) -> float:
    """Estimated USD cost of a completion; unknown models priced as gpt-4."""
    prompt_rate, completion_rate = PRICING_PER_1K.get(model, PRICING_PER_1K[FALLBACK_PRICING_MODEL])
    return usage.prompt_tokens / 1000 * prompt_rate + usage.completion_tokens / 1000 * completion_rate


def parse_json_completion(text: str) -> dict:
    """Parse a JSON object out of completion text.

    Accepts bare JSON, JSON inside a markdown code fence, or the first
    {...} span embedded in prose.

    Raises:
        GenerationError: If no JSON object can be parsed
    """
    candidates = [text]
    fenced = _FENCED_JSON.search(text)
    if fenced:
        candidates.append(fenced.group(1).strip())
    embedded = _JSON_OBJECT.search(text)
    if embedded:
        candidates.append(embedded.group(0))

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            return parsed
    raise GenerationError("Could not parse JSON from completion")


def _usage_from_result(result) -> CompletionUsage:
    usage = result.usage() if callable(getattr(result, "usage", None)) else getattr(result, "usage", None)
    if usage is None:
        return CompletionUsage()
    prompt_tokens = getattr(usage, "input_tokens", None) or getattr(usage, "request_tokens", None) or 0
    completion_tokens = getattr(usage, "output_tokens", None) or getattr(usage, "response_tokens", None) or 0
    return CompletionUsage(prompt_tokens=prompt_tokens, completion_tokens=completion_tokens)


class PydanticAICompletionClient:
    """CompletionClient backed by a pydantic_ai Agent."""

    def __init__(self, provider: str | None = None, model_name: str | None = None):
        self.provider = provider or settings.llm_provider
        self.model_name = model_name or settings.llm_model

    def complete(self, messages: list[dict[str, str]], options: CompletionOptions | None = None) -> CompletionResult:
        options = options or CompletionOptions()
        model_name = options.model or self.model_name

        system_prompt = "\n\n".join(m["content"] for m in messages if m.get("role") == "system")
        user_prompt = "\n\n".join(m["content"] for m in messages if m.get("role") != "system")

        agent = Agent(
            model=get_model(self.provider, model_name),
            system_prompt=system_prompt,
            output_type=str,
        )
        model_settings = {"temperature": options.temperature}
        if options.max_tokens:
            model_settings["max_tokens"] = options.max_tokens

        logger.debug("Calling completion model", model=model_name, prompt_chars=len(user_prompt))
        result = agent.run_sync(user_prompt, model_settings=model_settings)

        usage = _usage_from_result(result)
        cost = estimate_cost(model_name, usage)
        logger.info("Completion generated", model=model_name, tokens=usage.total_tokens, estimated_cost=round(cost, 6))
        return CompletionResult(content=result.output, usage=usage, estimated_cost=cost, model=model_name)
