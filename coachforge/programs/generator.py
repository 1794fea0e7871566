"""Program generation: reuse a template when possible, otherwise generate.

Flow:
1. find_match on the request. A hit is applied as a template and the
   completion service is never called.
2. On a miss, a generating instance is created, the completion service
   produces the workout and/or nutrition sections, the parsed content is
   validated and the instance moves to generated.
3. The fresh instance is registered as a template, best effort: a failure
   there is logged and returned as a warning, never raised.
"""

import uuid
from dataclasses import dataclass, field

from loguru import logger
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from coachforge.core.errors import CoachForgeError, GenerationError
from coachforge.db.models import GeneratedProgram, ProgramTemplate
from coachforge.llm.client import (
    CompletionClient,
    CompletionOptions,
    CompletionResult,
    CompletionUsage,
    PydanticAICompletionClient,
    parse_json_completion,
)
from coachforge.llm.prompts import nutrition_messages, workout_messages
from coachforge.programs import repository
from coachforge.programs.applier import apply_template
from coachforge.programs.lifecycle import mark_generated
from coachforge.programs.types import Customizations, ProgramContent
from coachforge.templates.matcher import find_match
from coachforge.templates.service import create_from_generated
from coachforge.templates.types import CreateTemplateOptions, GenerationRequest, MatchType


@dataclass
class GenerationOutcome:
    """Result of generate_program.

    Attributes:
        program: The generated (or template-derived) instance
        source: template or generated
        match_type: Match type of the template lookup
        template: Template used, or the template registered from the new content
        usage: Token usage of completion calls (zero for template reuse)
        estimated_cost: Summed estimated cost of completion calls
        warnings: Non-fatal problems, such as a failed template registration
    """

    program: GeneratedProgram
    source: str
    match_type: MatchType
    template: ProgramTemplate | None = None
    usage: CompletionUsage = field(default_factory=CompletionUsage)
    estimated_cost: float = 0.0
    warnings: list[str] = field(default_factory=list)


def _sections_for(generation_type: str) -> list[str]:
    if generation_type == "workout_program":
        return ["workout_program"]
    if generation_type == "nutrition_plan":
        return ["nutrition_plan"]
    return ["workout_program", "nutrition_plan"]


def _complete_section(client: CompletionClient, request: GenerationRequest, section: str, options: CompletionOptions) -> tuple[dict, CompletionResult]:
    messages = workout_messages(request) if section == "workout_program" else nutrition_messages(request)
    result = client.complete(messages, options)
    parsed = parse_json_completion(result.content)
    if section not in parsed:
        raise GenerationError(f"Completion did not contain a '{section}' section")
    return parsed, result


def _build_content(parts: list[dict]) -> dict:
    merged: dict = {}
    for part in parts:
        for key, value in part.items():
            if key in ("key_recommendations", "warnings"):
                merged.setdefault(key, []).extend(value or [])
            else:
                merged.setdefault(key, value)
    try:
        content = ProgramContent.model_validate(merged)
    except ValidationError as e:
        raise GenerationError(f"Generated content does not match the program schema: {e}") from e
    return content.model_dump(exclude_none=True)


def _register_template(
    session: Session,
    program: GeneratedProgram,
    options: CreateTemplateOptions | None,
) -> tuple[ProgramTemplate | None, str | None]:
    savepoint = session.begin_nested()
    try:
        template = create_from_generated(session, program, options)
        savepoint.commit()
    except (CoachForgeError, SQLAlchemyError) as e:
        savepoint.rollback()
        logger.opt(exception=True).warning(
            "Failed to create template from generated program (non-critical): {}",
            str(e),
            instance_id=program.id,
        )
        return None, f"Template creation failed: {e}"
    return template, None


def generate_program(
    session: Session,
    request: GenerationRequest,
    *,
    producer_id: str,
    recipient_id: str,
    client: CompletionClient | None = None,
    use_templates: bool = True,
    allow_similar: bool = False,
    customizations: Customizations | dict | None = None,
    save_as_template: bool = True,
    template_options: CreateTemplateOptions | None = None,
    completion_options: CompletionOptions | None = None,
) -> GenerationOutcome:
    """Produce a program for a recipient, reusing templates when they match.

    Args:
        session: Database session
        request: Generation request
        producer_id: Coach requesting the program
        recipient_id: Client the program is for
        client: Completion service used on a cache miss (defaults to the
            pydantic_ai-backed client for the configured provider)
        use_templates: Look for a matching template first
        allow_similar: Accept a similar (not exact) template match
        customizations: Customizations applied when a template is reused
        save_as_template: Register freshly generated content as a template
        template_options: Options for the registered template
        completion_options: Model options passed to the completion service

    Returns:
        GenerationOutcome for the new instance

    Raises:
        InvalidStateError: If the request lacks fingerprint fields
        GenerationError: If the completion output cannot be parsed or validated
    """
    match_type: MatchType = "none"
    if use_templates:
        match = find_match(session, request, allow_similar=allow_similar, producer_id=producer_id)
        match_type = match.match_type
        if match.template is not None:
            logger.info(
                "Using existing template instead of regenerating",
                template_id=match.template.id,
                match_type=match.match_type,
                producer_id=producer_id,
                recipient_id=recipient_id,
            )
            program = apply_template(
                session,
                match.template.id,
                recipient_id=recipient_id,
                producer_id=producer_id,
                customizations=customizations,
            )
            return GenerationOutcome(program=program, source="template", match_type=match.match_type, template=match.template)

    request_id = str(uuid.uuid4())
    logger.info("No matching template found, generating new program", request_id=request_id, producer_id=producer_id)
    program = repository.create_generated_program(
        session,
        request_id=request_id,
        producer_id=producer_id,
        recipient_id=recipient_id,
        generation_type=request.generation_type,
        status="generating",
        input_data=request.model_dump(),
    )

    client = client or PydanticAICompletionClient()
    options = completion_options or CompletionOptions()
    parts: list[dict] = []
    usage = CompletionUsage()
    cost = 0.0
    models: list[str] = []
    try:
        for section in _sections_for(request.generation_type):
            parsed, result = _complete_section(client, request, section, options)
            parts.append(parsed)
            usage.prompt_tokens += result.usage.prompt_tokens
            usage.completion_tokens += result.usage.completion_tokens
            cost += result.estimated_cost
            if result.model:
                models.append(result.model)
        content = _build_content(parts)
    except GenerationError:
        logger.error(f"Program generation failed for request {request_id}")
        raise

    mark_generated(
        program,
        content,
        ai_metadata={
            "source": "generated",
            "model": models[0] if models else None,
            "tokens_used": {
                "prompt": usage.prompt_tokens,
                "completion": usage.completion_tokens,
                "total": usage.total_tokens,
            },
            "estimated_cost": cost,
        },
    )
    session.flush()
    logger.info("Complete program generated successfully", request_id=request_id, instance_id=program.id)

    outcome = GenerationOutcome(
        program=program,
        source="generated",
        match_type=match_type,
        usage=usage,
        estimated_cost=cost,
    )
    if save_as_template:
        template, warning = _register_template(session, program, template_options)
        outcome.template = template
        if warning:
            outcome.warnings.append(warning)
    return outcome
