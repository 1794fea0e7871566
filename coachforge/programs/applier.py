"""Materialize templates into generated programs for a recipient.

The template's content is deep-copied before any customization touches it;
a template's stored JSON is never shared with an instance.
"""

import copy
import time

from loguru import logger
from sqlalchemy.orm import Session

from coachforge.core.errors import InvalidStateError, UnauthorizedError
from coachforge.db.models import GeneratedProgram, ProgramTemplate
from coachforge.programs import repository
from coachforge.programs.types import Customizations
from coachforge.templates import repository as template_repository
from coachforge.templates.service import record_usage

# customization kind -> option flag that must be enabled on the template
CUSTOMIZATION_FLAGS = {
    "duration_weeks": "allow_duration_adjustment",
    "equipment": "allow_equipment_substitution",
    "macros": "allow_macro_adjustment",
}


def _adjust_duration(content: dict, weeks: int) -> None:
    # Only the duration field changes; weekly structure is kept as generated
    workout_program = content.get("workout_program")
    if workout_program is not None:
        workout_program.setdefault("duration", {})["weeks"] = weeks


def _filter_equipment(content: dict, available: list[str]) -> None:
    allowed = set(available)
    for workout in (content.get("workout_program") or {}).get("workouts") or []:
        if "equipment" in workout:
            workout["equipment"] = [item for item in workout["equipment"] if item in allowed]
        for exercise in workout.get("exercises") or []:
            if "equipment" in exercise:
                exercise["equipment"] = [item for item in exercise["equipment"] or [] if item in allowed]


def _merge_macros(content: dict, macros: dict) -> None:
    nutrition_plan = content.get("nutrition_plan")
    if nutrition_plan is not None:
        nutrition_plan["daily_targets"] = {**(nutrition_plan.get("daily_targets") or {}), **macros}


_CUSTOMIZERS = {
    "duration_weeks": _adjust_duration,
    "equipment": _filter_equipment,
    "macros": _merge_macros,
}


def customize_content(content: dict, customizations: Customizations, options: dict) -> tuple[dict, dict]:
    """Apply permitted customizations to a copy of content.

    Args:
        content: Template content (left untouched)
        customizations: Requested customizations
        options: Template customization_options flags

    Returns:
        Tuple of (customized content, customizations actually applied)
    """
    customized = copy.deepcopy(content)
    applied: dict = {}
    for kind, value in customizations.model_dump(exclude_none=True).items():
        flag = CUSTOMIZATION_FLAGS[kind]
        if not options.get(flag, True):
            logger.debug(f"Customization '{kind}' not permitted by template ({flag}=False), skipping")
            continue
        _CUSTOMIZERS[kind](customized, value)
        applied[kind] = value
    return customized, applied


def _ensure_can_use(template: ProgramTemplate, producer_id: str) -> None:
    if template.status != "active":
        raise InvalidStateError(f"Template {template.id} is archived")
    if template.visibility == "private" and template.created_by != producer_id:
        raise UnauthorizedError(f"Template {template.id} is private to its owner")


def apply_template(
    session: Session,
    template_id: str,
    *,
    recipient_id: str,
    producer_id: str,
    customizations: Customizations | dict | None = None,
) -> GeneratedProgram:
    """Create a generated program for a recipient from a template.

    Args:
        session: Database session
        template_id: Template version ID
        recipient_id: Client receiving the program
        producer_id: Coach applying the template
        customizations: Optional duration/equipment/macro customizations

    Returns:
        New GeneratedProgram in status generated

    Raises:
        NotFoundError: If the template does not exist
        InvalidStateError: If the template is archived
        UnauthorizedError: If the template is private to another producer
    """
    if customizations is None:
        customizations = Customizations()
    elif isinstance(customizations, dict):
        customizations = Customizations.model_validate(customizations)

    template = template_repository.require_template(session, template_id)
    _ensure_can_use(template, producer_id)

    content, applied = customize_content(template.content or {}, customizations, template.customization_options or {})
    new_consumer = not template_repository.has_prior_usage(session, template.id, recipient_id)

    program = repository.create_generated_program(
        session,
        request_id=f"TMPL-{template.id}-{time.time_ns()}",
        producer_id=producer_id,
        recipient_id=recipient_id,
        generation_type=template.template_type,
        status="generated",
        input_data={"template_id": template.id, "customizations": customizations.model_dump(exclude_none=True)},
        content=content,
        template_id=template.id,
        customizations=applied,
        ai_metadata={**(template.ai_metadata or {}), "source": "template", "template_id": template.id},
    )
    record_usage(session, template.id, new_consumer=new_consumer)

    logger.info(
        "Template applied to client",
        template_id=template.id,
        recipient_id=recipient_id,
        producer_id=producer_id,
        instance_id=program.id,
    )
    return program
