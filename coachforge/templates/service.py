"""Template store operations.

Registers generated instances as reusable templates and maintains the
usage and rating counters. Counter changes go through single UPDATE
statements in the repository, never read-modify-write in Python.
"""

import copy
import math
import uuid
from dataclasses import dataclass, field

from loguru import logger
from sqlalchemy import select
from sqlalchemy.orm import Session

from coachforge.core.errors import InvalidStateError, NotFoundError
from coachforge.db.models import GeneratedProgram, ProgramTemplate
from coachforge.templates import repository
from coachforge.templates.characteristics import (
    default_description,
    default_name,
    derive_characteristics,
    determine_category,
    generate_tags,
    template_type_for,
)
from coachforge.templates.fingerprint import CONTENT_KEYS, content_fingerprint, input_fingerprint, normalize_inputs
from coachforge.templates.types import CreateTemplateOptions, GenerationRequest, SearchSort, TemplateSearchCriteria
from coachforge.utils.timezone import to_utc

TEMPLATE_SOURCE_STATUSES = {"generated", "reviewed", "approved", "applied"}


@dataclass
class TemplatePage:
    templates: list[ProgramTemplate]
    total: int
    page: int
    limit: int
    total_pages: int


@dataclass
class TemplateWithHistory:
    template: ProgramTemplate
    versions: list[ProgramTemplate] = field(default_factory=list)


def request_from_instance(instance: GeneratedProgram) -> GenerationRequest:
    """Rebuild the generation request stored on an instance."""
    return GenerationRequest.model_validate(instance.input_data or {})


def _template_content(content: dict) -> dict:
    return {key: copy.deepcopy(content[key]) for key in CONTENT_KEYS if content.get(key)}


def create_from_generated(
    session: Session,
    instance: GeneratedProgram,
    options: CreateTemplateOptions | None = None,
) -> ProgramTemplate:
    """Register a generated instance as version 1 of a new template chain.

    Retrying for the same instance returns the template created the first
    time. Duplicate content across different instances is left for the
    duplicate merge maintenance job.

    Args:
        session: Database session
        instance: Generated instance with populated content
        options: Optional name/description/category/tags/visibility overrides

    Returns:
        Created (or previously created) ProgramTemplate

    Raises:
        InvalidStateError: If the instance has no content or its inputs lack
            the fields the input fingerprint needs
    """
    options = options or CreateTemplateOptions()

    existing = session.execute(
        select(ProgramTemplate).where(ProgramTemplate.source_generation_id == instance.id)
    ).scalars().first()
    if existing is not None:
        logger.debug(f"Template already registered for instance {instance.id}: {existing.id}")
        return existing

    if instance.status not in TEMPLATE_SOURCE_STATUSES:
        raise InvalidStateError(f"Cannot create a template from an instance in status '{instance.status}'")

    content = _template_content(instance.content or {})
    if not content:
        raise InvalidStateError(f"Instance {instance.id} has no workout or nutrition content")

    request = request_from_instance(instance)
    snapshot = normalize_inputs(request)
    characteristics = derive_characteristics(request, content)

    template_id = str(uuid.uuid4())
    template = ProgramTemplate(
        id=template_id,
        version=1,
        is_latest_version=True,
        parent_id=None,
        chain_root_id=template_id,
        name=options.name or default_name(content),
        description=options.description or default_description(content),
        created_by=instance.producer_id,
        template_type=template_type_for(content),
        category=options.category or determine_category(request.goals),
        tags=options.tags if options.tags is not None else generate_tags(request, content),
        characteristics=characteristics.model_dump(),
        experience_level=characteristics.experience_level,
        duration_weeks=characteristics.duration.weeks,
        input_snapshot=snapshot,
        content=content,
        ai_metadata={
            **(instance.ai_metadata or {}),
            "generated_at": instance.created_at.isoformat() if instance.created_at else None,
        },
        input_fingerprint=input_fingerprint(request),
        content_fingerprint=content_fingerprint(content),
        status="active",
        visibility=options.visibility,
        is_featured=options.is_featured,
        customization_options=options.customization_options.model_dump(),
        source_generation_id=instance.id,
    )
    session.add(template)
    if instance.template_id is None:
        instance.template_id = template_id
    session.flush()

    logger.info(
        "Template created from generated program",
        template_id=template.id,
        instance_id=instance.id,
        producer_id=instance.producer_id,
    )
    return template


def record_usage(session: Session, template_id: str, *, new_consumer: bool = False) -> ProgramTemplate:
    """Atomically increment a template's usage counter.

    Args:
        session: Database session
        template_id: Template version ID
        new_consumer: Also increment the distinct-consumer counter

    Returns:
        The template with refreshed counters

    Raises:
        NotFoundError: If the template does not exist
    """
    # The UPDATE comes first so the transaction takes its write lock immediately
    if repository.increment_usage(session, template_id, new_consumer=new_consumer) == 0:
        raise NotFoundError(f"Template not found: {template_id}")
    template = session.get(ProgramTemplate, template_id, populate_existing=True)
    logger.debug(f"Template usage recorded: {template_id} times_used={template.times_used}")
    return template


def add_rating(
    session: Session,
    template_id: str,
    *,
    user_id: str,
    score: int,
    feedback: str | None = None,
) -> ProgramTemplate:
    """Atomically fold a 1-5 rating into the template's running average.

    Raises:
        InvalidStateError: If score is outside 1-5
        NotFoundError: If the template does not exist
    """
    if not 1 <= score <= 5:
        raise InvalidStateError(f"Rating must be between 1 and 5, got {score}")
    if repository.fold_rating(session, template_id, score) == 0:
        raise NotFoundError(f"Template not found: {template_id}")
    repository.add_rating_row(session, template_id=template_id, user_id=user_id, rating=score, feedback=feedback)
    template = session.get(ProgramTemplate, template_id, populate_existing=True)
    logger.info(
        "Template rated",
        template_id=template_id,
        rating=score,
        average_rating=round(template.average_rating, 2),
    )
    return template


def _matches_facets(template: ProgramTemplate, criteria: TemplateSearchCriteria) -> bool:
    characteristics = template.characteristics or {}
    if criteria.goals and not set(criteria.goals) & set(characteristics.get("goals") or []):
        return False
    if criteria.tags and not set(criteria.tags) <= set(template.tags or []):
        return False
    if criteria.equipment is not None and not set(characteristics.get("equipment") or []) <= set(criteria.equipment):
        return False
    if criteria.diet_type and characteristics.get("diet_type") != criteria.diet_type:
        return False
    return True


def _sort_key(sort_by: SearchSort):
    if sort_by == "popular":
        return lambda t: (t.times_used, t.average_rating)
    if sort_by == "recent":
        return lambda t: to_utc(t.created_at)
    return lambda t: (t.average_rating, t.times_used)


def search_templates(
    session: Session,
    criteria: TemplateSearchCriteria | None = None,
    *,
    sort_by: SearchSort = "rating",
    page: int = 1,
    limit: int = 20,
) -> TemplatePage:
    """Search active latest-version templates with filters and pagination.

    Args:
        session: Database session
        criteria: Filters; all optional
        sort_by: rating (rating then usage), popular (usage then rating) or recent
        page: 1-based page number
        limit: Page size

    Returns:
        TemplatePage with the requested slice and totals
    """
    criteria = criteria or TemplateSearchCriteria()
    page = max(page, 1)
    limit = max(limit, 1)

    candidates = repository.search_templates(
        session,
        category=criteria.category,
        experience_level=criteria.experience_level,
        min_weeks=criteria.min_duration_weeks,
        max_weeks=criteria.max_duration_weeks,
        created_by=criteria.created_by,
        visibility=criteria.visibility,
        featured_only=criteria.featured_only,
        query_text=criteria.query,
    )
    matching = [template for template in candidates if _matches_facets(template, criteria)]
    matching.sort(key=_sort_key(sort_by), reverse=True)

    offset = (page - 1) * limit
    return TemplatePage(
        templates=matching[offset : offset + limit],
        total=len(matching),
        page=page,
        limit=limit,
        total_pages=math.ceil(len(matching) / limit) if matching else 0,
    )


def get_featured_templates(session: Session, *, limit: int = 10) -> list[ProgramTemplate]:
    """Public featured templates, best rated first."""
    criteria = TemplateSearchCriteria(visibility="public", featured_only=True)
    return search_templates(session, criteria, sort_by="rating", limit=limit).templates


def get_template_with_history(session: Session, template_id: str) -> TemplateWithHistory:
    template = repository.require_template(session, template_id)
    return TemplateWithHistory(template=template, versions=repository.list_chain(session, template.chain_root_id))
