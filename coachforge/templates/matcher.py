"""Template matcher: decide whether a request can reuse an existing template.

Lookup order:
1. Exact input fingerprint among active latest-version templates.
2. Characteristic similarity among public active latest-version templates.
3. No match; the caller generates fresh content.
"""

from dataclasses import dataclass, field

from loguru import logger
from sqlalchemy.orm import Session

from coachforge.config.settings import settings
from coachforge.db.models import ProgramTemplate
from coachforge.templates import repository
from coachforge.templates.fingerprint import input_fingerprint
from coachforge.templates.types import GenerationRequest, MatchType


@dataclass
class MatchResult:
    """Outcome of a template lookup.

    Attributes:
        match_type: exact, similar or none
        template: Best matching template, None when match_type is none
        alternatives: Remaining ranked candidates (similar matches only)
        input_fingerprint: Fingerprint the request hashed to
    """

    match_type: MatchType
    template: ProgramTemplate | None = None
    alternatives: list[ProgramTemplate] = field(default_factory=list)
    input_fingerprint: str | None = None

    @property
    def is_hit(self) -> bool:
        return self.template is not None


def _rank_key(template: ProgramTemplate) -> tuple[float, int]:
    return (template.average_rating or 0.0, template.times_used or 0)


def is_similar(template: ProgramTemplate, request: GenerationRequest, tolerance_weeks: int) -> bool:
    """Characteristic overlap check for one candidate.

    Same experience level, at least one shared goal, duration within
    tolerance, and every piece of equipment the template needs is available.
    """
    characteristics = template.characteristics or {}
    if characteristics.get("experience_level") != request.experience_level:
        return False
    if not set(characteristics.get("goals") or []) & set(request.goals):
        return False
    weeks = (characteristics.get("duration") or {}).get("weeks")
    if weeks is None or request.duration_weeks is None or abs(weeks - request.duration_weeks) > tolerance_weeks:
        return False
    return set(characteristics.get("equipment") or []) <= set(request.equipment)


def find_similar(
    session: Session,
    request: GenerationRequest,
    *,
    tolerance_weeks: int | None = None,
    limit: int | None = None,
) -> list[ProgramTemplate]:
    """Rank public templates whose characteristics overlap the request.

    Returns:
        Up to limit templates, best (average rating, times used) first
    """
    tolerance = settings.template_duration_tolerance_weeks if tolerance_weeks is None else tolerance_weeks
    limit = settings.template_similar_limit if limit is None else limit
    if not request.experience_level or request.duration_weeks is None:
        return []

    candidates = repository.find_similarity_candidates(
        session,
        experience_level=request.experience_level,
        min_weeks=request.duration_weeks - tolerance,
        max_weeks=request.duration_weeks + tolerance,
    )
    similar = [template for template in candidates if is_similar(template, request, tolerance)]
    similar.sort(key=_rank_key, reverse=True)
    return similar[:limit]


def _usable_by(template: ProgramTemplate, producer_id: str | None) -> bool:
    return producer_id is None or template.visibility != "private" or template.created_by == producer_id


def find_match(
    session: Session,
    request: GenerationRequest,
    *,
    allow_similar: bool = True,
    producer_id: str | None = None,
) -> MatchResult:
    """Find a reusable template for a generation request.

    An exact fingerprint hit always wins; similarity search only runs when
    there is none.

    Args:
        session: Database session
        request: Generation request
        allow_similar: Fall back to characteristic similarity on a miss
        producer_id: When given, skip private templates owned by someone else

    Returns:
        MatchResult describing the hit (or miss)

    Raises:
        InvalidStateError: If the request lacks fields the fingerprint needs
    """
    fingerprint = input_fingerprint(request)

    exact = [t for t in repository.find_by_input_fingerprint(session, fingerprint) if _usable_by(t, producer_id)]
    if exact:
        template = exact[0]
        logger.info("Found exact matching template", template_id=template.id, input_fingerprint=fingerprint)
        return MatchResult(match_type="exact", template=template, input_fingerprint=fingerprint)

    if allow_similar:
        similar = find_similar(session, request)
        if similar:
            logger.info("Found similar template", template_id=similar[0].id, candidates=len(similar))
            return MatchResult(
                match_type="similar",
                template=similar[0],
                alternatives=similar[1:],
                input_fingerprint=fingerprint,
            )

    logger.debug(f"No template match for input fingerprint {fingerprint}")
    return MatchResult(match_type="none", input_fingerprint=fingerprint)
