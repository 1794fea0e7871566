"""Repository functions for template persistence.

Handles creating and querying template versions and the counter/flag
updates that must happen as single statements.
Single responsibility: database operations only.
"""

from sqlalchemy import case, func, or_, select, update
from sqlalchemy.orm import Session

from coachforge.core.errors import NotFoundError
from coachforge.db.models import GeneratedProgram, ProgramTemplate, TemplateRating


def require_template(session: Session, template_id: str) -> ProgramTemplate:
    """Load a template version or raise NotFoundError.

    Args:
        session: Database session
        template_id: Template version ID

    Returns:
        ProgramTemplate instance

    Raises:
        NotFoundError: If no template with that ID exists
    """
    template = session.get(ProgramTemplate, template_id)
    if template is None:
        raise NotFoundError(f"Template not found: {template_id}")
    return template


def list_chain(session: Session, chain_root_id: str, *, refresh: bool = False) -> list[ProgramTemplate]:
    """List every version in a chain, newest version first.

    Args:
        session: Database session
        chain_root_id: Root template ID of the chain
        refresh: Overwrite already-loaded instances with database state

    Returns:
        List of ProgramTemplate instances ordered by version DESC
    """
    query = (
        select(ProgramTemplate)
        .where(ProgramTemplate.chain_root_id == chain_root_id)
        .order_by(ProgramTemplate.version.desc())
    )
    if refresh:
        query = query.execution_options(populate_existing=True)
    return list(session.execute(query).scalars().all())


def get_latest_in_chain(session: Session, chain_root_id: str) -> ProgramTemplate | None:
    query = select(ProgramTemplate).where(
        ProgramTemplate.chain_root_id == chain_root_id,
        ProgramTemplate.is_latest_version.is_(True),
    )
    return session.execute(query).scalars().first()


def lock_chain_root(session: Session, chain_root_id: str) -> ProgramTemplate:
    """Take a row lock on the chain root for the rest of the transaction.

    Backends without row locks (SQLite) ignore FOR UPDATE; the process-local
    chain lock and the (chain_root_id, version) constraint still apply there.
    """
    query = (
        select(ProgramTemplate)
        .where(ProgramTemplate.id == chain_root_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    root = session.execute(query).scalars().first()
    if root is None:
        raise NotFoundError(f"Template chain not found: {chain_root_id}")
    return root


def find_by_input_fingerprint(session: Session, fingerprint: str) -> list[ProgramTemplate]:
    """Active latest-version templates with an exact input fingerprint.

    Returns:
        Templates ordered by average rating DESC, then times used DESC
    """
    query = (
        select(ProgramTemplate)
        .where(
            ProgramTemplate.input_fingerprint == fingerprint,
            ProgramTemplate.status == "active",
            ProgramTemplate.is_latest_version.is_(True),
        )
        .order_by(ProgramTemplate.average_rating.desc(), ProgramTemplate.times_used.desc())
    )
    return list(session.execute(query).scalars().all())


def find_similarity_candidates(
    session: Session,
    *,
    experience_level: str,
    min_weeks: int,
    max_weeks: int,
) -> list[ProgramTemplate]:
    """Prefilter public active latest-version templates on the indexed columns.

    Goal overlap and equipment compatibility live in JSON and are checked
    by the matcher.
    """
    query = (
        select(ProgramTemplate)
        .where(
            ProgramTemplate.status == "active",
            ProgramTemplate.visibility == "public",
            ProgramTemplate.is_latest_version.is_(True),
            ProgramTemplate.experience_level == experience_level,
            ProgramTemplate.duration_weeks >= min_weeks,
            ProgramTemplate.duration_weeks <= max_weeks,
        )
        .order_by(ProgramTemplate.average_rating.desc(), ProgramTemplate.times_used.desc())
    )
    return list(session.execute(query).scalars().all())


def list_active_latest(session: Session) -> list[ProgramTemplate]:
    query = (
        select(ProgramTemplate)
        .where(ProgramTemplate.status == "active", ProgramTemplate.is_latest_version.is_(True))
        .order_by(ProgramTemplate.created_at.asc())
    )
    return list(session.execute(query).scalars().all())


def increment_usage(session: Session, template_id: str, *, new_consumer: bool = False) -> int:
    """Increment usage counters in one UPDATE statement.

    Returns:
        Number of rows updated (0 when the template does not exist)
    """
    values = {"times_used": ProgramTemplate.times_used + 1}
    if new_consumer:
        values["active_clients"] = ProgramTemplate.active_clients + 1
    stmt = (
        update(ProgramTemplate)
        .where(ProgramTemplate.id == template_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return session.execute(stmt).rowcount


def fold_rating(session: Session, template_id: str, score: int) -> int:
    """Fold one score into the running average in one UPDATE statement.

    The new average and count are both computed from the row's current
    values, so concurrent raters never overwrite each other.
    """
    stmt = (
        update(ProgramTemplate)
        .where(ProgramTemplate.id == template_id)
        .values(
            average_rating=(ProgramTemplate.average_rating * ProgramTemplate.rating_count + score)
            / (ProgramTemplate.rating_count + 1.0),
            rating_count=ProgramTemplate.rating_count + 1,
        )
        .execution_options(synchronize_session=False)
    )
    return session.execute(stmt).rowcount


def add_rating_row(
    session: Session,
    *,
    template_id: str,
    user_id: str,
    rating: int,
    feedback: str | None = None,
) -> TemplateRating:
    row = TemplateRating(template_id=template_id, user_id=user_id, rating=rating, feedback=feedback)
    session.add(row)
    session.flush()
    return row


def set_latest_version(session: Session, chain_root_id: str, template_id: str) -> None:
    """Make template_id the only latest version of its chain.

    One UPDATE sets the flag on every chain member at once, so the chain
    never holds zero or two latest versions at commit time.
    """
    stmt = (
        update(ProgramTemplate)
        .where(ProgramTemplate.chain_root_id == chain_root_id)
        .values(is_latest_version=case((ProgramTemplate.id == template_id, True), else_=False))
        .execution_options(synchronize_session=False)
    )
    session.execute(stmt)


def has_prior_usage(session: Session, template_id: str, recipient_id: str) -> bool:
    """Whether the recipient already received an instance of this template."""
    query = (
        select(func.count())
        .select_from(GeneratedProgram)
        .where(GeneratedProgram.template_id == template_id, GeneratedProgram.recipient_id == recipient_id)
    )
    return (session.execute(query).scalar_one() or 0) > 0


def search_templates(
    session: Session,
    *,
    category: str | None = None,
    experience_level: str | None = None,
    min_weeks: int | None = None,
    max_weeks: int | None = None,
    created_by: str | None = None,
    visibility: str | None = None,
    featured_only: bool = False,
    query_text: str | None = None,
) -> list[ProgramTemplate]:
    """Column-level filtering for template search; JSON facets are filtered by the caller."""
    query = select(ProgramTemplate).where(
        ProgramTemplate.status == "active",
        ProgramTemplate.is_latest_version.is_(True),
    )
    if category:
        query = query.where(ProgramTemplate.category == category)
    if experience_level:
        query = query.where(ProgramTemplate.experience_level == experience_level)
    if min_weeks is not None:
        query = query.where(ProgramTemplate.duration_weeks >= min_weeks)
    if max_weeks is not None:
        query = query.where(ProgramTemplate.duration_weeks <= max_weeks)
    if created_by:
        query = query.where(ProgramTemplate.created_by == created_by)
    if visibility:
        query = query.where(ProgramTemplate.visibility == visibility)
    if featured_only:
        query = query.where(ProgramTemplate.is_featured.is_(True))
    if query_text:
        pattern = f"%{query_text}%"
        query = query.where(or_(ProgramTemplate.name.ilike(pattern), ProgramTemplate.description.ilike(pattern)))
    return list(session.execute(query).scalars().all())
