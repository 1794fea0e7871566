"""Template maintenance jobs.

Not on the request path: duplicate merge, fingerprint rebuild, usage
statistics and registering existing generated programs as templates.
Every job that writes supports dry_run.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone

from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from coachforge.core.errors import CoachForgeError
from coachforge.db.models import GeneratedProgram, ProgramTemplate
from coachforge.templates import repository
from coachforge.templates.fingerprint import content_fingerprint, input_fingerprint_from_snapshot
from coachforge.templates.service import create_from_generated
from coachforge.templates.types import CreateTemplateOptions
from coachforge.utils.timezone import to_utc

DUPLICATE_REASON = "duplicate"


@dataclass
class DuplicateGroup:
    content_fingerprint: str
    kept_id: str
    archived_ids: list[str]


@dataclass
class MergeResult:
    groups: list[DuplicateGroup] = field(default_factory=list)
    archived: int = 0
    dry_run: bool = False


@dataclass
class MigrationResult:
    total: int = 0
    migrated: int = 0
    skipped: int = 0
    errors: list[dict] = field(default_factory=list)
    dry_run: bool = False


@dataclass
class CategoryStats:
    category: str
    count: int
    total_usage: int
    average_rating: float


@dataclass
class UsageStats:
    total_templates: int
    total_usage: int
    average_rating: float
    average_usage: float
    by_category: list[CategoryStats]


def _keeper_key(template: ProgramTemplate) -> tuple:
    # Highest usage wins; ties go to the better rated, then the older template
    return (-template.times_used, -template.average_rating, to_utc(template.created_at))


def merge_duplicate_templates(session: Session, *, dry_run: bool = False) -> MergeResult:
    """Archive duplicate templates that share a content fingerprint.

    Within every group of active latest-version templates with the same
    content fingerprint, the template with the highest usage count stays
    active and the rest are archived with reason "duplicate".

    Args:
        session: Database session
        dry_run: Report what would be archived without writing

    Returns:
        MergeResult listing each duplicate group
    """
    groups: dict[str, list[ProgramTemplate]] = defaultdict(list)
    for template in repository.list_active_latest(session):
        groups[template.content_fingerprint].append(template)

    result = MergeResult(dry_run=dry_run)
    now = datetime.now(timezone.utc)
    for fingerprint, members in groups.items():
        if len(members) < 2:
            continue
        ordered = sorted(members, key=_keeper_key)
        keeper, duplicates = ordered[0], ordered[1:]
        result.groups.append(
            DuplicateGroup(
                content_fingerprint=fingerprint,
                kept_id=keeper.id,
                archived_ids=[duplicate.id for duplicate in duplicates],
            )
        )
        result.archived += len(duplicates)
        if dry_run:
            continue
        for duplicate in duplicates:
            duplicate.status = "archived"
            duplicate.archived_reason = DUPLICATE_REASON
            duplicate.archived_at = now

    if not dry_run:
        session.flush()

    logger.info(
        "Duplicate template merge finished",
        groups=len(result.groups),
        archived=result.archived,
        dry_run=dry_run,
    )
    return result


def rebuild_fingerprints(session: Session, *, dry_run: bool = False) -> int:
    """Recompute stored fingerprints for every template version.

    Returns:
        Number of templates whose fingerprints changed
    """
    templates = list(session.execute(select(ProgramTemplate)).scalars().all())
    changed = 0
    for template in templates:
        new_content = content_fingerprint(template.content or {})
        new_input = (
            input_fingerprint_from_snapshot(template.input_snapshot)
            if template.input_snapshot
            else template.input_fingerprint
        )
        if new_content == template.content_fingerprint and new_input == template.input_fingerprint:
            continue
        changed += 1
        if not dry_run:
            template.content_fingerprint = new_content
            template.input_fingerprint = new_input

    if not dry_run:
        session.flush()
    logger.info(f"Fingerprints rebuilt: {changed} of {len(templates)} templates changed (dry_run={dry_run})")
    return changed


def generate_usage_stats(session: Session) -> UsageStats:
    """Usage and rating aggregates over active latest-version templates."""
    templates = repository.list_active_latest(session)

    per_category: dict[str, list[ProgramTemplate]] = defaultdict(list)
    for template in templates:
        per_category[template.category].append(template)

    by_category = [
        CategoryStats(
            category=category,
            count=len(members),
            total_usage=sum(member.times_used for member in members),
            average_rating=sum(member.average_rating for member in members) / len(members),
        )
        for category, members in per_category.items()
    ]
    by_category.sort(key=lambda stats: stats.total_usage, reverse=True)

    total = len(templates)
    total_usage = sum(template.times_used for template in templates)
    return UsageStats(
        total_templates=total,
        total_usage=total_usage,
        average_rating=sum(template.average_rating for template in templates) / total if total else 0.0,
        average_usage=total_usage / total if total else 0.0,
        by_category=by_category,
    )


def migrate_existing_programs(
    session: Session,
    *,
    statuses: tuple[str, ...] = ("approved", "applied"),
    limit: int = 100,
    dry_run: bool = False,
) -> MigrationResult:
    """Register approved/applied generated programs that have no template yet.

    Each program is migrated inside its own savepoint; a failure is
    recorded in the result and does not stop the batch.
    """
    query = (
        select(GeneratedProgram)
        .where(GeneratedProgram.status.in_(statuses))
        .order_by(GeneratedProgram.created_at.asc())
        .limit(limit)
    )
    programs = list(session.execute(query).scalars().all())
    result = MigrationResult(total=len(programs), dry_run=dry_run)

    for program in programs:
        if program.template_id is not None or not (program.content or {}).get("workout_program"):
            result.skipped += 1
            continue
        if dry_run:
            logger.info("Would migrate program", instance_id=program.id, producer_id=program.producer_id)
            result.migrated += 1
            continue

        savepoint = session.begin_nested()
        try:
            template = create_from_generated(session, program, CreateTemplateOptions(visibility="private"))
            savepoint.commit()
        except (CoachForgeError, SQLAlchemyError) as e:
            savepoint.rollback()
            logger.opt(exception=True).warning(
                "Failed to migrate generated program: {}",
                str(e),
                instance_id=program.id,
            )
            result.errors.append({"instance_id": program.id, "error": str(e)})
            continue
        result.migrated += 1
        logger.debug(f"Program {program.id} migrated to template {template.id}")

    logger.info(
        "Program migration finished",
        total=result.total,
        migrated=result.migrated,
        skipped=result.skipped,
        errors=len(result.errors),
    )
    return result
