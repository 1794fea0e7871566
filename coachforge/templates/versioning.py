"""Version chain manager for templates.

Every version of a template shares chain_root_id with the first version.
Exactly one row per chain carries is_latest_version; the flag is always
moved with a single UPDATE across the whole chain. Versions are never
deleted, rollback only moves the flag.

Concurrent writers on one chain are serialized by a process-local lock and
a row lock on the chain root. The (chain_root_id, version) unique
constraint turns anything that slips past both into a ConflictError.
"""

import copy
import threading
import uuid
from collections import defaultdict
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone

from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from coachforge.config.settings import settings
from coachforge.core.errors import ConflictError, InvalidStateError, UnauthorizedError
from coachforge.db.models import ProgramTemplate
from coachforge.templates import repository
from coachforge.templates.fingerprint import content_fingerprint, input_fingerprint_from_snapshot
from coachforge.templates.types import TemplateUpdate

# Columns copied from the latest version into a new version
COPIED_FIELDS = (
    "name",
    "description",
    "created_by",
    "template_type",
    "category",
    "tags",
    "characteristics",
    "experience_level",
    "duration_weeks",
    "input_snapshot",
    "content",
    "ai_metadata",
    "input_fingerprint",
    "visibility",
    "is_featured",
    "customization_options",
    "source_generation_id",
)

_chain_locks: defaultdict[str, threading.Lock] = defaultdict(threading.Lock)
_registry_lock = threading.Lock()


@contextmanager
def chain_lock(chain_root_id: str) -> Iterator[None]:
    """Process-local mutual exclusion for one version chain."""
    with _registry_lock:
        lock = _chain_locks[chain_root_id]
    with lock:
        yield


@dataclass
class VersionSummary:
    id: str
    version: int
    name: str
    is_latest_version: bool
    workout_count: int
    updated_at: datetime | None


@dataclass
class VersionComparison:
    first: VersionSummary
    second: VersionSummary
    name_changed: bool
    description_changed: bool
    content_changed: bool
    workouts_changed: bool
    changed_fields: list[str]


def _workout_count(template: ProgramTemplate) -> int:
    workout_program = (template.content or {}).get("workout_program") or {}
    return len(workout_program.get("workouts") or [])


def _snapshot_from_characteristics(characteristics: dict) -> dict:
    """Normalized generation inputs described by a set of template facets."""
    return {
        "goals": sorted(characteristics.get("goals") or []),
        "experience_level": characteristics.get("experience_level"),
        "duration": (characteristics.get("duration") or {}).get("weeks"),
        "equipment": sorted(characteristics.get("equipment") or []),
        "diet_type": characteristics.get("diet_type"),
    }


def _apply_updates(template: ProgramTemplate, updates: TemplateUpdate) -> None:
    changes = updates.model_dump(exclude_unset=True)
    for key, value in changes.items():
        if key == "characteristics" and value is not None:
            template.characteristics = value
            template.experience_level = value.get("experience_level")
            template.duration_weeks = (value.get("duration") or {}).get("weeks")
            # Exact matching must agree with the new facets
            template.input_snapshot = _snapshot_from_characteristics(value)
            template.input_fingerprint = input_fingerprint_from_snapshot(template.input_snapshot)
        elif key == "content" and value is not None:
            template.content = copy.deepcopy(value)
        elif value is not None or key in ("description", "version_notes"):
            setattr(template, key, value)


def create_new_version(
    session: Session,
    template_id: str,
    updates: TemplateUpdate | dict,
    *,
    actor_id: str,
    expected_version: int | None = None,
) -> ProgramTemplate:
    """Cut a new version of a template chain from its latest version.

    Args:
        session: Database session
        template_id: Any version ID in the chain
        updates: Fields to change on top of the latest version
        actor_id: Acting user; must own the template
        expected_version: Optional version the caller believes is latest

    Returns:
        The new latest version

    Raises:
        NotFoundError: If the template does not exist
        UnauthorizedError: If actor_id does not own the template
        ConflictError: If expected_version is stale or a concurrent writer
            already took the next version number
    """
    if isinstance(updates, dict):
        updates = TemplateUpdate.model_validate(updates)

    start = repository.require_template(session, template_id)
    chain_root_id = start.chain_root_id

    with chain_lock(chain_root_id):
        root = repository.lock_chain_root(session, chain_root_id)
        if root.created_by != actor_id:
            raise UnauthorizedError(f"User {actor_id} does not own template {template_id}")

        chain = repository.list_chain(session, chain_root_id, refresh=True)
        current = next((member for member in chain if member.is_latest_version), chain[0])
        if expected_version is not None and current.version != expected_version:
            raise ConflictError(
                f"Template {chain_root_id} is at version {current.version}, expected {expected_version}"
            )

        new_version = ProgramTemplate(
            id=str(uuid.uuid4()),
            version=max(member.version for member in chain) + 1,
            is_latest_version=True,
            parent_id=chain_root_id,
            chain_root_id=chain_root_id,
            derived_from_id=current.id,
            status="active",
            **{name: copy.deepcopy(getattr(current, name)) for name in COPIED_FIELDS},
        )
        _apply_updates(new_version, updates)
        new_version.content_fingerprint = content_fingerprint(new_version.content or {})

        try:
            with session.begin_nested():
                session.add(new_version)
                session.flush()
        except IntegrityError as e:
            raise ConflictError(f"Concurrent version created for template {chain_root_id}") from e

        repository.set_latest_version(session, chain_root_id, new_version.id)
        repository.list_chain(session, chain_root_id, refresh=True)

    logger.info(
        "New template version created",
        previous_template_id=current.id,
        template_id=new_version.id,
        version=new_version.version,
    )
    return new_version


def rollback_to_version(session: Session, version_id: str, *, actor_id: str) -> ProgramTemplate:
    """Make a historical version the latest again.

    Nothing is deleted; the version that was latest stays in the chain.
    An archived target is re-activated.

    Raises:
        NotFoundError: If the version does not exist
        UnauthorizedError: If actor_id does not own the template
    """
    target = repository.require_template(session, version_id)
    chain_root_id = target.chain_root_id

    with chain_lock(chain_root_id):
        root = repository.lock_chain_root(session, chain_root_id)
        if root.created_by != actor_id:
            raise UnauthorizedError(f"User {actor_id} does not own template {version_id}")

        if target.status != "active":
            target.status = "active"
            target.archived_reason = None
            target.archived_at = None
            session.flush()

        repository.set_latest_version(session, chain_root_id, version_id)
        repository.list_chain(session, chain_root_id, refresh=True)

    logger.info("Template rolled back", template_id=version_id, version=target.version, chain_root_id=chain_root_id)
    return target


def get_history(session: Session, template_id: str) -> list[ProgramTemplate]:
    """All versions of the template's chain, newest version first."""
    template = repository.require_template(session, template_id)
    return repository.list_chain(session, template.chain_root_id)


def get_active_version(session: Session, template_id: str) -> ProgramTemplate:
    """The current latest version of the chain the given version belongs to."""
    template = repository.require_template(session, template_id)
    latest = repository.get_latest_in_chain(session, template.chain_root_id)
    if latest is None:
        raise InvalidStateError(f"Template chain {template.chain_root_id} has no latest version")
    return latest


def _summary(template: ProgramTemplate) -> VersionSummary:
    return VersionSummary(
        id=template.id,
        version=template.version,
        name=template.name,
        is_latest_version=template.is_latest_version,
        workout_count=_workout_count(template),
        updated_at=template.updated_at,
    )


def compare_versions(session: Session, first_id: str, second_id: str) -> VersionComparison:
    """Compare two template versions field by field.

    Raises:
        NotFoundError: If either version does not exist
        InvalidStateError: If the versions belong to different chains
    """
    first = repository.require_template(session, first_id)
    second = repository.require_template(session, second_id)
    if first.chain_root_id != second.chain_root_id:
        raise InvalidStateError("Cannot compare versions from different templates")

    changed_fields = [
        name for name in ("name", "description", "category", "tags", "characteristics", "visibility", "customization_options")
        if getattr(first, name) != getattr(second, name)
    ]
    content_changed = first.content_fingerprint != second.content_fingerprint
    if content_changed:
        changed_fields.append("content")

    return VersionComparison(
        first=_summary(first),
        second=_summary(second),
        name_changed=first.name != second.name,
        description_changed=first.description != second.description,
        content_changed=content_changed,
        workouts_changed=_workout_count(first) != _workout_count(second),
        changed_fields=changed_fields,
    )


def archive_old_versions(session: Session, template_id: str, *, actor_id: str, keep: int | None = None) -> int:
    """Archive all but the latest version and its `keep` most recent predecessors.

    Args:
        session: Database session
        template_id: Any version ID in the chain
        actor_id: Acting user; must own the template
        keep: Predecessors to keep active (defaults to TEMPLATE_KEEP_VERSIONS)

    Returns:
        Number of versions archived by this call

    Raises:
        UnauthorizedError: If actor_id does not own the template
    """
    keep = settings.template_keep_versions if keep is None else keep
    if keep < 0:
        raise InvalidStateError(f"keep must be non-negative, got {keep}")

    template = repository.require_template(session, template_id)
    with chain_lock(template.chain_root_id):
        root = repository.lock_chain_root(session, template.chain_root_id)
        if root.created_by != actor_id:
            raise UnauthorizedError(f"User {actor_id} does not own template {template_id}")
        return _archive_predecessors(session, template.chain_root_id, keep)


def _archive_predecessors(session: Session, chain_root_id: str, keep: int) -> int:
    chain = repository.list_chain(session, chain_root_id)
    latest = [member for member in chain if member.is_latest_version]
    predecessors = [member for member in chain if not member.is_latest_version]

    now = datetime.now(timezone.utc)
    archived = 0
    for member in predecessors[keep:]:
        if member.status == "archived":
            continue
        member.status = "archived"
        member.archived_reason = "superseded"
        member.archived_at = now
        archived += 1
    session.flush()

    logger.info(
        "Old template versions archived",
        chain_root_id=chain_root_id,
        archived=archived,
        kept=len(latest) + min(keep, len(predecessors)),
    )
    return archived
