"""Review, approval, application and archival of generated programs."""

from datetime import date, datetime, timezone
from typing import Protocol

from loguru import logger
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import flag_modified

from coachforge.core.errors import InvalidStateError, UnauthorizedError
from coachforge.db.models import GeneratedProgram
from coachforge.programs import repository
from coachforge.programs.status import ensure_transition


class PlanMaterializer(Protocol):
    """Creates the concrete program / meal plan records for an applied instance."""

    def create_program(self, session: Session, program: GeneratedProgram, start_date: date | None) -> str: ...

    def create_meal_plan(self, session: Session, program: GeneratedProgram, start_date: date | None) -> str: ...


class AssignedPlanMaterializer:
    """Default materializer storing plans as AssignedPlan rows."""

    def create_program(self, session: Session, program: GeneratedProgram, start_date: date | None) -> str:
        workout_program = program.content["workout_program"]
        plan = repository.create_assigned_plan(
            session,
            kind="program",
            owner_id=program.producer_id,
            recipient_id=program.recipient_id,
            source_instance_id=program.id,
            name=workout_program.get("name"),
            payload=workout_program,
            start_date=start_date,
        )
        return plan.id

    def create_meal_plan(self, session: Session, program: GeneratedProgram, start_date: date | None) -> str:
        nutrition_plan = program.content["nutrition_plan"]
        plan = repository.create_assigned_plan(
            session,
            kind="meal_plan",
            owner_id=program.producer_id,
            recipient_id=program.recipient_id,
            source_instance_id=program.id,
            name=nutrition_plan.get("name"),
            payload=nutrition_plan,
            start_date=start_date,
        )
        return plan.id


def _now() -> datetime:
    return datetime.now(timezone.utc)


def mark_generated(program: GeneratedProgram, content: dict, ai_metadata: dict | None = None) -> None:
    """Move a generating program to generated once its content exists."""
    ensure_transition(program.status, "generated")
    if not content:
        raise InvalidStateError(f"Program {program.id} cannot be marked generated without content")
    program.content = content
    if ai_metadata is not None:
        program.ai_metadata = ai_metadata
    program.status = "generated"


def review_program(session: Session, program_id: str, *, actor_id: str, notes: str | None = None) -> GeneratedProgram:
    program = repository.require_owned_program(session, program_id, actor_id)
    ensure_transition(program.status, "reviewed")
    program.status = "reviewed"
    program.reviewed_by = actor_id
    program.reviewed_at = _now()
    if notes:
        program.review_notes = notes
    session.flush()
    logger.info("Program reviewed", instance_id=program_id, reviewer_id=actor_id)
    return program


def approve_program(session: Session, program_id: str, *, actor_id: str, notes: str | None = None) -> GeneratedProgram:
    """Approve a reviewed program.

    Raises:
        InvalidStateError: If the program is not in status reviewed
    """
    program = repository.require_owned_program(session, program_id, actor_id)
    ensure_transition(program.status, "approved")
    program.status = "approved"
    program.approved_by = actor_id
    program.approved_at = _now()
    if notes:
        program.review_notes = notes
    session.flush()
    logger.info("Program approved", instance_id=program_id, approver_id=actor_id)
    return program


def reject_program(session: Session, program_id: str, *, actor_id: str, reason: str) -> GeneratedProgram:
    program = repository.require_owned_program(session, program_id, actor_id)
    ensure_transition(program.status, "rejected")
    program.status = "rejected"
    program.review_notes = reason
    session.flush()
    logger.info("Program rejected", instance_id=program_id, reviewer_id=actor_id)
    return program


def apply_generated_program(
    session: Session,
    program_id: str,
    *,
    actor_id: str,
    start_date: date | None = None,
    materializer: PlanMaterializer | None = None,
) -> GeneratedProgram:
    """Create the recipient's concrete plans from an approved program.

    The created program / meal plan identifiers are stamped back onto the
    instance as program_ref / meal_plan_ref.

    Args:
        session: Database session
        program_id: Generated program ID
        actor_id: Applying coach; must own the program
        start_date: Optional plan start date
        materializer: Plan factory (defaults to AssignedPlanMaterializer)

    Returns:
        The program in status applied

    Raises:
        InvalidStateError: If the program is not approved
    """
    materializer = materializer or AssignedPlanMaterializer()
    program = repository.require_owned_program(session, program_id, actor_id)
    ensure_transition(program.status, "applied")

    content = program.content or {}
    if content.get("workout_program"):
        program.program_ref = materializer.create_program(session, program, start_date)
    if content.get("nutrition_plan"):
        program.meal_plan_ref = materializer.create_meal_plan(session, program, start_date)

    program.status = "applied"
    program.applied_by = actor_id
    program.applied_at = _now()
    session.flush()

    logger.info(
        "Program applied to client",
        instance_id=program_id,
        recipient_id=program.recipient_id,
        program_ref=program.program_ref,
        meal_plan_ref=program.meal_plan_ref,
    )
    return program


def archive_program(session: Session, program_id: str, *, actor_id: str) -> GeneratedProgram:
    """Soft-delete a program; nothing is removed from storage."""
    program = repository.require_owned_program(session, program_id, actor_id)
    ensure_transition(program.status, "archived")
    program.status = "archived"
    program.archived_at = _now()
    session.flush()
    logger.info("Program archived", instance_id=program_id)
    return program


def rate_program(
    session: Session,
    program_id: str,
    *,
    actor_id: str,
    rating: int,
    feedback: str | None = None,
) -> GeneratedProgram:
    """Record the producer's or recipient's 1-5 rating of a program."""
    if not 1 <= rating <= 5:
        raise InvalidStateError(f"Rating must be between 1 and 5, got {rating}")
    program = repository.require_program(session, program_id)
    if actor_id == program.producer_id:
        key = "coach_rating"
    elif actor_id == program.recipient_id:
        key = "client_rating"
    else:
        raise UnauthorizedError(f"User {actor_id} cannot rate program {program_id}")

    quality = dict(program.quality or {})
    quality[key] = rating
    if feedback:
        quality["feedback"] = feedback
    program.quality = quality
    flag_modified(program, "quality")
    session.flush()
    return program
