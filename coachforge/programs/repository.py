"""Repository functions for generated programs and assigned plans.

Single responsibility: database operations only.
"""

from datetime import date, datetime, timedelta, timezone

from sqlalchemy.orm import Session

from coachforge.config.settings import settings
from coachforge.core.errors import NotFoundError, UnauthorizedError
from coachforge.db.models import AssignedPlan, GeneratedProgram


def create_generated_program(
    session: Session,
    *,
    request_id: str,
    producer_id: str,
    recipient_id: str,
    generation_type: str,
    status: str,
    input_data: dict,
    content: dict | None = None,
    template_id: str | None = None,
    customizations: dict | None = None,
    ai_metadata: dict | None = None,
    retention_days: int | None = None,
) -> GeneratedProgram:
    """Create a generated program record.

    Args:
        session: Database session
        request_id: Unique correlation ID for the generation or application
        producer_id: Coach who owns the program
        recipient_id: Client the program is for
        generation_type: workout_program, nutrition_plan or combined
        status: Initial status (generating or generated)
        input_data: Request snapshot the content was produced from
        content: Materialized content (empty while generating)
        template_id: Originating template, if any
        customizations: Customizations applied to the template content
        ai_metadata: Model, usage and cost details
        retention_days: Retention period (defaults to INSTANCE_RETENTION_DAYS)

    Returns:
        Created GeneratedProgram instance
    """
    retention_days = settings.instance_retention_days if retention_days is None else retention_days
    created_at = datetime.now(timezone.utc)
    program = GeneratedProgram(
        request_id=request_id,
        producer_id=producer_id,
        recipient_id=recipient_id,
        template_id=template_id,
        generation_type=generation_type,
        status=status,
        input_data=input_data,
        customizations=customizations,
        content=content or {},
        ai_metadata=ai_metadata,
        modifications=[],
        data_retention_days=retention_days,
        created_at=created_at,
        scheduled_deletion_at=created_at + timedelta(days=retention_days),
    )
    session.add(program)
    session.flush()
    return program


def require_program(session: Session, program_id: str) -> GeneratedProgram:
    program = session.get(GeneratedProgram, program_id)
    if program is None:
        raise NotFoundError(f"Generated program not found: {program_id}")
    return program


def require_owned_program(session: Session, program_id: str, producer_id: str) -> GeneratedProgram:
    """Load a program and check the producer owns it.

    Raises:
        NotFoundError: If the program does not exist
        UnauthorizedError: If producer_id is not the program's producer
    """
    program = require_program(session, program_id)
    if program.producer_id != producer_id:
        raise UnauthorizedError(f"User {producer_id} does not own program {program_id}")
    return program


def require_recipient_program(session: Session, program_id: str, recipient_id: str) -> GeneratedProgram:
    """Load a program and check it was issued to recipient_id."""
    program = require_program(session, program_id)
    if program.recipient_id != recipient_id:
        raise UnauthorizedError(f"Program {program_id} does not belong to user {recipient_id}")
    return program


def create_assigned_plan(
    session: Session,
    *,
    kind: str,
    owner_id: str,
    recipient_id: str,
    source_instance_id: str,
    name: str | None,
    payload: dict,
    start_date: date | None = None,
) -> AssignedPlan:
    plan = AssignedPlan(
        kind=kind,
        owner_id=owner_id,
        recipient_id=recipient_id,
        source_instance_id=source_instance_id,
        name=name,
        payload=payload,
        start_date=start_date,
    )
    session.add(plan)
    session.flush()
    return plan
