"""Repository functions for workout logs.

Single responsibility: database operations only.
"""

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from coachforge.core.errors import NotFoundError, UnauthorizedError
from coachforge.db.models import WorkoutLog


def add_log(session: Session, log: WorkoutLog) -> WorkoutLog:
    session.add(log)
    session.flush()
    return log


def require_owned_log(session: Session, log_id: str, user_id: str) -> WorkoutLog:
    """Load a workout log and check it belongs to user_id.

    Raises:
        NotFoundError: If the log does not exist
        UnauthorizedError: If the log belongs to another user
    """
    log = session.get(WorkoutLog, log_id)
    if log is None:
        raise NotFoundError(f"Workout log not found: {log_id}")
    if log.user_id != user_id:
        raise UnauthorizedError(f"Workout log {log_id} does not belong to user {user_id}")
    return log


def list_logs(
    session: Session,
    *,
    instance_id: str,
    user_id: str,
    completed: bool | None = None,
    since: datetime | None = None,
    newest_first: bool = False,
    limit: int | None = None,
    offset: int = 0,
) -> list[WorkoutLog]:
    """List a user's logs for one instance ordered by date.

    Args:
        session: Database session
        instance_id: Generated program the logs belong to
        user_id: Recipient who logged the workouts
        completed: Filter on completion (None returns drafts too)
        since: Only logs dated on or after this moment
        newest_first: Sort descending by date instead of ascending
        limit: Maximum number of rows
        offset: Rows to skip

    Returns:
        List of WorkoutLog rows
    """
    query = select(WorkoutLog).where(WorkoutLog.instance_id == instance_id, WorkoutLog.user_id == user_id)
    if completed is not None:
        query = query.where(WorkoutLog.completed == completed)
    if since is not None:
        query = query.where(WorkoutLog.date >= since)
    order = WorkoutLog.date.desc() if newest_first else WorkoutLog.date.asc()
    query = query.order_by(order, WorkoutLog.created_at).offset(offset)
    if limit is not None:
        query = query.limit(limit)
    return list(session.execute(query).scalars().all())
