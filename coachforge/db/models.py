from __future__ import annotations

import uuid
from datetime import date, datetime, timezone

from sqlalchemy import JSON, Boolean, Date, DateTime, Float, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


def default_customization_options() -> dict:
    return {
        "allow_duration_adjustment": True,
        "allow_equipment_substitution": True,
        "allow_exercise_swaps": True,
        "allow_macro_adjustment": True,
    }


class Base(DeclarativeBase):
    """Base class for all database models."""


class ProgramTemplate(Base):
    """Reusable program template, one row per version.

    Versions of the same template form a chain keyed by chain_root_id:
    - id: Stable identifier of this version
    - version: Monotonic version number within the chain (root is 1)
    - parent_id: Chain root for every non-root version, NULL for the root
    - chain_root_id: Root id for every version, including the root itself
    - derived_from_id: Version this one was copied from (audit only)
    - is_latest_version: Exactly one row per chain carries True
    - input_fingerprint: Hash of the normalized generation inputs
    - content_fingerprint: Hash of the workout/nutrition content
    - characteristics: experience_level, goals, duration, equipment,
      target_muscles, diet_type, calorie_range
    - content: workout_program and/or nutrition_plan payload
    - times_used / active_clients / average_rating / rating_count: usage counters,
      only ever changed through single-statement UPDATEs
    - status: active or archived (archived rows are retained)
    """

    __tablename__ = "program_templates"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid, index=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    is_latest_version: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)
    parent_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    chain_root_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    derived_from_id: Mapped[str | None] = mapped_column(String, nullable=True)
    version_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    name: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[str] = mapped_column(String, nullable=False, index=True)
    template_type: Mapped[str] = mapped_column(String, nullable=False, default="combined")
    category: Mapped[str] = mapped_column(String, nullable=False, default="general_fitness", index=True)
    tags: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    characteristics: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    experience_level: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    duration_weeks: Mapped[int | None] = mapped_column(Integer, nullable=True)
    input_snapshot: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    content: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    ai_metadata: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    input_fingerprint: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    content_fingerprint: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    times_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    active_clients: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    average_rating: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    rating_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    status: Mapped[str] = mapped_column(String, nullable=False, default="active", index=True)
    archived_reason: Mapped[str | None] = mapped_column(String, nullable=True)
    archived_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    visibility: Mapped[str] = mapped_column(String, nullable=False, default="private")
    is_featured: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    customization_options: Mapped[dict] = mapped_column(JSON, nullable=False, default=default_customization_options)
    source_generation_id: Mapped[str | None] = mapped_column(String, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)

    __table_args__ = (
        UniqueConstraint("chain_root_id", "version", name="uq_template_chain_version"),
        Index("idx_templates_input_fp_latest", "input_fingerprint", "is_latest_version", "status"),
        Index("idx_templates_chain_latest", "chain_root_id", "is_latest_version"),
    )


class TemplateRating(Base):
    """Individual rating left on a template version."""

    __tablename__ = "template_ratings"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid)
    template_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    feedback: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)


class GeneratedProgram(Base):
    """Generated instance of a program for one recipient.

    Produced either by a generation call or by applying a template. Moves
    through generating -> generated -> reviewed -> approved/rejected -> applied,
    with archived reachable from any non-final state.
    - modifications: append-only list of {field, original_value, modified_value,
      reason, modified_at}; entries are only removed by revert
    - scheduled_deletion_at: created_at + data_retention_days
    """

    __tablename__ = "generated_programs"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid, index=True)
    request_id: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    producer_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    recipient_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    template_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    generation_type: Mapped[str] = mapped_column(String, nullable=False, default="combined")

    input_data: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    customizations: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    content: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    ai_metadata: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    status: Mapped[str] = mapped_column(String, nullable=False, default="generating", index=True)
    review_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    reviewed_by: Mapped[str | None] = mapped_column(String, nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    approved_by: Mapped[str | None] = mapped_column(String, nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    applied_by: Mapped[str | None] = mapped_column(String, nullable=True)
    applied_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    archived_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    program_ref: Mapped[str | None] = mapped_column(String, nullable=True)
    meal_plan_ref: Mapped[str | None] = mapped_column(String, nullable=True)

    modifications: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    quality: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    data_retention_days: Mapped[int] = mapped_column(Integer, nullable=False, default=180)
    scheduled_deletion_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)

    __table_args__ = (
        Index("idx_generated_recipient_status", "recipient_id", "status"),
    )


class WorkoutLog(Base):
    """Performance log for one executed workout of a generated instance.

    total_volume and average_rpe (top-level and per exercise) are derived from
    the sets and recomputed on every mutation.
    """

    __tablename__ = "workout_logs"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid, index=True)
    instance_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    workout_index: Mapped[int] = mapped_column(Integer, nullable=False)
    workout_name: Mapped[str | None] = mapped_column(String, nullable=True)
    date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)
    duration_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    exercises: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    total_volume: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    average_rpe: Mapped[float | None] = mapped_column(Float, nullable=True)
    rating: Mapped[int | None] = mapped_column(Integer, nullable=True)
    difficulty: Mapped[str | None] = mapped_column(String, nullable=True)
    mood: Mapped[str | None] = mapped_column(String, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    recovery: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)

    __table_args__ = (
        Index("idx_workout_logs_user_date", "user_id", "date"),
        Index("idx_workout_logs_instance_date", "instance_id", "date"),
    )


class AssignedPlan(Base):
    """Concrete program or meal plan created for a recipient when an instance is applied."""

    __tablename__ = "assigned_plans"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid, index=True)
    kind: Mapped[str] = mapped_column(String, nullable=False)
    owner_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    recipient_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    source_instance_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    name: Mapped[str | None] = mapped_column(String, nullable=True)
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)
