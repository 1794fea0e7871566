"""Root conftest for all tests.

Provides database sessions, a fake completion client and factories for
programs, templates and workout logs.
"""

import copy
import json
import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from coachforge.db.models import Base, GeneratedProgram, ProgramTemplate, WorkoutLog
from coachforge.db.session import enable_sqlite_savepoints
from coachforge.llm.client import CompletionOptions, CompletionResult, CompletionUsage
from coachforge.programs import repository as program_repository
from coachforge.templates.service import create_from_generated
from coachforge.templates.types import CreateTemplateOptions, GenerationRequest

PRODUCER_ID = "coach-1"
RECIPIENT_ID = "client-1"
PROGRAM_START = datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)

WORKOUT_PROGRAM = {
    "name": "Strength Builder",
    "description": "Twelve weeks of compound lifting",
    "duration": {"weeks": 12, "days_per_week": 3},
    "workouts": [
        {
            "name": "Upper A",
            "day": 1,
            "week": 1,
            "focus": "push",
            "target_muscles": ["chest", "triceps"],
            "exercises": [
                {
                    "exercise_id": "bench_press",
                    "name": "Bench Press",
                    "sets": 4,
                    "reps": 8,
                    "weight": 60,
                    "equipment": ["barbell", "bench"],
                    "muscle_group": "chest",
                },
                {
                    "exercise_id": "overhead_press",
                    "name": "Overhead Press",
                    "sets": 3,
                    "reps": 10,
                    "weight": 40,
                    "equipment": ["barbell"],
                    "muscle_group": "shoulders",
                },
            ],
        },
        {
            "name": "Lower A",
            "day": 3,
            "week": 1,
            "focus": "legs",
            "target_muscles": ["quads", "glutes"],
            "exercises": [
                {
                    "exercise_id": "barbell_squat",
                    "name": "Barbell Squat",
                    "sets": 5,
                    "reps": 5,
                    "weight": 100,
                    "equipment": ["barbell", "rack"],
                    "muscle_group": "legs",
                },
                {
                    "exercise_id": "plank",
                    "name": "Plank",
                    "sets": 3,
                    "reps": 1,
                    "equipment": ["bodyweight"],
                    "muscle_group": "core",
                },
            ],
        },
    ],
    "progression_engine": {
        "rpe_targets": {
            "enabled": True,
            "weekly_targets": [{"week": 1, "target_rpe": 7}, {"week": 2, "target_rpe": 7.5}],
        },
        "progression_rules": {"strategy": "linear", "weight_increment": 2.5},
        "deload_protocol": {"enabled": True, "scheduled_deloads": [], "auto_deload_triggers": []},
    },
    "rationale": "Progressive overload on the main lifts builds strength.",
}

NUTRITION_PLAN = {
    "name": "Performance Fuel",
    "description": "High protein maintenance diet",
    "diet_type": "balanced",
    "daily_targets": {"calories": 2500, "protein": 180, "carbs": 280, "fat": 70},
    "meals": [{"name": "Breakfast", "time": "07:00", "foods": ["oats", "eggs"], "calories": 600}],
}


def _new_engine(url: str, *, immediate: bool = False, **connect_args):
    engine = create_engine(url, echo=False, connect_args={"check_same_thread": False, **connect_args})
    enable_sqlite_savepoints(engine, immediate=immediate)
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture(scope="function")
def db_session():
    """Transactional in-memory SQLite session.

    Tables are created per test; everything is rolled back afterwards.
    """
    engine = _new_engine("sqlite:///:memory:")
    connection = engine.connect()
    transaction = connection.begin()
    session = sessionmaker(bind=connection, autoflush=False, expire_on_commit=False)()
    try:
        yield session
    finally:
        session.close()
        if transaction.is_active:
            transaction.rollback()
        connection.close()
        engine.dispose()


@pytest.fixture
def file_session_factory(tmp_path):
    """Session factory over a file-backed SQLite database shared by threads."""
    engine = _new_engine(f"sqlite:///{tmp_path / 'coachforge-test.db'}", immediate=True, timeout=30)
    factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    yield factory
    engine.dispose()


class FakeCompletionClient:
    """CompletionClient returning canned sections and counting calls."""

    def __init__(self, workout_program: dict | None = None, nutrition_plan: dict | None = None, raw: str | None = None):
        self.workout_program = workout_program or copy.deepcopy(WORKOUT_PROGRAM)
        self.nutrition_plan = nutrition_plan or copy.deepcopy(NUTRITION_PLAN)
        self.raw = raw
        self.calls: list[list[dict[str, str]]] = []

    @property
    def call_count(self) -> int:
        return len(self.calls)

    def complete(self, messages: list[dict[str, str]], options: CompletionOptions | None = None) -> CompletionResult:
        self.calls.append(messages)
        if self.raw is not None:
            text = self.raw
        elif "nutritionist" in messages[0]["content"]:
            text = json.dumps({"nutrition_plan": self.nutrition_plan})
        else:
            body = {"workout_program": self.workout_program, "summary": "Strength block", "key_recommendations": ["Sleep 8h"]}
            text = f"Here is the program:\n```json\n{json.dumps(body)}\n```"
        return CompletionResult(
            content=text,
            usage=CompletionUsage(prompt_tokens=100, completion_tokens=400),
            estimated_cost=0.01,
            model="gpt-4o-mini",
        )


@pytest.fixture
def completion_client() -> FakeCompletionClient:
    return FakeCompletionClient()


@pytest.fixture
def fake_client_class() -> type[FakeCompletionClient]:
    return FakeCompletionClient


@pytest.fixture
def sample_content() -> dict:
    """Combined workout + nutrition content (fresh copy per test)."""
    return {
        "workout_program": copy.deepcopy(WORKOUT_PROGRAM),
        "nutrition_plan": copy.deepcopy(NUTRITION_PLAN),
        "summary": "Strength block",
    }


@pytest.fixture
def request_factory():
    """Build a GenerationRequest with strength defaults."""

    def _make(**overrides) -> GenerationRequest:
        values = {
            "goals": ["strength"],
            "experience_level": "intermediate",
            "duration_weeks": 12,
            "equipment": ["barbell", "bench", "rack"],
            "has_gym_access": True,
            "diet_type": "balanced",
            "sessions_per_week": 3,
        }
        values.update(overrides)
        return GenerationRequest(**values)

    return _make


@pytest.fixture
def program_factory(db_session, sample_content, request_factory):
    """Create a GeneratedProgram row with sample content."""

    def _make(
        *,
        status: str = "generated",
        content: dict | None = None,
        request: GenerationRequest | None = None,
        producer_id: str = PRODUCER_ID,
        recipient_id: str = RECIPIENT_ID,
        applied_at: datetime | None = None,
    ) -> GeneratedProgram:
        program = program_repository.create_generated_program(
            db_session,
            request_id=str(uuid.uuid4()),
            producer_id=producer_id,
            recipient_id=recipient_id,
            generation_type="combined",
            status=status,
            input_data=(request or request_factory()).model_dump(),
            content=copy.deepcopy(content) if content is not None else copy.deepcopy(sample_content),
        )
        if applied_at is not None:
            program.applied_at = applied_at
            db_session.flush()
        return program

    return _make


@pytest.fixture
def template_factory(db_session, program_factory):
    """Register a template from a fresh approved program."""

    def _make(
        *,
        request: GenerationRequest | None = None,
        content: dict | None = None,
        producer_id: str = PRODUCER_ID,
        visibility: str = "public",
        times_used: int = 0,
        average_rating: float = 0.0,
        created_at: datetime | None = None,
        **options,
    ) -> ProgramTemplate:
        program = program_factory(status="approved", request=request, content=content, producer_id=producer_id)
        template = create_from_generated(
            db_session,
            program,
            CreateTemplateOptions(visibility=visibility, **options),
        )
        template.times_used = times_used
        template.average_rating = average_rating
        if created_at is not None:
            template.created_at = created_at
        db_session.flush()
        return template

    return _make


@pytest.fixture
def log_factory(db_session):
    """Create a completed WorkoutLog row directly."""

    def _make(
        program: GeneratedProgram,
        *,
        date: datetime,
        total_volume: float = 0.0,
        average_rpe: float | None = None,
        rating: int | None = None,
        difficulty: str | None = None,
        exercises: list[dict] | None = None,
        recovery: dict | None = None,
        completed: bool = True,
    ) -> WorkoutLog:
        log = WorkoutLog(
            instance_id=program.id,
            user_id=program.recipient_id,
            workout_index=0,
            date=date,
            exercises=exercises or [],
            total_volume=total_volume,
            average_rpe=average_rpe,
            rating=rating,
            difficulty=difficulty,
            recovery=recovery,
            completed=completed,
            completed_at=date if completed else None,
        )
        db_session.add(log)
        db_session.flush()
        return log

    return _make


@pytest.fixture
def program_start() -> datetime:
    return PROGRAM_START


@pytest.fixture
def days_after(program_start):
    def _at(days: float) -> datetime:
        return program_start + timedelta(days=days)

    return _at
