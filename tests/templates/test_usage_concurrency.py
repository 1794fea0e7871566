"""Concurrency tests for usage counters and version chains on a shared database."""

import copy
import uuid
from concurrent.futures import ThreadPoolExecutor

from sqlalchemy import func, select

from coachforge.db.models import ProgramTemplate
from coachforge.programs import repository as program_repository
from coachforge.templates.service import create_from_generated, record_usage
from coachforge.templates.versioning import create_new_version

OWNER = "coach-1"


def _seed_template(session_factory, request_factory, sample_content) -> str:
    with session_factory() as session:
        program = program_repository.create_generated_program(
            session,
            request_id=str(uuid.uuid4()),
            producer_id=OWNER,
            recipient_id="client-1",
            generation_type="combined",
            status="approved",
            input_data=request_factory().model_dump(),
            content=copy.deepcopy(sample_content),
        )
        template = create_from_generated(session, program)
        session.commit()
        return template.id


def test_concurrent_usage_is_not_lost(file_session_factory, request_factory, sample_content) -> None:
    """Test that parallel increments all land on the counter."""
    template_id = _seed_template(file_session_factory, request_factory, sample_content)
    increments = 24

    def _use(_: int) -> None:
        with file_session_factory() as session:
            record_usage(session, template_id)
            session.commit()

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(_use, range(increments)))

    with file_session_factory() as session:
        template = session.get(ProgramTemplate, template_id)
        assert template.times_used == increments


def test_concurrent_versions_get_unique_numbers(file_session_factory, request_factory, sample_content) -> None:
    """Test that parallel writers on one chain never share a version number."""
    root_id = _seed_template(file_session_factory, request_factory, sample_content)
    writers = 6

    def _version(index: int) -> int:
        with file_session_factory() as session:
            template = create_new_version(session, root_id, {"name": f"Variant {index}"}, actor_id=OWNER)
            session.commit()
            return template.version

    with ThreadPoolExecutor(max_workers=writers) as pool:
        versions = list(pool.map(_version, range(writers)))

    assert sorted(versions) == list(range(2, writers + 2))
    with file_session_factory() as session:
        latest = session.execute(
            select(func.count())
            .select_from(ProgramTemplate)
            .where(ProgramTemplate.chain_root_id == root_id, ProgramTemplate.is_latest_version.is_(True))
        ).scalar_one()
        newest = session.execute(
            select(ProgramTemplate).where(
                ProgramTemplate.chain_root_id == root_id, ProgramTemplate.is_latest_version.is_(True)
            )
        ).scalar_one()
        assert latest == 1
        assert newest.version == writers + 1
