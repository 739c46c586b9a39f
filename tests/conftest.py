"""
Pytest configuration and shared fixtures.
"""

import json
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

import pytest

from riverqueue.client import Client
from riverqueue.database import get_session, init_database
from riverqueue.driver import JobGetByKindAndUniquePropertiesParam, JobInsertParams, SQLAlchemyDriver
from riverqueue.insert_opts import InsertOpts
from riverqueue.job import Job, JobState
from riverqueue.logger import StructuredLogger, reset_logger


class SimpleArgs:
    kind = "simple"

    def __init__(self, job_num: int):
        self.job_num = job_num

    def to_json(self) -> str:
        return json.dumps({"job_num": self.job_num})


class SimpleArgsWithInsertOpts(SimpleArgs):
    def __init__(self, job_num: int, insert_opts: Optional[InsertOpts] = None):
        super().__init__(job_num)
        self._insert_opts = insert_opts

    def insert_opts(self) -> Optional[InsertOpts]:
        return self._insert_opts


class MockDriver:
    """
    In-memory driver that records what the client asks of it. Unique keys are
    deduplicated like the database's unique index would.
    """

    def __init__(self):
        self.advisory_lock_calls: List[int] = []
        self.get_params_calls: List[JobGetByKindAndUniquePropertiesParam] = []
        self.inserted: List[JobInsertParams] = []
        self.existing_job: Optional[Job] = None
        self.transactions = 0
        self._jobs_by_unique_key: Dict[bytes, Job] = {}
        self._next_id = 1

    @contextmanager
    def transaction(self):
        self.transactions += 1
        yield self

    def advisory_lock(self, key: int) -> None:
        self.advisory_lock_calls.append(key)

    def try_advisory_lock(self, key: int) -> bool:
        self.advisory_lock_calls.append(key)
        return True

    def job_get_by_id(self, id: int) -> Optional[Job]:
        return None

    def job_get_by_kind_and_unique_properties(self, get_params):
        self.get_params_calls.append(get_params)
        return self.existing_job

    def job_insert(self, insert_params: JobInsertParams) -> Job:
        self.inserted.append(insert_params)
        return self._make_job(insert_params)

    def job_insert_unique(self, insert_params: JobInsertParams, unique_key: bytes) -> Tuple[Job, bool]:
        if unique_key in self._jobs_by_unique_key:
            return self._jobs_by_unique_key[unique_key], True

        job = self.job_insert(insert_params)
        self._jobs_by_unique_key[unique_key] = job
        return job, False

    def job_insert_many(self, insert_params_many):
        results = []
        for insert_params in insert_params_many:
            if insert_params.unique_key is None:
                results.append((self.job_insert(insert_params), False))
            else:
                results.append(self.job_insert_unique(insert_params, insert_params.unique_key))
        return results

    def job_list(self) -> List[Job]:
        return []

    def _make_job(self, insert_params: JobInsertParams) -> Job:
        now = datetime.now(timezone.utc)
        job = Job(
            id=self._next_id,
            args=json.loads(insert_params.encoded_args),
            attempt=0,
            attempted_at=None,
            attempted_by=None,
            created_at=now,
            errors=None,
            finalized_at=None,
            kind=insert_params.kind,
            max_attempts=insert_params.max_attempts,
            metadata={},
            priority=insert_params.priority,
            queue=insert_params.queue,
            scheduled_at=insert_params.scheduled_at or now,
            state=JobState(insert_params.state),
            tags=list(insert_params.tags or []),
            unique_key=insert_params.unique_key,
            unique_states=insert_params.unique_states,
        )
        self._next_id += 1
        return job


@pytest.fixture(autouse=True)
def _reset_global_logger():
    reset_logger()
    yield
    reset_logger()


@pytest.fixture
def logger() -> StructuredLogger:
    """Logger with no console or file output."""
    return StructuredLogger(name="riverqueue.test", level="DEBUG", enable_console=False)


@pytest.fixture
def now() -> datetime:
    return datetime(2024, 1, 15, 21, 26, 36, tzinfo=timezone.utc)


@pytest.fixture
def mock_driver() -> MockDriver:
    return MockDriver()


@pytest.fixture
def mock_client(mock_driver, logger, now) -> Client:
    return Client(mock_driver, time_now_utc=lambda: now, logger=logger)


@pytest.fixture
def engine(tmp_path):
    """SQLite database with the schema created."""
    engine = init_database(tmp_path / "river.db")
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    session = get_session(engine)
    yield session
    session.close()


@pytest.fixture
def driver(session) -> SQLAlchemyDriver:
    return SQLAlchemyDriver(session)


@pytest.fixture
def client(driver, logger) -> Client:
    return Client(driver, logger=logger)
