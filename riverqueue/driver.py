"""
Storage drivers.

`Driver` is the set of operations the client needs from persistence. All
types here are for use between the client and its drivers; the client is the
public interface.

`SQLAlchemyDriver` implements it on a SQLAlchemy session:

    engine = init_database("postgresql+psycopg://localhost/river")
    client = Client(SQLAlchemyDriver(get_session(engine)))
"""

import json
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, ContextManager, Dict, Iterator, List, Optional, Protocol, Sequence, Tuple

from sqlalchemy import func, literal_column, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from .database import UNIQUE_INDEX_WHERE, RiverJob
from .job import AttemptError, Job, JobState


class Rollback(Exception):
    """Raise inside `transaction()` to roll it back and exit without an error."""


@dataclass(frozen=True)
class JobInsertParams:
    """Fully resolved parameters for inserting one job."""

    encoded_args: str
    kind: str
    max_attempts: int
    priority: int
    queue: str
    scheduled_at: Optional[datetime]  # None means now
    state: JobState
    tags: Optional[List[str]]
    unique_key: Optional[bytes] = None
    unique_states: Optional[str] = None


@dataclass
class JobGetByKindAndUniquePropertiesParam:
    """
    Lookup for an existing unique job. Properties left as None aren't
    filtered on.

    Attributes:
        encoded_args: Match jobs whose args decode to the same value, so key
            order and whitespace don't matter.
        args_subset: Match jobs whose args contain these top-level key/values.
        created_at: Half-open `[lower, upper)` range on created_at.
    """

    kind: str
    encoded_args: Optional[str] = None
    args_subset: Optional[Dict[str, Any]] = None
    created_at: Optional[Tuple[datetime, datetime]] = None
    queue: Optional[str] = None
    state: Optional[Sequence[JobState]] = None


class Driver(Protocol):
    def advisory_lock(self, key: int) -> None:
        """Take a transaction-scoped advisory lock, blocking until it's free."""

    def try_advisory_lock(self, key: int) -> bool:
        """Take a transaction-scoped advisory lock if it's free."""

    def job_get_by_id(self, id: int) -> Optional[Job]:
        ...

    def job_get_by_kind_and_unique_properties(
        self, get_params: JobGetByKindAndUniquePropertiesParam
    ) -> Optional[Job]:
        ...

    def job_insert(self, insert_params: JobInsertParams) -> Job:
        ...

    def job_insert_unique(self, insert_params: JobInsertParams, unique_key: bytes) -> Tuple[Job, bool]:
        """
        Insert a job, or return the existing job holding the same unique key
        in one of its unique states. The boolean is true for an existing job.
        Raises ValueError if the job has no unique_states.
        """

    def job_insert_many(self, insert_params_many: Sequence[JobInsertParams]) -> List[Tuple[Job, bool]]:
        """
        Insert jobs in input order. Jobs with a unique key behave as in
        `job_insert_unique`.
        """

    def job_list(self) -> List[Job]:
        ...

    def transaction(self) -> ContextManager[Any]:
        ...


def _utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes, always stored as UTC
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _args_match(encoded_args: str, get_params: JobGetByKindAndUniquePropertiesParam) -> bool:
    args = json.loads(encoded_args)

    if get_params.encoded_args is not None and args != json.loads(get_params.encoded_args):
        return False
    if get_params.args_subset is not None:
        return all(k in args and args[k] == v for k, v in get_params.args_subset.items())
    return True


class SQLAlchemyDriver:
    """
    Driver on a SQLAlchemy session, for PostgreSQL or SQLite.

    Operations run inside `transaction()`. When the session already has a
    transaction open, they join it through a savepoint and leave committing to
    the caller; otherwise they commit on their own.
    """

    def __init__(self, session: Session):
        self._session = session
        self._dialect = session.get_bind().dialect.name

    @property
    def session(self) -> Session:
        return self._session

    @contextmanager
    def transaction(self) -> Iterator["SQLAlchemyDriver"]:
        if self._session.in_transaction():
            ctx = self._session.begin_nested()
        else:
            ctx = self._session.begin()

        try:
            with ctx:
                yield self
        except Rollback:
            pass

    def advisory_lock(self, key: int) -> None:
        if self._dialect == "postgresql":
            self._session.execute(select(func.pg_advisory_xact_lock(key)))
        else:
            # The transaction's BEGIN IMMEDIATE already excludes other writers
            self._session.connection()

    def try_advisory_lock(self, key: int) -> bool:
        if self._dialect == "postgresql":
            return bool(self._session.scalar(select(func.pg_try_advisory_xact_lock(key))))

        self._session.connection()
        return True

    def job_get_by_id(self, id: int) -> Optional[Job]:
        with self.transaction():
            river_job = self._session.get(RiverJob, id)
            return self._to_job_row(river_job) if river_job is not None else None

    def job_get_by_kind_and_unique_properties(
        self, get_params: JobGetByKindAndUniquePropertiesParam
    ) -> Optional[Job]:
        query = select(RiverJob).where(RiverJob.kind == get_params.kind)
        if get_params.created_at is not None:
            lower, upper = get_params.created_at
            query = query.where(RiverJob.created_at >= lower, RiverJob.created_at < upper)
        if get_params.queue is not None:
            query = query.where(RiverJob.queue == get_params.queue)
        if get_params.state is not None:
            query = query.where(RiverJob.state.in_([JobState(s).value for s in get_params.state]))

        with self.transaction():
            for river_job in self._session.scalars(query.order_by(RiverJob.id)):
                if _args_match(river_job.args, get_params):
                    return self._to_job_row(river_job)

        return None

    def job_insert(self, insert_params: JobInsertParams) -> Job:
        with self.transaction():
            return self._insert(insert_params)

    def job_insert_unique(self, insert_params: JobInsertParams, unique_key: bytes) -> Tuple[Job, bool]:
        # Rows without unique_states fall outside the unique index
        if insert_params.unique_states is None:
            raise ValueError("unique insert needs unique_states")

        insert_params = replace(insert_params, unique_key=unique_key)

        with self.transaction():
            if self._dialect == "postgresql":
                return self._insert_many_postgres([insert_params])[0]
            return self._insert_unique_sqlite(insert_params)

    def job_insert_many(self, insert_params_many: Sequence[JobInsertParams]) -> List[Tuple[Job, bool]]:
        if not insert_params_many:
            return []

        with self.transaction():
            if self._dialect == "postgresql":
                return self._insert_many_postgres(insert_params_many)

            results = []
            for insert_params in insert_params_many:
                if insert_params.unique_key is None:
                    results.append((self._insert(insert_params), False))
                else:
                    results.append(self._insert_unique_sqlite(insert_params))
            return results

    def job_list(self) -> List[Job]:
        with self.transaction():
            return [self._to_job_row(j) for j in self._session.scalars(select(RiverJob).order_by(RiverJob.id))]

    def _insert(self, insert_params: JobInsertParams) -> Job:
        river_job = RiverJob(**self._insert_params_to_dict(insert_params))
        self._session.add(river_job)
        self._session.flush()
        return self._to_job_row(river_job)

    def _insert_many_postgres(self, insert_params_many: Sequence[JobInsertParams]) -> List[Tuple[Job, bool]]:
        # xmax is non-zero on a row that ON CONFLICT DO UPDATE touched rather
        # than inserted
        stmt = pg_insert(RiverJob)
        stmt = stmt.on_conflict_do_update(
            index_elements=[RiverJob.unique_key],
            index_where=UNIQUE_INDEX_WHERE,
            set_={"kind": stmt.excluded.kind},
        ).returning(
            RiverJob,
            literal_column("(xmax != 0)").label("unique_skipped_as_duplicate"),
            sort_by_parameter_order=True,
        )

        rows = self._session.execute(
            stmt,
            [self._insert_params_to_dict(p) for p in insert_params_many],
            execution_options={"populate_existing": True},
        )
        return [(self._to_job_row(river_job), bool(skipped)) for river_job, skipped in rows]

    def _insert_unique_sqlite(self, insert_params: JobInsertParams) -> Tuple[Job, bool]:
        stmt = (
            sqlite_insert(RiverJob.__table__)
            .values(**self._insert_params_to_dict(insert_params))
            .on_conflict_do_nothing()
            .returning(RiverJob.__table__.c.id)
        )

        inserted_id = self._session.execute(stmt).scalar()
        if inserted_id is not None:
            return self._to_job_row(self._session.get(RiverJob, inserted_id)), False

        existing = self._session.scalars(
            select(RiverJob).where(RiverJob.unique_key == insert_params.unique_key, UNIQUE_INDEX_WHERE)
        ).one()
        return self._to_job_row(existing), True

    @staticmethod
    def _insert_params_to_dict(insert_params: JobInsertParams) -> Dict[str, Any]:
        now = datetime.now(timezone.utc)

        return {
            "args": insert_params.encoded_args,
            "created_at": now,
            "kind": insert_params.kind,
            "max_attempts": insert_params.max_attempts,
            "priority": insert_params.priority,
            "queue": insert_params.queue,
            "scheduled_at": insert_params.scheduled_at or now,
            "state": JobState(insert_params.state).value,
            "tags": list(insert_params.tags or []),
            "unique_key": insert_params.unique_key,
            "unique_states": insert_params.unique_states,
        }

    @staticmethod
    def _to_job_row(river_job: RiverJob) -> Job:
        errors = None
        if river_job.errors is not None:
            errors = [
                AttemptError(
                    at=datetime.fromisoformat(e["at"].replace("Z", "+00:00")),
                    attempt=e["attempt"],
                    error=e["error"],
                    trace=e["trace"],
                )
                for e in river_job.errors
            ]

        return Job(
            id=river_job.id,
            args=json.loads(river_job.args),
            attempt=river_job.attempt,
            attempted_at=_utc(river_job.attempted_at),
            attempted_by=river_job.attempted_by,
            created_at=_utc(river_job.created_at),
            errors=errors,
            finalized_at=_utc(river_job.finalized_at),
            kind=river_job.kind,
            max_attempts=river_job.max_attempts,
            metadata=river_job.metadata_ or {},
            priority=river_job.priority,
            queue=river_job.queue,
            scheduled_at=_utc(river_job.scheduled_at),
            state=JobState(river_job.state),
            tags=list(river_job.tags or []),
            unique_key=river_job.unique_key,
            unique_states=river_job.unique_states,
        )
