"""
Client for inserting River jobs.

Unlike River's Go client, this one only inserts jobs. Jobs are worked from Go
code, so job kinds and the JSON encoding of args must match between the
inserting and working sides.
"""

import json
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional, Sequence, Tuple

from .driver import Driver, JobGetByKindAndUniquePropertiesParam, JobInsertParams
from .errors import ConfigurationError
from .insert_opts import InsertManyParams, InsertOpts, UniqueOpts
from .job import InsertResult, Job, JobArgsWithInsertOpts, JobState
from .logger import StructuredLogger, get_logger
from .schema import (
    MAX_ATTEMPTS_DEFAULT,
    PRIORITY_DEFAULT,
    QUEUE_DEFAULT,
    check_advisory_lock_prefix_bounds,
    is_default_unique_states,
    validate_job_args,
    validate_tags,
)
from .unique import (
    canonical_args,
    effective_unique_states,
    make_lock_key,
    make_lock_string,
    make_unique_key_and_bitmask,
    period_bounds,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _first_not_none(*values):
    for value in values:
        if value is not None:
            return value
    return None


class Client:
    """
    Inserts jobs through a driver.

    Example:
        engine = init_database("postgresql+psycopg://localhost/river")
        client = Client(SQLAlchemyDriver(get_session(engine)))
        client.insert(SortArgs(strings=["whale", "tiger", "bear"]))

    Args:
        driver: Storage driver, like SQLAlchemyDriver
        advisory_lock_prefix: Optional 32-bit prefix placed in the high bits
            of advisory lock keys, to keep them apart from other lock users
        time_now_utc: Clock used for unique periods and scheduling
        logger: Logger to use instead of the global one
    """

    def __init__(
        self,
        driver: Driver,
        advisory_lock_prefix: Optional[int] = None,
        time_now_utc: Optional[Callable[[], datetime]] = None,
        logger: Optional[StructuredLogger] = None,
    ):
        self._driver = driver
        self._advisory_lock_prefix = check_advisory_lock_prefix_bounds(advisory_lock_prefix)
        self._time_now_utc = time_now_utc or _utcnow
        self._logger = logger or get_logger()

    def insert(self, args: Any, insert_opts: Optional[InsertOpts] = None) -> InsertResult:
        """
        Insert a new job from job args and optional insertion options.

        Job args must have a `kind` that identifies the job, and a `to_json()`
        method encoding the args the way the Go worker decodes them. They may
        also implement `insert_opts()` returning options for all jobs of the
        kind; options passed here take precedence over those.

        Raises:
            ConfigurationError: If args or options are invalid
        """
        now = self._time_now_utc()
        insert_params, unique_opts = self._make_insert_params(args, insert_opts or InsertOpts(), now)

        if unique_opts is None:
            job = self._driver.job_insert(insert_params)
            self._record_insert(job, False)
            return InsertResult(job)

        if is_default_unique_states(unique_opts.by_state):
            self._logger.record_unique_path("fast")
            job, skipped = self._driver.job_insert_unique(insert_params, insert_params.unique_key)
            self._record_insert(job, skipped)
            return InsertResult(job, unique_skipped_as_duplicated=skipped)

        return self._insert_unique_slow(insert_params, unique_opts, now)

    def insert_many(self, args: Sequence[Any]) -> List[InsertResult]:
        """
        Insert many jobs in one batch.

        Takes job args, or InsertManyParams pairing job args with their own
        options. Unique jobs are deduplicated by the database in the same
        batch, so only the default `by_state` is supported here.

        Returns:
            One InsertResult per input, in input order
        """
        now = self._time_now_utc()
        all_params = []

        for arg in args:
            if isinstance(arg, InsertManyParams):
                insert_params, unique_opts = self._make_insert_params(arg.args, arg.insert_opts or InsertOpts(), now)
            else:
                insert_params, unique_opts = self._make_insert_params(arg, InsertOpts(), now)

            if unique_opts is not None and not is_default_unique_states(unique_opts.by_state):
                raise ConfigurationError("unique opts with a custom by_state can't be used with `insert_many`")

            all_params.append(insert_params)

        results = [
            InsertResult(job, unique_skipped_as_duplicated=skipped)
            for job, skipped in self._driver.job_insert_many(all_params)
        ]

        for result in results:
            self._record_insert(result.job, result.unique_skipped_as_duplicated)
        self._logger.info(
            "Inserted job batch",
            count=len(results),
            skipped=sum(1 for r in results if r.unique_skipped_as_duplicated),
        )

        return results

    def _insert_unique_slow(self, insert_params: JobInsertParams, unique_opts: UniqueOpts, now: datetime) -> InsertResult:
        # A custom state set can't be expressed by the unique index, so check
        # for an existing job under an advisory lock instead.
        self._logger.record_unique_path("slow")

        get_params = JobGetByKindAndUniquePropertiesParam(
            kind=insert_params.kind,
            state=effective_unique_states(unique_opts),
        )
        if unique_opts.by_args_enabled():
            if isinstance(unique_opts.by_args, (list, tuple)):
                get_params.args_subset = json.loads(canonical_args(insert_params.encoded_args, unique_opts.by_args))
            else:
                get_params.encoded_args = insert_params.encoded_args
        if unique_opts.by_period:
            get_params.created_at = period_bounds(now, unique_opts.by_period)
        if unique_opts.by_queue:
            get_params.queue = insert_params.queue

        lock_key = make_lock_key(make_lock_string(insert_params, unique_opts, now), self._advisory_lock_prefix)

        with self._driver.transaction():
            self._driver.advisory_lock(lock_key)
            self._logger.record_advisory_lock()

            existing_job = self._driver.job_get_by_kind_and_unique_properties(get_params)
            if existing_job is not None:
                self._record_insert(existing_job, True)
                return InsertResult(existing_job, unique_skipped_as_duplicated=True)

            # The unique key stays off the row; only the lock protects it
            job = self._driver.job_insert(replace(insert_params, unique_key=None))

        self._record_insert(job, False)
        return InsertResult(job)

    def _make_insert_params(
        self, args: Any, insert_opts: InsertOpts, now: datetime
    ) -> Tuple[JobInsertParams, Optional[UniqueOpts]]:
        encoded_args = validate_job_args(args)

        args_insert_opts = InsertOpts()
        if isinstance(args, JobArgsWithInsertOpts):
            args_insert_opts = args.insert_opts() or InsertOpts()

        scheduled_at = _first_not_none(insert_opts.scheduled_at, args_insert_opts.scheduled_at)
        if scheduled_at is not None:
            scheduled_at = scheduled_at.astimezone(timezone.utc)

        tags = _first_not_none(insert_opts.tags, args_insert_opts.tags)
        validate_tags(tags)

        insert_params = JobInsertParams(
            encoded_args=encoded_args,
            kind=args.kind,
            max_attempts=_first_not_none(insert_opts.max_attempts, args_insert_opts.max_attempts, MAX_ATTEMPTS_DEFAULT),
            priority=_first_not_none(insert_opts.priority, args_insert_opts.priority, PRIORITY_DEFAULT),
            queue=_first_not_none(insert_opts.queue, args_insert_opts.queue, QUEUE_DEFAULT),
            scheduled_at=scheduled_at,  # database defaults to now
            state=JobState.SCHEDULED if scheduled_at is not None and scheduled_at > now else JobState.AVAILABLE,
            tags=tags,
        )

        unique_opts = _first_not_none(insert_opts.unique_opts, args_insert_opts.unique_opts)
        if unique_opts is None or unique_opts.is_empty():
            return insert_params, None

        unique_key, unique_states = make_unique_key_and_bitmask(insert_params, unique_opts, now)
        return replace(insert_params, unique_key=unique_key, unique_states=unique_states), unique_opts

    def _record_insert(self, job: Job, skipped: bool) -> None:
        self._logger.record_insert(job.kind, skipped)
        if skipped:
            self._logger.debug("Skipped duplicate unique job", kind=job.kind, queue=job.queue, existing_job_id=job.id)
        else:
            self._logger.debug("Inserted job", kind=job.kind, queue=job.queue, job_id=job.id)
