"""
Options for job insertion.

Options can be returned from `insert_opts()` on job args, or passed to
`Client.insert` / `Client.insert_many`. Options passed at insertion time take
precedence over those of the job args, field by field.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, List, Optional, Sequence, Union

from .job import JobState


@dataclass
class UniqueOpts:
    """
    Parameters for uniqueness for a job.

    If all properties are None, no uniqueness is enforced. Each property that
    is set adds a dimension to the uniqueness matrix, and the job's kind
    always counts toward uniqueness unless `exclude_kind` is set.

    For example, if only `by_queue` is set, a single instance of the kind is
    allowed in any given queue. If `by_args` and `by_queue` are both set, a
    single instance is allowed for each combination of args and queue.

    Attributes:
        by_args: True to make the whole encoded args part of uniqueness, or a
            list of top-level arg keys to consider only those keys.
        by_period: Period in seconds. Insert time is rounded down to a
            multiple of the period and only one job is allowed per bucket.
        by_queue: Enforce uniqueness within each queue.
        by_state: States in which an existing job blocks a new insert.
            Defaults to available, completed, pending, retryable, running and
            scheduled. When customized it must include available, pending,
            running and scheduled.
        exclude_kind: Leave the job kind out of uniqueness, so uniqueness can
            span several kinds.
    """

    by_args: Union[bool, List[str], None] = None
    by_period: Optional[int] = None
    by_queue: Optional[bool] = None
    by_state: Optional[Sequence[JobState]] = None
    exclude_kind: Optional[bool] = None

    def by_args_enabled(self) -> bool:
        return self.by_args is True or isinstance(self.by_args, (list, tuple))

    def is_empty(self) -> bool:
        """True when no uniqueness dimension is turned on."""
        return not (
            self.by_args_enabled()
            or self.by_period
            or self.by_queue
            or self.by_state is not None
        )


@dataclass
class InsertOpts:
    """
    Attributes:
        max_attempts: Total attempts (original run plus retries) before the
            job is discarded. Defaults to 25.
        priority: 1 is the highest priority and 4 the lowest. Defaults to 1.
        queue: Queue to insert the job into. Defaults to "default".
        scheduled_at: Time at which the job should run. A time in the future
            inserts the job as scheduled.
        tags: Keywords for grouping jobs. Tags from insert time replace tags
            from job args; they are not merged.
        unique_opts: Uniqueness options. None means the job is never unique.
    """

    max_attempts: Optional[int] = None
    priority: Optional[int] = None
    queue: Optional[str] = None
    scheduled_at: Optional[datetime] = None
    tags: Optional[List[str]] = None
    unique_opts: Optional[UniqueOpts] = None


class InsertManyParams:
    """A job to insert as part of `insert_many`, paired with its own options."""

    def __init__(self, args: Any, insert_opts: Optional[InsertOpts] = None):
        self.args = args
        self.insert_opts = insert_opts
