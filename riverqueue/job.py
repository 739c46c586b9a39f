"""
Job rows, job states and the job args capability types.

Job args are plain objects exposing a `kind` and a `to_json()` method. Args
that want per-kind insert options also implement `insert_opts()`.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Protocol, runtime_checkable

from .errors import ConfigurationError

if TYPE_CHECKING:
    from .insert_opts import InsertOpts


class JobState(str, Enum):
    AVAILABLE = "available"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    DISCARDED = "discarded"
    PENDING = "pending"
    RETRYABLE = "retryable"
    RUNNING = "running"
    SCHEDULED = "scheduled"


@runtime_checkable
class JobArgs(Protocol):
    """Minimum interface for job args: a kind and a JSON encoder."""

    kind: str

    def to_json(self) -> Optional[str]:
        ...


@runtime_checkable
class JobArgsWithInsertOpts(Protocol):
    """Job args that also provide insert options for every job of their kind."""

    kind: str

    def to_json(self) -> Optional[str]:
        ...

    def insert_opts(self) -> Optional["InsertOpts"]:
        ...


class JobArgsDict:
    """
    Job args built from a kind and a dict, for inserting jobs without
    declaring a dedicated args class.

    Example:
        client.insert(JobArgsDict("reindex", {"index": "users"}))
    """

    def __init__(self, kind: str, args: Dict[str, Any]):
        if kind is None:
            raise ConfigurationError("kind should be non-None")
        if args is None:
            raise ConfigurationError("args dict should be non-None")

        self.kind = kind
        self.args = args

    def to_json(self) -> str:
        return json.dumps(self.args)


@dataclass
class AttemptError:
    """A failed attempt recorded on a job by the worker."""

    at: datetime
    attempt: int
    error: str
    trace: str


@dataclass
class Job:
    """A job row as persisted in the database."""

    id: int
    args: Dict[str, Any]
    attempt: int
    attempted_at: Optional[datetime]
    attempted_by: Optional[List[str]]
    created_at: datetime
    errors: Optional[List[AttemptError]]
    finalized_at: Optional[datetime]
    kind: str
    max_attempts: int
    metadata: Dict[str, Any]
    priority: int
    queue: str
    scheduled_at: datetime
    state: JobState
    tags: List[str]
    unique_key: Optional[bytes] = None
    unique_states: Optional[str] = None


@dataclass
class InsertResult:
    """
    Result of a single insertion.

    `unique_skipped_as_duplicated` is true when the job was unique and an
    equivalent job already existed, in which case `job` is that existing row.
    """

    job: Job
    unique_skipped_as_duplicated: bool = field(default=False)
