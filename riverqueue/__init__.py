"""
riverqueue: insert-only client for the River job queue.
"""

__version__ = "0.1.0"

from .client import Client
from .driver import Rollback, SQLAlchemyDriver
from .errors import ConfigurationError
from .insert_opts import InsertManyParams, InsertOpts, UniqueOpts
from .job import AttemptError, InsertResult, Job, JobArgs, JobArgsDict, JobArgsWithInsertOpts, JobState

__all__ = [
    "AttemptError",
    "Client",
    "ConfigurationError",
    "InsertManyParams",
    "InsertOpts",
    "InsertResult",
    "Job",
    "JobArgs",
    "JobArgsDict",
    "JobArgsWithInsertOpts",
    "JobState",
    "Rollback",
    "SQLAlchemyDriver",
    "UniqueOpts",
]
