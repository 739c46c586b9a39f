"""
Uniqueness fingerprints and advisory lock keys.

The unique key and lock string formats must match the ones used by the other
River clients exactly, since jobs inserted from any of them share a table.
Don't change them unless they change everywhere.
"""

import hashlib
import json
import struct
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, List, Optional, Tuple

from . import unique_bitmask
from .fnv import fnv1_hash
from .insert_opts import UniqueOpts
from .job import JobState
from .schema import DEFAULT_UNIQUE_STATES, validate_unique_states

if TYPE_CHECKING:
    from .driver import JobInsertParams

PERIOD_FORMAT = "%Y-%m-%dT%H:%M:%SZ"
LOCK_STRING_PREFIX = "unique_key"


def truncate_time(time: datetime, interval_seconds: int) -> datetime:
    """Round a time down to the nearest multiple of an interval since the epoch."""
    epoch = int(time.timestamp())
    return datetime.fromtimestamp((epoch // interval_seconds) * interval_seconds, tz=timezone.utc)


def period_bounds(now: datetime, interval_seconds: int) -> Tuple[datetime, datetime]:
    lower = truncate_time(now, interval_seconds)
    return lower, lower + timedelta(seconds=interval_seconds)


def uint64_to_int64(value: int) -> int:
    """
    Reinterpret an unsigned 64-bit integer as signed so it fits in a Postgres
    bigint. Overflowing into negatives is fine, lock keys use the whole range.
    """
    return struct.unpack("<q", struct.pack("<Q", value))[0]


def canonical_args(encoded_args: str, by_args) -> str:
    """
    Re-encode args with sorted keys, keeping only the keys named in `by_args`
    when it's a list.
    """
    parsed = json.loads(encoded_args)

    if isinstance(by_args, (list, tuple)):
        parsed = {k: parsed[k] for k in by_args if k in parsed}

    return json.dumps(parsed, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def effective_unique_states(unique_opts: UniqueOpts) -> List[JobState]:
    if unique_opts.by_state is None:
        return list(DEFAULT_UNIQUE_STATES)
    return validate_unique_states(unique_opts.by_state)


def _unique_clauses(insert_params: "JobInsertParams", unique_opts: UniqueOpts, now: datetime) -> str:
    clauses = ""

    if unique_opts.by_args_enabled():
        clauses += f"&args={canonical_args(insert_params.encoded_args, unique_opts.by_args)}"

    if unique_opts.by_period:
        lower_period_bound = truncate_time(now, unique_opts.by_period)
        clauses += f"&period={lower_period_bound.strftime(PERIOD_FORMAT)}"

    if unique_opts.by_queue:
        clauses += f"&queue={insert_params.queue}"

    return clauses


def make_unique_key(insert_params: "JobInsertParams", unique_opts: UniqueOpts, now: datetime) -> bytes:
    """SHA-256 digest of the job's active uniqueness dimensions."""
    unique_key = ""

    if not unique_opts.exclude_kind:
        unique_key += f"&kind={insert_params.kind}"

    unique_key += _unique_clauses(insert_params, unique_opts, now)

    return hashlib.sha256(unique_key.encode("utf-8")).digest()


def make_unique_key_and_bitmask(
    insert_params: "JobInsertParams",
    unique_opts: UniqueOpts,
    now: datetime,
) -> Tuple[bytes, str]:
    """
    Build the unique key and the `unique_states` bitmask stored with a job.

    Raises:
        ConfigurationError: If a custom `by_state` is missing a required state
    """
    unique_states = effective_unique_states(unique_opts)
    unique_key = make_unique_key(insert_params, unique_opts, now)

    return unique_key, unique_bitmask.from_states(unique_states)


def make_lock_string(insert_params: "JobInsertParams", unique_opts: UniqueOpts, now: datetime) -> str:
    states = sorted(s.value for s in effective_unique_states(unique_opts))

    return (
        f"{LOCK_STRING_PREFIX}kind={insert_params.kind}"
        f"{_unique_clauses(insert_params, unique_opts, now)}"
        f"&state={','.join(states)}"
    )


def make_lock_key(lock_string: str, advisory_lock_prefix: Optional[int] = None) -> int:
    """
    Hash a lock string into a signed 64-bit advisory lock key.

    With a prefix, the prefix takes the high 32 bits and a 32-bit hash the
    low 32 bits.
    """
    if advisory_lock_prefix is None:
        lock_key = fnv1_hash(lock_string, size=64)
    else:
        lock_key = advisory_lock_prefix << 32 | fnv1_hash(lock_string, size=32)

    return uint64_to_int64(lock_key)
