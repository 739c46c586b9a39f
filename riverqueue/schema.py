"""
Validation rules for job insertion.

All checks run before any database access and raise ConfigurationError with
a message naming the rule that was broken.
"""

import re
from typing import Any, Iterable, List, Optional, Sequence

from .errors import ConfigurationError
from .job import JobState

MAX_ATTEMPTS_DEFAULT = 25
PRIORITY_DEFAULT = 1
QUEUE_DEFAULT = "default"

# States that represent unfinished work. A custom `by_state` must always
# include them.
REQUIRED_UNIQUE_STATES = [
    JobState.AVAILABLE,
    JobState.PENDING,
    JobState.RUNNING,
    JobState.SCHEDULED,
]

DEFAULT_UNIQUE_STATES = [
    JobState.AVAILABLE,
    JobState.COMPLETED,
    JobState.PENDING,
    JobState.RETRYABLE,
    JobState.RUNNING,
    JobState.SCHEDULED,
]

TAG_MAX_LENGTH = 255
TAG_RE = re.compile(r"\A[\w][\w\-]+[\w]\Z", re.ASCII)

ADVISORY_LOCK_PREFIX_MAX = 2**32 - 1


def _is_non_empty_str(v: Any) -> bool:
    return isinstance(v, str) and v.strip() != ""


def validate_job_args(args: Any) -> str:
    """
    Check that job args expose a kind and encode to non-None JSON.

    Returns:
        The encoded args
    """
    if not _is_non_empty_str(getattr(args, "kind", None)):
        raise ConfigurationError("args should have a non-empty `kind`")

    to_json = getattr(args, "to_json", None)
    if not callable(to_json):
        raise ConfigurationError("args should respond to `to_json()`")

    encoded_args = to_json()
    if encoded_args is None:
        raise ConfigurationError("args should return non-None from `to_json()`")

    return encoded_args


def validate_tags(tags: Optional[Iterable[str]]) -> None:
    for tag in tags or []:
        if len(tag) > TAG_MAX_LENGTH:
            raise ConfigurationError(
                f"tags should be {TAG_MAX_LENGTH} characters or less: {tag[:32]}..."
            )
        if not TAG_RE.match(tag):
            raise ConfigurationError(
                f"tag should match regex {TAG_RE.pattern}: {tag!r}"
            )


def _to_job_state(state: Any) -> JobState:
    try:
        return JobState(state)
    except ValueError:
        raise ConfigurationError(f"by_state has unknown state {state!r}") from None


def validate_unique_states(states: Sequence[JobState]) -> List[JobState]:
    """
    Check that a custom unique state set includes every required state.

    Returns:
        The states as JobState values
    """
    normalized = [_to_job_state(s) for s in states]

    for required_state in REQUIRED_UNIQUE_STATES:
        if required_state not in normalized:
            raise ConfigurationError(
                f"by_state should include required state {required_state.value}"
            )

    return normalized


def is_default_unique_states(states: Optional[Sequence[JobState]]) -> bool:
    if states is None:
        return True
    return {_to_job_state(s) for s in states} == set(DEFAULT_UNIQUE_STATES)


def check_advisory_lock_prefix_bounds(prefix: Optional[int]) -> Optional[int]:
    if prefix is None:
        return None

    # 2**32-1 is 0xffffffff, the largest number that fits in four bytes
    if not isinstance(prefix, int) or prefix < 0 or prefix > ADVISORY_LOCK_PREFIX_MAX:
        raise ConfigurationError("advisory lock prefix must fit inside four bytes")

    return prefix
