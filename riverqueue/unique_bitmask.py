"""
Encodes sets of job states to and from the 8-bit string stored in a job's
`unique_states` column.

Bit positions are fixed forever since persisted bitmasks must keep their
meaning. Position 0 is the leftmost character of the string.
"""

from typing import Iterable, List, Union

from .job import JobState

JOB_STATE_BIT_POSITIONS = {
    JobState.AVAILABLE: 7,
    JobState.CANCELLED: 6,
    JobState.COMPLETED: 5,
    JobState.DISCARDED: 4,
    JobState.PENDING: 3,
    JobState.RETRYABLE: 2,
    JobState.RUNNING: 1,
    JobState.SCHEDULED: 0,
}


def _to_job_state(state):
    try:
        return JobState(state)
    except ValueError:
        return None


def from_states(states: Iterable[Union[JobState, str]]) -> str:
    """
    Build a bitmask string like "11110101" from job states.

    Unknown states are ignored and an empty iterable gives "00000000".
    """
    val = 0

    for state in states:
        bit_index = JOB_STATE_BIT_POSITIONS.get(_to_job_state(state))
        if bit_index is None:
            continue

        val |= 1 << (7 - bit_index)

    return format(val, "08b")


def to_states(mask: Union[int, str]) -> List[JobState]:
    """
    Decode a bitmask, either an int or a bit string, into job states sorted
    by name.
    """
    if isinstance(mask, str):
        mask = int(mask, 2)

    states = [
        state
        for state, bit_index in JOB_STATE_BIT_POSITIONS.items()
        if mask & (1 << (7 - bit_index))
    ]

    return sorted(states, key=lambda s: s.value)


def string_position(state: Union[JobState, str]) -> int:
    """1-based position of a state's character in a bitmask string."""
    return JOB_STATE_BIT_POSITIONS[JobState(state)] + 1
