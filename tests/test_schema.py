"""
Tests for insert validation rules.
"""

import json

import pytest

from riverqueue.errors import ConfigurationError
from riverqueue.job import JobState
from riverqueue.schema import (
    check_advisory_lock_prefix_bounds,
    is_default_unique_states,
    validate_job_args,
    validate_tags,
    validate_unique_states,
)


class _Args:
    def __init__(self, kind, encoded='{"a": 1}'):
        self.kind = kind
        self._encoded = encoded

    def to_json(self):
        return self._encoded


class TestValidateJobArgs:
    """Test job args validation."""

    def test_valid(self):
        assert validate_job_args(_Args("simple")) == '{"a": 1}'

    def test_missing_kind(self):
        class NoKind:
            def to_json(self):
                return json.dumps({})

        with pytest.raises(ConfigurationError, match="non-empty `kind`"):
            validate_job_args(NoKind())

    def test_empty_kind(self):
        with pytest.raises(ConfigurationError, match="non-empty `kind`"):
            validate_job_args(_Args("  "))

    def test_no_to_json(self):
        class NoToJson:
            kind = "simple"

        with pytest.raises(ConfigurationError, match="respond to `to_json\\(\\)`"):
            validate_job_args(NoToJson())

    def test_to_json_returns_none(self):
        with pytest.raises(ConfigurationError, match="non-None from `to_json\\(\\)`"):
            validate_job_args(_Args("simple", encoded=None))


class TestValidateTags:
    """Test tag validation."""

    def test_valid_tags(self):
        validate_tags(["foo", "bar_baz", "with-dash", "a1b"])

    def test_none_and_empty(self):
        validate_tags(None)
        validate_tags([])

    def test_too_long(self):
        with pytest.raises(ConfigurationError, match="255 characters or less"):
            validate_tags(["a" * 256])

    def test_max_length_ok(self):
        validate_tags(["a" * 255])

    @pytest.mark.parametrize("tag", ["no,commas", "-leading", "trailing-", "a", "ab", "has space"])
    def test_bad_format(self, tag):
        with pytest.raises(ConfigurationError, match="should match regex"):
            validate_tags([tag])

    def test_non_ascii_rejected(self):
        with pytest.raises(ConfigurationError, match="should match regex"):
            validate_tags(["caf\u00e9_tag"])

    def test_error_names_tag(self):
        with pytest.raises(ConfigurationError, match="no,commas"):
            validate_tags(["fine", "no,commas"])


class TestValidateUniqueStates:
    """Test custom unique state sets."""

    def test_required_only(self):
        states = [JobState.AVAILABLE, JobState.PENDING, JobState.RUNNING, JobState.SCHEDULED]
        assert validate_unique_states(states) == states

    def test_accepts_strings(self):
        states = validate_unique_states(["available", "pending", "running", "scheduled", "cancelled"])
        assert JobState.CANCELLED in states

    @pytest.mark.parametrize("missing", ["available", "pending", "running", "scheduled"])
    def test_missing_required(self, missing):
        states = [s for s in ["available", "pending", "running", "scheduled"] if s != missing]
        with pytest.raises(ConfigurationError, match=f"by_state should include required state {missing}"):
            validate_unique_states(states)

    def test_unknown_state(self):
        with pytest.raises(ConfigurationError, match="by_state has unknown state 'bogus'"):
            validate_unique_states(["available", "pending", "running", "scheduled", "bogus"])

    def test_is_default_unknown_state(self):
        with pytest.raises(ConfigurationError, match="unknown state"):
            is_default_unique_states(["bogus"])

    def test_is_default(self):
        assert is_default_unique_states(None)
        assert is_default_unique_states(
            ["scheduled", "running", "retryable", "pending", "completed", "available"]
        )
        assert not is_default_unique_states(["available", "pending", "running", "scheduled"])


class TestAdvisoryLockPrefix:
    """Test advisory lock prefix bounds."""

    @pytest.mark.parametrize("prefix", [None, 0, 123456, 2**32 - 1])
    def test_in_bounds(self, prefix):
        assert check_advisory_lock_prefix_bounds(prefix) == prefix

    @pytest.mark.parametrize("prefix", [-1, 2**32, 2**40])
    def test_out_of_bounds(self, prefix):
        with pytest.raises(ConfigurationError, match="must fit inside four bytes"):
            check_advisory_lock_prefix_bounds(prefix)
