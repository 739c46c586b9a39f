"""
Tests for job args types.
"""

import json

import pytest

from riverqueue.errors import ConfigurationError
from riverqueue.insert_opts import InsertOpts, UniqueOpts
from riverqueue.job import JobArgs, JobArgsDict, JobArgsWithInsertOpts, JobState

from conftest import SimpleArgs, SimpleArgsWithInsertOpts


class TestJobArgsDict:
    """Test dict-backed job args."""

    def test_kind_and_json(self):
        args = JobArgsDict("reindex", {"index": "users"})
        assert args.kind == "reindex"
        assert json.loads(args.to_json()) == {"index": "users"}

    def test_none_kind(self):
        with pytest.raises(ConfigurationError, match="kind should be non-None"):
            JobArgsDict(None, {})

    def test_none_args(self):
        with pytest.raises(ConfigurationError, match="args dict should be non-None"):
            JobArgsDict("reindex", None)


class TestJobArgsProtocols:
    """Test capability detection on job args."""

    def test_plain_args(self):
        assert isinstance(SimpleArgs(1), JobArgs)
        assert not isinstance(SimpleArgs(1), JobArgsWithInsertOpts)

    def test_args_with_insert_opts(self):
        assert isinstance(SimpleArgsWithInsertOpts(1), JobArgsWithInsertOpts)


class TestUniqueOpts:
    """Test uniqueness option helpers."""

    def test_empty(self):
        assert UniqueOpts().is_empty()
        assert UniqueOpts(by_args=False, by_queue=False).is_empty()

    def test_exclude_kind_alone_is_empty(self):
        assert UniqueOpts(exclude_kind=True).is_empty()

    @pytest.mark.parametrize(
        "unique_opts",
        [
            UniqueOpts(by_args=True),
            UniqueOpts(by_args=["customer"]),
            UniqueOpts(by_period=60),
            UniqueOpts(by_queue=True),
            UniqueOpts(by_state=[JobState.AVAILABLE]),
        ],
    )
    def test_not_empty(self, unique_opts):
        assert not unique_opts.is_empty()

    def test_by_args_enabled(self):
        assert UniqueOpts(by_args=True).by_args_enabled()
        assert UniqueOpts(by_args=["a"]).by_args_enabled()
        assert not UniqueOpts().by_args_enabled()

    def test_insert_opts_defaults(self):
        opts = InsertOpts()
        assert opts.queue is None
        assert opts.unique_opts is None
