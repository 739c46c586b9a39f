"""
Tests for FNV-1 hashing.
"""

import pytest

from riverqueue.fnv import OFFSET_BASIS, fnv1_hash


class TestFnv1Hash:
    """Test FNV-1 against published test vectors."""

    def test_empty_is_offset_basis(self):
        assert fnv1_hash("", size=32) == OFFSET_BASIS[32]
        assert fnv1_hash(b"", size=64) == OFFSET_BASIS[64]

    @pytest.mark.parametrize(
        "data,size,expected",
        [
            ("a", 32, 0x050C5D7E),
            ("a", 64, 0xAF63BD4C8601B7BE),
            ("foobar", 32, 0x31F0B262),
            ("foobar", 64, 0x340D8765A4DDA9C2),
        ],
    )
    def test_vectors(self, data, size, expected):
        assert fnv1_hash(data, size=size) == expected

    def test_str_and_bytes_agree(self):
        assert fnv1_hash("foobar", size=64) == fnv1_hash(b"foobar", size=64)

    def test_result_fits_size(self):
        assert fnv1_hash("unique_keykind=simple", size=32) < 2**32
        assert fnv1_hash("unique_keykind=simple", size=64) < 2**64

    def test_unsupported_size(self):
        with pytest.raises(ValueError):
            fnv1_hash("a", size=128)
