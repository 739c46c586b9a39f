"""
FNV is the Fowler-Noll-Vo hash function, a simple hash that's easy to
implement and fits the 64 bits available for a Postgres advisory lock key.

This is FNV-1 (multiply, then XOR), not FNV-1a. Other River clients hash lock
strings the same way, so the constants must not change.
"""

from typing import Union

OFFSET_BASIS = {
    32: 0x811C9DC5,
    64: 0xCBF29CE484222325,
}

PRIME = {
    32: 0x01000193,
    64: 0x00000100000001B3,
}


def fnv1_hash(data: Union[str, bytes], size: int) -> int:
    """
    Hash a string or bytes with FNV-1.

    Args:
        data: Input; strings are encoded as UTF-8
        size: Hash width in bits, 32 or 64

    Returns:
        Unsigned integer of `size` bits
    """
    if size not in OFFSET_BASIS:
        raise ValueError(f"unsupported FNV size: {size}")

    if isinstance(data, str):
        data = data.encode("utf-8")

    hash_ = OFFSET_BASIS[size]
    mask = (1 << size) - 1  # e.g. 0xffffffff for 32 bits
    prime = PRIME[size]

    for byte in data:
        hash_ = (hash_ * prime) & mask
        hash_ ^= byte

    return hash_
