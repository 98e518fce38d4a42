"""
Consistent-hashing primitive.

MurmurHash3 (x86, 32 bit) with seed 1 over the UTF-8 bucket key. The
algorithm and seed are shared with every other SDK, so a user lands in
the same bucket whichever SDK evaluates the flag.
"""

import math

import mmh3

from ..constants import SEED_VALUE, MAX_TRAFFIC_PERCENT, MAX_TRAFFIC_VALUE


def get_hash_value(hash_key: str) -> int:
    """Unsigned 32-bit MurmurHash3 of ``hash_key``."""
    return mmh3.hash(hash_key, SEED_VALUE, signed=False)


def generate_bucket_value(hash_value: int, max_value: int, multiplier: float = 1) -> int:
    """Map a 32-bit hash onto ``1..max_value``."""
    ratio = hash_value / 2 ** 32
    return math.floor(((max_value * ratio) + 1) * multiplier)


def get_bucket_value_for_user(hash_key: str, max_value: int = MAX_TRAFFIC_PERCENT) -> int:
    return generate_bucket_value(get_hash_value(hash_key), max_value)


def calculate_bucket_value(hash_key: str, multiplier: float = 1, max_value: int = MAX_TRAFFIC_VALUE) -> int:
    return generate_bucket_value(get_hash_value(hash_key), max_value, multiplier)
