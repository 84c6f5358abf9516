"""
Deterministic bucketing.

The bucket key is hashed with MurmurHash3 (x86, 32-bit, seed 1) and scaled
into [0, MAX_BUCKETED_NUMBER). Any implementation using the same key format
and hash lands a context in the same bucket.
"""

import math
from typing import Any, Dict, List

import mmh3

from flagcore.conditions import get_attribute_value
from flagcore.models import Feature

HASH_SEED = 1
MAX_HASH_VALUE = 2**32
MAX_BUCKETED_NUMBER = 100000  # 100% * 1000 to include three decimal places
DEFAULT_BUCKET_KEY_SEPARATOR = "."


def hash_key(key: str, seed: int = HASH_SEED) -> int:
    """Unsigned 32-bit MurmurHash3 of a UTF-8 string."""
    return mmh3.hash(key, seed, signed=False)


def bucket(key: str, domain_size: int = MAX_BUCKETED_NUMBER) -> int:
    """
    Map a bucket key to an integer in [0, domain_size).

    Same key, same number, across processes and over time.
    """
    ratio = hash_key(key) / MAX_HASH_VALUE
    return math.floor(ratio * domain_size)


def stringify(value: Any) -> str:
    """Render a context value the same way every SDK does in a bucket key."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def get_bucket_key(
    feature: Feature,
    context: Dict[str, Any],
    separator: str = DEFAULT_BUCKET_KEY_SEPARATOR,
) -> str:
    """
    Build the bucket key for a feature.

    The present bucketBy values come first, the feature key last:
    `<value>[.<value>...].<featureKey>`.
    """
    parts: List[str] = []

    for attribute in feature.bucket_by.attributes:
        value = get_attribute_value(attribute, context)
        if value is None:
            continue
        if feature.bucket_by.kind == "or" and parts:
            break
        parts.append(stringify(value))

    parts.append(feature.key)
    return separator.join(parts)
