"""Canonical string encoding of a trait vector plus gender.

Keys look like ``O4_C2_E5_A3_N2_female`` and identify cached meetings.
"""

import logging
import re
from collections.abc import Iterator
from itertools import product

from ..errors import MalformedKeyError
from .traits import TRAIT_MAX, TRAIT_MIN, TraitVector

logger = logging.getLogger(__name__)

KEY_PATTERN = re.compile(
    r"^O(?P<o>\d+)_C(?P<c>\d+)_E(?P<e>\d+)_A(?P<a>\d+)_N(?P<n>\d+)_(?P<gender>[A-Za-z0-9-]+)$"
)
GENDER_PATTERN = re.compile(r"^[A-Za-z0-9-]+$")


def _check_gender(gender: str) -> None:
    if not isinstance(gender, str) or not GENDER_PATTERN.match(gender):
        raise ValueError(f"Gender must be a non-empty token without '_', got {gender!r}")


def encode_key(traits: TraitVector, gender: str) -> str:
    """Encode traits and gender into a personality key."""
    _check_gender(gender)
    o, c, e, a, n = traits.as_tuple()
    return f"O{o}_C{c}_E{e}_A{a}_N{n}_{gender}"


def decode_key(key: str) -> tuple[TraitVector, str]:
    """Decode a personality key.

    Raises:
        MalformedKeyError: If the key does not have the six-field shape
            or any trait lies outside [1, 5].
    """
    if not isinstance(key, str):
        raise MalformedKeyError(key, "not a string")

    match = KEY_PATTERN.match(key)
    if match is None:
        logger.error("Rejected malformed personality key %r", key)
        raise MalformedKeyError(key, "does not match O_C_E_A_N_gender")

    scores = [int(match.group(field)) for field in ("o", "c", "e", "a", "n")]
    for score in scores:
        if not TRAIT_MIN <= score <= TRAIT_MAX:
            logger.error("Rejected personality key %r with out-of-range trait", key)
            raise MalformedKeyError(key, f"trait value {score} outside [1, 5]")

    # Leading zeros would break the round trip.
    if encode_key(TraitVector(*scores), match.group("gender")) != key:
        raise MalformedKeyError(key, "non-canonical digits")

    return TraitVector(*scores), match.group("gender")


def is_valid_key(key: str) -> bool:
    """Return True if the key decodes cleanly."""
    try:
        decode_key(key)
    except MalformedKeyError:
        return False
    return True


def iter_all_keys(gender: str) -> Iterator[str]:
    """Yield every key for a gender, openness varying slowest."""
    values = range(TRAIT_MIN, TRAIT_MAX + 1)
    for scores in product(values, repeat=5):
        yield encode_key(TraitVector(*scores), gender)
