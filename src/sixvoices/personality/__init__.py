"""Personality derivation and key encoding."""

from .deriver import derive_personalities, derive_traits, derive_variant
from .key_codec import decode_key, encode_key, is_valid_key, iter_all_keys
from .traits import (
    GroupSide,
    PersonalityRole,
    PersonalityVariant,
    RoleProfile,
    TraitVector,
    role_profile,
)

__all__ = [
    "GroupSide",
    "PersonalityRole",
    "PersonalityVariant",
    "RoleProfile",
    "TraitVector",
    "decode_key",
    "derive_personalities",
    "derive_traits",
    "derive_variant",
    "encode_key",
    "is_valid_key",
    "iter_all_keys",
    "role_profile",
]
