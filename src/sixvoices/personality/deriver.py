"""Derivation of the six inner-voice variants from a base trait vector.

Every rule applies plain arithmetic to the base traits, then rounds and
clamps each component to [1, 5]. The output feeds cache keys, so the same
input must always produce the same six variants.
"""

from collections.abc import Callable

from .traits import (
    TRAIT_MAX,
    PersonalityRole,
    PersonalityVariant,
    TraitVector,
    clamp_trait,
    role_profile,
)

IDEAL_FLOOR = 4
IDEAL_EXTRAVERSION_TARGET = 3.5
ELDER_FLOOR = 2


def move_toward(value: float, target: float) -> float:
    """Move one step toward target without overshooting the trait scale."""
    if value < target:
        return min(value + 1, TRAIT_MAX)
    if value > target:
        return max(value - 1, 1)
    return value


def _self(u: TraitVector) -> tuple[float, ...]:
    return u.as_tuple()


def _opposite(u: TraitVector) -> tuple[float, ...]:
    return tuple(6 - value for value in u.as_tuple())


def _ideal(u: TraitVector) -> tuple[float, ...]:
    # Neuroticism pole is read as stability here; see DESIGN.md.
    return (
        max(u.openness, IDEAL_FLOOR),
        max(u.conscientiousness, IDEAL_FLOOR),
        move_toward(u.extraversion, IDEAL_EXTRAVERSION_TARGET),
        max(u.agreeableness, IDEAL_FLOOR),
        max(u.neuroticism, IDEAL_FLOOR),
    )


def _unfiltered(u: TraitVector) -> tuple[float, ...]:
    return (
        u.openness + 1.5,
        u.conscientiousness - 2,
        u.extraversion + 1.5,
        u.agreeableness - 2.5,
        u.neuroticism - 1.5,
    )


def _childhood(u: TraitVector) -> tuple[float, ...]:
    return (5, 1, max(u.extraversion + 1, 4), 3, 2)


def _elder(u: TraitVector) -> tuple[float, ...]:
    return (
        max(u.openness - 1, ELDER_FLOOR),
        u.conscientiousness + 0.5,
        max(u.extraversion - 1, ELDER_FLOOR),
        u.agreeableness + 1,
        u.neuroticism + 1.5,
    )


_RULES: dict[PersonalityRole, Callable[[TraitVector], tuple[float, ...]]] = {
    PersonalityRole.SELF: _self,
    PersonalityRole.OPPOSITE: _opposite,
    PersonalityRole.IDEAL: _ideal,
    PersonalityRole.UNFILTERED: _unfiltered,
    PersonalityRole.CHILDHOOD: _childhood,
    PersonalityRole.ELDER: _elder,
}


def derive_traits(role: PersonalityRole, traits: TraitVector) -> TraitVector:
    """Apply a role's rule to the base traits."""
    raw = _RULES[role](traits)
    return TraitVector(*(clamp_trait(value) for value in raw))


def derive_variant(
    role: PersonalityRole, traits: TraitVector, gender: str
) -> PersonalityVariant:
    """Build a single variant for a role.

    Args:
        role: Which inner voice to derive.
        traits: The user's base trait vector.
        gender: Gender token carried onto the variant.

    Returns:
        The derived PersonalityVariant.
    """
    profile = role_profile(role)
    return PersonalityVariant(
        role=role,
        display_name=profile.display_name,
        description=profile.description,
        icon=profile.icon,
        color=profile.color,
        traits=derive_traits(role, traits),
        group_side=profile.group_side,
        gender=gender,
    )


def derive_personalities(traits: TraitVector, gender: str) -> list[PersonalityVariant]:
    """Derive all six variants in role declaration order."""
    return [derive_variant(role, traits, gender) for role in PersonalityRole]
