"""Trait vector value type and derived personality variants."""

import math
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any

TRAIT_NAMES = (
    "openness",
    "conscientiousness",
    "extraversion",
    "agreeableness",
    "neuroticism",
)

TRAIT_MIN = 1
TRAIT_MAX = 5


def clamp_trait(value: float) -> int:
    """Round half up to the nearest integer and clamp to [1, 5]."""
    rounded = int(math.floor(value + 0.5))
    return max(TRAIT_MIN, min(TRAIT_MAX, rounded))


@dataclass(frozen=True)
class TraitVector:
    """Five-trait personality score, each component in [1, 5].

    Attributes:
        openness: Openness to experience.
        conscientiousness: Conscientiousness.
        extraversion: Extraversion.
        agreeableness: Agreeableness.
        neuroticism: Neuroticism.
    """

    openness: int
    conscientiousness: int
    extraversion: int
    agreeableness: int
    neuroticism: int

    def __post_init__(self) -> None:
        for name in TRAIT_NAMES:
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"{name} must be an integer, got {value!r}")
            if not TRAIT_MIN <= value <= TRAIT_MAX:
                raise ValueError(f"{name} must be in [{TRAIT_MIN}, {TRAIT_MAX}], got {value}")

    def as_tuple(self) -> tuple[int, int, int, int, int]:
        """Return the components in O, C, E, A, N order."""
        return (
            self.openness,
            self.conscientiousness,
            self.extraversion,
            self.agreeableness,
            self.neuroticism,
        )

    def to_dict(self) -> dict[str, int]:
        """Convert to a dict keyed by trait name."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TraitVector":
        """Create from a dict keyed by trait name."""
        return cls(**{name: data[name] for name in TRAIT_NAMES})

    @classmethod
    def from_scores(cls, *scores: float) -> "TraitVector":
        """Create from raw scores, rounding and clamping each one."""
        if len(scores) != len(TRAIT_NAMES):
            raise ValueError(f"Expected {len(TRAIT_NAMES)} scores, got {len(scores)}")
        return cls(*(clamp_trait(score) for score in scores))


class GroupSide(Enum):
    """Side of the meeting table a variant sits on."""

    LEFT = "left"
    RIGHT = "right"


class PersonalityRole(Enum):
    """The six inner voices taking part in a meeting."""

    SELF = "self"
    OPPOSITE = "opposite"
    IDEAL = "ideal"
    UNFILTERED = "unfiltered"
    CHILDHOOD = "childhood"
    ELDER = "elder"


@dataclass(frozen=True)
class RoleProfile:
    """Static presentation data for a role."""

    display_name: str
    description: str
    icon: str
    color: str
    group_side: GroupSide


ROLE_PROFILES: dict[PersonalityRole, RoleProfile] = {
    PersonalityRole.SELF: RoleProfile(
        display_name="Present Self",
        description="You as you are today",
        icon="person.fill",
        color="blue",
        group_side=GroupSide.LEFT,
    ),
    PersonalityRole.OPPOSITE: RoleProfile(
        display_name="Opposite Self",
        description="A self with the exact opposite temperament",
        icon="arrow.triangle.2.circlepath",
        color="orange",
        group_side=GroupSide.RIGHT,
    ),
    PersonalityRole.IDEAL: RoleProfile(
        display_name="Ideal Self",
        description="A balanced self you aspire to be",
        icon="star.fill",
        color="purple",
        group_side=GroupSide.LEFT,
    ),
    PersonalityRole.UNFILTERED: RoleProfile(
        display_name="Unfiltered Self",
        description="The blunt inner voice that skips diplomacy",
        icon="person.crop.circle",
        color="red",
        group_side=GroupSide.RIGHT,
    ),
    PersonalityRole.CHILDHOOD: RoleProfile(
        display_name="Childhood Self",
        description="Curious, carefree you as a child",
        icon="figure.walk",
        color="green",
        group_side=GroupSide.RIGHT,
    ),
    PersonalityRole.ELDER: RoleProfile(
        display_name="Elder Self",
        description="You at seventy, looking back with composure",
        icon="person.crop.square.filled.and.at.rectangle",
        color="brown",
        group_side=GroupSide.LEFT,
    ),
}


def role_profile(role: PersonalityRole) -> RoleProfile:
    """Return the static profile for a role."""
    return ROLE_PROFILES[role]


@dataclass(frozen=True)
class PersonalityVariant:
    """One derived persona with its traits and presentation data."""

    role: PersonalityRole
    display_name: str
    description: str
    icon: str
    color: str
    traits: TraitVector
    group_side: GroupSide
    gender: str

    @property
    def id(self) -> str:
        """Stable role identifier."""
        return self.role.value

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dict."""
        return {
            "id": self.id,
            "displayName": self.display_name,
            "description": self.description,
            "icon": self.icon,
            "color": self.color,
            "traits": self.traits.to_dict(),
            "groupSide": self.group_side.value,
            "gender": self.gender,
        }
