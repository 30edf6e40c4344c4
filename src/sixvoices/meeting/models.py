"""Data models for generated meetings."""

from dataclasses import asdict, dataclass, field
from typing import Any


@dataclass(frozen=True)
class ConversationTurn:
    """One line spoken by a persona.

    Attributes:
        speaker_role: Role id of the speaking persona.
        text: What was said.
        sequence_index: 0-based position in the whole conversation.
        round_number: 1-based meeting round.
    """

    speaker_role: str
    text: str
    sequence_index: int
    round_number: int = 1


@dataclass(frozen=True)
class Conclusion:
    """Closing summary of a meeting."""

    summary: str
    recommendations: list[str] = field(default_factory=list)
    next_steps: list[str] = field(default_factory=list)


@dataclass
class MeetingRatings:
    """Aggregated user ratings."""

    total_ratings: int = 0
    rating_sum: int = 0
    avg_rating: float = 0.0


@dataclass
class MeetingRecord:
    """A generated dialogue cached per (personality key, concern category)."""

    id: str
    personality_key: str
    concern_category: str
    conversation: list[ConversationTurn]
    conclusion: Conclusion
    similar_user_count: int = 0
    usage_count: int = 1
    created_at: str | None = None
    last_used_at: str | None = None
    ratings: MeetingRatings = field(default_factory=MeetingRatings)
    model_used: str | None = None
    fallback_used: bool = False
    status: str = "ready"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for storage."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MeetingRecord":
        """Create from a stored document."""
        conclusion = data.get("conclusion") or {}
        return cls(
            id=data["id"],
            personality_key=data["personality_key"],
            concern_category=data["concern_category"],
            conversation=[ConversationTurn(**turn) for turn in data.get("conversation", [])],
            conclusion=Conclusion(
                summary=conclusion.get("summary", ""),
                recommendations=list(conclusion.get("recommendations", [])),
                next_steps=list(conclusion.get("next_steps", [])),
            ),
            similar_user_count=data.get("similar_user_count", 0),
            usage_count=data.get("usage_count", 1),
            created_at=data.get("created_at"),
            last_used_at=data.get("last_used_at"),
            ratings=MeetingRatings(**data.get("ratings", {})),
            model_used=data.get("model_used"),
            fallback_used=data.get("fallback_used", False),
            status=data.get("status", "ready"),
        )


@dataclass(frozen=True)
class GeneratedDialogue:
    """Output of one generation call, before it is stored."""

    conversation: list[ConversationTurn]
    conclusion: Conclusion
    model_used: str | None = None
    fallback_used: bool = False
    emergency: bool = False


def round_count(message_count: int, participants: int = 6) -> int:
    """Number of rounds needed for a message count."""
    return -(-message_count // participants)
