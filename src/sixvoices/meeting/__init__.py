"""Meeting generation, caching and fallback dialogues."""

from .cache import MeetingReuseCache, meeting_id_for, similarity_score
from .categories import OTHER, category_display_name, detect_concern_category, is_known_category
from .models import (
    Conclusion,
    ConversationTurn,
    GeneratedDialogue,
    MeetingRatings,
    MeetingRecord,
    round_count,
)
from .prompt import DialoguePromptBuilder
from .templates import emergency_dialogue

__all__ = [
    "Conclusion",
    "ConversationTurn",
    "DialoguePromptBuilder",
    "GeneratedDialogue",
    "MeetingRatings",
    "MeetingRecord",
    "MeetingReuseCache",
    "OTHER",
    "category_display_name",
    "detect_concern_category",
    "emergency_dialogue",
    "is_known_category",
    "meeting_id_for",
    "round_count",
    "similarity_score",
]
