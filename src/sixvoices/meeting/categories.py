"""Concern categories and keyword-based detection."""

import re

OTHER = "other"

CATEGORY_NAMES: dict[str, str] = {
    "career": "Career & Work",
    "romance": "Love & Relationships",
    "money": "Money & Finance",
    "health": "Health & Lifestyle",
    "family": "Family & Parenting",
    "future": "Future & Life Planning",
    "hobby": "Hobbies & Self-fulfilment",
    "study": "Learning & Skills",
    "moving": "Moving & Housing",
    OTHER: "Other",
}

# First matching category wins, in this order. Keywords match whole words,
# optionally followed by a plural "s"/"es".
CATEGORY_KEYWORDS: dict[str, tuple[str, ...]] = {
    "career": ("job", "career", "work", "working", "boss", "coworker", "colleague", "promotion", "salary", "overtime", "quit"),
    "romance": ("love", "boyfriend", "girlfriend", "partner", "dating", "crush", "marriage", "breakup", "relationship"),
    "money": ("money", "savings", "saving", "invest", "investing", "investment", "loan", "debt", "income", "budget", "spending"),
    "health": ("health", "sick", "illness", "diet", "exercise", "sleep", "tired", "stress"),
    "family": ("family", "parent", "mother", "father", "child", "children", "kid", "parenting", "sibling", "spouse"),
    "future": ("future", "goal", "dream", "plan", "purpose", "anxious", "anxiety"),
    "hobby": ("hobby", "hobbies", "passion", "interest"),
    "study": ("study", "studying", "exam", "learn", "learning", "certification", "skill", "language", "school", "homework"),
    "moving": ("move", "moving", "apartment", "house", "rent", "living alone"),
}

_KEYWORD_PATTERNS: dict[str, re.Pattern[str]] = {
    category: re.compile(r"\b(?:" + "|".join(re.escape(word) for word in words) + r")(?:s|es)?\b")
    for category, words in CATEGORY_KEYWORDS.items()
}


def category_display_name(category: str) -> str:
    """Human-readable name for a category, "Other" when unknown."""
    return CATEGORY_NAMES.get(category, CATEGORY_NAMES[OTHER])


def is_known_category(category: str) -> bool:
    return category in CATEGORY_NAMES


def detect_concern_category(concern: str) -> str:
    """Guess the category of a free-text concern from keywords."""
    text = concern.lower()
    for category, pattern in _KEYWORD_PATTERNS.items():
        if pattern.search(text):
            return category
    return OTHER
