"""Static model tables per subscription tier."""

from dataclasses import dataclass

FREE = "free"
PREMIUM = "premium"
TIERS = (FREE, PREMIUM)

PREMIUM_MODEL = "llama-3.3-70b-versatile"
MID_MODEL = "qwen/qwen3-32b"
BASELINE_MODEL = "llama-3.1-8b-instant"


class TaskType:
    """Known task types routed through the model tables."""

    CHARACTER_REPLY = "character_reply"
    EMOTION_DETECT = "emotion_detect"
    SCHEDULE_EXTRACT = "schedule_extract"
    DIARY = "diary"
    BIG5_ANALYSIS = "big5_analysis"
    MEETING = "meeting"


@dataclass(frozen=True)
class RateLimitProfile:
    """Per-tier throughput limits."""

    requests_per_minute: int
    tokens_per_request: int


@dataclass(frozen=True)
class ModelCost:
    """USD per 1000 tokens."""

    input: float
    output: float


TIER_MODELS: dict[str, dict[str, str]] = {
    FREE: {
        TaskType.CHARACTER_REPLY: BASELINE_MODEL,
        TaskType.EMOTION_DETECT: BASELINE_MODEL,
        TaskType.SCHEDULE_EXTRACT: BASELINE_MODEL,
        TaskType.DIARY: BASELINE_MODEL,
        TaskType.BIG5_ANALYSIS: PREMIUM_MODEL,
        TaskType.MEETING: MID_MODEL,
    },
    PREMIUM: {
        TaskType.CHARACTER_REPLY: PREMIUM_MODEL,
        TaskType.EMOTION_DETECT: MID_MODEL,
        TaskType.SCHEDULE_EXTRACT: MID_MODEL,
        TaskType.DIARY: PREMIUM_MODEL,
        TaskType.BIG5_ANALYSIS: PREMIUM_MODEL,
        TaskType.MEETING: PREMIUM_MODEL,
    },
}

FALLBACK_CHAIN: dict[str, list[str]] = {
    PREMIUM_MODEL: [MID_MODEL, BASELINE_MODEL],
    MID_MODEL: [BASELINE_MODEL],
    BASELINE_MODEL: [],
}

MODEL_COSTS: dict[str, ModelCost] = {
    PREMIUM_MODEL: ModelCost(input=0.00059, output=0.00079),
    MID_MODEL: ModelCost(input=0.00029, output=0.00059),
    BASELINE_MODEL: ModelCost(input=0.00005, output=0.00008),
}

RATE_LIMITS: dict[str, RateLimitProfile] = {
    FREE: RateLimitProfile(requests_per_minute=5, tokens_per_request=1000),
    PREMIUM: RateLimitProfile(requests_per_minute=30, tokens_per_request=4000),
}


def build_tier_models(overrides: dict[str, dict[str, str]] | None = None) -> dict[str, dict[str, str]]:
    """Merge configured overrides over the built-in tier tables."""
    tables = {tier: dict(models) for tier, models in TIER_MODELS.items()}
    for tier, models in (overrides or {}).items():
        tables.setdefault(tier, {}).update(models)
    return tables
