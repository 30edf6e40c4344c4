"""Tier-aware model selection."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ..errors import NoModelConfiguredError
from .tiers import (
    BASELINE_MODEL,
    FALLBACK_CHAIN,
    FREE,
    MODEL_COSTS,
    RATE_LIMITS,
    RateLimitProfile,
    build_tier_models,
)

if TYPE_CHECKING:
    from ..usage import UsageLedger

logger = logging.getLogger(__name__)

INPUT_SHARE = 0.7


@dataclass(frozen=True)
class ModelSelection:
    """Model chosen for one request plus its fallbacks."""

    model: str
    tier: str
    task_type: str
    fallback_chain: list[str] = field(default_factory=list)
    estimated_cost_usd: float = 0.0
    rate_limit_profile: RateLimitProfile = RATE_LIMITS[FREE]
    emergency: bool = False

    @property
    def chain(self) -> list[str]:
        """Primary model followed by its fallbacks."""
        return [self.model, *self.fallback_chain]


def estimate_cost(model: str, estimated_tokens: int) -> float:
    """Estimate USD cost assuming a 70/30 input/output token split."""
    cost = MODEL_COSTS.get(model)
    if cost is None:
        logger.warning("No cost data for model %s", model)
        return 0.0
    input_tokens = round(estimated_tokens * INPUT_SHARE)
    output_tokens = estimated_tokens - input_tokens
    return input_tokens / 1000 * cost.input + output_tokens / 1000 * cost.output


def baseline_selection(task_type: str) -> ModelSelection:
    """Static emergency selection that never depends on configuration."""
    profile = RATE_LIMITS[FREE]
    return ModelSelection(
        model=BASELINE_MODEL,
        tier=FREE,
        task_type=task_type,
        fallback_chain=[],
        estimated_cost_usd=estimate_cost(BASELINE_MODEL, profile.tokens_per_request),
        rate_limit_profile=profile,
        emergency=True,
    )


class ModelRouter:
    """Pick a primary model and fallback chain from the user's tier."""

    def __init__(
        self,
        ledger: UsageLedger,
        tier_models: dict[str, dict[str, str]] | None = None,
        fallback_chain: dict[str, list[str]] | None = None,
    ) -> None:
        """Initialize the router.

        Args:
            ledger: Source of the user's effective tier.
            tier_models: {tier: {task_type: model}}; built-in tables if None.
            fallback_chain: {model: [fallbacks...]}; built-in chain if None.
        """
        self.ledger = ledger
        self.tier_models = tier_models if tier_models is not None else build_tier_models()
        self.fallback_chain = fallback_chain if fallback_chain is not None else FALLBACK_CHAIN

    def models_for_tier(self, tier: str) -> set[str]:
        """Every model a tier may use for any task."""
        return set(self.tier_models.get(tier, {}).values())

    def resolve(self, tier: str, task_type: str, estimated_tokens: int = 1000) -> ModelSelection:
        """Build a selection for a known tier without touching the ledger.

        Raises:
            NoModelConfiguredError: If the tier has no model for the task.
        """
        primary = self.tier_models.get(tier, {}).get(task_type)
        if not primary:
            logger.error("No model configured for task %s in tier %s", task_type, tier)
            raise NoModelConfiguredError(tier, task_type)

        allowed = self.models_for_tier(tier) | {BASELINE_MODEL}
        fallbacks = [m for m in self.fallback_chain.get(primary, []) if m in allowed and m != primary]

        return ModelSelection(
            model=primary,
            tier=tier,
            task_type=task_type,
            fallback_chain=fallbacks,
            estimated_cost_usd=estimate_cost(primary, estimated_tokens),
            rate_limit_profile=RATE_LIMITS.get(tier, RATE_LIMITS[FREE]),
        )

    async def select(self, user_id: str, task_type: str, estimated_tokens: int = 1000) -> ModelSelection:
        """Select a model for a user's request.

        Raises:
            NoModelConfiguredError: If the user's tier has no entry for the task.
        """
        info = await self.ledger.get_tier(user_id)
        selection = self.resolve(info.tier, task_type, estimated_tokens)
        logger.info(
            "Model selected for %s: tier=%s task=%s model=%s fallbacks=%s",
            user_id,
            info.tier,
            task_type,
            selection.model,
            selection.fallback_chain,
        )
        return selection

    async def select_or_baseline(
        self, user_id: str, task_type: str, estimated_tokens: int = 1000
    ) -> ModelSelection:
        """Like select(), but routing errors yield the static baseline."""
        try:
            return await self.select(user_id, task_type, estimated_tokens)
        except NoModelConfiguredError:
            logger.error("Routing %s/%s to baseline model %s", user_id, task_type, BASELINE_MODEL)
            return baseline_selection(task_type)
