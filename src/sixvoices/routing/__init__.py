"""Model routing, provider access and retry orchestration."""

from .llm_client import GroqLLMClient, LLMProvider, translate_error
from .retry import (
    Action,
    AttemptRecord,
    CallOutcome,
    Decision,
    FailureKind,
    RetryOrchestrator,
    RetryPolicy,
    classify,
)
from .router import ModelRouter, ModelSelection, baseline_selection, estimate_cost
from .tiers import BASELINE_MODEL, FREE, PREMIUM, TaskType

__all__ = [
    "Action",
    "AttemptRecord",
    "BASELINE_MODEL",
    "CallOutcome",
    "Decision",
    "FREE",
    "FailureKind",
    "GroqLLMClient",
    "LLMProvider",
    "ModelRouter",
    "ModelSelection",
    "PREMIUM",
    "RetryOrchestrator",
    "RetryPolicy",
    "TaskType",
    "baseline_selection",
    "classify",
    "estimate_cost",
    "translate_error",
]
