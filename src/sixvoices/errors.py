"""Exception hierarchy for the dialogue generation service.

Model-call failures share the ModelCallError base so the retry
orchestrator can classify them. Everything else marks either a local
defect (malformed keys, missing routing entries) or a storage condition
that is retried before it can reach a caller.
"""

from typing import Any


class SixVoicesError(Exception):
    """Base error for the service."""


class MalformedKeyError(SixVoicesError, ValueError):
    """Raised when a personality key string cannot be decoded."""

    def __init__(self, key: Any, reason: str) -> None:
        super().__init__(f"Malformed personality key {key!r}: {reason}")
        self.key = key
        self.reason = reason


class NoModelConfiguredError(SixVoicesError):
    """Raised when a tier has no model entry for a task type."""

    def __init__(self, tier: str, task_type: str) -> None:
        super().__init__(f"No model configured for task '{task_type}' in tier '{tier}'")
        self.tier = tier
        self.task_type = task_type


class ModelCallError(SixVoicesError):
    """Base for typed failures returned by the model provider."""

    def __init__(self, message: str, model: str | None = None) -> None:
        super().__init__(message)
        self.model = model


class RateLimitError(ModelCallError):
    """The provider throttled the request (HTTP 429)."""


class QuotaExceededError(ModelCallError):
    """The account has no remaining quota."""


class ContextTooLongError(ModelCallError):
    """The prompt does not fit in the model's context window."""


class ModelUnavailableError(ModelCallError):
    """The model does not exist or has been withdrawn."""


class ServerError(ModelCallError):
    """The provider failed with a 5xx response."""


class NetworkError(ModelCallError):
    """The request never got a response (connection or timeout)."""


class AllModelsExhaustedError(SixVoicesError):
    """Every model in the chain failed.

    Attributes:
        last_error: The final underlying exception.
        attempts: Ordered (model, failure kind) pairs for every attempt made.
    """

    def __init__(
        self,
        last_error: BaseException | None,
        attempts: list[tuple[str, str]] | None = None,
    ) -> None:
        detail = f"{type(last_error).__name__}: {last_error}" if last_error else "no attempts made"
        super().__init__(f"All models exhausted. Last error: {detail}")
        self.last_error = last_error
        self.attempts = attempts or []


class TransactionConflictError(SixVoicesError):
    """A store transaction lost a write race and should be retried."""


class UsageLimitExceededError(SixVoicesError):
    """A free user has no meeting allowance or ad credits left.

    Attributes:
        user_id: The refused user.
        meetings_used: Meetings the user has already had.
        allowance: Free meetings granted to every user.
        credits_needed: Ad credits that would unlock one more meeting.
    """

    def __init__(self, user_id: str, meetings_used: int, allowance: int, credits_needed: int) -> None:
        super().__init__(
            f"Free meeting allowance used ({meetings_used}/{allowance}); "
            f"{credits_needed} ad credits or premium needed"
        )
        self.user_id = user_id
        self.meetings_used = meetings_used
        self.allowance = allowance
        self.credits_needed = credits_needed


class DialogueParseError(SixVoicesError):
    """The model's output is not a valid structured dialogue."""


class InvalidRatingError(SixVoicesError, ValueError):
    """A meeting rating outside 1..5."""


class MeetingNotFoundError(SixVoicesError, LookupError):
    """No meeting record exists for the given id."""
