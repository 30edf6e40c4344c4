"""Retry-then-fallback execution of a model call across a chain.

Each failed attempt is classified and turned into a Decision: retry the
same model after a delay, fall back to the next model, or stop. Sleep and
clock are injected so the whole state machine runs without real timers
in tests.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..errors import (
    AllModelsExhaustedError,
    ContextTooLongError,
    ModelUnavailableError,
    NetworkError,
    QuotaExceededError,
    RateLimitError,
    ServerError,
)
from ..logging import JSONLLogger

logger = logging.getLogger(__name__)


class FailureKind(Enum):
    """Classification of a failed model call."""

    RATE_LIMIT = "rate_limit"
    QUOTA_EXCEEDED = "quota_exceeded"
    CONTEXT_TOO_LONG = "context_too_long"
    MODEL_UNAVAILABLE = "model_unavailable"
    SERVER_ERROR = "server_error"
    NETWORK_ERROR = "network_error"
    OTHER = "other"


class Action(Enum):
    """Next state after an attempt."""

    SUCCESS = "success"
    RETRY = "retry"
    FALLBACK_NEXT = "fallback_next"
    EXHAUSTED = "exhausted"


_KINDS: list[tuple[type[BaseException], FailureKind]] = [
    (RateLimitError, FailureKind.RATE_LIMIT),
    (QuotaExceededError, FailureKind.QUOTA_EXCEEDED),
    (ContextTooLongError, FailureKind.CONTEXT_TOO_LONG),
    (ModelUnavailableError, FailureKind.MODEL_UNAVAILABLE),
    (ServerError, FailureKind.SERVER_ERROR),
    (NetworkError, FailureKind.NETWORK_ERROR),
]

RETRYABLE = {FailureKind.RATE_LIMIT, FailureKind.SERVER_ERROR, FailureKind.NETWORK_ERROR}


def classify(error: BaseException) -> FailureKind:
    """Map an exception raised by a model call to a FailureKind."""
    for error_type, kind in _KINDS:
        if isinstance(error, error_type):
            return kind
    return FailureKind.OTHER


@dataclass(frozen=True)
class Decision:
    """What to do after one attempt."""

    action: Action
    kind: FailureKind | None = None
    delay: float = 0.0


@dataclass(frozen=True)
class RetryPolicy:
    """Retry limits and delays."""

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 60.0
    server_error_delay: float = 5.0
    network_error_delay: float = 2.0

    def backoff(self, attempt: int) -> float:
        """Exponential rate-limit delay for the given 1-based attempt."""
        return min(self.base_delay * 2 ** (attempt - 1), self.max_delay)

    def delay_for(self, kind: FailureKind, attempt: int) -> float:
        if kind is FailureKind.RATE_LIMIT:
            return self.backoff(attempt)
        if kind is FailureKind.SERVER_ERROR:
            return self.server_error_delay
        return self.network_error_delay

    def decide(self, kind: FailureKind, attempt: int, has_next_model: bool) -> Decision:
        """Turn a classified failure into the next state.

        Args:
            kind: Classification of the failure.
            attempt: 1-based attempt number against the current model.
            has_next_model: Whether the chain has another model after this one.
        """
        if kind in RETRYABLE and attempt < self.max_retries:
            return Decision(Action.RETRY, kind, self.delay_for(kind, attempt))
        # Network failures would hit every model the same way.
        if kind is FailureKind.NETWORK_ERROR or not has_next_model:
            return Decision(Action.EXHAUSTED, kind)
        return Decision(Action.FALLBACK_NEXT, kind)


@dataclass
class AttemptRecord:
    """One call made against a model."""

    model: str
    attempt: int
    action: Action
    kind: FailureKind | None = None


@dataclass
class CallOutcome:
    """Successful result of an orchestrated call."""

    response: Any
    model_used: str
    fallback_used: bool
    attempts: list[AttemptRecord] = field(default_factory=list)

    def attempts_for(self, model: str) -> int:
        """Number of calls made against a model."""
        return sum(1 for a in self.attempts if a.model == model)


class RetryOrchestrator:
    """Run a model request over a fallback chain with per-model retries."""

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        *,
        call_timeout: float | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        event_logger: JSONLLogger | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            policy: Retry limits and delays.
            call_timeout: Seconds before a single call counts as a network error.
            sleep: Awaitable sleep, injectable for tests.
            clock: Monotonic clock used for deadlines.
            event_logger: Optional JSONL logger for per-attempt events.
        """
        self.policy = policy or RetryPolicy()
        self.call_timeout = call_timeout
        self._sleep = sleep
        self._clock = clock
        self.event_logger = event_logger

    def _check_deadline(self, deadline: float | None, wait: float = 0.0) -> None:
        if deadline is not None and self._clock() + wait >= deadline:
            raise TimeoutError("Request deadline reached during model retries")

    async def _call(self, request_builder: Callable[[str], Awaitable[Any]], model: str) -> Any:
        if self.call_timeout is None:
            return await request_builder(model)
        try:
            return await asyncio.wait_for(request_builder(model), self.call_timeout)
        except asyncio.TimeoutError as e:
            raise NetworkError(f"Call to {model} timed out after {self.call_timeout}s", model) from e

    def _record(
        self,
        attempts: list[AttemptRecord],
        model: str,
        attempt: int,
        decision: Decision,
        error: BaseException | None = None,
    ) -> None:
        attempts.append(AttemptRecord(model, attempt, decision.action, decision.kind))
        if self.event_logger is not None:
            self.event_logger.log_model_attempt(
                model,
                attempt,
                failure=decision.kind.value if decision.kind else None,
                action=decision.action.value,
                error=str(error) if error else None,
            )

    async def execute(
        self,
        model_chain: list[str],
        request_builder: Callable[[str], Awaitable[Any]],
        *,
        deadline: float | None = None,
    ) -> CallOutcome:
        """Call models in order until one succeeds.

        Args:
            model_chain: Primary model first, then fallbacks.
            request_builder: Called with a model name, returns the awaitable call.
            deadline: Absolute clock() value the loop must not run past.

        Returns:
            CallOutcome with the response and the model that produced it.

        Raises:
            AllModelsExhaustedError: If every model failed.
            TimeoutError: If the deadline would be exceeded.
        """
        if not model_chain:
            raise AllModelsExhaustedError(None)

        attempts: list[AttemptRecord] = []
        last_error: BaseException | None = None
        primary = model_chain[0]

        for index, model in enumerate(model_chain):
            has_next = index < len(model_chain) - 1
            attempt = 1
            while True:
                self._check_deadline(deadline)
                try:
                    response = await self._call(request_builder, model)
                except Exception as e:
                    last_error = e
                    kind = classify(e)
                    decision = self.policy.decide(kind, attempt, has_next)
                    self._record(attempts, model, attempt, decision, e)
                    logger.warning(
                        "Model %s attempt %d failed (%s): %s -> %s",
                        model,
                        attempt,
                        kind.value,
                        e,
                        decision.action.value,
                    )
                else:
                    self._record(attempts, model, attempt, Decision(Action.SUCCESS))
                    if model != primary:
                        logger.info("Fallback model %s succeeded for primary %s", model, primary)
                    return CallOutcome(
                        response=response,
                        model_used=model,
                        fallback_used=model != primary,
                        attempts=attempts,
                    )

                if decision.action is Action.RETRY:
                    self._check_deadline(deadline, decision.delay)
                    await self._sleep(decision.delay)
                    attempt += 1
                    continue
                if decision.action is Action.FALLBACK_NEXT:
                    break
                # EXHAUSTED
                logger.error("All models exhausted after %d attempts: %s", len(attempts), last_error)
                raise AllModelsExhaustedError(
                    last_error, [(a.model, a.kind.value if a.kind else "") for a in attempts]
                ) from last_error

        # Unreachable: the last model always ends in EXHAUSTED or SUCCESS.
        raise AllModelsExhaustedError(last_error)
