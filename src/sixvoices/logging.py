"""JSONL event logging for observability."""

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any


@dataclass
class LogEntry:
    """A single log entry."""

    timestamp: str
    event: str
    user_id: str | None = None
    model: str | None = None
    personality_key: str | None = None
    category: str | None = None
    duration_ms: float | None = None
    cache_hit: bool | None = None
    error: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict, excluding None values."""
        data = asdict(self)
        return {k: v for k, v in data.items() if v is not None and v != {} and v != []}


class JSONLLogger:
    """Logger that writes structured events in JSONL format."""

    def __init__(
        self,
        log_dir: str | Path | None = None,
        filename: str = "events.jsonl",
        max_size_mb: float = 10.0,
    ) -> None:
        if log_dir is None:
            log_dir = Path.home() / ".sixvoices" / "logs"
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.filename = filename
        self.max_size_bytes = int(max_size_mb * 1024 * 1024)

    @property
    def log_path(self) -> Path:
        """Current log file path."""
        return self.log_dir / self.filename

    def _rotate_if_needed(self) -> None:
        """Rotate log file if it exceeds max size."""
        if not self.log_path.exists():
            return

        if self.log_path.stat().st_size >= self.max_size_bytes:
            timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
            rotated_name = f"{self.log_path.stem}_{timestamp}.jsonl"
            self.log_path.rename(self.log_dir / rotated_name)

    def _write(self, entry: LogEntry) -> None:
        """Write a log entry to the file."""
        self._rotate_if_needed()

        with open(self.log_path, "a", encoding="utf-8") as f:
            f.write(json.dumps(entry.to_dict(), ensure_ascii=False) + "\n")

    def log(
        self,
        event: str,
        *,
        user_id: str | None = None,
        model: str | None = None,
        personality_key: str | None = None,
        category: str | None = None,
        duration_ms: float | None = None,
        cache_hit: bool | None = None,
        error: str | None = None,
        **extra: Any,
    ) -> None:
        """Log an event."""
        entry = LogEntry(
            timestamp=datetime.now(timezone.utc).isoformat(),
            event=event,
            user_id=user_id,
            model=model,
            personality_key=personality_key,
            category=category,
            duration_ms=duration_ms,
            cache_hit=cache_hit,
            error=error,
            extra=extra if extra else {},
        )
        self._write(entry)

    def log_model_attempt(
        self,
        model: str,
        attempt: int,
        *,
        failure: str | None = None,
        action: str | None = None,
        error: str | None = None,
    ) -> None:
        """Log one call against a model and what the retry loop decided."""
        self.log(
            "model_attempt",
            model=model,
            error=error,
            attempt=attempt,
            failure=failure,
            action=action,
        )

    def log_cache_decision(
        self,
        personality_key: str,
        category: str,
        cache_hit: bool,
        *,
        meeting_id: str | None = None,
        usage_count: int | None = None,
    ) -> None:
        """Log whether a meeting was reused or generated."""
        self.log(
            "cache_decision",
            personality_key=personality_key,
            category=category,
            cache_hit=cache_hit,
            meeting_id=meeting_id,
            usage_count=usage_count,
        )

    def log_generation(
        self,
        user_id: str,
        *,
        model: str | None,
        duration_ms: float,
        cache_hit: bool,
        emergency: bool = False,
        fallback_used: bool = False,
        error: str | None = None,
    ) -> None:
        """Log the outcome of a generate-or-reuse request."""
        self.log(
            "generation",
            user_id=user_id,
            model=model,
            duration_ms=duration_ms,
            cache_hit=cache_hit,
            error=error,
            emergency=emergency,
            fallback_used=fallback_used,
        )

    def log_usage(
        self,
        user_id: str,
        *,
        chat_count_today: int,
        tier: str,
        tokens: int | None = None,
        cost_usd: float | None = None,
    ) -> None:
        """Log a usage ledger update."""
        self.log(
            "usage",
            user_id=user_id,
            chat_count_today=chat_count_today,
            tier=tier,
            tokens=tokens,
            cost_usd=cost_usd,
        )


# Global logger instance
_logger: JSONLLogger | None = None


def get_logger() -> JSONLLogger:
    """Get the global logger instance."""
    global _logger
    if _logger is None:
        _logger = JSONLLogger()
    return _logger


def configure_logger(log_dir: str | Path | None = None, max_size_mb: float = 10.0) -> JSONLLogger:
    """Configure and return the global logger."""
    global _logger
    _logger = JSONLLogger(log_dir=log_dir, max_size_mb=max_size_mb)
    return _logger
