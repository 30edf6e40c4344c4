"""Tests for JSONL logging."""

import json
import tempfile
from pathlib import Path

import pytest

from sixvoices import logging as event_logging
from sixvoices.logging import JSONLLogger, LogEntry


@pytest.fixture
def temp_log_dir():
    """Create a temporary directory for logs."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def logger(temp_log_dir: Path) -> JSONLLogger:
    return JSONLLogger(log_dir=temp_log_dir)


def read_entries(logger: JSONLLogger) -> list[dict]:
    with open(logger.log_path) as f:
        return [json.loads(line) for line in f]


def test_log_entry_to_dict():
    """Test LogEntry excludes None values."""
    entry = LogEntry(timestamp="2024-01-01T00:00:00Z", event="test")
    data = entry.to_dict()

    assert "timestamp" in data
    assert "event" in data
    assert "user_id" not in data  # None excluded
    assert "extra" not in data  # Empty dict excluded


def test_log_creates_file(logger: JSONLLogger):
    """Test that logging creates the log file."""
    logger.log("test_event")

    assert logger.log_path.exists()


def test_log_writes_jsonl(logger: JSONLLogger):
    """Test that logs are written in JSONL format."""
    logger.log("event1", user_id="u1")
    logger.log("event2", user_id="u2")

    entries = read_entries(logger)

    assert len(entries) == 2
    assert entries[0]["event"] == "event1"
    assert entries[0]["user_id"] == "u1"
    assert entries[1]["event"] == "event2"


def test_log_model_attempt(logger: JSONLLogger):
    """Test logging a model attempt."""
    logger.log_model_attempt(
        "llama-3.1-8b-instant",
        2,
        failure="rate_limit",
        action="retry",
        error="429",
    )

    entry = read_entries(logger)[0]
    assert entry["event"] == "model_attempt"
    assert entry["model"] == "llama-3.1-8b-instant"
    assert entry["error"] == "429"
    assert entry["extra"]["attempt"] == 2
    assert entry["extra"]["failure"] == "rate_limit"
    assert entry["extra"]["action"] == "retry"


def test_log_cache_decision(logger: JSONLLogger):
    """Test logging a cache decision."""
    logger.log_cache_decision(
        "O4_C2_E5_A3_N2_female",
        "career",
        True,
        meeting_id="O4_C2_E5_A3_N2_female:career",
        usage_count=3,
    )

    entry = read_entries(logger)[0]
    assert entry["event"] == "cache_decision"
    assert entry["personality_key"] == "O4_C2_E5_A3_N2_female"
    assert entry["category"] == "career"
    assert entry["cache_hit"] is True
    assert entry["extra"]["usage_count"] == 3


def test_log_generation(logger: JSONLLogger):
    """Test logging a generation outcome."""
    logger.log_generation("u1", model=None, duration_ms=12.5, cache_hit=False, emergency=True, error="down")

    entry = read_entries(logger)[0]
    assert entry["event"] == "generation"
    assert entry["duration_ms"] == 12.5
    assert entry["cache_hit"] is False
    assert entry["extra"]["emergency"] is True
    assert "model" not in entry


def test_log_usage(logger: JSONLLogger):
    """Test logging a usage update."""
    logger.log_usage("u1", chat_count_today=4, tier="free", tokens=100, cost_usd=0.01)

    entry = read_entries(logger)[0]
    assert entry["event"] == "usage"
    assert entry["extra"]["chat_count_today"] == 4
    assert entry["extra"]["tier"] == "free"


def test_rotation(temp_log_dir: Path):
    """Test log rotation when max size is exceeded."""
    logger = JSONLLogger(log_dir=temp_log_dir, max_size_mb=0.001)  # ~1KB

    # Write enough to trigger rotation
    for i in range(100):
        logger.log(f"event_{i}", data="x" * 100)

    log_files = list(temp_log_dir.glob("events*.jsonl"))
    assert len(log_files) >= 2


def test_extra_fields(logger: JSONLLogger):
    """Test that extra fields are included."""
    logger.log("custom", custom_field="value", another=123)

    entry = read_entries(logger)[0]
    assert entry["extra"]["custom_field"] == "value"
    assert entry["extra"]["another"] == 123


def test_configure_logger(temp_log_dir: Path, monkeypatch: pytest.MonkeyPatch):
    """Test the process-wide logger."""
    monkeypatch.setattr(event_logging, "_logger", None)

    configured = event_logging.configure_logger(temp_log_dir / "events")

    assert event_logging.get_logger() is configured
    assert configured.log_dir == temp_log_dir / "events"
