"""Service configuration loader.

Loads settings from ~/.sixvoices/config.json and provides defaults for
everything not set there.
"""

import json
import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_HOME = Path.home() / ".sixvoices"
DEFAULT_CONFIG_PATH = DEFAULT_HOME / "config.json"


@dataclass
class ServiceConfig:
    """Configuration for the dialogue service.

    Attributes:
        db_path: SQLite database holding usage records and meetings.
        log_dir: Directory for JSONL event logs.
        max_retries: Attempts per model before falling back.
        base_delay: First rate-limit backoff delay in seconds.
        max_delay: Cap for the exponential backoff.
        server_error_delay: Fixed delay before retrying a 5xx failure.
        network_error_delay: Fixed delay before retrying a network failure.
        call_timeout: Per-call timeout for the model provider.
        request_timeout: Budget for a whole generate-or-reuse request.
        ad_frequency: Show an ad every N chats for free users.
        ad_reward_credits: Credits granted for watching one ad.
        free_meeting_allowance: Meetings a free user gets before credits
            are needed.
        meeting_credit_cost: Ad credits that unlock one more meeting.
        cache_poll_interval: Wait between checks for a meeting another
            caller is generating.
        cache_wait_timeout: Give up waiting on another caller after this.
        temperature: Sampling temperature for dialogue generation.
        max_tokens: Completion budget for dialogue generation.
        similarity_threshold: Minimum similarity counted as "similar user".
        tier_overrides: Per-tier model table overrides, {tier: {task: model}}.
    """

    db_path: Path | None = None
    log_dir: Path | None = None
    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 60.0
    server_error_delay: float = 5.0
    network_error_delay: float = 2.0
    call_timeout: float = 60.0
    request_timeout: float = 300.0
    ad_frequency: int = 5
    ad_reward_credits: int = 5
    free_meeting_allowance: int = 1
    meeting_credit_cost: int = 5
    cache_poll_interval: float = 0.5
    cache_wait_timeout: float = 120.0
    temperature: float = 0.8
    max_tokens: int = 2000
    similarity_threshold: float = 0.8
    tier_overrides: dict[str, dict[str, str]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Validate config and set defaults."""
        if self.db_path is None:
            self.db_path = DEFAULT_HOME / "sixvoices.db"
        if self.log_dir is None:
            self.log_dir = DEFAULT_HOME / "logs"

        if self.max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        if self.free_meeting_allowance < 0:
            raise ValueError("free_meeting_allowance must not be negative")
        if self.meeting_credit_cost < 1:
            raise ValueError("meeting_credit_cost must be at least 1")
        if self.ad_frequency < 1:
            raise ValueError("ad_frequency must be at least 1")
        if self.base_delay < 0 or self.max_delay < self.base_delay:
            raise ValueError("delays must satisfy 0 <= base_delay <= max_delay")
        if self.request_timeout <= 0 or self.call_timeout <= 0:
            raise ValueError("timeouts must be positive")
        if not 0.0 <= self.similarity_threshold <= 1.0:
            raise ValueError("similarity_threshold must be within [0, 1]")


_DEFAULTS = ServiceConfig(db_path=Path("unused"), log_dir=Path("unused"))
_NUMERIC_FIELDS = {
    f.name: type(getattr(_DEFAULTS, f.name))
    for f in fields(ServiceConfig)
    if isinstance(getattr(_DEFAULTS, f.name), (int, float))
}


def load_config(config_path: Path | None = None) -> ServiceConfig:
    """Load ServiceConfig from a JSON file.

    The config file should have this structure:
    ```json
    {
      "service": {
        "db_path": "~/.sixvoices/sixvoices.db",
        "max_retries": 3,
        "ad_frequency": 5,
        "tiers": {"premium": {"meeting": "llama-3.3-70b-versatile"}}
      }
    }
    ```

    Args:
        config_path: Path to config file. Uses DEFAULT_CONFIG_PATH if None.

    Returns:
        ServiceConfig instance with loaded values.
    """
    path = config_path or DEFAULT_CONFIG_PATH

    if not path.exists():
        logger.debug("No config file at %s, using defaults", path)
        return ServiceConfig()

    try:
        with open(path, "r") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        logger.warning("Invalid JSON in %s: %s. Using defaults.", path, e)
        return ServiceConfig()
    except OSError as e:
        logger.warning("Cannot read %s: %s. Using defaults.", path, e)
        return ServiceConfig()

    return _parse_config(data)


def _parse_config(data: dict[str, Any]) -> ServiceConfig:
    """Parse config dictionary into ServiceConfig.

    Invalid values are dropped with a warning so the default applies.
    """
    service = data.get("service", {})
    if not isinstance(service, dict):
        logger.warning("'service' section must be an object, using defaults")
        return ServiceConfig()

    kwargs: dict[str, Any] = {}

    for name in ("db_path", "log_dir"):
        value = service.get(name)
        if isinstance(value, str) and value:
            kwargs[name] = Path(value).expanduser()

    for name, kind in _NUMERIC_FIELDS.items():
        if name not in service:
            continue
        value = service[name]
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            logger.warning("Ignoring non-numeric %s=%r", name, value)
            continue
        kwargs[name] = kind(value)

    tiers = service.get("tiers", {})
    if isinstance(tiers, dict):
        kwargs["tier_overrides"] = {
            tier: {str(task): str(model) for task, model in table.items()}
            for tier, table in tiers.items()
            if isinstance(table, dict)
        }

    try:
        return ServiceConfig(**kwargs)
    except ValueError as e:
        logger.warning("Invalid service config: %s. Using defaults.", e)
        return ServiceConfig()


def save_config(config: ServiceConfig, config_path: Path | None = None) -> None:
    """Save ServiceConfig to a JSON file, keeping only non-default values.

    Args:
        config: The config to save.
        config_path: Path to write to. Uses DEFAULT_CONFIG_PATH if None.
    """
    path = config_path or DEFAULT_CONFIG_PATH
    path.parent.mkdir(parents=True, exist_ok=True)

    defaults = ServiceConfig()
    service: dict[str, Any] = {}

    for name in ("db_path", "log_dir"):
        value = getattr(config, name)
        if value != getattr(defaults, name):
            service[name] = str(value)

    for name in _NUMERIC_FIELDS:
        value = getattr(config, name)
        if value != getattr(defaults, name):
            service[name] = value

    if config.tier_overrides:
        service["tiers"] = config.tier_overrides

    data = {"service": service} if service else {}

    try:
        with open(path, "w") as f:
            json.dump(data, f, indent=2)
    except OSError as e:
        logger.error("Failed to save config to %s: %s", path, e)
        raise
