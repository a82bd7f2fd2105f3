"""
Settings for eventdigest.

Settings live in a JSON file (DATA_ROOT/config.json) that is deep-merged over
DEFAULT_CONFIG. Secrets (OPENAI_API_KEY, Slack webhook URLs) come from the
environment, usually via a .env file loaded by the CLI.

Channel mapping values are either a Slack incoming-webhook URL or
``"env:VAR_NAME"`` to read the URL from the environment.
"""

import copy
import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from eventdigest.core.errors import ConfigError
from eventdigest.core.paths import CONFIG_PATH, DB_PATH

logger = logging.getLogger(__name__)

ENV_PREFIX = "env:"

DEFAULT_CONFIG: dict[str, Any] = {
    "batching": {
        "count_threshold": 20,
        "max_age_seconds": 7200,
        "max_chunk_size": 15,
        "inter_chunk_delay_ms": 1000,
    },
    "sweep": {
        "interval_seconds": 900,
        "concurrency": 1,
    },
    "summarizer": {
        "model": "gpt-4o",
        "max_payload_tokens": 800,
        "max_completion_tokens": 4096,
    },
    "delivery": {
        "timeout_seconds": 10.0,
        "deliver_fallback_on_error": True,
    },
    "database": {
        "path": None,
    },
    "channels": {},
}


@dataclass(frozen=True)
class BatchingSettings:
    count_threshold: int = 20
    max_age_seconds: int = 7200
    max_chunk_size: int = 15
    inter_chunk_delay_ms: int = 1000


@dataclass(frozen=True)
class SweepSettings:
    interval_seconds: int = 900
    concurrency: int = 1


@dataclass(frozen=True)
class SummarizerSettings:
    model: str = "gpt-4o"
    max_payload_tokens: int = 800
    max_completion_tokens: int = 4096


@dataclass(frozen=True)
class DeliverySettings:
    timeout_seconds: float = 10.0
    deliver_fallback_on_error: bool = True


@dataclass(frozen=True)
class DigestSettings:
    """Validated, typed view of the configuration."""

    batching: BatchingSettings = field(default_factory=BatchingSettings)
    sweep: SweepSettings = field(default_factory=SweepSettings)
    summarizer: SummarizerSettings = field(default_factory=SummarizerSettings)
    delivery: DeliverySettings = field(default_factory=DeliverySettings)
    db_path: Path = DB_PATH
    channels: dict[str, str] = field(default_factory=dict)


class ChannelMap:
    """
    Explicit ``project_key -> channel_ref`` mapping built once at startup.

    A project either has an entry or is rejected; there is no partial or
    substring matching.
    """

    def __init__(self, mapping: dict[str, str]):
        self._mapping = dict(mapping)

    @classmethod
    def from_config(
        cls,
        channels: dict[str, str],
        environ: dict[str, str] | None = None,
    ) -> "ChannelMap":
        """
        Build the map, resolving ``env:VAR`` references.

        Raises:
            ConfigError: If a referenced variable is unset or a value is empty
        """
        environ = os.environ if environ is None else environ
        resolved: dict[str, str] = {}
        errors: list[str] = []

        for project_key, ref in channels.items():
            if not isinstance(ref, str) or not ref.strip():
                errors.append(f"channels.{project_key}: channel reference must be a non-empty string")
                continue
            if ref.startswith(ENV_PREFIX):
                var_name = ref[len(ENV_PREFIX) :]
                value = environ.get(var_name)
                if not value:
                    errors.append(f"channels.{project_key}: environment variable {var_name} is not set")
                    continue
                ref = value
            resolved[project_key] = ref

        if errors:
            raise ConfigError("; ".join(errors))

        return cls(resolved)

    def resolve(self, project_key: str) -> str:
        try:
            return self._mapping[project_key]
        except KeyError:
            raise ConfigError(f"No channel mapped for project '{project_key}'") from None

    def require(self, project_keys: list[str]) -> None:
        """Fail fast if any of ``project_keys`` has no channel."""
        missing = sorted(set(project_keys) - set(self._mapping))
        if missing:
            raise ConfigError(f"No channel mapped for project(s): {', '.join(missing)}")

    def project_keys(self) -> list[str]:
        return sorted(self._mapping)

    def __contains__(self, project_key: object) -> bool:
        return project_key in self._mapping

    def __len__(self) -> int:
        return len(self._mapping)


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(path: Path | str | None = None) -> dict[str, Any]:
    """
    Load configuration from disk, merged over DEFAULT_CONFIG.

    A missing file yields the defaults. A file that is not valid JSON is a
    ConfigError rather than a silent fallback.
    """
    config_path = Path(path) if path else CONFIG_PATH

    if not config_path.exists():
        logger.debug(f"No config file at {config_path}, using defaults")
        return copy.deepcopy(DEFAULT_CONFIG)

    try:
        with open(config_path, encoding="utf-8") as f:
            user_config = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"Failed to read config file {config_path}: {e}") from e

    if not isinstance(user_config, dict):
        raise ConfigError(f"Config file {config_path} must contain a JSON object")

    return _deep_merge(DEFAULT_CONFIG, user_config)


def validate_config(config: dict[str, Any]) -> list[str]:
    """
    Validate configuration values.

    Returns:
        List of error messages (empty if valid)
    """
    errors: list[str] = []
    batching = config.get("batching", {})
    sweep = config.get("sweep", {})
    summarizer = config.get("summarizer", {})
    delivery = config.get("delivery", {})

    def _int_at_least(section: dict, section_name: str, key: str, minimum: int) -> None:
        value = section.get(key)
        if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
            errors.append(f"{section_name}.{key} must be an integer >= {minimum}, got {value!r}")

    _int_at_least(batching, "batching", "count_threshold", 1)
    _int_at_least(batching, "batching", "max_age_seconds", 0)
    _int_at_least(batching, "batching", "max_chunk_size", 1)
    _int_at_least(batching, "batching", "inter_chunk_delay_ms", 0)
    _int_at_least(sweep, "sweep", "interval_seconds", 1)
    _int_at_least(sweep, "sweep", "concurrency", 1)
    _int_at_least(summarizer, "summarizer", "max_payload_tokens", 1)
    _int_at_least(summarizer, "summarizer", "max_completion_tokens", 1)

    # The sweep is what bounds staleness, so it has to run more often than the age limit
    interval = sweep.get("interval_seconds")
    max_age = batching.get("max_age_seconds")
    if isinstance(interval, int) and isinstance(max_age, int) and max_age > 0 and interval >= max_age:
        errors.append(
            f"sweep.interval_seconds ({interval}) must be less than "
            f"batching.max_age_seconds ({max_age})"
        )

    if not isinstance(summarizer.get("model"), str) or not summarizer.get("model"):
        errors.append("summarizer.model must be a non-empty string")

    timeout = delivery.get("timeout_seconds")
    if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
        errors.append(f"delivery.timeout_seconds must be a positive number, got {timeout!r}")

    if not isinstance(config.get("channels", {}), dict):
        errors.append("channels must be an object mapping project keys to channel references")

    return errors


def load_settings(
    config: dict[str, Any] | None = None,
    path: Path | str | None = None,
) -> DigestSettings:
    """
    Load, validate and convert configuration to DigestSettings.

    Raises:
        ConfigError: If validation fails
    """
    if config is None:
        config = load_config(path)
    else:
        config = _deep_merge(DEFAULT_CONFIG, config)

    errors = validate_config(config)
    if errors:
        raise ConfigError("Invalid configuration: " + "; ".join(errors))

    db_path = config["database"].get("path")

    return DigestSettings(
        batching=BatchingSettings(**config["batching"]),
        sweep=SweepSettings(**config["sweep"]),
        summarizer=SummarizerSettings(**config["summarizer"]),
        delivery=DeliverySettings(
            timeout_seconds=float(config["delivery"]["timeout_seconds"]),
            deliver_fallback_on_error=bool(config["delivery"]["deliver_fallback_on_error"]),
        ),
        db_path=Path(db_path) if db_path else DB_PATH,
        channels=dict(config["channels"]),
    )


def get_api_key() -> str | None:
    """Return the OpenAI API key from the environment, if any."""
    return os.environ.get("OPENAI_API_KEY") or None


if __name__ == "__main__":
    import fire

    def show(path: str | None = None):
        """Show the merged configuration."""
        return load_config(path)

    def validate(path: str | None = None):
        """Validate the configuration file."""
        errors = validate_config(load_config(path))
        return {"valid": not errors, "errors": errors}

    fire.Fire({"show": show, "validate": validate})
