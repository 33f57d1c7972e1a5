"""Engine configuration loading and validation.

Reads ``itemdeck.toml``, resolves ``${VAR}`` references and returns a
validated EngineConfig dataclass.  Every section is optional; an engine run
without a config file uses the defaults below.
"""

from __future__ import annotations

import os
import re
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import httpx

DEFAULT_CONFIG_FILENAME = "itemdeck.toml"
DEFAULT_USER_AGENT = "itemdeck-engine"
DEFAULT_MIRROR_HOST = "cdn.jsdelivr.net"
DEFAULT_API_BASE_URL = "https://api.github.com"

# Optional token sent to the hosting API only.
GITHUB_TOKEN_ENV = "ITEMDECK_GITHUB_TOKEN"

# Pattern matching ${VAR_NAME}; supports alphanumeric + underscore variable names.
_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")
_HOST_PATTERN = re.compile(r"^[A-Za-z0-9.-]+$")


class ConfigError(Exception):
    """Raised when engine configuration is missing, malformed, or invalid."""


@dataclass
class LoggingConfig:
    """Logging configuration from [itemdeck.logging] section."""

    level: str = "INFO"
    format: str = "text"  # "text" or "json"
    log_root: str | None = None


@dataclass
class HttpConfig:
    """HTTP client configuration from [itemdeck.http] section."""

    timeout_s: float = 20.0
    connect_timeout_s: float = 10.0

    def timeout(self) -> httpx.Timeout:
        return httpx.Timeout(self.timeout_s, connect=self.connect_timeout_s)


@dataclass
class DiscoveryConfig:
    """Remote directory discovery settings from the [itemdeck] section.

    ``github_token`` is taken from the environment only and is never logged.
    """

    user_agent: str = DEFAULT_USER_AGENT
    mirror_host: str = DEFAULT_MIRROR_HOST
    api_base_url: str = DEFAULT_API_BASE_URL
    github_token: str | None = field(default=None, repr=False)


@dataclass
class EngineConfig:
    """Parsed and validated engine configuration."""

    discovery: DiscoveryConfig = field(default_factory=DiscoveryConfig)
    http: HttpConfig = field(default_factory=HttpConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def resolve_env_vars(value: Any) -> Any:
    """Recursively resolve ``${VAR_NAME}`` references in config values.

    Walks dicts, lists, and strings.  Non-string leaf values (int, bool,
    float, None) are returned unchanged.

    Raises
    ------
    ConfigError
        If a referenced environment variable is not set.
    """
    if isinstance(value, dict):
        return {k: resolve_env_vars(v) for k, v in value.items()}

    if isinstance(value, list):
        return [resolve_env_vars(item) for item in value]

    if isinstance(value, str):
        return _resolve_string(value)

    return value


def _resolve_string(s: str) -> str:
    """Replace all ``${VAR_NAME}`` occurrences in *s* with env var values.

    Collects all missing variable names and reports them in a single error.
    """
    missing: list[str] = []

    def _replace(match: re.Match) -> str:
        var_name = match.group(1)
        env_value = os.environ.get(var_name)
        if env_value is None:
            missing.append(var_name)
            return match.group(0)
        return env_value

    result = _ENV_VAR_PATTERN.sub(_replace, s)

    if missing:
        vars_str = ", ".join(missing)
        raise ConfigError(
            f"Unresolved environment variable(s) in config value: {vars_str} (original: {s!r})"
        )

    return result


def _section(parent: dict[str, Any], key: str, path: str) -> dict[str, Any]:
    value = parent.get(key, {})
    if not isinstance(value, dict):
        raise ConfigError(f"[{path}] must be a table")
    return value


def _positive_float(section: dict[str, Any], key: str, default: float, path: str) -> float:
    raw = section.get(key, default)
    if isinstance(raw, bool) or not isinstance(raw, int | float):
        raise ConfigError(f"{path}.{key} must be a number, got {raw!r}")
    if raw <= 0:
        raise ConfigError(f"Invalid {path}.{key}: {raw!r}. Must be a positive number.")
    return float(raw)


def _non_empty_string(section: dict[str, Any], key: str, default: str, path: str) -> str:
    raw = section.get(key, default)
    if not isinstance(raw, str) or not raw.strip():
        raise ConfigError(f"{path}.{key} must be a non-empty string")
    return raw.strip()


def _parse_logging(section: dict[str, Any]) -> LoggingConfig:
    log_level = str(section.get("level", "INFO")).upper()
    log_format = str(section.get("format", "text")).lower()
    if log_format not in ("text", "json"):
        raise ConfigError(
            f"Invalid itemdeck.logging.format: {log_format!r}. Expected 'text' or 'json'."
        )
    log_root = section.get("log_root")
    if log_root is not None and not isinstance(log_root, str):
        raise ConfigError("itemdeck.logging.log_root must be a string when set")
    return LoggingConfig(level=log_level, format=log_format, log_root=log_root)


def _parse_discovery(section: dict[str, Any]) -> DiscoveryConfig:
    mirror_host = _non_empty_string(section, "mirror_host", DEFAULT_MIRROR_HOST, "itemdeck")
    if _HOST_PATTERN.fullmatch(mirror_host) is None:
        raise ConfigError(
            f"Invalid itemdeck.mirror_host: {mirror_host!r}. Expected a bare host name."
        )

    api_base_url = _non_empty_string(section, "api_base_url", DEFAULT_API_BASE_URL, "itemdeck")
    if not api_base_url.startswith(("http://", "https://")):
        raise ConfigError(
            f"Invalid itemdeck.api_base_url: {api_base_url!r}. Expected an http(s) URL."
        )

    token = os.environ.get(GITHUB_TOKEN_ENV, "").strip() or None

    return DiscoveryConfig(
        user_agent=_non_empty_string(section, "user_agent", DEFAULT_USER_AGENT, "itemdeck"),
        mirror_host=mirror_host,
        api_base_url=api_base_url.rstrip("/"),
        github_token=token,
    )


def parse_config(data: dict[str, Any]) -> EngineConfig:
    """Validate an already-parsed TOML mapping into an EngineConfig."""
    data = resolve_env_vars(data)

    engine_section = _section(data, "itemdeck", "itemdeck")
    http_section = _section(engine_section, "http", "itemdeck.http")
    logging_section = _section(engine_section, "logging", "itemdeck.logging")

    return EngineConfig(
        discovery=_parse_discovery(engine_section),
        http=HttpConfig(
            timeout_s=_positive_float(http_section, "timeout_s", 20.0, "itemdeck.http"),
            connect_timeout_s=_positive_float(
                http_section, "connect_timeout_s", 10.0, "itemdeck.http"
            ),
        ),
        logging=_parse_logging(logging_section),
    )


def load_config(config_path: Path | None = None) -> EngineConfig:
    """Load and validate an ``itemdeck.toml``.

    Parameters
    ----------
    config_path:
        Path to the TOML file, or to a directory containing
        ``itemdeck.toml``.  ``None`` returns the defaults.

    Returns
    -------
    EngineConfig
        Fully parsed and validated configuration.

    Raises
    ------
    ConfigError
        If the file is missing, contains invalid TOML, or holds invalid values.
    """
    if config_path is None:
        return parse_config({})

    toml_path = config_path / DEFAULT_CONFIG_FILENAME if config_path.is_dir() else config_path

    if not toml_path.exists():
        raise ConfigError(f"Config file not found: {toml_path}")

    try:
        data = tomllib.loads(toml_path.read_bytes().decode())
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid TOML in {toml_path}: {exc}") from exc

    return parse_config(data)
