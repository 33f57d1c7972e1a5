"""Tests for engine configuration loading and validation."""

from __future__ import annotations

from pathlib import Path

import httpx
import pytest

from itemdeck.config import (
    DEFAULT_API_BASE_URL,
    DEFAULT_MIRROR_HOST,
    DEFAULT_USER_AGENT,
    GITHUB_TOKEN_ENV,
    ConfigError,
    EngineConfig,
    load_config,
    parse_config,
    resolve_env_vars,
)

pytestmark = pytest.mark.unit

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

FULL_TOML = """\
[itemdeck]
user_agent = "deck-builder/2.0"
mirror_host = "mirror.example.test"
api_base_url = "https://git.example.test/api/"

[itemdeck.http]
timeout_s = 5
connect_timeout_s = 2.5

[itemdeck.logging]
level = "debug"
format = "JSON"
log_root = "/var/log/itemdeck"
"""


def _write_toml(directory: Path, content: str) -> Path:
    path = directory / "itemdeck.toml"
    path.write_text(content)
    return path


@pytest.fixture(autouse=True)
def _no_token(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.delenv(GITHUB_TOKEN_ENV, raising=False)


# ---------------------------------------------------------------------------
# Defaults and full files
# ---------------------------------------------------------------------------


class TestDefaults:
    def test_no_path_returns_defaults(self):
        config = load_config(None)
        assert config == EngineConfig()
        assert config.discovery.user_agent == DEFAULT_USER_AGENT
        assert config.discovery.mirror_host == DEFAULT_MIRROR_HOST
        assert config.discovery.api_base_url == DEFAULT_API_BASE_URL
        assert config.http.timeout_s == 20.0
        assert config.logging.level == "INFO"
        assert config.logging.format == "text"

    def test_empty_file_returns_defaults(self, tmp_path: Path):
        assert load_config(_write_toml(tmp_path, "")) == EngineConfig()

    def test_timeout_object(self):
        timeout = EngineConfig().http.timeout()
        assert isinstance(timeout, httpx.Timeout)
        assert timeout.connect == 10.0
        assert timeout.read == 20.0


class TestLoadConfig:
    def test_full_file(self, tmp_path: Path):
        config = load_config(_write_toml(tmp_path, FULL_TOML))
        assert config.discovery.user_agent == "deck-builder/2.0"
        assert config.discovery.mirror_host == "mirror.example.test"
        assert config.discovery.api_base_url == "https://git.example.test/api"
        assert config.http.timeout_s == 5.0
        assert config.http.connect_timeout_s == 2.5
        assert config.logging.level == "DEBUG"
        assert config.logging.format == "json"
        assert config.logging.log_root == "/var/log/itemdeck"

    def test_directory_path(self, tmp_path: Path):
        _write_toml(tmp_path, FULL_TOML)
        assert load_config(tmp_path).http.timeout_s == 5.0

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="not found"):
            load_config(tmp_path / "nope.toml")

    def test_invalid_toml(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="Invalid TOML"):
            load_config(_write_toml(tmp_path, "[itemdeck\nuser_agent = "))


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class TestValidation:
    @pytest.mark.parametrize("value", [0, -1, "fast", True])
    def test_bad_timeout(self, value):
        with pytest.raises(ConfigError, match="timeout_s"):
            parse_config({"itemdeck": {"http": {"timeout_s": value}}})

    def test_bad_log_format(self):
        with pytest.raises(ConfigError, match="logging.format"):
            parse_config({"itemdeck": {"logging": {"format": "xml"}}})

    def test_log_root_must_be_string(self):
        with pytest.raises(ConfigError, match="log_root"):
            parse_config({"itemdeck": {"logging": {"log_root": 3}}})

    def test_mirror_host_must_be_bare(self):
        with pytest.raises(ConfigError, match="mirror_host"):
            parse_config({"itemdeck": {"mirror_host": "https://cdn.example.test/"}})

    def test_api_base_url_must_be_http(self):
        with pytest.raises(ConfigError, match="api_base_url"):
            parse_config({"itemdeck": {"api_base_url": "ftp://example.test"}})

    def test_empty_user_agent(self):
        with pytest.raises(ConfigError, match="user_agent"):
            parse_config({"itemdeck": {"user_agent": "  "}})

    def test_section_must_be_table(self):
        with pytest.raises(ConfigError, match="must be a table"):
            parse_config({"itemdeck": {"http": "fast"}})


# ---------------------------------------------------------------------------
# Environment
# ---------------------------------------------------------------------------


class TestEnvironment:
    def test_resolves_env_references(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("DECK_AGENT", "from-env")
        config = parse_config({"itemdeck": {"user_agent": "${DECK_AGENT}/1"}})
        assert config.discovery.user_agent == "from-env/1"

    def test_unresolved_references_listed_together(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.delenv("MISSING_A", raising=False)
        monkeypatch.delenv("MISSING_B", raising=False)
        with pytest.raises(ConfigError, match="MISSING_A, MISSING_B"):
            resolve_env_vars({"value": "${MISSING_A}-${MISSING_B}"})

    def test_non_string_leaves_unchanged(self):
        assert resolve_env_vars({"a": [1, True, None, 2.5]}) == {"a": [1, True, None, 2.5]}

    def test_token_from_environment(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv(GITHUB_TOKEN_ENV, " secret-token ")
        config = parse_config({})
        assert config.discovery.github_token == "secret-token"
        assert "secret-token" not in repr(config)

    def test_blank_token_is_none(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv(GITHUB_TOKEN_ENV, "   ")
        assert parse_config({}).discovery.github_token is None
