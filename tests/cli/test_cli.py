"""Tests for the CLI commands."""

from __future__ import annotations

import json

import pytest
from click.testing import CliRunner

import itemdeck.cli as cli_mod
from itemdeck.cli import EXIT_LOAD_FAILED, cli
from tests.conftest import API_CONTENTS, BASE, MIRROR_BASE, CollectionHost, definition_doc

pytestmark = pytest.mark.unit


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def host(monkeypatch) -> CollectionHost:
    """Collection host wired into the CLI, with logging setup stubbed out."""
    host = CollectionHost()
    monkeypatch.setattr(cli_mod, "_build_client", lambda config: host.client())
    monkeypatch.setattr(cli_mod, "configure_logging", lambda **kwargs: None)
    monkeypatch.delenv("OTEL_EXPORTER_OTLP_ENDPOINT", raising=False)
    return host


@pytest.fixture
def retro(host: CollectionHost) -> CollectionHost:
    host.add_json(f"{BASE}/collection.json", definition_doc())
    host.add_json(f"{BASE}/games/index.json", ["metroid", "zelda"])
    host.add_json(
        f"{BASE}/games/metroid.json",
        {"id": "metroid", "title": "Super Metroid", "platform": "snes", "rank": 1},
    )
    host.add_json(f"{BASE}/games/zelda.json", {"id": "zelda", "title": "Link to the Past"})
    host.add_json(f"{BASE}/platforms.json", [{"id": "snes", "title": "SNES"}])
    return host


class TestVersion:
    def test_version_flag(self, runner):
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output


class TestConfigOption:
    def test_invalid_config_exits_1(self, runner, host, tmp_path):
        config = tmp_path / "itemdeck.toml"
        config.write_text('[itemdeck.logging]\nformat = "xml"\n')
        result = runner.invoke(cli, ["--config", str(config), "load", BASE])
        assert result.exit_code == 1
        assert "Config error" in result.output


# ---------------------------------------------------------------------------
# load
# ---------------------------------------------------------------------------


class TestLoad:
    def test_summary(self, runner, retro):
        result = runner.invoke(cli, ["load", BASE])
        assert result.exit_code == 0, result.output
        summary = json.loads(result.stdout)
        assert summary == {
            "id": "retro-games",
            "name": "Retro Games",
            "schemaVersion": "v1",
            "primaryType": "game",
            "counts": {"game": 2, "platform": 1},
            "hasSettings": False,
        }

    def test_entities_are_resolved(self, runner, retro):
        result = runner.invoke(cli, ["load", BASE, "--type", "game"])
        assert result.exit_code == 0, result.output
        metroid, zelda = json.loads(result.stdout)["entities"]
        assert metroid["_resolved"]["platform"]["title"] == "SNES"
        assert "_resolved" not in zelda

    def test_no_resolve(self, runner, retro):
        result = runner.invoke(cli, ["load", BASE, "--type", "game", "--no-resolve"])
        metroid = json.loads(result.stdout)["entities"][0]
        assert "_resolved" not in metroid
        assert metroid["platform"] == "snes"

    def test_unknown_type(self, runner, retro):
        result = runner.invoke(cli, ["load", BASE, "--type", "console"])
        assert result.exit_code == 1
        assert "Unknown entity type: console" in result.output

    def test_missing_collection(self, runner, host):
        result = runner.invoke(cli, ["load", BASE])
        assert result.exit_code == EXIT_LOAD_FAILED
        assert "Error: Failed to load collection definition" in result.output

    def test_invalid_definition_prints_first_line(self, runner, host):
        host.add_json(f"{BASE}/collection.json", definition_doc(id=""))
        result = runner.invoke(cli, ["load", BASE])
        assert result.exit_code == EXIT_LOAD_FAILED
        assert "Error: Invalid collection definition:" in result.output
        assert "  - id:" not in result.output


# ---------------------------------------------------------------------------
# discover
# ---------------------------------------------------------------------------


class TestDiscover:
    def test_lists_ids(self, runner, host):
        host.add_json(
            f"{API_CONTENTS}/games",
            [
                {"name": "zelda.json", "type": "file"},
                {"name": "index.json", "type": "file"},
                {"name": "metroid.json", "type": "file"},
                {"name": "art", "type": "dir"},
            ],
        )
        result = runner.invoke(cli, ["discover", f"{MIRROR_BASE}/games"])
        assert result.exit_code == 0, result.output
        assert result.stdout.splitlines() == ["metroid", "zelda"]

    def test_nothing_discovered(self, runner, host):
        result = runner.invoke(cli, ["discover", f"{BASE}/games"])
        assert result.exit_code == 1
        assert "No entities discovered" in result.output
        assert host.requests == []


# ---------------------------------------------------------------------------
# field
# ---------------------------------------------------------------------------


class TestField:
    def test_string_value(self, runner, retro):
        result = runner.invoke(cli, ["field", BASE, "game", "metroid", "title"])
        assert result.exit_code == 0, result.output
        assert result.stdout == "Super Metroid\n"

    def test_value_through_relationship(self, runner, retro):
        result = runner.invoke(cli, ["field", BASE, "game", "metroid", "platform.title"])
        assert result.stdout == "SNES\n"

    def test_non_string_value_is_json(self, runner, retro):
        result = runner.invoke(cli, ["field", BASE, "game", "metroid", "rank"])
        assert json.loads(result.stdout) == 1

    def test_missing_value(self, runner, retro):
        result = runner.invoke(cli, ["field", BASE, "game", "zelda", "platform.title"])
        assert result.exit_code == 1
        assert result.stdout == ""

    def test_unknown_entity(self, runner, retro):
        result = runner.invoke(cli, ["field", BASE, "game", "tetris", "title"])
        assert result.exit_code == 1
        assert "Entity not found: game/tetris" in result.output
