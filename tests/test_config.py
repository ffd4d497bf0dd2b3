"""Tests for configuration management."""

import json
from pathlib import Path

import pytest

from ilbank_sync.config import (
    YnabCredentials,
    create_default_config,
    find_config_file,
    get_state_path,
    get_ynab_budget_id,
    get_ynab_credentials,
    get_ynab_oauth_client,
    load_config,
    save_json_config,
)
from ilbank_sync.exceptions import ConfigError
from ilbank_sync.storage import MemoryStore


class TestFindConfigFile:
    """Tests for find_config_file function."""

    def test_finds_config_in_current_dir(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test finding config.json in current directory."""
        monkeypatch.chdir(tmp_path)
        config_file = tmp_path / "config.json"
        config_file.write_text('{"ynab": {}}')

        result = find_config_file()

        assert result is not None
        assert result.resolve() == config_file.resolve()

    def test_finds_config_in_xdg_dir(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test finding config in XDG config directory."""
        monkeypatch.chdir(tmp_path)
        xdg_config = tmp_path / "xdg_config"
        monkeypatch.setenv("XDG_CONFIG_HOME", str(xdg_config))

        config_dir = xdg_config / "ilbank-sync"
        config_dir.mkdir(parents=True)
        config_file = config_dir / "config.json"
        config_file.write_text('{"ynab": {}}')

        result = find_config_file()

        assert result == config_file

    def test_current_dir_takes_precedence(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test current directory config takes precedence over XDG."""
        monkeypatch.chdir(tmp_path)
        xdg_config = tmp_path / "xdg_config"
        monkeypatch.setenv("XDG_CONFIG_HOME", str(xdg_config))
        config_dir = xdg_config / "ilbank-sync"
        config_dir.mkdir(parents=True)
        (config_dir / "config.json").write_text('{"ynab": {}}')

        cwd_config = tmp_path / "config.json"
        cwd_config.write_text('{"ynab": {}}')

        result = find_config_file()

        assert result is not None
        assert result.resolve() == cwd_config.resolve()

    def test_returns_none_when_no_config(self) -> None:
        """Test returns None when no config file exists."""
        assert find_config_file() is None


class TestLoadConfig:
    """Tests for load_config and save_json_config functions."""

    def test_loads_explicit_path(self, tmp_path: Path) -> None:
        """Test loading from explicit path."""
        config_file = tmp_path / "custom.json"
        config_data = {"ynab": {"access_token": "abc", "budget_id": "b-1"}}
        config_file.write_text(json.dumps(config_data))

        assert load_config(config_file) == config_data

    def test_returns_none_when_no_config(self) -> None:
        """Test returns None when no config exists."""
        assert load_config() is None

    def test_invalid_json(self, tmp_path: Path) -> None:
        """Test a malformed file raises ConfigError naming the file."""
        config_file = tmp_path / "config.json"
        config_file.write_text("{not json")

        with pytest.raises(ConfigError, match="config.json"):
            load_config(config_file)

    def test_non_object_rejected(self, tmp_path: Path) -> None:
        """Test a JSON list is not accepted as config."""
        config_file = tmp_path / "config.json"
        config_file.write_text("[1, 2]")

        with pytest.raises(ConfigError):
            load_config(config_file)

    def test_save_round_trip(self, tmp_path: Path) -> None:
        """Test saved config loads back, creating parent directories."""
        config_file = tmp_path / "subdir" / "config.json"

        result = save_json_config(create_default_config(), config_file)

        assert result == config_file
        assert load_config(config_file) == create_default_config()

    def test_save_defaults_to_xdg(self, tmp_path: Path) -> None:
        """Test saving without a path writes to the XDG location."""
        path = save_json_config({"ynab": {}})
        assert path == tmp_path / "xdg" / "ilbank-sync" / "config.json"
        assert path.exists()


class TestGetYnabCredentials:
    """Tests for get_ynab_credentials function."""

    def test_override_wins(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test the command-line token beats env and config."""
        monkeypatch.setenv("YNAB_ACCESS_TOKEN", "env_token")
        config = {"ynab": {"access_token": "config_token", "refresh_token": "r"}}

        assert get_ynab_credentials(config, override="cli_token") == YnabCredentials(
            "cli_token", "r"
        )

    def test_env_beats_config(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test the environment variable beats the config file."""
        monkeypatch.setenv("YNAB_ACCESS_TOKEN", "env_token")
        config = {"ynab": {"access_token": "config_token"}}

        assert get_ynab_credentials(config) == YnabCredentials("env_token")

    def test_config_token(self) -> None:
        """Test the config file token."""
        config = {"ynab": {"access_token": "config_token", "refresh_token": "r"}}
        assert get_ynab_credentials(config) == YnabCredentials("config_token", "r")

    def test_refreshed_tokens_beat_config(self) -> None:
        """Test tokens saved by an earlier refresh are used with their expiry."""
        config = {"ynab": {"access_token": "config_token", "refresh_token": "old"}}
        store = MemoryStore({
            "ynab_access_token": "fresh",
            "ynab_refresh_token": "new",
            "ynab_token_expiry": 1700000000,
        })

        assert get_ynab_credentials(config, store=store) == YnabCredentials(
            "fresh", "new", 1700000000.0
        )

    def test_stored_expiry_ignored_for_other_token(self) -> None:
        """Test the stored expiry does not apply to a token given on the command line."""
        store = MemoryStore({
            "ynab_access_token": "fresh",
            "ynab_refresh_token": "new",
            "ynab_token_expiry": 1700000000,
        })

        assert get_ynab_credentials(None, "cli_token", store) == YnabCredentials(
            "cli_token", "new"
        )

    def test_nothing_configured(self) -> None:
        """Test no token anywhere."""
        assert get_ynab_credentials(None) == YnabCredentials()
        assert get_ynab_credentials({"ynab": None}, store=MemoryStore()) == YnabCredentials()


class TestGetYnabOauthClient:
    """Tests for get_ynab_oauth_client function."""

    def test_from_config(self) -> None:
        """Test client id and secret from the config file."""
        config = {"ynab": {"client_id": "id", "client_secret": "secret"}}
        assert get_ynab_oauth_client(config) == ("id", "secret")

    def test_env_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test the environment overrides the config file."""
        monkeypatch.setenv("YNAB_CLIENT_SECRET", "env_secret")
        config = {"ynab": {"client_id": "id", "client_secret": "secret"}}
        assert get_ynab_oauth_client(config) == ("id", "env_secret")

    def test_incomplete(self) -> None:
        """Test both halves are needed."""
        assert get_ynab_oauth_client({"ynab": {"client_id": "id"}}) is None
        assert get_ynab_oauth_client(None) is None


class TestGetYnabBudgetId:
    """Tests for get_ynab_budget_id function."""

    def test_override(self) -> None:
        """Test the override wins."""
        assert get_ynab_budget_id({"ynab": {"budget_id": "cfg"}}, override="cli") == "cli"

    def test_from_config(self) -> None:
        """Test the configured budget."""
        assert get_ynab_budget_id({"ynab": {"budget_id": "cfg"}}) == "cfg"

    def test_missing(self) -> None:
        """Test no budget configured."""
        assert get_ynab_budget_id(None) is None
        assert get_ynab_budget_id(create_default_config()) is None


class TestGetStatePath:
    """Tests for get_state_path function."""

    def test_default_location(self, tmp_path: Path) -> None:
        """Test the state file sits beside the XDG config."""
        assert get_state_path(None) == tmp_path / "xdg" / "ilbank-sync" / "state.json"

    def test_configured_location(self, tmp_path: Path) -> None:
        """Test an explicit state_file."""
        config = {"state_file": str(tmp_path / "mine.json")}
        assert get_state_path(config) == tmp_path / "mine.json"


class TestCreateDefaultConfig:
    """Tests for create_default_config function."""

    def test_creates_valid_structure(self) -> None:
        """Test creates valid config structure."""
        config = create_default_config()

        assert config["ynab"] == {
            "access_token": None,
            "refresh_token": None,
            "client_id": None,
            "client_secret": None,
            "budget_id": None,
        }
        assert config["state_file"] is None
