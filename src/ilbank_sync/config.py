"""Configuration management for ilbank-sync.

Settings live in a JSON file shaped like::

    {
      "ynab": {"access_token": "...", "refresh_token": "...",
               "client_id": "...", "client_secret": "...", "budget_id": "..."},
      "state_file": null
    }

A config.json in the working directory wins over the per-user one under
$XDG_CONFIG_HOME/ilbank-sync/.
"""

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ilbank_sync.exceptions import ConfigError
from ilbank_sync.storage import (
    ACCESS_TOKEN_KEY,
    REFRESH_TOKEN_KEY,
    TOKEN_EXPIRY_KEY,
    KeyValueStore,
    write_json,
)

logger = logging.getLogger(__name__)

APP_DIR_NAME = "ilbank-sync"
CONFIG_FILENAME = "config.json"
STATE_FILENAME = "state.json"
TOKEN_ENV_VAR = "YNAB_ACCESS_TOKEN"
CLIENT_ID_ENV_VAR = "YNAB_CLIENT_ID"
CLIENT_SECRET_ENV_VAR = "YNAB_CLIENT_SECRET"


def get_config_dir() -> Path:
    """Per-user directory for config and state, honoring XDG_CONFIG_HOME."""
    base = os.getenv("XDG_CONFIG_HOME") or Path.home() / ".config"
    return Path(base) / APP_DIR_NAME


def get_config_path() -> Path:
    """Where the per-user config.json lives."""
    return get_config_dir() / CONFIG_FILENAME


def find_config_file() -> Path | None:
    """Return the first config.json that exists, or None.

    The working directory is tried before the per-user directory.
    """
    for candidate in (Path.cwd() / CONFIG_FILENAME, get_config_path()):
        if candidate.is_file():
            return candidate
    return None


def load_json_config(config_path: Path) -> dict[str, Any]:
    """Read a config file.

    Raises:
        ConfigError: If the file is not valid JSON or not a JSON object.
    """
    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {config_path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {config_path} does not contain a JSON object")
    return data


def save_json_config(config: dict[str, Any], config_path: Path | None = None) -> Path:
    """Write config to config_path, or to the per-user location.

    Returns:
        The path written.
    """
    target = config_path or get_config_path()
    write_json(target, config)
    logger.debug("Saved config to %s", target)
    return target


def load_config(config_path: Path | None = None) -> dict[str, Any] | None:
    """Load an explicit config file, or whichever one find_config_file picks.

    Returns None when no path is given and nothing is found.
    """
    path = config_path or find_config_file()
    if path is None:
        return None
    logger.debug("Loading config from %s", path)
    return load_json_config(path)


def _ynab_section(config: dict[str, Any] | None) -> dict[str, Any]:
    return (config or {}).get("ynab") or {}


@dataclass
class YnabCredentials:
    """Tokens to start a YNAB session with."""

    access_token: str | None = None
    refresh_token: str | None = None
    token_expiry: float | None = None


def get_ynab_credentials(
    config: dict[str, Any] | None = None,
    override: str | None = None,
    store: KeyValueStore | None = None,
) -> YnabCredentials:
    """Resolve the YNAB tokens to use.

    The access token is taken from the first of: override, the
    YNAB_ACCESS_TOKEN environment variable, the state store, the config
    file. Tokens in the state store were saved by an earlier refresh, so
    they win over the config file; their expiry is only used while the
    stored access token is the one in use.

    Args:
        config: Loaded config, if any.
        override: Token given on the command line.
        store: State store holding refreshed tokens.

    Returns:
        Credentials; any field may be None.
    """
    section = _ynab_section(config)
    stored_access = stored_refresh = stored_expiry = None
    if store is not None:
        stored_access = store.get(ACCESS_TOKEN_KEY)
        stored_refresh = store.get(REFRESH_TOKEN_KEY)
        stored_expiry = store.get(TOKEN_EXPIRY_KEY)

    access_token = (
        override or os.getenv(TOKEN_ENV_VAR) or stored_access or section.get("access_token")
    )
    expiry = stored_expiry if stored_access and access_token == stored_access else None
    return YnabCredentials(
        access_token=access_token,
        refresh_token=stored_refresh or section.get("refresh_token"),
        token_expiry=float(expiry) if expiry is not None else None,
    )


def get_ynab_oauth_client(config: dict[str, Any] | None = None) -> tuple[str, str] | None:
    """OAuth application (client_id, client_secret) used to refresh tokens, if configured."""
    section = _ynab_section(config)
    client_id = os.getenv(CLIENT_ID_ENV_VAR) or section.get("client_id")
    client_secret = os.getenv(CLIENT_SECRET_ENV_VAR) or section.get("client_secret")
    if client_id and client_secret:
        return str(client_id), str(client_secret)
    return None


def get_ynab_budget_id(
    config: dict[str, Any] | None = None,
    override: str | None = None,
) -> str | None:
    """Budget to work against: override, then config, then None."""
    budget_id = override or _ynab_section(config).get("budget_id")
    return str(budget_id) if budget_id else None


def get_state_path(config: dict[str, Any] | None = None) -> Path:
    """State file holding remembered accounts and refreshed tokens.

    Defaults to state.json next to the per-user config.
    """
    configured = (config or {}).get("state_file")
    if configured:
        return Path(configured).expanduser()
    return get_config_dir() / STATE_FILENAME


def create_default_config() -> dict[str, Any]:
    """Skeleton config with every known key present and unset."""
    return {
        "ynab": {
            "access_token": None,
            "refresh_token": None,
            "client_id": None,
            "client_secret": None,
            "budget_id": None,
        },
        "state_file": None,
    }
