"""Key-value storage for persisted local state."""

import json
import logging
from pathlib import Path
from typing import Protocol

from ilbank_sync.exceptions import ConfigError

logger = logging.getLogger(__name__)

ACCOUNT_MAPPINGS_KEY = "identifierAccountMappings"
ACCESS_TOKEN_KEY = "ynab_access_token"
REFRESH_TOKEN_KEY = "ynab_refresh_token"
TOKEN_EXPIRY_KEY = "ynab_token_expiry"


def write_json(path: Path, data: dict[str, object]) -> None:
    """Write a JSON object to path, creating missing parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)
        f.write("\n")


class KeyValueStore(Protocol):
    """String key to JSON-serializable value storage."""

    def get(self, key: str, default: object = None) -> object:
        """Get a value, or default if the key is absent."""
        ...

    def set(self, key: str, value: object) -> None:
        """Store a value."""
        ...

    def delete(self, key: str) -> None:
        """Remove a key if present."""
        ...


class MemoryStore:
    """In-process store, mainly for testing."""

    def __init__(self, data: dict[str, object] | None = None) -> None:
        self._data: dict[str, object] = dict(data or {})

    def get(self, key: str, default: object = None) -> object:
        """Get a value, or default if the key is absent."""
        return self._data.get(key, default)

    def set(self, key: str, value: object) -> None:
        """Store a value."""
        self._data[key] = value

    def delete(self, key: str) -> None:
        """Remove a key if present."""
        self._data.pop(key, None)


class JsonFileStore:
    """Store backed by a single JSON file, rewritten on every change."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def _load(self) -> dict[str, object]:
        if not self.path.exists():
            return {}
        with open(self.path, encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ConfigError(f"State file {self.path} does not contain a JSON object")
        return data

    def _save(self, data: dict[str, object]) -> None:
        write_json(self.path, data)

    def get(self, key: str, default: object = None) -> object:
        """Get a value, or default if the key is absent."""
        return self._load().get(key, default)

    def set(self, key: str, value: object) -> None:
        """Store a value."""
        data = self._load()
        data[key] = value
        self._save(data)

    def delete(self, key: str) -> None:
        """Remove a key if present."""
        data = self._load()
        if key in data:
            del data[key]
            self._save(data)


class IdentifierAccountMap:
    """
    Remembers which ledger account each statement identifier was sent to.

    Usage:
        accounts = IdentifierAccountMap(JsonFileStore(path))
        accounts.remember("123456789", "acc-uuid")
        accounts.get("123456789")  # "acc-uuid"
    """

    def __init__(self, store: KeyValueStore, key: str = ACCOUNT_MAPPINGS_KEY) -> None:
        self.store = store
        self.key = key

    def as_dict(self) -> dict[str, str]:
        """Get the whole mapping."""
        value = self.store.get(self.key, {})
        if not isinstance(value, dict):
            return {}
        return {str(k): str(v) for k, v in value.items()}

    def get(self, identifier: str | None) -> str | None:
        """Get the account previously chosen for an identifier."""
        if not identifier:
            return None
        return self.as_dict().get(identifier)

    def remember(self, identifier: str, account_id: str) -> None:
        """Record the account chosen for an identifier."""
        mapping = self.as_dict()
        mapping[identifier] = account_id
        self.store.set(self.key, mapping)
        logger.debug("Mapped identifier %s to account %s", identifier, account_id)

    def forget(self, identifier: str) -> None:
        """Drop the mapping for an identifier."""
        mapping = self.as_dict()
        if mapping.pop(identifier, None) is not None:
            self.store.set(self.key, mapping)
