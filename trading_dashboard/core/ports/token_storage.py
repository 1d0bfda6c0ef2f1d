"""Key-value storage protocol for persisted credentials.

Only the authentication store reads or writes this storage.
"""

from __future__ import annotations

from typing import Protocol

ACCESS_TOKEN_KEY: str = "engine_access_token"
REFRESH_TOKEN_KEY: str = "engine_refresh_token"
USER_DATA_KEY: str = "engine_user_data"

AUTH_STORAGE_KEYS: tuple[str, ...] = (ACCESS_TOKEN_KEY, REFRESH_TOKEN_KEY, USER_DATA_KEY)


class KeyValueStorage(Protocol):
    def get(self, key: str) -> str | None:
        """Return the stored value or None."""

    def set(self, key: str, value: str) -> None:
        """Store a value."""

    def remove(self, key: str) -> None:
        """Remove a key; missing keys are ignored."""
