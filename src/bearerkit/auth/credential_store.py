"""Access/refresh token storage over a pluggable key-value backend.

:class:`CredentialStore` holds the current :class:`CredentialPair` and is the
only place request code reads tokens from. Writes come from the
:class:`~bearerkit.auth.refresh.RefreshCoordinator` alone (login, renewal,
logout, failed renewal), which keeps the token lifecycle in one component.

Two backends are provided:

* :class:`MemoryKeyValueStore` -- process-local, the default for library use.
* :class:`FileKeyValueStore` -- one JSON file per profile under
  ``~/.local/share/bearerkit/credentials/`` (XDG), written atomically with
  ``0o600`` permissions so tokens are never world-readable, even momentarily.

See Also:
    :class:`~bearerkit.auth.refresh.RefreshCoordinator` -- the single writer.
"""

from __future__ import annotations

import json
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from bearerkit.config import atomic_write, get_credentials_dir
from bearerkit.models import Profile
from bearerkit.output import get_output

ACCESS_TOKEN_KEY = "access_token"
REFRESH_TOKEN_KEY = "refresh_token"


@dataclass(frozen=True)
class CredentialPair:
    """An access token and the refresh token that can renew it.

    Either side may be ``None`` (logged out, or a login that returned no
    refresh token).
    """

    access: Optional[str] = None
    refresh: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return self.access is None and self.refresh is None


class KeyValueStore(ABC):
    """Minimal string key-value persistence used by :class:`CredentialStore`."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    def update(self, values: Mapping[str, Optional[str]]) -> None:
        """Write several keys at once; a ``None`` value deletes the key."""
        ...

    def set(self, key: str, value: str) -> None:
        self.update({key: value})

    def delete(self, key: str) -> None:
        self.update({key: None})


class MemoryKeyValueStore(KeyValueStore):
    """Thread-safe in-process key-value store."""

    def __init__(self, initial: Optional[Mapping[str, str]] = None) -> None:
        self._lock = threading.Lock()
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def update(self, values: Mapping[str, Optional[str]]) -> None:
        with self._lock:
            for key, value in values.items():
                if value is None:
                    self._data.pop(key, None)
                else:
                    self._data[key] = value


class FileKeyValueStore(KeyValueStore):
    """Per-profile JSON file store.

    Each profile maps to exactly one file. All writes are atomic: content is
    written to a ``0o600`` temporary file in the same directory, fsynced,
    then renamed into place. When the last key is deleted the file is
    removed.

    Args:
        profile_name: The profile identifier used to derive the file name.
        directory: Override for the credentials directory.

    Example::

        kv = FileKeyValueStore("shop")
        kv.set("access_token", "eyJ...")
        assert kv.get("access_token") == "eyJ..."
    """

    def __init__(self, profile_name: str, directory: Optional[Path] = None) -> None:
        self._lock = threading.Lock()
        self._path = (directory or get_credentials_dir()) / f"{profile_name}.json"

    @property
    def path(self) -> Path:
        """The filesystem path to this profile's credential file."""
        return self._path

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._load().get(key)

    def update(self, values: Mapping[str, Optional[str]]) -> None:
        with self._lock:
            data = self._load()
            for key, value in values.items():
                if value is None:
                    data.pop(key, None)
                else:
                    data[key] = value
            if data:
                atomic_write(self._path, json.dumps(data, indent=2) + "\n", mode=0o600)
            elif self._path.is_file():
                self._path.unlink()

    def _load(self) -> dict[str, str]:
        if not self._path.is_file():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as exc:
            get_output().warning(f"Ignoring unreadable credential file {self._path}: {exc}")
            return {}
        if not isinstance(data, dict):
            return {}
        return {k: v for k, v in data.items() if isinstance(v, str)}


class CredentialStore:
    """The current access/refresh token pair for one client.

    Reads and writes are serialised by a lock so that a reader never sees
    the access token of one pair with the refresh token of another.

    Args:
        backend: Key-value persistence. Defaults to :class:`MemoryKeyValueStore`.
    """

    def __init__(self, backend: Optional[KeyValueStore] = None) -> None:
        self._backend = backend or MemoryKeyValueStore()
        self._lock = threading.RLock()

    @classmethod
    def for_profile(cls, profile: Profile) -> CredentialStore:
        """Build the store selected by ``profile.credential_store`` (``file`` or ``memory``)."""
        if profile.credential_store == "file":
            return cls(FileKeyValueStore(profile.name))
        return cls(MemoryKeyValueStore())

    @property
    def backend(self) -> KeyValueStore:
        return self._backend

    @property
    def access_token(self) -> Optional[str]:
        with self._lock:
            return self._backend.get(ACCESS_TOKEN_KEY)

    @property
    def refresh_token(self) -> Optional[str]:
        with self._lock:
            return self._backend.get(REFRESH_TOKEN_KEY)

    def snapshot(self) -> CredentialPair:
        with self._lock:
            return CredentialPair(
                access=self._backend.get(ACCESS_TOKEN_KEY),
                refresh=self._backend.get(REFRESH_TOKEN_KEY),
            )

    def set_access(self, token: str) -> None:
        with self._lock:
            self._backend.set(ACCESS_TOKEN_KEY, token)

    def set_pair(self, pair: CredentialPair) -> None:
        with self._lock:
            self._backend.update(
                {ACCESS_TOKEN_KEY: pair.access, REFRESH_TOKEN_KEY: pair.refresh}
            )

    def clear(self) -> None:
        with self._lock:
            self._backend.update({ACCESS_TOKEN_KEY: None, REFRESH_TOKEN_KEY: None})
