"""Token lifecycle: storage, JWT inspection, and refresh coordination.

The main entry points are:

- :class:`CredentialStore` -- the current access/refresh pair over a
  :class:`KeyValueStore` backend (in memory or a per-profile file).
- :class:`RefreshCoordinator` / :class:`AsyncRefreshCoordinator` -- renew
  an expired access token once for every concurrent ``401`` and replay
  the failed requests.
- :mod:`bearerkit.auth.jwt` -- expiry helpers for proactive renewal.
"""

from bearerkit.auth.credential_store import (
    CredentialPair,
    CredentialStore,
    FileKeyValueStore,
    KeyValueStore,
    MemoryKeyValueStore,
)
from bearerkit.auth.refresh import AsyncRefreshCoordinator, RefreshCoordinator, extract_tokens

__all__ = [
    "AsyncRefreshCoordinator",
    "CredentialPair",
    "CredentialStore",
    "FileKeyValueStore",
    "KeyValueStore",
    "MemoryKeyValueStore",
    "RefreshCoordinator",
    "extract_tokens",
]
