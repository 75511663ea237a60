"""HTTP client module for bearerkit.

Provides synchronous and asynchronous clients that wrap :mod:`httpx` with an
interceptor pipeline, retry with exponential backoff, and single-flight
token renewal.

Classes:
    :class:`SyncClient` -- blocking client backed by :class:`httpx.Client`.
    :class:`AsyncClient` -- non-blocking client backed by :class:`httpx.AsyncClient`.

Both clients are designed to be used as context managers and accept the
same core parameters: a :class:`~bearerkit.models.Profile`, an optional
:class:`~bearerkit.auth.credential_store.CredentialStore`, extra
interceptors, and an ``on_session_expired`` callback.

Example::

    from bearerkit.client import SyncClient

    with SyncClient(profile) as client:
        resp = client.get("/api/v1/shops")
"""

from bearerkit.client.async_client import AsyncClient
from bearerkit.client.sync_client import SyncClient

__all__ = ["SyncClient", "AsyncClient"]
