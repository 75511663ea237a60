"""bearerkit -- authenticated HTTP client core.

This package wraps :mod:`httpx` with the pieces every token-authenticated
API client ends up re-implementing: a pluggable interceptor pipeline,
retry with exponential backoff for transient failures, and a refresh
coordinator that renews an expired access token exactly once no matter how
many requests observe the ``401`` concurrently.

Typical usage::

    from bearerkit.client import SyncClient
    from bearerkit.models import Profile

    profile = Profile(name="shop", base_url="https://api.example.com")
    with SyncClient(profile) as client:
        client.login("alice", "s3cret")
        response = client.get("/api/v1/shops", params={"page": 1})

Modules:
    app: Typer application and CLI entry point.
    models: Pydantic configuration models.
    config: XDG-aware configuration and profile management.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric exit codes following clig.dev conventions.
    output: stdout/stderr formatting system with Rich support.
    endpoints: Endpoint lifecycle metadata and signal detection.
    notify: Sliding-window notification rate limiting.
"""

__version__ = "0.1.0"
