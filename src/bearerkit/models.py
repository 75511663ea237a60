"""Canonical Pydantic models shared across all bearerkit modules.

This is the single source of truth for configuration shapes. Profiles and
the global config are serialised as JSON in the user's config directory and
loaded through :mod:`bearerkit.config`:

    :class:`AuthEndpoints`, :class:`RequestConfig`,
    :class:`NotificationConfig`, :class:`EndpointMeta`, :class:`OutputConfig`,
    :class:`GlobalConfig`, and :class:`Profile`.

The wire envelope returned by the backend, :class:`Envelope`, also lives
here so that the client and the endpoint-signal detector parse it the same
way.
"""

from __future__ import annotations

import enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


# --- Auth ---


class AuthEndpoints(BaseModel):
    """Paths of the token lifecycle endpoints on the target API.

    Requests to :attr:`login_path` and :attr:`refresh_path` (plus anything in
    :attr:`skip_paths`) are *bootstrap* requests: they never carry the
    ``Authorization`` header and a ``401`` from them never triggers a renewal.
    """

    login_path: str = Field(default="/auth/jwt/login", description="Password login endpoint")
    refresh_path: str = Field(
        default="/auth/jwt/refresh", description="Access token renewal endpoint"
    )
    logout_path: str = Field(default="/auth/jwt/logout", description="Logout endpoint")
    refresh_param: str = Field(
        default="refresh_token",
        description="Query parameter carrying the refresh token on renewal",
    )
    skip_paths: list[str] = Field(
        default_factory=list,
        description="Extra paths that must never trigger a renewal",
    )
    refresh_margin: int = Field(
        default=60,
        description="Seconds before expiry at which ensure_fresh renews proactively",
    )

    def bootstrap_paths(self) -> tuple[str, ...]:
        """Return every path that is exempt from auth injection and renewal."""
        return (self.login_path, self.refresh_path, *self.skip_paths)

    def is_bootstrap(self, path: str) -> bool:
        """Return ``True`` when *path* targets a bootstrap endpoint.

        Matching is by substring so that absolute URLs and query strings
        still match.
        """
        return any(p and p in path for p in self.bootstrap_paths())


# --- Request ---


class RequestConfig(BaseModel):
    """Default HTTP request settings applied to every API call in a profile."""

    timeout: float = Field(default=30.0, description="Request timeout in seconds")
    verify_ssl: bool = Field(default=True, description="Verify SSL certificates")
    max_retries: int = Field(default=3, ge=0, description="Max retry attempts")
    retry_base_delay: float = Field(
        default=1.0, ge=0, description="Backoff base in seconds (doubles per attempt)"
    )


class NotificationConfig(BaseModel):
    """Rate limiting for endpoint lifecycle notifications."""

    enabled: bool = True
    max_per_window: int = Field(default=3, gt=0, description="Notifications allowed per window")
    window_seconds: float = Field(default=60.0, gt=0, description="Sliding window length")
    presentation_delay: float = Field(
        default=0.1, ge=0, description="Delay before an allowed notification is shown"
    )


# --- Endpoint lifecycle ---


class EndpointStatus(str, enum.Enum):
    """Lifecycle state a backend can report for an endpoint."""

    DEVELOPMENT = "development"
    PLANNED = "planned"
    DEPRECATED = "deprecated"


class EndpointMeta(BaseModel):
    """Known lifecycle metadata for one endpoint pattern.

    Used to fill in details the server omitted when it signals that an
    endpoint is in development, planned, or deprecated.
    """

    status: EndpointStatus
    description: Optional[str] = None
    expected_release: Optional[str] = Field(default=None, description="ISO date")
    alternative: Optional[str] = Field(default=None, description="Replacement endpoint")
    removal_date: Optional[str] = Field(default=None, description="ISO date")


# --- Output ---


class OutputConfig(BaseModel):
    """Default output format preferences stored in :class:`GlobalConfig`."""

    format: Literal["auto", "json", "plain", "rich"] = Field(
        default="auto", description="Default when neither --json nor --plain is given"
    )


class GlobalConfig(BaseModel):
    """User-wide configuration persisted at ``~/.config/bearerkit/config.json``.

    Fields here have the lowest precedence and can be overridden by project
    config, environment variables, or CLI flags. See
    :func:`~bearerkit.config.resolve_config` for the full precedence chain.
    """

    default_profile: Optional[str] = None
    auto_select_single_profile: bool = True
    output: OutputConfig = Field(default_factory=OutputConfig)


class Profile(BaseModel):
    """Per-API profile stored as JSON under the ``profiles/`` config directory.

    Bundles the base URL, token endpoints, request defaults and notification
    limits needed to talk to one API. Profiles are created with
    ``bearerkit init``.

    Extra fields are preserved and accessible via ``model_extra``.
    """

    model_config = ConfigDict(extra="allow")

    name: str
    base_url: Optional[str] = Field(default=None, description="API base URL")
    auth: AuthEndpoints = Field(default_factory=AuthEndpoints)
    request: RequestConfig = Field(default_factory=RequestConfig)
    notifications: NotificationConfig = Field(default_factory=NotificationConfig)
    credential_store: Literal["file", "memory"] = Field(
        default="file", description="Where tokens live: file (per-profile JSON) or memory"
    )
    endpoints: dict[str, EndpointMeta] = Field(
        default_factory=dict,
        description="Endpoint lifecycle metadata keyed by path pattern ('/shops/:shop_id')",
    )


# --- Wire envelope ---


class Envelope(BaseModel):
    """Standard response envelope ``{code, msg, data}``.

    ``code`` is an application status code; ``0`` or ``200`` means success,
    ``70001``-``70003`` are endpoint lifecycle codes (see
    :mod:`bearerkit.endpoints`).
    """

    model_config = ConfigDict(extra="allow")

    code: int
    msg: str = ""
    data: Any = None


class TokenPayload(BaseModel):
    """Token material returned by the login and renewal endpoints."""

    model_config = ConfigDict(extra="allow")

    access_token: str
    refresh_token: Optional[str] = None
    token_type: str = "bearer"
