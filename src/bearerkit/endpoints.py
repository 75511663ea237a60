"""Endpoint lifecycle signals: detection, metadata lookup, and description.

Backends announce non-fatal endpoint states in three ways:

* ``X-Deprecated: true`` on a 2xx response -- *soft* deprecation. Optional
  ``X-Deprecated-Alternative`` and ``X-Deprecated-Removal-Date`` headers
  carry details.
* HTTP ``410 Gone`` -- *strict* deprecation.
* An envelope application code, either ``code`` or ``data.code``:
  ``70001`` (in development), ``70002`` (planned), ``70003`` (deprecated).
  Payload fields ``mock``, ``expected_release``, ``alternative`` and
  ``removal_date`` add details.

:func:`detect_signal` turns a response into an :class:`EndpointSignal`,
filling gaps from an :class:`EndpointRegistry` of known endpoint metadata.
:func:`describe_signal` renders the human-readable notification text.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from typing import Any, Mapping, Optional

from bearerkit.models import EndpointMeta, EndpointStatus, Profile
from bearerkit.transport.request import Response

CODE_IN_DEVELOPMENT = 70001
CODE_PLANNED = 70002
CODE_DEPRECATED = 70003

STATUS_BY_CODE: dict[int, EndpointStatus] = {
    CODE_IN_DEVELOPMENT: EndpointStatus.DEVELOPMENT,
    CODE_PLANNED: EndpointStatus.PLANNED,
    CODE_DEPRECATED: EndpointStatus.DEPRECATED,
}

# HTTP status a backend uses for each state; soft deprecation stays 200.
HTTP_STATUS: dict[EndpointStatus, int] = {
    EndpointStatus.DEVELOPMENT: 200,
    EndpointStatus.PLANNED: 501,
    EndpointStatus.DEPRECATED: 410,
}

STATUS_LABELS: dict[EndpointStatus, str] = {
    EndpointStatus.DEVELOPMENT: "In development",
    EndpointStatus.PLANNED: "Planned",
    EndpointStatus.DEPRECATED: "Deprecated",
}

_DEFAULT_MESSAGES: dict[EndpointStatus, str] = {
    EndpointStatus.DEVELOPMENT: "This endpoint is still in development",
    EndpointStatus.PLANNED: "This endpoint is planned but not yet available",
    EndpointStatus.DEPRECATED: "This endpoint is deprecated",
}

HEADER_DEPRECATED = "X-Deprecated"
HEADER_ALTERNATIVE = "X-Deprecated-Alternative"
HEADER_REMOVAL_DATE = "X-Deprecated-Removal-Date"

_NUMERIC_SEGMENT = re.compile(r"/\d+(?=/|$)")
_UUID_SEGMENT = re.compile(
    r"/[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[1-5][0-9a-fA-F]{3}-[89abAB][0-9a-fA-F]{3}"
    r"-[0-9a-fA-F]{12}(?=/|$)"
)
_PARAM_SEGMENT = re.compile(r":([A-Za-z_]\w*)")


@dataclass(frozen=True)
class EndpointSignal:
    """A non-fatal lifecycle notice about one endpoint.

    Attributes:
        status: Development, planned, or deprecated.
        path: Request path the signal was observed on.
        message: Server-provided (or default) message.
        strict: ``True`` for a hard deprecation (``410``).
        mock: The response body is demo data.
        expected_release: ISO date the endpoint is expected to ship.
        alternative: Replacement endpoint for a deprecated one.
        removal_date: ISO date a deprecated endpoint goes away.
    """

    status: EndpointStatus
    path: str
    message: str
    strict: bool = False
    mock: bool = False
    expected_release: Optional[str] = None
    alternative: Optional[str] = None
    removal_date: Optional[str] = None


def normalize_path(path: str) -> str:
    """Replace numeric and UUID path segments with ``:id``."""
    path = _NUMERIC_SEGMENT.sub("/:id", path)
    return _UUID_SEGMENT.sub("/:id", path)


class EndpointRegistry:
    """Lookup table of :class:`~bearerkit.models.EndpointMeta` by path pattern.

    Patterns are literal paths or contain ``:name`` placeholders that match
    one path segment, e.g. ``/api/v1/shops/:shop_id/score``.

    Args:
        entries: Initial pattern to metadata mapping.
    """

    def __init__(self, entries: Optional[Mapping[str, EndpointMeta]] = None) -> None:
        self._exact: dict[str, EndpointMeta] = {}
        self._patterns: list[tuple[re.Pattern[str], EndpointMeta]] = []
        for pattern, meta in (entries or {}).items():
            self.register(pattern, meta)

    @classmethod
    def from_profile(cls, profile: Profile) -> EndpointRegistry:
        return cls(profile.endpoints)

    def __len__(self) -> int:
        return len(self._exact)

    def register(self, pattern: str, meta: EndpointMeta) -> None:
        self._exact[pattern] = meta
        if ":" in pattern:
            regex = _PARAM_SEGMENT.sub("[^/]+", re.escape(pattern).replace("\\:", ":"))
            self._patterns.append((re.compile(f"^{regex}$"), meta))

    def lookup(self, path: str) -> Optional[EndpointMeta]:
        """Return the metadata registered for *path*, ignoring any query string."""
        path = path.split("?", 1)[0]
        if path in self._exact:
            return self._exact[path]
        normalized = normalize_path(path)
        if normalized in self._exact:
            return self._exact[normalized]
        for regex, meta in self._patterns:
            if regex.match(path) or regex.match(normalized):
                return meta
        return None

    def status_of(self, path: str) -> Optional[EndpointStatus]:
        meta = self.lookup(path)
        return meta.status if meta is not None else None

    def is_development(self, path: str) -> bool:
        return self.status_of(path) is EndpointStatus.DEVELOPMENT

    def is_planned(self, path: str) -> bool:
        return self.status_of(path) is EndpointStatus.PLANNED

    def is_deprecated(self, path: str) -> bool:
        return self.status_of(path) is EndpointStatus.DEPRECATED


def detect_signal(
    response: Response, registry: Optional[EndpointRegistry] = None
) -> Optional[EndpointSignal]:
    """Inspect *response* for a lifecycle signal.

    Returns:
        The :class:`EndpointSignal`, enriched from *registry* when given, or
        ``None`` when the response carries no signal.
    """
    path = response.request.path if response.request is not None else ""
    signal = _detect(response, path)
    if signal is None:
        return None
    if registry is not None:
        signal = _enrich(signal, registry.lookup(path))
    return signal


def _detect(response: Response, path: str) -> Optional[EndpointSignal]:
    envelope = response.envelope()
    message = envelope.msg if envelope is not None and envelope.msg else ""
    data = envelope.data if envelope is not None and isinstance(envelope.data, dict) else {}

    headers = response.headers
    if response.ok and headers.get(HEADER_DEPRECATED, "").lower() == "true":
        return EndpointSignal(
            status=EndpointStatus.DEPRECATED,
            path=path,
            message=message or _DEFAULT_MESSAGES[EndpointStatus.DEPRECATED],
            alternative=headers.get(HEADER_ALTERNATIVE) or _str(data.get("alternative")),
            removal_date=headers.get(HEADER_REMOVAL_DATE) or _str(data.get("removal_date")),
        )

    if response.status_code == HTTP_STATUS[EndpointStatus.DEPRECATED]:
        return _from_payload(EndpointStatus.DEPRECATED, path, message, data, strict=True)

    if envelope is None:
        return None
    code: Any = envelope.code
    if code not in STATUS_BY_CODE:
        code = data.get("code")
    if code not in STATUS_BY_CODE:
        return None
    return _from_payload(STATUS_BY_CODE[code], path, message, data, strict=False)


def _from_payload(
    status: EndpointStatus, path: str, message: str, data: dict[str, Any], strict: bool
) -> EndpointSignal:
    return EndpointSignal(
        status=status,
        path=path,
        message=message or _str(data.get("message")) or _DEFAULT_MESSAGES[status],
        strict=strict,
        mock=data.get("mock") is True,
        expected_release=_str(data.get("expected_release")),
        alternative=_str(data.get("alternative")),
        removal_date=_str(data.get("removal_date")),
    )


def _enrich(signal: EndpointSignal, meta: Optional[EndpointMeta]) -> EndpointSignal:
    if meta is None:
        return signal
    message = signal.message
    if message == _DEFAULT_MESSAGES[signal.status] and meta.description:
        message = meta.description
    return replace(
        signal,
        message=message,
        expected_release=signal.expected_release or meta.expected_release,
        alternative=signal.alternative or meta.alternative,
        removal_date=signal.removal_date or meta.removal_date,
    )


def _str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) and value else None


def describe_signal(signal: EndpointSignal) -> str:
    """Render the notification text for *signal*.

    Example::

        >>> describe_signal(EndpointSignal(EndpointStatus.DEPRECATED, "/v1/x",
        ...     "Old endpoint", alternative="/v2/x", removal_date="2026-06-01"))
        'Old endpoint, use /v2/x instead, removal on 2026-06-01'
    """
    parts = [signal.message]
    if signal.status is EndpointStatus.DEVELOPMENT:
        if signal.mock:
            parts[0] += " (demo data)"
        if signal.expected_release:
            parts.append(f"expected release {signal.expected_release}")
    elif signal.status is EndpointStatus.PLANNED:
        if signal.expected_release:
            parts.append(f"expected {signal.expected_release}")
    else:
        if signal.alternative:
            parts.append(f"use {signal.alternative} instead")
        if signal.removal_date:
            parts.append(f"removal on {signal.removal_date}")
    return ", ".join(parts)
