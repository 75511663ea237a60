"""Immutable request descriptors and decoded responses.

A :class:`RequestDescriptor` is the value that flows through the interceptor
pipeline, the retry loop and the refresh coordinator. It is frozen: every
change (a new header, a bumped attempt counter, the ``retried`` mark on a
replay) produces a new descriptor via :meth:`RequestDescriptor.evolve`, so a
request waiting on a token renewal can never be mutated by another caller.

Descriptors are usually assembled with :class:`RequestBuilder`::

    descriptor = (
        RequestBuilder("GET", "/api/v1/shops")
        .param("page", 2)
        .header("Accept-Language", "en")
        .build()
    )

:class:`Response` wraps a received :class:`httpx.Response` with its decoded
body and the descriptor that produced it.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Union

import httpx

from bearerkit.exceptions import InvalidUsageError
from bearerkit.models import Envelope

_BEARER_PREFIX = "bearer "


@dataclass(frozen=True, eq=False)
class RequestDescriptor:
    """Everything needed to dispatch one HTTP request.

    Attributes:
        method: Upper-cased HTTP method.
        path: Path relative to the profile's base URL, or an absolute
            ``http(s)://`` URL.
        headers: Case-insensitive header mapping. Always a private copy.
        params: Query parameters. Serialised sorted by key; ``None`` values
            are omitted.
        json_body: JSON-serialisable body.
        content: Raw body (``str`` or ``bytes``).
        form: Form-encoded body.
        timeout: Per-request timeout in seconds; ``None`` uses the profile
            default.
        retried: Set on replays after a token renewal. A retried request
            never triggers another renewal.
        attempt: Zero-based transport attempt counter set by the retry loop.
    """

    method: str
    path: str
    headers: httpx.Headers = field(default_factory=httpx.Headers)
    params: Mapping[str, Any] = field(default_factory=dict)
    json_body: Any = None
    content: Optional[Union[str, bytes]] = None
    form: Optional[Mapping[str, Any]] = None
    timeout: Optional[float] = None
    retried: bool = False
    attempt: int = 0

    def __post_init__(self) -> None:
        if not self.method:
            raise InvalidUsageError("Request method must not be empty")
        bodies = [b for b in (self.json_body, self.content, self.form) if b is not None]
        if len(bodies) > 1:
            raise InvalidUsageError("Only one of json_body, content, or form may be set")
        object.__setattr__(self, "method", self.method.upper())
        object.__setattr__(self, "headers", httpx.Headers(self.headers))
        object.__setattr__(self, "params", dict(self.params))
        if self.form is not None:
            object.__setattr__(self, "form", dict(self.form))

    def evolve(self, **changes: Any) -> RequestDescriptor:
        """Return a copy with *changes* applied.

        The ``retried`` flag is sticky: once a descriptor is marked as a
        replay, every clone derived from it stays marked.
        """
        changes["retried"] = self.retried or bool(changes.get("retried", False))
        return dataclasses.replace(self, **changes)

    def with_header(self, name: str, value: str) -> RequestDescriptor:
        headers = httpx.Headers(self.headers)
        headers[name] = value
        return self.evolve(headers=headers)

    def without_header(self, name: str) -> RequestDescriptor:
        headers = httpx.Headers(self.headers)
        if name in headers:
            del headers[name]
        return self.evolve(headers=headers)

    def with_bearer(self, token: str) -> RequestDescriptor:
        """Return a copy whose ``Authorization`` header carries *token*."""
        return self.with_header("Authorization", f"Bearer {token}")

    def mark_retried(self) -> RequestDescriptor:
        return self.evolve(retried=True)

    @property
    def bearer_token(self) -> Optional[str]:
        """The token from an ``Authorization: Bearer ...`` header, if present."""
        value = self.headers.get("Authorization")
        if value and value.lower().startswith(_BEARER_PREFIX):
            return value[len(_BEARER_PREFIX):].strip() or None
        return None

    def __repr__(self) -> str:
        flags = " retried" if self.retried else ""
        return f"<RequestDescriptor {self.method} {self.path} attempt={self.attempt}{flags}>"


class RequestBuilder:
    """Fluent builder for :class:`RequestDescriptor`.

    Args:
        method: HTTP method.
        path: Relative path or absolute URL.
    """

    def __init__(self, method: str, path: str) -> None:
        self._method = method
        self._path = path
        self._headers = httpx.Headers()
        self._params: dict[str, Any] = {}
        self._json: Any = None
        self._content: Optional[Union[str, bytes]] = None
        self._form: Optional[dict[str, Any]] = None
        self._timeout: Optional[float] = None

    def header(self, name: str, value: str) -> RequestBuilder:
        self._headers[name] = value
        return self

    def headers(self, headers: Optional[Mapping[str, str]]) -> RequestBuilder:
        for name, value in (headers or {}).items():
            self._headers[name] = value
        return self

    def param(self, name: str, value: Any) -> RequestBuilder:
        self._params[name] = value
        return self

    def params(self, params: Optional[Mapping[str, Any]]) -> RequestBuilder:
        self._params.update(params or {})
        return self

    def json(self, body: Any) -> RequestBuilder:
        self._json = body
        return self

    def content(self, body: Union[str, bytes]) -> RequestBuilder:
        self._content = body
        return self

    def form(self, data: Mapping[str, Any]) -> RequestBuilder:
        self._form = dict(data)
        return self

    def timeout(self, seconds: Optional[float]) -> RequestBuilder:
        self._timeout = seconds
        return self

    def build(self) -> RequestDescriptor:
        """Freeze the accumulated state into a :class:`RequestDescriptor`.

        Raises:
            InvalidUsageError: If more than one body kind was set.
        """
        return RequestDescriptor(
            method=self._method,
            path=self._path,
            headers=self._headers,
            params=self._params,
            json_body=self._json,
            content=self._content,
            form=self._form,
            timeout=self._timeout,
        )


@dataclass(frozen=True, eq=False)
class Response:
    """A received HTTP response with its decoded body.

    Attributes:
        status_code: HTTP status code.
        headers: Response headers.
        body: Parsed JSON when the content type is JSON, text otherwise,
            ``None`` for an empty body.
        content: Raw response bytes.
        request: The descriptor that produced this response.
        raw: The underlying :class:`httpx.Response`, when there is one.
    """

    status_code: int
    headers: httpx.Headers
    body: Any
    content: bytes
    request: Optional[RequestDescriptor] = None
    raw: Optional[httpx.Response] = field(default=None, repr=False)

    @classmethod
    def from_httpx(
        cls, raw: httpx.Response, request: Optional[RequestDescriptor] = None
    ) -> Response:
        return cls(
            status_code=raw.status_code,
            headers=raw.headers,
            body=_decode_body(raw),
            content=raw.content,
            request=request,
            raw=raw,
        )

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def envelope(self) -> Optional[Envelope]:
        """Parse the body as a ``{code, msg, data}`` envelope.

        Returns:
            The :class:`~bearerkit.models.Envelope`, or ``None`` when the body
            does not have that shape.
        """
        body = self.body
        if not isinstance(body, dict) or not isinstance(body.get("code"), int):
            return None
        try:
            return Envelope.model_validate(body)
        except ValueError:
            return None

    def unwrap(self) -> Any:
        """Return ``data`` for enveloped bodies, the whole body otherwise."""
        env = self.envelope()
        return env.data if env is not None else self.body

    def __repr__(self) -> str:
        target = f" {self.request.method} {self.request.path}" if self.request else ""
        return f"<Response [{self.status_code}]{target}>"


def _decode_body(raw: httpx.Response) -> Any:
    if not raw.content:
        return None
    content_type = raw.headers.get("content-type", "")
    if "json" in content_type:
        try:
            return raw.json()
        except ValueError:
            return raw.text
    return raw.text
