"""Single-shot request execution and outcome classification.

The executors turn one :class:`~bearerkit.transport.request.RequestDescriptor`
into exactly one network call and classify the result:

- any received status code becomes a :class:`~bearerkit.transport.request.Response`
  (status interpretation is left to the caller),
- a connection that never produced a response raises
  :class:`~bearerkit.exceptions.NetworkError`,
- an elapsed deadline raises :class:`~bearerkit.exceptions.TimeoutError_`.

Executors have no other side effects: no retries, no auth, no logging
beyond debug traces. The refresh coordinator uses them directly for the
renewal call so that it bypasses the interceptor pipeline.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional
from urllib.parse import urlencode

import httpx

from bearerkit.transport.request import RequestDescriptor, Response
from bearerkit.exceptions import NetworkError, TimeoutError_
from bearerkit.output import get_output


def encode_query(params: Mapping[str, Any]) -> str:
    """Serialise query parameters deterministically.

    Keys are sorted, ``None`` values are skipped, booleans become
    ``true``/``false`` and sequences repeat the key.
    """
    pairs: list[tuple[str, Any]] = []
    for key in sorted(params):
        value = params[key]
        if value is None:
            continue
        if isinstance(value, (list, tuple)):
            for item in value:
                if item is not None:
                    pairs.append((key, _scalar(item)))
        else:
            pairs.append((key, _scalar(value)))
    return urlencode(pairs)


def _scalar(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def build_url(base_url: Optional[str], descriptor: RequestDescriptor) -> str:
    """Join *base_url* and the descriptor's path, then append the query string.

    Absolute ``http://`` / ``https://`` paths bypass the base URL.
    """
    path = descriptor.path
    if path.startswith(("http://", "https://")) or not base_url:
        url = path
    else:
        url = base_url.rstrip("/") + "/" + path.lstrip("/")

    query = encode_query(descriptor.params)
    if query:
        url = f"{url}{'&' if '?' in url else '?'}{query}"
    return url


class _ExecutorBase:
    def __init__(self, base_url: Optional[str], default_timeout: float) -> None:
        self._base_url = base_url
        self._default_timeout = default_timeout

    @property
    def base_url(self) -> Optional[str]:
        return self._base_url

    def build_url(self, descriptor: RequestDescriptor) -> str:
        return build_url(self._base_url, descriptor)

    def _timeout_for(self, descriptor: RequestDescriptor) -> float:
        return descriptor.timeout if descriptor.timeout is not None else self._default_timeout

    def _request_kwargs(self, descriptor: RequestDescriptor) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "method": descriptor.method,
            "url": self.build_url(descriptor),
            "headers": descriptor.headers,
            "timeout": self._timeout_for(descriptor),
        }
        if descriptor.form is not None:
            kwargs["data"] = descriptor.form
        elif descriptor.json_body is not None:
            kwargs["json"] = descriptor.json_body
        elif descriptor.content is not None:
            kwargs["content"] = descriptor.content
        return kwargs

    def _classify(self, descriptor: RequestDescriptor, exc: httpx.RequestError) -> Exception:
        label = f"{descriptor.method} {descriptor.path}"
        if isinstance(exc, httpx.TimeoutException):
            return TimeoutError_(
                f"{label} timed out after {self._timeout_for(descriptor)}s",
                request=descriptor,
            )
        return NetworkError(f"{label} failed: {exc}", request=descriptor)


class RequestExecutor(_ExecutorBase):
    """Blocking executor on top of a shared :class:`httpx.Client`.

    Args:
        http: The open :class:`httpx.Client` owned by the caller.
        base_url: Prefix for relative descriptor paths.
        default_timeout: Timeout in seconds when the descriptor sets none.
    """

    def __init__(
        self, http: httpx.Client, base_url: Optional[str] = None, default_timeout: float = 30.0
    ) -> None:
        super().__init__(base_url, default_timeout)
        self._http = http

    def execute(self, descriptor: RequestDescriptor) -> Response:
        """Dispatch *descriptor* once.

        Returns:
            The :class:`Response`, whatever its status code.

        Raises:
            NetworkError: No server was reached, or the exchange failed
                (redirect loop, undecodable body).
            TimeoutError_: The deadline elapsed.
        """
        kwargs = self._request_kwargs(descriptor)
        get_output().debug(f"-> {descriptor.method} {kwargs['url']}")
        try:
            raw = self._http.request(**kwargs)
        except httpx.RequestError as exc:
            raise self._classify(descriptor, exc) from exc
        get_output().debug(f"<- {raw.status_code} {descriptor.method} {descriptor.path}")
        return Response.from_httpx(raw, descriptor)


class AsyncRequestExecutor(_ExecutorBase):
    """Non-blocking counterpart of :class:`RequestExecutor` on :class:`httpx.AsyncClient`."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        base_url: Optional[str] = None,
        default_timeout: float = 30.0,
    ) -> None:
        super().__init__(base_url, default_timeout)
        self._http = http

    async def execute(self, descriptor: RequestDescriptor) -> Response:
        """Dispatch *descriptor* once. See :meth:`RequestExecutor.execute`."""
        kwargs = self._request_kwargs(descriptor)
        get_output().debug(f"-> {descriptor.method} {kwargs['url']}")
        try:
            raw = await self._http.request(**kwargs)
        except httpx.RequestError as exc:
            raise self._classify(descriptor, exc) from exc
        get_output().debug(f"<- {raw.status_code} {descriptor.method} {descriptor.path}")
        return Response.from_httpx(raw, descriptor)
