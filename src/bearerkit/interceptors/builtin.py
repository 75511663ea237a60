"""Built-in interceptors installed by the clients.

Default order::

    request side:   AuthHeaderInterceptor -> RequestTimingInterceptor -> (user)
    response side:  RequestTimingInterceptor -> EndpointStatusInterceptor
                    -> (user) -> RefreshInterceptor

The refresh interceptor sits last on the response side so every other
interceptor sees the original ``401`` before it is converted; the replayed
request runs through its own full pipeline pass.
"""

from __future__ import annotations

import time
from typing import Awaitable, Callable, Optional

from bearerkit.auth.credential_store import CredentialStore
from bearerkit.auth.refresh import AsyncRefreshCoordinator, RefreshCoordinator
from bearerkit.endpoints import EndpointRegistry, detect_signal
from bearerkit.exceptions import ClientError, HttpError
from bearerkit.interceptors.base import ErrorOutcome, Interceptor
from bearerkit.models import AuthEndpoints
from bearerkit.notify import Notifier
from bearerkit.output import get_output
from bearerkit.transport.request import RequestDescriptor, Response

REQUEST_START_HEADER = "X-Request-Start"


class AuthHeaderInterceptor(Interceptor):
    """Set ``Authorization: Bearer <access>`` from the credential store.

    Overwrites any existing header so a replay always carries the current
    token. Bootstrap endpoints (login, renewal) are left untouched.
    """

    def __init__(self, store: CredentialStore, endpoints: Optional[AuthEndpoints] = None) -> None:
        self._store = store
        self._endpoints = endpoints or AuthEndpoints()

    @property
    def name(self) -> str:
        return "auth-header"

    def on_request(self, descriptor: RequestDescriptor) -> RequestDescriptor:
        if self._endpoints.is_bootstrap(descriptor.path):
            return descriptor
        token = self._store.access_token
        if token:
            return descriptor.with_bearer(token)
        return descriptor


class RequestTimingInterceptor(Interceptor):
    """Stamp ``X-Request-Start`` (epoch milliseconds) and log elapsed time on completion."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock

    @property
    def name(self) -> str:
        return "request-timing"

    def on_request(self, descriptor: RequestDescriptor) -> RequestDescriptor:
        return descriptor.with_header(REQUEST_START_HEADER, str(int(self._clock() * 1000)))

    def on_response(self, response: Response) -> Response:
        self._log(response.request, str(response.status_code))
        return response

    def on_response_error(self, error: ClientError) -> ErrorOutcome:
        self._log(error.request, type(error).__name__)
        return error

    def _log(self, request: Optional[RequestDescriptor], outcome: str) -> None:
        if request is None:
            return
        started = request.headers.get(REQUEST_START_HEADER)
        if started is None or not started.isdigit():
            return
        elapsed = int(self._clock() * 1000) - int(started)
        get_output().debug(f"{request.method} {request.path} -> {outcome} in {elapsed}ms")


class EndpointStatusInterceptor(Interceptor):
    """Forward endpoint lifecycle signals to a rate-limited :class:`~bearerkit.notify.Notifier`.

    Responses and errors pass through unchanged.
    """

    def __init__(self, notifier: Notifier, registry: Optional[EndpointRegistry] = None) -> None:
        self._notifier = notifier
        self._registry = registry

    @property
    def name(self) -> str:
        return "endpoint-status"

    def on_response(self, response: Response) -> Response:
        self._inspect(response)
        return response

    def on_response_error(self, error: ClientError) -> ErrorOutcome:
        if isinstance(error, HttpError):
            self._inspect(error.response)
        return error

    def _inspect(self, response: Response) -> None:
        signal = detect_signal(response, self._registry)
        if signal is not None:
            self._notifier.submit(signal)


class RefreshInterceptor(Interceptor):
    """Convert a recoverable ``401`` into the replayed request's response.

    Args:
        coordinator: Performs the single-flight renewal.
        replay: Sends a descriptor through the full pipeline (the client's
            ``send``).
    """

    def __init__(
        self,
        coordinator: RefreshCoordinator,
        replay: Callable[[RequestDescriptor], Response],
    ) -> None:
        self._coordinator = coordinator
        self._replay = replay

    @property
    def name(self) -> str:
        return "token-refresh"

    def on_response_error(self, error: ClientError) -> ErrorOutcome:
        if isinstance(error, HttpError) and self._coordinator.should_refresh(error):
            return self._coordinator.recover(error, self._replay)
        return error


class AsyncRefreshInterceptor(Interceptor):
    """Asyncio counterpart of :class:`RefreshInterceptor`."""

    def __init__(
        self,
        coordinator: AsyncRefreshCoordinator,
        replay: Callable[[RequestDescriptor], Awaitable[Response]],
    ) -> None:
        self._coordinator = coordinator
        self._replay = replay

    @property
    def name(self) -> str:
        return "token-refresh"

    async def on_response_error(self, error: ClientError) -> ErrorOutcome:
        if isinstance(error, HttpError) and self._coordinator.should_refresh(error):
            return await self._coordinator.recover(error, self._replay)
        return error
