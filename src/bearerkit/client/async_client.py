"""Asynchronous HTTP client with interceptors, retry, and single-flight token renewal.

This module provides :class:`AsyncClient`, the non-blocking counterpart of
:class:`~bearerkit.client.sync_client.SyncClient`. It wraps
:class:`httpx.AsyncClient` and offers the same interceptor pipeline, retry
policy, token renewal and session management with ``async``/``await``
semantics. Any number of tasks on one event loop may share an instance.

Token renewal runs as a shared task awaited through :func:`asyncio.shield`:
cancelling one waiting request never cancels the renewal the others are
waiting on.

See Also:
    :class:`~bearerkit.client.sync_client.SyncClient` for the blocking
    equivalent used by the CLI.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Iterable, Optional

import httpx

from bearerkit.auth.credential_store import CredentialPair, CredentialStore
from bearerkit.auth.refresh import AsyncRefreshCoordinator, SessionExpiredCallback, extract_tokens
from bearerkit.endpoints import EndpointRegistry
from bearerkit.exceptions import ClientError, HttpError, TransportError
from bearerkit.exit_codes import EXIT_AUTH_FAILURE
from bearerkit.interceptors import (
    AsyncInterceptorPipeline,
    AsyncRefreshInterceptor,
    AuthHeaderInterceptor,
    EndpointStatusInterceptor,
    Interceptor,
    RequestTimingInterceptor,
)
from bearerkit.models import Profile
from bearerkit.notify import Notifier
from bearerkit.output import get_output
from bearerkit.transport.executor import AsyncRequestExecutor
from bearerkit.transport.request import RequestBuilder, RequestDescriptor, Response
from bearerkit.transport.retry import AsyncRetryPolicy


def _loop_scheduler(delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
    return asyncio.get_running_loop().call_later(delay, callback)


class AsyncClient:
    """Asynchronous HTTP client for token-authenticated APIs.

    Must be used as an async context manager.

    Args:
        profile: Connection profile with ``base_url``, token endpoints,
            request settings and notification limits.
        store: Token store. Defaults to the one selected by
            ``profile.credential_store``.
        interceptors: Extra interceptors; hooks may be coroutines.
        on_session_expired: Called once whenever a token renewal fails.
        notifier: Endpoint notification sink. Defaults to one built from
            ``profile.notifications`` that delivers on the event loop.
        transport: Optional async :mod:`httpx` transport.
        sleep: Async sleep function used between retries.

    Example::

        async with AsyncClient(profile) as client:
            await client.login("alice", "s3cret")
            results = await asyncio.gather(
                client.get("/api/v1/shops"),
                client.get("/api/v1/tasks"),
            )
    """

    def __init__(
        self,
        profile: Profile,
        store: Optional[CredentialStore] = None,
        interceptors: Optional[Iterable[Interceptor]] = None,
        on_session_expired: Optional[SessionExpiredCallback] = None,
        notifier: Optional[Notifier] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._profile = profile
        self._store = store if store is not None else CredentialStore.for_profile(profile)
        self._extra = list(interceptors or [])
        self._on_session_expired = on_session_expired
        self._notifier = notifier or Notifier.from_config(
            profile.notifications, scheduler=_loop_scheduler
        )
        self._registry = EndpointRegistry.from_profile(profile)
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._executor: Optional[AsyncRequestExecutor] = None
        self._retry = AsyncRetryPolicy.from_config(profile.request, sleep=sleep)
        self._coordinator: Optional[AsyncRefreshCoordinator] = None
        self._pipeline: Optional[AsyncInterceptorPipeline] = None

    # ------------------------------------------------------------------ #
    # Async context manager
    # ------------------------------------------------------------------ #

    async def __aenter__(self) -> AsyncClient:
        config = self._profile.request
        kwargs: dict[str, Any] = {
            "timeout": config.timeout,
            "verify": config.verify_ssl,
            "follow_redirects": True,
        }
        if self._transport is not None:
            kwargs["transport"] = self._transport
        self._client = httpx.AsyncClient(**kwargs)
        self._executor = AsyncRequestExecutor(
            self._client, self._profile.base_url, config.timeout
        )
        self._coordinator = AsyncRefreshCoordinator(
            self._executor,
            self._store,
            self._profile.auth,
            on_session_expired=self._on_session_expired,
        )
        self._pipeline = self._build_pipeline(self._coordinator)
        return self

    async def __aexit__(self, *args: object) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None
        self._executor = None
        self._coordinator = None
        self._pipeline = None

    def _build_pipeline(self, coordinator: AsyncRefreshCoordinator) -> AsyncInterceptorPipeline:
        timing = RequestTimingInterceptor()
        pipeline = AsyncInterceptorPipeline(
            request=[AuthHeaderInterceptor(self._store, self._profile.auth), timing],
            response=[timing, EndpointStatusInterceptor(self._notifier, self._registry)],
        )
        for interceptor in self._extra:
            pipeline.use(interceptor)
        pipeline.use_response(AsyncRefreshInterceptor(coordinator, self.send))
        return pipeline

    # ------------------------------------------------------------------ #
    # Properties
    # ------------------------------------------------------------------ #

    @property
    def profile(self) -> Profile:
        return self._profile

    @property
    def store(self) -> CredentialStore:
        return self._store

    @property
    def pipeline(self) -> AsyncInterceptorPipeline:
        assert self._pipeline is not None, "Client not initialised -- use as async context manager"
        return self._pipeline

    @property
    def coordinator(self) -> AsyncRefreshCoordinator:
        assert self._coordinator is not None, "Client not initialised -- use as async context manager"
        return self._coordinator

    # ------------------------------------------------------------------ #
    # Core dispatch
    # ------------------------------------------------------------------ #

    async def send(self, descriptor: RequestDescriptor) -> Response:
        """Send *descriptor* through the pipeline, the retry loop, and the executor.

        See :meth:`SyncClient.send <bearerkit.client.sync_client.SyncClient.send>`
        for the outcome contract.
        """
        pipeline = self.pipeline
        executor = self._executor
        assert executor is not None

        descriptor = await pipeline.apply_request(descriptor)
        try:
            response = await self._retry.run(
                lambda attempt: executor.execute(descriptor.evolve(attempt=attempt))
            )
        except TransportError as exc:
            return await pipeline.apply_response_error(exc)

        if response.status_code >= 400:
            return await pipeline.apply_response_error(HttpError(response))
        return await pipeline.apply_response(response)

    # ------------------------------------------------------------------ #
    # Public request methods
    # ------------------------------------------------------------------ #

    async def request(
        self,
        method: str,
        path: str,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
        json_body: Optional[Any] = None,
        content: Optional[str | bytes] = None,
        data: Optional[dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> Response:
        """Build a descriptor and :meth:`send` it.

        Args:
            method: HTTP method (GET, POST, PUT, PATCH, DELETE).
            path: URL path (appended to the profile's base_url).
            params: Query parameters; ``None`` values are dropped.
            headers: Extra request headers.
            json_body: JSON-serialisable body.
            content: Raw body.
            data: Form-encoded body.
            timeout: Per-request timeout in seconds.
        """
        builder = RequestBuilder(method, path).params(params).headers(headers).timeout(timeout)
        if json_body is not None:
            builder.json(json_body)
        if content is not None:
            builder.content(content)
        if data is not None:
            builder.form(data)
        return await self.send(builder.build())

    async def get(self, path: str, **kwargs: Any) -> Response:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, **kwargs: Any) -> Response:
        return await self.request("POST", path, **kwargs)

    async def put(self, path: str, **kwargs: Any) -> Response:
        return await self.request("PUT", path, **kwargs)

    async def patch(self, path: str, **kwargs: Any) -> Response:
        return await self.request("PATCH", path, **kwargs)

    async def delete(self, path: str, **kwargs: Any) -> Response:
        return await self.request("DELETE", path, **kwargs)

    # ------------------------------------------------------------------ #
    # Session management
    # ------------------------------------------------------------------ #

    async def login(self, username: str, password: str) -> CredentialPair:
        """Exchange a username and password for a token pair and store it."""
        response = await self.post(
            self._profile.auth.login_path,
            data={"username": username, "password": password},
        )
        payload = extract_tokens(response)
        if payload is None:
            raise ClientError(
                "Login response did not contain an access token",
                request=response.request,
                exit_code=EXIT_AUTH_FAILURE,
            )
        pair = CredentialPair(payload.access_token, payload.refresh_token)
        self.coordinator.establish(pair)
        get_output().debug(f"Logged in as {username}")
        return pair

    async def logout(self) -> None:
        """Notify the server (best effort) and forget both tokens."""
        try:
            if self._store.access_token:
                await self.post(self._profile.auth.logout_path)
        except ClientError as exc:
            get_output().debug(f"Logout request failed, clearing tokens anyway: {exc}")
        finally:
            self.coordinator.clear()

    async def refresh_session(self) -> str:
        return await self.coordinator.refresh()

    async def ensure_fresh(self, margin: Optional[float] = None) -> Optional[str]:
        if margin is None:
            margin = self._profile.auth.refresh_margin
        return await self.coordinator.ensure_fresh(margin)
