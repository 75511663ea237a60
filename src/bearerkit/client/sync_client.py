"""Synchronous HTTP client with interceptors, retry, and single-flight token renewal.

This module provides :class:`SyncClient`, the blocking client used by the
bearerkit CLI and by threaded applications. It wraps :class:`httpx.Client`
and layers on:

- **Interceptor pipeline** -- bearer token injection, request timing,
  endpoint lifecycle notifications, plus any user interceptors, via
  :class:`~bearerkit.interceptors.InterceptorPipeline`.
- **Retry with backoff** -- network failures and timeouts are retried with
  exponential delay (1 s, 2 s, 4 s, ...). Received status codes never are.
- **Token renewal** -- a ``401`` is handed to the
  :class:`~bearerkit.auth.refresh.RefreshCoordinator`, which renews the
  access token once for every concurrent failure and replays each request.
- **Session bootstrap** -- :meth:`SyncClient.login` and
  :meth:`SyncClient.logout`.

A single instance is safe to share between threads.

See Also:
    :class:`~bearerkit.client.async_client.AsyncClient` for the
    equivalent non-blocking implementation.
"""

from __future__ import annotations

import time
from typing import Any, Callable, Iterable, Optional

import httpx

from bearerkit.auth.credential_store import CredentialPair, CredentialStore
from bearerkit.auth.refresh import RefreshCoordinator, SessionExpiredCallback, extract_tokens
from bearerkit.endpoints import EndpointRegistry
from bearerkit.exceptions import ClientError, HttpError, TransportError
from bearerkit.exit_codes import EXIT_AUTH_FAILURE
from bearerkit.interceptors import (
    AuthHeaderInterceptor,
    EndpointStatusInterceptor,
    Interceptor,
    InterceptorPipeline,
    RefreshInterceptor,
    RequestTimingInterceptor,
)
from bearerkit.models import Profile
from bearerkit.notify import Notifier
from bearerkit.output import get_output
from bearerkit.transport.executor import RequestExecutor
from bearerkit.transport.request import RequestBuilder, RequestDescriptor, Response
from bearerkit.transport.retry import RetryPolicy


class SyncClient:
    """Synchronous HTTP client for token-authenticated APIs.

    Must be used as a context manager so that the underlying transport is
    properly opened and closed.

    Args:
        profile: Connection profile with ``base_url``, token endpoints,
            request settings and notification limits.
        store: Token store. Defaults to the one selected by
            ``profile.credential_store``.
        interceptors: Extra interceptors, added to both pipeline sides
            after the built-ins (and before the refresh interceptor on the
            response side).
        on_session_expired: Called once whenever a token renewal fails.
        notifier: Endpoint notification sink. Defaults to one built from
            ``profile.notifications``.
        transport: Optional :mod:`httpx` transport (tests use
            :class:`httpx.MockTransport`).
        sleep: Sleep function used between retries.

    Example::

        with SyncClient(profile) as client:
            client.login("alice", "s3cret")
            shops = client.get("/api/v1/shops").unwrap()
    """

    def __init__(
        self,
        profile: Profile,
        store: Optional[CredentialStore] = None,
        interceptors: Optional[Iterable[Interceptor]] = None,
        on_session_expired: Optional[SessionExpiredCallback] = None,
        notifier: Optional[Notifier] = None,
        transport: Optional[httpx.BaseTransport] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._profile = profile
        self._store = store if store is not None else CredentialStore.for_profile(profile)
        self._extra = list(interceptors or [])
        self._on_session_expired = on_session_expired
        self._notifier = notifier or Notifier.from_config(profile.notifications)
        self._registry = EndpointRegistry.from_profile(profile)
        self._transport = transport
        self._sleep = sleep
        self._client: Optional[httpx.Client] = None
        self._executor: Optional[RequestExecutor] = None
        self._retry = RetryPolicy.from_config(profile.request, sleep=sleep)
        self._coordinator: Optional[RefreshCoordinator] = None
        self._pipeline: Optional[InterceptorPipeline] = None

    # ------------------------------------------------------------------ #
    # Context manager
    # ------------------------------------------------------------------ #

    def __enter__(self) -> SyncClient:
        config = self._profile.request
        kwargs: dict[str, Any] = {
            "timeout": config.timeout,
            "verify": config.verify_ssl,
            "follow_redirects": True,
        }
        if self._transport is not None:
            kwargs["transport"] = self._transport
        self._client = httpx.Client(**kwargs)
        self._executor = RequestExecutor(self._client, self._profile.base_url, config.timeout)
        self._coordinator = RefreshCoordinator(
            self._executor,
            self._store,
            self._profile.auth,
            on_session_expired=self._on_session_expired,
        )
        self._pipeline = self._build_pipeline(self._coordinator)
        return self

    def __exit__(self, *args: object) -> None:
        if self._client:
            self._client.close()
            self._client = None
        self._executor = None
        self._coordinator = None
        self._pipeline = None

    def _build_pipeline(self, coordinator: RefreshCoordinator) -> InterceptorPipeline:
        timing = RequestTimingInterceptor()
        pipeline = InterceptorPipeline(
            request=[AuthHeaderInterceptor(self._store, self._profile.auth), timing],
            response=[timing, EndpointStatusInterceptor(self._notifier, self._registry)],
        )
        for interceptor in self._extra:
            pipeline.use(interceptor)
        pipeline.use_response(RefreshInterceptor(coordinator, self.send))
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
    def pipeline(self) -> InterceptorPipeline:
        assert self._pipeline is not None, "Client not initialised -- use as context manager"
        return self._pipeline

    @property
    def coordinator(self) -> RefreshCoordinator:
        assert self._coordinator is not None, "Client not initialised -- use as context manager"
        return self._coordinator

    # ------------------------------------------------------------------ #
    # Core dispatch
    # ------------------------------------------------------------------ #

    def send(self, descriptor: RequestDescriptor) -> Response:
        """Send *descriptor* through the pipeline, the retry loop, and the executor.

        Returns:
            The final :class:`Response` (status below 400, or a failure an
            interceptor converted, such as a replay after token renewal).

        Raises:
            HttpError: The server answered with status 400 or above and no
                interceptor recovered.
            NetworkError: No server was reached after all retries.
            TimeoutError_: Every attempt timed out.
            SessionExpiredError: Token renewal failed.
        """
        pipeline = self.pipeline
        executor = self._executor
        assert executor is not None

        descriptor = pipeline.apply_request(descriptor)
        try:
            response = self._retry.run(
                lambda attempt: executor.execute(descriptor.evolve(attempt=attempt))
            )
        except TransportError as exc:
            return pipeline.apply_response_error(exc)

        if response.status_code >= 400:
            return pipeline.apply_response_error(HttpError(response))
        return pipeline.apply_response(response)

    # ------------------------------------------------------------------ #
    # Public request methods
    # ------------------------------------------------------------------ #

    def request(
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

        Returns:
            The :class:`~bearerkit.transport.request.Response`.
        """
        builder = RequestBuilder(method, path).params(params).headers(headers).timeout(timeout)
        if json_body is not None:
            builder.json(json_body)
        if content is not None:
            builder.content(content)
        if data is not None:
            builder.form(data)
        return self.send(builder.build())

    def get(self, path: str, **kwargs: Any) -> Response:
        """Send a GET request. See :meth:`request`."""
        return self.request("GET", path, **kwargs)

    def post(self, path: str, **kwargs: Any) -> Response:
        """Send a POST request. See :meth:`request`."""
        return self.request("POST", path, **kwargs)

    def put(self, path: str, **kwargs: Any) -> Response:
        """Send a PUT request. See :meth:`request`."""
        return self.request("PUT", path, **kwargs)

    def patch(self, path: str, **kwargs: Any) -> Response:
        """Send a PATCH request. See :meth:`request`."""
        return self.request("PATCH", path, **kwargs)

    def delete(self, path: str, **kwargs: Any) -> Response:
        """Send a DELETE request. See :meth:`request`."""
        return self.request("DELETE", path, **kwargs)

    # ------------------------------------------------------------------ #
    # Session management
    # ------------------------------------------------------------------ #

    def login(self, username: str, password: str) -> CredentialPair:
        """Exchange a username and password for a token pair and store it.

        Posts form fields ``username`` and ``password`` to the profile's
        login endpoint.

        Raises:
            HttpError: The credentials were rejected.
            ClientError: The response carried no access token.
        """
        response = self.post(
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

    def logout(self) -> None:
        """Notify the server (best effort) and forget both tokens."""
        try:
            if self._store.access_token:
                self.post(self._profile.auth.logout_path)
        except ClientError as exc:
            get_output().debug(f"Logout request failed, clearing tokens anyway: {exc}")
        finally:
            self.coordinator.clear()

    def refresh_session(self) -> str:
        """Force a token renewal (joining one in flight). Returns the new access token."""
        return self.coordinator.refresh()

    def ensure_fresh(self, margin: Optional[float] = None) -> Optional[str]:
        """Renew the access token if it expires within *margin* seconds.

        *margin* defaults to ``profile.auth.refresh_margin``.
        """
        if margin is None:
            margin = self._profile.auth.refresh_margin
        return self.coordinator.ensure_fresh(margin)
