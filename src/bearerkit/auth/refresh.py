"""Refresh coordination: renew an expired access token once for all concurrent 401s.

When the access token expires, every request in flight sees a ``401`` at
about the same time. The coordinator makes sure that:

1. Only recoverable failures are handled: status ``401``, a non-bootstrap
   path, and a request that is not already a replay (``retried`` unset).
2. Exactly one renewal call is made per expiry. The first failing request
   starts it through a single-flight gate; the others wait on the same
   outcome. A ``401`` for a token that was already replaced skips the wait
   and replays with the current token.
3. On success each waiter replays its own request once, marked
   ``retried``, through the full interceptor pipeline.
4. On failure both tokens are cleared, ``on_session_expired`` fires once,
   and every waiter raises :class:`~bearerkit.exceptions.SessionExpiredError`.
   A late ``401`` for a session that is already cleared raises the same
   error without notifying again.

The renewal call goes straight to the executor: it is neither retried nor
intercepted, so it can never trigger a renewal of its own.

The coordinator is also the only writer of the
:class:`~bearerkit.auth.credential_store.CredentialStore` (login via
:meth:`establish`, logout via :meth:`clear`).
"""

from __future__ import annotations

import logging
from functools import partial
from typing import Any, Awaitable, Callable, Optional

from bearerkit.auth import jwt
from bearerkit.auth.credential_store import CredentialPair, CredentialStore
from bearerkit.transport.executor import AsyncRequestExecutor, RequestExecutor
from bearerkit.transport.request import RequestBuilder, RequestDescriptor, Response
from bearerkit.transport.singleflight import AsyncSingleFlight, SingleFlight
from bearerkit.exceptions import HttpError, SessionExpiredError, TransportError
from bearerkit.models import AuthEndpoints, TokenPayload
from bearerkit.output import get_output

logger = logging.getLogger(__name__)

SessionExpiredCallback = Callable[[SessionExpiredError], None]


def extract_tokens(response: Response) -> Optional[TokenPayload]:
    """Pull token material out of an enveloped or bare token response.

    Accepts ``{"code": 0, "data": {"access_token": ...}}`` as well as a bare
    ``{"access_token": ...}`` body.

    Returns:
        The :class:`~bearerkit.models.TokenPayload`, or ``None`` when the
        body carries no access token.
    """
    body: Any = response.body
    if isinstance(body, dict) and isinstance(body.get("data"), dict):
        body = body["data"]
    if not isinstance(body, dict) or not body.get("access_token"):
        return None
    try:
        return TokenPayload.model_validate(body)
    except ValueError:
        return None


class _CoordinatorBase:
    def __init__(
        self,
        store: CredentialStore,
        endpoints: Optional[AuthEndpoints] = None,
        on_session_expired: Optional[SessionExpiredCallback] = None,
    ) -> None:
        self._store = store
        self._endpoints = endpoints or AuthEndpoints()
        self._on_session_expired = on_session_expired

    @property
    def store(self) -> CredentialStore:
        return self._store

    @property
    def endpoints(self) -> AuthEndpoints:
        return self._endpoints

    def should_refresh(self, error: BaseException) -> bool:
        """Whether *error* is a ``401`` this coordinator may recover from."""
        if not isinstance(error, HttpError) or error.status != 401:
            return False
        request = error.request
        if request is None or request.retried:
            return False
        return not self._endpoints.is_bootstrap(request.path)

    def establish(self, pair: CredentialPair) -> None:
        """Install a freshly obtained pair (after login)."""
        self._store.set_pair(pair)

    def clear(self) -> None:
        """Forget both tokens (logout)."""
        self._store.clear()

    def _renewal_request(self, refresh_token: str) -> RequestDescriptor:
        return (
            RequestBuilder("POST", self._endpoints.refresh_path)
            .param(self._endpoints.refresh_param, refresh_token)
            .build()
        )

    def _current_token(self, request: RequestDescriptor) -> Optional[str]:
        """The stored token if it already differs from the one *request* was sent with."""
        current = self._store.access_token
        if current and current != request.bearer_token:
            return current
        return None

    def _accept(self, response: Response) -> str:
        if not response.ok:
            raise self._expire(
                f"token renewal rejected with HTTP {response.status_code}", response.request
            )
        payload = extract_tokens(response)
        if payload is None:
            raise self._expire("token renewal response carried no access token", response.request)
        if payload.refresh_token:
            self._store.set_pair(CredentialPair(payload.access_token, payload.refresh_token))
        else:
            self._store.set_access(payload.access_token)
        get_output().debug("Access token renewed")
        return payload.access_token

    def _expire(
        self,
        reason: str,
        request: Optional[RequestDescriptor] = None,
        notify: bool = True,
    ) -> SessionExpiredError:
        """Clear credentials, notify once, and build the error every waiter will raise."""
        self._store.clear()
        error = SessionExpiredError(f"Session expired: {reason}", request=request)
        get_output().debug(str(error))
        if notify and self._on_session_expired is not None:
            try:
                self._on_session_expired(error)
            except Exception:
                logger.exception("on_session_expired callback failed")
        return error

    def _already_expired(self, sent_with: Optional[str]) -> bool:
        """Whether a request sent with *sent_with* lost its session to an earlier expiry."""
        return sent_with is not None and self._store.snapshot().is_empty

    def _no_refresh_token(self, sent_with: Optional[str]) -> SessionExpiredError:
        return self._expire(
            "no refresh token available", notify=not self._already_expired(sent_with)
        )

    def _needs_renewal(self, margin: float) -> bool:
        token = self._store.access_token
        if token is None:
            return self._store.refresh_token is not None
        return jwt.is_expiring_soon(token, margin)


class RefreshCoordinator(_CoordinatorBase):
    """Thread-safe refresh coordinator for :class:`~bearerkit.client.SyncClient`.

    Args:
        executor: Executor used for the renewal call.
        store: The token store this coordinator owns.
        endpoints: Login/refresh paths and the refresh parameter name.
        on_session_expired: Called once per expired session.
    """

    def __init__(
        self,
        executor: RequestExecutor,
        store: CredentialStore,
        endpoints: Optional[AuthEndpoints] = None,
        on_session_expired: Optional[SessionExpiredCallback] = None,
    ) -> None:
        super().__init__(store, endpoints, on_session_expired)
        self._executor = executor
        self._flight: SingleFlight[str] = SingleFlight()

    @property
    def refreshing(self) -> bool:
        return self._flight.in_flight

    def recover(
        self, error: HttpError, replay: Callable[[RequestDescriptor], Response]
    ) -> Response:
        """Renew (or join the renewal in flight) and replay the failed request.

        Args:
            error: A ``401`` accepted by :meth:`should_refresh`.
            replay: Sends a descriptor through the full pipeline.

        Raises:
            SessionExpiredError: The renewal failed.
        """
        assert error.request is not None
        request = error.request.mark_retried()
        token = self._current_token(request)
        if token is None:
            token = self._flight.do(partial(self._renew, request.bearer_token))
        else:
            get_output().debug(f"Token already renewed, replaying {request.method} {request.path}")
        return replay(request.with_bearer(token))

    def refresh(self) -> str:
        """Force a renewal, joining one already in flight.

        Returns:
            The new access token.
        """
        return self._flight.do(self._renew)

    def ensure_fresh(self, margin: float = 60) -> Optional[str]:
        """Renew proactively when the access token expires within *margin* seconds.

        Returns:
            The access token to use, or ``None`` when logged out.
        """
        if self._needs_renewal(margin) and self._store.refresh_token is not None:
            return self.refresh()
        return self._store.access_token

    def _renew(self, sent_with: Optional[str] = None) -> str:
        refresh_token = self._store.refresh_token
        if not refresh_token:
            raise self._no_refresh_token(sent_with)
        request = self._renewal_request(refresh_token)
        get_output().debug("Renewing access token")
        try:
            response = self._executor.execute(request)
        except TransportError as exc:
            raise self._expire(f"token renewal failed: {exc}", request) from exc
        return self._accept(response)


class AsyncRefreshCoordinator(_CoordinatorBase):
    """Asyncio refresh coordinator for :class:`~bearerkit.client.AsyncClient`.

    Same contract as :class:`RefreshCoordinator`. The renewal runs as a
    shared task, so cancelling one waiting request leaves the renewal and
    the other waiters untouched.
    """

    def __init__(
        self,
        executor: AsyncRequestExecutor,
        store: CredentialStore,
        endpoints: Optional[AuthEndpoints] = None,
        on_session_expired: Optional[SessionExpiredCallback] = None,
    ) -> None:
        super().__init__(store, endpoints, on_session_expired)
        self._executor = executor
        self._flight: AsyncSingleFlight[str] = AsyncSingleFlight()

    @property
    def refreshing(self) -> bool:
        return self._flight.in_flight

    async def recover(
        self,
        error: HttpError,
        replay: Callable[[RequestDescriptor], Awaitable[Response]],
    ) -> Response:
        """Async counterpart of :meth:`RefreshCoordinator.recover`."""
        assert error.request is not None
        request = error.request.mark_retried()
        token = self._current_token(request)
        if token is None:
            token = await self._flight.do(partial(self._renew, request.bearer_token))
        else:
            get_output().debug(f"Token already renewed, replaying {request.method} {request.path}")
        return await replay(request.with_bearer(token))

    async def refresh(self) -> str:
        return await self._flight.do(self._renew)

    async def ensure_fresh(self, margin: float = 60) -> Optional[str]:
        if self._needs_renewal(margin) and self._store.refresh_token is not None:
            return await self.refresh()
        return self._store.access_token

    async def _renew(self, sent_with: Optional[str] = None) -> str:
        refresh_token = self._store.refresh_token
        if not refresh_token:
            raise self._no_refresh_token(sent_with)
        request = self._renewal_request(refresh_token)
        get_output().debug("Renewing access token")
        try:
            response = await self._executor.execute(request)
        except TransportError as exc:
            raise self._expire(f"token renewal failed: {exc}", request) from exc
        return self._accept(response)
