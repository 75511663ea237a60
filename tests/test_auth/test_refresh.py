"""Tests for bearerkit.auth.refresh -- token extraction and the refresh coordinators."""

from __future__ import annotations

import json
from typing import Any, Callable, Optional

import httpx
import pytest

from bearerkit.auth.credential_store import CredentialPair, CredentialStore
from bearerkit.auth.refresh import AsyncRefreshCoordinator, RefreshCoordinator, extract_tokens
from bearerkit.exceptions import HttpError, NetworkError, SessionExpiredError
from bearerkit.models import AuthEndpoints
from bearerkit.transport.executor import AsyncRequestExecutor, RequestExecutor
from bearerkit.transport.request import RequestDescriptor, Response


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _response(status: int, body: Any = None, request: Optional[RequestDescriptor] = None) -> Response:
    content = json.dumps(body).encode() if body is not None else b""
    return Response(
        status_code=status,
        headers=httpx.Headers({"content-type": "application/json"}),
        body=body,
        content=content,
        request=request,
    )


def _unauthorized(path: str = "/api/v1/shops", token: str = "T1", **kwargs: Any) -> HttpError:
    descriptor = RequestDescriptor("GET", path, **kwargs).with_bearer(token)
    return HttpError(_response(401, {"msg": "expired"}, descriptor))


class _RenewalServer:
    """Mock renewal endpoint recording each call."""

    def __init__(self, status: int = 200, body: Any = None, exc: Optional[Exception] = None) -> None:
        self.status = status
        self.body = body if body is not None else {"code": 0, "data": {"access_token": "T2"}}
        self.exc = exc
        self.calls: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        if self.exc is not None:
            raise self.exc
        return httpx.Response(self.status, json=self.body)


def _redirect_loop(request: httpx.Request) -> httpx.Response:
    return httpx.Response(302, headers={"location": str(request.url)})


@pytest.fixture
def store() -> CredentialStore:
    store = CredentialStore()
    store.set_pair(CredentialPair("T1", "R1"))
    return store


def _coordinator(
    server: Callable[[httpx.Request], httpx.Response],
    store: CredentialStore,
    on_session_expired: Optional[Callable[[SessionExpiredError], None]] = None,
) -> tuple[RefreshCoordinator, httpx.Client]:
    http = httpx.Client(transport=httpx.MockTransport(server), follow_redirects=True)
    executor = RequestExecutor(http, "https://api.test")
    return RefreshCoordinator(executor, store, AuthEndpoints(), on_session_expired), http


# ---------------------------------------------------------------------------
# extract_tokens
# ---------------------------------------------------------------------------


class TestExtractTokens:
    def test_enveloped(self) -> None:
        payload = extract_tokens(
            _response(200, {"code": 0, "data": {"access_token": "A", "refresh_token": "R"}})
        )
        assert payload is not None
        assert (payload.access_token, payload.refresh_token) == ("A", "R")

    def test_bare(self) -> None:
        payload = extract_tokens(_response(200, {"access_token": "A", "token_type": "bearer"}))
        assert payload is not None
        assert payload.refresh_token is None

    def test_missing_access_token(self) -> None:
        assert extract_tokens(_response(200, {"code": 0, "data": {}})) is None

    def test_non_dict_body(self) -> None:
        assert extract_tokens(_response(200, ["x"])) is None


# ---------------------------------------------------------------------------
# should_refresh
# ---------------------------------------------------------------------------


class TestShouldRefresh:
    def test_plain_401(self, store: CredentialStore) -> None:
        coordinator, http = _coordinator(_RenewalServer(), store)
        with http:
            assert coordinator.should_refresh(_unauthorized())

    def test_other_status(self, store: CredentialStore) -> None:
        coordinator, http = _coordinator(_RenewalServer(), store)
        error = HttpError(_response(403, None, RequestDescriptor("GET", "/x")))
        with http:
            assert not coordinator.should_refresh(error)

    def test_retried_request(self, store: CredentialStore) -> None:
        coordinator, http = _coordinator(_RenewalServer(), store)
        with http:
            assert not coordinator.should_refresh(_unauthorized(retried=True))

    @pytest.mark.parametrize("path", ["/auth/jwt/login", "/auth/jwt/refresh?refresh_token=x"])
    def test_bootstrap_paths(self, store: CredentialStore, path: str) -> None:
        coordinator, http = _coordinator(_RenewalServer(), store)
        with http:
            assert not coordinator.should_refresh(_unauthorized(path))

    def test_non_http_error(self, store: CredentialStore) -> None:
        coordinator, http = _coordinator(_RenewalServer(), store)
        with http:
            assert not coordinator.should_refresh(ValueError("x"))


# ---------------------------------------------------------------------------
# RefreshCoordinator
# ---------------------------------------------------------------------------


class TestRecover:
    def test_renews_and_replays_with_new_token(self, store: CredentialStore) -> None:
        server = _RenewalServer()
        coordinator, http = _coordinator(server, store)
        replayed: list[RequestDescriptor] = []

        def replay(descriptor: RequestDescriptor) -> Response:
            replayed.append(descriptor)
            return _response(200, {"ok": True}, descriptor)

        with http:
            result = coordinator.recover(_unauthorized(), replay)

        assert result.body == {"ok": True}
        assert len(server.calls) == 1
        renewal = server.calls[0]
        assert renewal.method == "POST"
        assert renewal.url.path == "/auth/jwt/refresh"
        assert renewal.url.params["refresh_token"] == "R1"
        assert "authorization" not in renewal.headers
        assert replayed[0].bearer_token == "T2"
        assert replayed[0].retried
        assert store.snapshot() == CredentialPair("T2", "R1")

    def test_rotated_refresh_token_is_stored(self, store: CredentialStore) -> None:
        server = _RenewalServer(body={"access_token": "T2", "refresh_token": "R2"})
        coordinator, http = _coordinator(server, store)
        with http:
            coordinator.recover(_unauthorized(), lambda d: _response(200, None, d))
        assert store.snapshot() == CredentialPair("T2", "R2")

    def test_stale_token_replays_without_renewal(self, store: CredentialStore) -> None:
        store.set_access("T2")
        server = _RenewalServer()
        coordinator, http = _coordinator(server, store)
        replayed: list[RequestDescriptor] = []

        def replay(descriptor: RequestDescriptor) -> Response:
            replayed.append(descriptor)
            return _response(200, None, descriptor)

        with http:
            coordinator.recover(_unauthorized(token="T1"), replay)

        assert server.calls == []
        assert replayed[0].bearer_token == "T2"

    @pytest.mark.parametrize(
        "server",
        [
            _RenewalServer(status=401, body={"msg": "refresh expired"}),
            _RenewalServer(status=200, body={"code": 0, "data": {}}),
            _RenewalServer(exc=httpx.ConnectError("down")),
        ],
        ids=["rejected", "no-token", "network"],
    )
    def test_failed_renewal_expires_session(
        self, store: CredentialStore, server: _RenewalServer
    ) -> None:
        expired: list[SessionExpiredError] = []
        coordinator, http = _coordinator(server, store, expired.append)
        replay_calls: list[RequestDescriptor] = []

        with http:
            with pytest.raises(SessionExpiredError, match="Session expired"):
                coordinator.recover(_unauthorized(), replay_calls.append)

        assert store.snapshot().is_empty
        assert len(expired) == 1
        assert replay_calls == []

    def test_missing_refresh_token_expires_without_network(self) -> None:
        store = CredentialStore()
        store.set_pair(CredentialPair("T1", None))
        server = _RenewalServer()
        expired: list[SessionExpiredError] = []
        coordinator, http = _coordinator(server, store, expired.append)
        with http:
            with pytest.raises(SessionExpiredError, match="no refresh token"):
                coordinator.recover(_unauthorized(), lambda d: _response(200, None, d))
        assert server.calls == []
        assert len(expired) == 1

    def test_callback_failure_is_logged_not_raised(
        self, store: CredentialStore, caplog: pytest.LogCaptureFixture
    ) -> None:
        def broken(error: SessionExpiredError) -> None:
            raise RuntimeError("callback bug")

        coordinator, http = _coordinator(_RenewalServer(status=401), store, broken)
        with http:
            with pytest.raises(SessionExpiredError):
                coordinator.refresh()
        assert "on_session_expired callback failed" in caplog.text

    def test_redirect_loop_on_renewal_expires_session(self, store: CredentialStore) -> None:
        expired: list[SessionExpiredError] = []
        coordinator, http = _coordinator(_redirect_loop, store, expired.append)
        with http:
            with pytest.raises(SessionExpiredError, match="token renewal failed") as exc_info:
                coordinator.recover(_unauthorized(), lambda d: _response(200, None, d))
        assert isinstance(exc_info.value.__cause__, NetworkError)
        assert store.snapshot().is_empty
        assert len(expired) == 1

    def test_late_401_after_expiry_does_not_notify_again(self, store: CredentialStore) -> None:
        server = _RenewalServer(status=401, body={"msg": "refresh expired"})
        expired: list[SessionExpiredError] = []
        coordinator, http = _coordinator(server, store, expired.append)
        with http:
            for _ in range(2):
                with pytest.raises(SessionExpiredError):
                    coordinator.recover(
                        _unauthorized(token="T1"), lambda d: _response(200, None, d)
                    )
        assert len(server.calls) == 1
        assert len(expired) == 1

    def test_refresh_without_session_notifies(self) -> None:
        expired: list[SessionExpiredError] = []
        coordinator, http = _coordinator(_RenewalServer(), CredentialStore(), expired.append)
        with http:
            with pytest.raises(SessionExpiredError, match="no refresh token"):
                coordinator.refresh()
        assert len(expired) == 1


class TestEnsureFresh:
    def test_renews_expiring_token(self, make_jwt) -> None:
        store = CredentialStore()
        store.set_pair(CredentialPair(make_jwt(exp_in=10), "R1"))
        server = _RenewalServer()
        coordinator, http = _coordinator(server, store)
        with http:
            assert coordinator.ensure_fresh(margin=60) == "T2"
        assert len(server.calls) == 1

    def test_keeps_valid_token(self, make_jwt) -> None:
        token = make_jwt(exp_in=3600)
        store = CredentialStore()
        store.set_pair(CredentialPair(token, "R1"))
        server = _RenewalServer()
        coordinator, http = _coordinator(server, store)
        with http:
            assert coordinator.ensure_fresh(margin=60) == token
        assert server.calls == []

    def test_logged_out_returns_none(self) -> None:
        server = _RenewalServer()
        coordinator, http = _coordinator(server, CredentialStore())
        with http:
            assert coordinator.ensure_fresh() is None
        assert server.calls == []

    def test_refresh_only_session_renews(self) -> None:
        store = CredentialStore()
        store.set_pair(CredentialPair(None, "R1"))
        coordinator, http = _coordinator(_RenewalServer(), store)
        with http:
            assert coordinator.ensure_fresh() == "T2"


class TestEstablishAndClear:
    def test_establish_and_clear(self) -> None:
        store = CredentialStore()
        coordinator, http = _coordinator(_RenewalServer(), store)
        with http:
            coordinator.establish(CredentialPair("A", "R"))
            assert store.snapshot() == CredentialPair("A", "R")
            coordinator.clear()
        assert store.snapshot().is_empty


# ---------------------------------------------------------------------------
# AsyncRefreshCoordinator
# ---------------------------------------------------------------------------


class TestAsyncRefreshCoordinator:
    @pytest.mark.asyncio
    async def test_recover_replays(self, store: CredentialStore) -> None:
        server = _RenewalServer()
        async with httpx.AsyncClient(transport=httpx.MockTransport(server)) as http:
            coordinator = AsyncRefreshCoordinator(
                AsyncRequestExecutor(http, "https://api.test"), store
            )

            async def replay(descriptor: RequestDescriptor) -> Response:
                return _response(200, {"token": descriptor.bearer_token}, descriptor)

            result = await coordinator.recover(_unauthorized(), replay)

        assert result.body == {"token": "T2"}
        assert len(server.calls) == 1

    @pytest.mark.asyncio
    async def test_failed_renewal(self, store: CredentialStore) -> None:
        expired: list[SessionExpiredError] = []
        server = _RenewalServer(status=400, body={"msg": "bad"})
        async with httpx.AsyncClient(transport=httpx.MockTransport(server)) as http:
            coordinator = AsyncRefreshCoordinator(
                AsyncRequestExecutor(http, "https://api.test"),
                store,
                on_session_expired=expired.append,
            )
            with pytest.raises(SessionExpiredError):
                await coordinator.refresh()
        assert store.snapshot().is_empty
        assert len(expired) == 1

    @pytest.mark.asyncio
    async def test_redirect_loop_on_renewal_expires_session(self, store: CredentialStore) -> None:
        expired: list[SessionExpiredError] = []
        transport = httpx.MockTransport(_redirect_loop)
        async with httpx.AsyncClient(transport=transport, follow_redirects=True) as http:
            coordinator = AsyncRefreshCoordinator(
                AsyncRequestExecutor(http, "https://api.test"),
                store,
                on_session_expired=expired.append,
            )

            async def replay(descriptor: RequestDescriptor) -> Response:
                return _response(200, None, descriptor)

            with pytest.raises(SessionExpiredError, match="token renewal failed"):
                await coordinator.recover(_unauthorized(), replay)
        assert store.snapshot().is_empty
        assert len(expired) == 1

    @pytest.mark.asyncio
    async def test_late_401_after_expiry_does_not_notify_again(
        self, store: CredentialStore
    ) -> None:
        expired: list[SessionExpiredError] = []
        server = _RenewalServer(status=401, body={"msg": "refresh expired"})
        async with httpx.AsyncClient(transport=httpx.MockTransport(server)) as http:
            coordinator = AsyncRefreshCoordinator(
                AsyncRequestExecutor(http, "https://api.test"),
                store,
                on_session_expired=expired.append,
            )

            async def replay(descriptor: RequestDescriptor) -> Response:
                return _response(200, None, descriptor)

            for _ in range(2):
                with pytest.raises(SessionExpiredError):
                    await coordinator.recover(_unauthorized(token="T1"), replay)
        assert len(server.calls) == 1
        assert len(expired) == 1
