"""Exception hierarchy for bearerkit.

All exceptions inherit from :class:`BearerkitError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`bearerkit.exit_codes`.
The top-level error handler in :func:`bearerkit.app.main` catches
``BearerkitError`` and exits with the appropriate code, while unexpected
exceptions produce a crash log and exit with :data:`EXIT_GENERIC_FAILURE`.

Request failures share the :class:`ClientError` base so that interceptors
can tell them apart from programming errors. Only :class:`TransportError`
subclasses are ever retried by :class:`~bearerkit.transport.retry.RetryPolicy`.

Subclass hierarchy::

    BearerkitError (exit 1)
    +-- InvalidUsageError        (exit 2)
    +-- ConfigError              (exit 1)
    +-- InterceptorError         (exit 10)
    +-- ClientError              (exit 1)
        +-- TransportError       (exit 6)
        |   +-- NetworkError     (exit 6)
        |   +-- TimeoutError_    (exit 6)
        +-- HttpError            (exit 3/4/5/7, from the status code)
        +-- SessionExpiredError  (exit 3)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional

from bearerkit.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_CLIENT_ERROR,
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INTERCEPTOR_ERROR,
    EXIT_INVALID_USAGE,
    EXIT_NOT_FOUND,
    EXIT_SERVER_ERROR,
)

if TYPE_CHECKING:
    from bearerkit.transport.request import RequestDescriptor, Response


class BearerkitError(Exception):
    """Base exception for all bearerkit errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`bearerkit.exit_codes`. The entry point catches
    this exception type and calls ``sys.exit(exc.exit_code)``.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class InvalidUsageError(BearerkitError):
    """Raised for invalid CLI arguments or malformed request descriptors."""

    exit_code = EXIT_INVALID_USAGE


class ConfigError(BearerkitError):
    """Raised for configuration problems (missing profiles, invalid JSON, bad secret sources)."""

    exit_code = EXIT_GENERIC_FAILURE


class InterceptorError(BearerkitError):
    """Raised when an interceptor fails with something other than a :class:`ClientError`.

    The original exception is chained as ``__cause__``.

    Args:
        interceptor: Name of the interceptor that failed.
        message: Description of the failure.
    """

    exit_code = EXIT_INTERCEPTOR_ERROR

    def __init__(self, interceptor: str, message: str) -> None:
        super().__init__(f"Interceptor '{interceptor}' failed: {message}")
        self.interceptor = interceptor


class ClientError(BearerkitError):
    """Base class for failures of a single outbound request.

    Args:
        message: Human-readable error description.
        request: The descriptor that was being executed, if known.
    """

    def __init__(
        self,
        message: str,
        request: Optional[RequestDescriptor] = None,
        exit_code: int | None = None,
    ) -> None:
        super().__init__(message, exit_code)
        self.request = request


class TransportError(ClientError):
    """The request never produced an HTTP response. Retryable."""

    exit_code = EXIT_CONNECTION_ERROR


class NetworkError(TransportError):
    """No server was reached (DNS failure, connection refused, reset)."""


class TimeoutError_(TransportError):
    """The request deadline elapsed before a response arrived.

    Named with a trailing underscore to avoid shadowing the built-in
    ``TimeoutError``.
    """


class HttpError(ClientError):
    """The server answered with a status code of 400 or above.

    The ``exit_code`` is derived from the status: 401/403 map to
    :data:`EXIT_AUTH_FAILURE`, 404 to :data:`EXIT_NOT_FOUND`, 5xx to
    :data:`EXIT_SERVER_ERROR`, any other 4xx to :data:`EXIT_CLIENT_ERROR`.

    Args:
        response: The received :class:`~bearerkit.transport.request.Response`.
        message: Optional override; by default built from the status and
            the server's error message, if any.
    """

    def __init__(self, response: Response, message: Optional[str] = None) -> None:
        self.status = response.status_code
        self.body: Any = response.body
        self.response = response
        super().__init__(
            message or _format_http_message(response),
            request=response.request,
            exit_code=_exit_code_for_status(response.status_code),
        )


class SessionExpiredError(ClientError):
    """Token renewal failed. Both credentials were cleared; log in again."""

    exit_code = EXIT_AUTH_FAILURE


def _exit_code_for_status(status: int) -> int:
    if status in (401, 403):
        return EXIT_AUTH_FAILURE
    if status == 404:
        return EXIT_NOT_FOUND
    if status >= 500:
        return EXIT_SERVER_ERROR
    return EXIT_CLIENT_ERROR


def _format_http_message(response: Response) -> str:
    """Build ``HTTP <status>: <detail>`` from the common error body shapes."""
    body = response.body
    detail = ""
    if isinstance(body, dict):
        for key in ("msg", "message", "error", "detail"):
            value = body.get(key)
            if value:
                detail = str(value)
                break
    elif isinstance(body, str):
        detail = body[:200]

    prefix = f"HTTP {response.status_code}"
    return f"{prefix}: {detail}" if detail else prefix
