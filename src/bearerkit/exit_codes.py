"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~bearerkit.exceptions.BearerkitError` subclass.
Shell wrappers can inspect the exit code to tell an expired session apart
from an unreachable server without parsing stderr.

Example::

    $ bearerkit request GET /api/v1/shops
    $ echo $?
    3   # EXIT_AUTH_FAILURE -- session expired, log in again
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or missing required parameters."""

EXIT_AUTH_FAILURE = 3
"""Authentication failed or the session expired (HTTP 401/403, failed renewal)."""

EXIT_NOT_FOUND = 4
"""The requested resource was not found (HTTP 404)."""

EXIT_SERVER_ERROR = 5
"""The remote API returned an HTTP 5xx server error."""

EXIT_CONNECTION_ERROR = 6
"""A network-level error occurred (timeout, DNS failure, connection refused)."""

EXIT_CLIENT_ERROR = 7
"""The remote API rejected the request with another HTTP 4xx status."""

EXIT_INTERCEPTOR_ERROR = 10
"""An interceptor raised an unexpected exception."""
