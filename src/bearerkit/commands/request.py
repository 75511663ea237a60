"""Request command -- send one authenticated request and print the body.

Implements ``bearerkit request METHOD PATH``. The request goes through the
full client stack: bearer injection, retry on network failures, and
transparent token renewal on ``401``.
"""

from __future__ import annotations

import json
from typing import Any, Optional

import typer

from bearerkit.commands import _session
from bearerkit.exceptions import InvalidUsageError
from bearerkit.output import format_response

_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS")


def request_command(
    ctx: typer.Context,
    method: str = typer.Argument(help="HTTP method."),
    path: str = typer.Argument(help="Path relative to the profile base URL."),
    query: Optional[list[str]] = typer.Option(
        None, "--query", "-q", help="Query parameter as key=value (repeatable)."
    ),
    header: Optional[list[str]] = typer.Option(
        None, "--header", "-H", help="Header as 'Name: value' (repeatable)."
    ),
    body: Optional[str] = typer.Option(
        None, "--body", "-d", help="Request body; sent as JSON when it parses as JSON."
    ),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Timeout in seconds."),
    data_only: bool = typer.Option(
        False, "--data", help="Print only the envelope's data field."
    ),
) -> None:
    """Send an authenticated request.

    Example::

        bearerkit request GET /api/v1/shops -q page=2 -q size=20
        bearerkit request POST /api/v1/tasks --body '{"name": "nightly"}'
    """
    with _session.exit_on_error():
        verb = method.upper()
        if verb not in _METHODS:
            raise InvalidUsageError(f"Unsupported method: {method}")
        params = parse_pairs(query or [], "=", "--query")
        headers = parse_pairs(header or [], ":", "--header")
        json_body, content = parse_body(body)

        profile = _session.active_profile(ctx)
        with _session.make_client(profile) as client:
            if client.store.refresh_token:
                client.ensure_fresh()
            response = client.request(
                verb,
                path,
                params=params,
                headers=headers,
                json_body=json_body,
                content=content,
                timeout=timeout,
            )
        format_response(response.unwrap() if data_only else response.body)


def parse_pairs(items: list[str], separator: str, option: str) -> dict[str, str]:
    """Split ``key<sep>value`` strings into a dict.

    Raises:
        InvalidUsageError: If an item has no separator or an empty key.
    """
    result: dict[str, str] = {}
    for item in items:
        key, sep, value = item.partition(separator)
        if not sep or not key.strip():
            raise InvalidUsageError(f"Invalid {option} value {item!r}: expected key{separator}value")
        result[key.strip()] = value.strip()
    return result


def parse_body(body: Optional[str]) -> tuple[Any, Optional[str]]:
    """Return ``(json_body, content)``: parsed JSON when possible, else the raw string.

    A JSON ``null`` body is sent as raw content, since a ``None`` json body
    means no body at all.
    """
    if body is None:
        return None, None
    try:
        parsed = json.loads(body)
    except (json.JSONDecodeError, TypeError):
        return None, body
    if parsed is None:
        return None, body
    return parsed, None
