"""Helpers shared by commands: profile resolution, client construction, error exits."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

import typer

from bearerkit.client import SyncClient
from bearerkit.exceptions import BearerkitError, ConfigError, SessionExpiredError
from bearerkit.models import Profile
from bearerkit.output import error, suggest


def active_profile(ctx: typer.Context) -> Profile:
    """Resolve the profile selected by ``--profile`` / env / project / global config.

    Raises:
        ConfigError: If no profile can be resolved.
    """
    from bearerkit.config import resolve_config

    obj = ctx.obj or {}
    _, profile = resolve_config(cli_profile=obj.get("profile"), cli_base_url=obj.get("base_url"))
    if profile is None:
        raise ConfigError("No profile configured. Run: bearerkit init NAME --base-url URL")
    return profile


def session_expired_hint(exc: SessionExpiredError) -> None:
    suggest("Log in again: bearerkit auth login --username USER")


def make_client(profile: Profile) -> SyncClient:
    """Build the client every command uses. Tests replace this function."""
    return SyncClient(profile, on_session_expired=session_expired_hint)


@contextmanager
def exit_on_error() -> Iterator[None]:
    """Print a :class:`BearerkitError` and exit with its code."""
    try:
        yield
    except BearerkitError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None
