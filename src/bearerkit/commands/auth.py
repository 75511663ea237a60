"""Auth commands -- log in, log out, inspect and renew the session.

Provides the ``bearerkit auth`` sub-command group. Tokens are kept in the
profile's credential store; renewals go through the same single-flight
coordinator the client uses for ``401`` recovery.

Typical workflow::

    bearerkit auth login --username alice --password-source env:SHOP_PASSWORD
    bearerkit auth status
    bearerkit auth refresh
    bearerkit auth logout
"""

from __future__ import annotations

import typer

from bearerkit.commands import _session
from bearerkit.output import get_output, info, print_table, success

auth_app = typer.Typer(no_args_is_help=True)


@auth_app.command("login")
def auth_login(
    ctx: typer.Context,
    username: str = typer.Option(..., "--username", "-u", help="Account name."),
    password_source: str = typer.Option(
        "prompt",
        "--password-source",
        "-s",
        help="Password source: env:VAR, file:/path, or prompt.",
    ),
) -> None:
    """Log in with a username and password and store the token pair."""
    from bearerkit.config import resolve_secret

    with _session.exit_on_error():
        profile = _session.active_profile(ctx)
        password = resolve_secret(password_source)
        with _session.make_client(profile) as client:
            pair = client.login(username, password)
    success(f'Logged in to "{profile.name}" as {username}.')
    if pair.refresh is None:
        info("The server returned no refresh token; the session cannot be renewed.")


@auth_app.command("logout")
def auth_logout(ctx: typer.Context) -> None:
    """Log out and forget the stored tokens."""
    with _session.exit_on_error():
        profile = _session.active_profile(ctx)
        with _session.make_client(profile) as client:
            client.logout()
    success(f'Logged out of "{profile.name}".')


@auth_app.command("status")
def auth_status(ctx: typer.Context) -> None:
    """Show whether tokens are stored and how long the access token stays valid."""
    from bearerkit.auth import jwt
    from bearerkit.auth.credential_store import CredentialStore

    with _session.exit_on_error():
        profile = _session.active_profile(ctx)
        pair = CredentialStore.for_profile(profile).snapshot()

    remaining = jwt.seconds_remaining(pair.access) if pair.access else None
    if remaining is None:
        expires = "unknown" if pair.access else "-"
    elif remaining <= 0:
        expires = "expired"
    else:
        expires = f"{int(remaining)}s"

    print_table(
        ["profile", "access_token", "expires_in", "refresh_token"],
        [[
            profile.name,
            "present" if pair.access else "missing",
            expires,
            "present" if pair.refresh else "missing",
        ]],
        title="Session",
    )


@auth_app.command("refresh")
def auth_refresh(ctx: typer.Context) -> None:
    """Renew the access token now."""
    from bearerkit.auth import jwt

    with _session.exit_on_error():
        profile = _session.active_profile(ctx)
        with _session.make_client(profile) as client:
            token = client.refresh_session()
    remaining = jwt.seconds_remaining(token)
    suffix = f" (valid for {int(remaining)}s)" if remaining is not None and remaining > 0 else ""
    success(f"Access token renewed{suffix}.")
    get_output().debug(f"Profile: {profile.name}")
