"""Init command -- create a profile for an API.

Implements the ``bearerkit init`` top-level command: builds a
:class:`~bearerkit.models.Profile` from the given base URL and token
endpoint paths, saves it, and pins it as the default in a project-local
``bearerkit.json``.
"""

from __future__ import annotations

import json
import re
from pathlib import Path

import typer

from bearerkit.output import error, info, success, suggest


def init_command(
    name: str = typer.Argument(help="Profile name."),
    base_url: str = typer.Option(..., "--base-url", "-u", help="API base URL."),
    login_path: str = typer.Option("/auth/jwt/login", "--login-path", help="Login endpoint."),
    refresh_path: str = typer.Option(
        "/auth/jwt/refresh", "--refresh-path", help="Token renewal endpoint."
    ),
    logout_path: str = typer.Option("/auth/jwt/logout", "--logout-path", help="Logout endpoint."),
    credential_store: str = typer.Option(
        "file", "--credential-store", help="Token storage: file or memory."
    ),
    timeout: float = typer.Option(30.0, "--timeout", help="Default request timeout in seconds."),
    max_retries: int = typer.Option(3, "--max-retries", help="Retries for network failures."),
) -> None:
    """Create a profile and make it the project default.

    Example::

        bearerkit init shop --base-url https://api.example.com
    """
    from bearerkit.config import profile_exists, save_profile
    from bearerkit.models import AuthEndpoints, Profile, RequestConfig

    if not re.fullmatch(r"[A-Za-z0-9_.-]+", name):
        error(f"Invalid profile name: {name!r} (use letters, digits, '.', '_' or '-')")
        raise typer.Exit(code=2)
    if credential_store not in ("file", "memory"):
        error("--credential-store must be 'file' or 'memory'")
        raise typer.Exit(code=2)

    if profile_exists(name):
        info(f'Profile "{name}" already exists and will be overwritten.')

    profile = Profile(
        name=name,
        base_url=base_url.rstrip("/"),
        auth=AuthEndpoints(
            login_path=login_path, refresh_path=refresh_path, logout_path=logout_path
        ),
        request=RequestConfig(timeout=timeout, max_retries=max_retries),
        credential_store=credential_store,
    )
    save_profile(profile)

    Path("bearerkit.json").write_text(
        json.dumps({"default_profile": name}, indent=2) + "\n", encoding="utf-8"
    )

    success(f'Profile "{name}" created.')
    suggest("Log in: bearerkit auth login --username USER")
