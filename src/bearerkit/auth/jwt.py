"""Unverified JWT claim inspection for expiry bookkeeping.

Signatures are never checked here; the server does that. These helpers only
read the ``exp`` claim so the client can renew a token shortly before it
expires instead of waiting for a ``401``.
"""

from __future__ import annotations

import base64
import json
import time
from typing import Any, Optional


def decode_claims(token: str) -> Optional[dict[str, Any]]:
    """Return the payload claims of *token*, or ``None`` if it is not a JWT."""
    parts = token.split(".")
    if len(parts) != 3:
        return None
    payload = parts[1]
    payload += "=" * (-len(payload) % 4)
    try:
        claims = json.loads(base64.urlsafe_b64decode(payload.encode("ascii")))
    except (ValueError, UnicodeEncodeError):
        return None
    return claims if isinstance(claims, dict) else None


def expires_at(token: str) -> Optional[float]:
    """The ``exp`` claim as a POSIX timestamp, if present."""
    claims = decode_claims(token)
    if claims is None:
        return None
    exp = claims.get("exp")
    if isinstance(exp, bool) or not isinstance(exp, (int, float)):
        return None
    return float(exp)


def seconds_remaining(token: str, now: Optional[float] = None) -> Optional[float]:
    """Seconds until *token* expires (negative once expired), or ``None`` if unknown."""
    exp = expires_at(token)
    if exp is None:
        return None
    return exp - (time.time() if now is None else now)


def is_expiring_soon(token: str, margin: float = 60, now: Optional[float] = None) -> bool:
    """Whether *token* expires within *margin* seconds.

    Tokens without a readable ``exp`` claim are treated as not expiring.
    """
    remaining = seconds_remaining(token, now)
    return remaining is not None and remaining <= margin
