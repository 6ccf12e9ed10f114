"""Canonical identifiers for user nodes."""

from __future__ import annotations

from ..config import get_settings


def base_uri() -> str:
    """Return the configured base uri, always ending with a slash."""
    base = get_settings().user_base_uri
    return base if base.endswith("/") else base + "/"


def uri_for(username: str) -> str:
    """Return the canonical uri identifying ``username``."""
    return base_uri() + username


def username_from(uri: str) -> str:
    """Return the owning username of a user uri (or of any resource below it)."""
    base = base_uri()
    if not uri.startswith(base):
        raise ValueError(f"not a user uri: {uri}")
    username = uri[len(base):].split("/", 1)[0]
    if not username:
        raise ValueError(f"user uri has no username: {uri}")
    return username
