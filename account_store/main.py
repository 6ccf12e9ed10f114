"""Wiring of the account store for the running process."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from .config import Settings, get_settings
from .engine import build_query_engine
from .repository import AccountRepository

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(settings: Settings | None = None) -> None:
    """Install a root handler and apply the configured level to the package loggers."""
    settings = settings or get_settings()
    logging.basicConfig(format=LOG_FORMAT)
    logging.getLogger("account_store").setLevel(settings.log_level)


@contextmanager
def open_account_repository(settings: Settings | None = None) -> Iterator[AccountRepository]:
    """Initialise the configured query engine for the lifetime of the block.

    User uris are derived from the process settings (``USER_BASE_URI``), so
    ``settings`` must not carry a different base uri.
    """
    settings = settings or get_settings()
    process_base_uri = get_settings().user_base_uri
    if settings.user_base_uri != process_base_uri:
        raise ValueError(
            f"user_base_uri {settings.user_base_uri!r} differs from USER_BASE_URI {process_base_uri!r}"
        )
    configure_logging(settings)
    engine = build_query_engine(settings)
    try:
        yield AccountRepository(engine)
    finally:
        engine.close()
