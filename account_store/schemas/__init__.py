"""Shared schema exports."""

from .account import AccountProfile

__all__ = ["AccountProfile"]
