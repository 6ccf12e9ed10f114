"""Credential helpers."""
