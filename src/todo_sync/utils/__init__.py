"""Shared helpers for todo-sync."""

from .datetime import now_utc, ensure_aware, to_iso_string, parse_iso

__all__ = ["now_utc", "ensure_aware", "to_iso_string", "parse_iso"]
