"""Shared helpers for Shophook models."""

from __future__ import annotations

from datetime import UTC, datetime
from uuid import uuid4

# Maximum stored length of a receiver's response body
MAX_RESPONSE_BODY_CHARS = 2000

# Maximum stored length of an error message
MAX_ERROR_CHARS = 1000


def generate_id(prefix: str) -> str:
    """Generate a unique ID with the given prefix.

    Examples:
        generate_id("whk") -> "whk_a1b2c3d4e5f6"
        generate_id("dlv") -> "dlv_a1b2c3d4e5f6"
    """
    return f"{prefix}_{uuid4().hex[:12]}"


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def truncate(value: str | None, max_chars: int) -> str | None:
    """Cut a string down to max_chars, passing None through."""
    if value is None:
        return None
    return value[:max_chars]
