"""Centralized ID generation utilities for the speech coach."""

import uuid


def generate_session_id(prefix: str = "session") -> str:
    """Generate a unique practice-session ID.

    Args:
        prefix: Optional prefix for the ID (e.g., 'session', 'ws')

    Returns:
        A short 8-character hex string, optionally prefixed with hyphen separator.
    """
    unique_part = uuid.uuid4().hex[:8]
    if prefix:
        return f"{prefix}-{unique_part}"
    return unique_part
