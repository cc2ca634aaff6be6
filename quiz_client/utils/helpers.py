"""
Common utility functions.
"""

import json
from typing import Any, Dict


def format_time(seconds: float | None) -> str:
    """
    Format a duration as M:SS for countdown and result display.

    Args:
        seconds: Duration in seconds (None renders as "--:--")

    Returns:
        Formatted string
    """
    if seconds is None:
        return "--:--"
    total = max(0, int(seconds))
    minutes, secs = divmod(total, 60)
    return f"{minutes}:{secs:02d}"


def format_json(data: Dict[str, Any], indent: int = 2) -> str:
    """
    Format dictionary as pretty JSON string.

    Args:
        data: Dictionary to format
        indent: Indentation spaces

    Returns:
        Formatted JSON string
    """
    return json.dumps(data, indent=indent, ensure_ascii=False, default=str)


def backoff_delay(attempt: int, base: float, cap: float) -> float:
    """Exponential backoff delay for the given 1-based retry number, capped."""
    return min(cap, base * (2 ** (attempt - 1)))
