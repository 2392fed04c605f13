"""Utility helpers for task priorities."""
from __future__ import annotations

from typing import Tuple

# Limited to what the remote importance scale can express, plus "none".
PRIORITY_LEVELS: Tuple[str, ...] = ("none", "low", "medium", "high")

DEFAULT_PRIORITY = "none"


def normalize_priority(value: str | None) -> str:
    """Map external values onto the supported priority names."""
    if value is None:
        return DEFAULT_PRIORITY
    lowered = str(value).strip().lower()
    if lowered in PRIORITY_LEVELS:
        return lowered
    return DEFAULT_PRIORITY


__all__ = ["DEFAULT_PRIORITY", "PRIORITY_LEVELS", "normalize_priority"]
