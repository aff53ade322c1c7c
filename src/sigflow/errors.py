"""Sigflow error hierarchy.

All sigflow-specific errors inherit from SigflowError for easy catching.
"""

from __future__ import annotations


class SigflowError(Exception):
    """Base error for all sigflow operations."""


class CircularDependencyError(SigflowError):
    """A write re-entered a subscriber that is still updating for the same source.

    Raised from ``Tracker.trigger`` and therefore from any ``.value = ...``
    write. Never isolated or logged away: it always reaches the writer.
    """

    def __init__(self, target: object, key: str) -> None:
        self.target = target
        self.key = key
        super().__init__(
            f"Circular dependency detected for {type(target).__name__}.{key}"
        )
