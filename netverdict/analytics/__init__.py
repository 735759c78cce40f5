"""Analytics utilities for explaining firewall decisions."""

from .explain import Explanation, explain_event

__all__ = [
    "Explanation",
    "explain_event",
]
