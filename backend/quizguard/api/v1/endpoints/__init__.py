"""API endpoints package."""

from . import (
    history,
    proctoring,
)

__all__ = [
    "history",
    "proctoring",
]
