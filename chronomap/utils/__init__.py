"""Utility modules for chronomap."""

from chronomap.utils.logging import setup_logging

__all__ = [
    "setup_logging",
]
