"""Shared utilities for logging and display formatting."""

__all__ = [
    "formatting",
    "logging",
]
