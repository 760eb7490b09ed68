"""Central error types used across the application."""

from __future__ import annotations


class RunFileError(RuntimeError):
    """Raised when a run file cannot be read, parsed, or written."""


class ConfigError(RuntimeError):
    """Raised when the action-binding config is present but unusable."""


__all__ = [
    "ConfigError",
    "RunFileError",
]
