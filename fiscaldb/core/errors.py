"""Exceptions raised by the fiscal-year database router."""

from __future__ import annotations

__all__ = ["RouterError", "InvalidLabel", "ConnectionFailure", "AttachLimitReached", "ConnectionClosed"]


class RouterError(Exception):
    """Base class for router errors."""


class InvalidLabel(RouterError, ValueError):
    """Raised when a fiscal-year label is not of the form ``<year>_<year+1>``."""

    def __init__(self, label: object) -> None:
        super().__init__(f"Invalid fiscal year label: {label!r}")
        self.label = label


class ConnectionFailure(RouterError):
    """Raised when the shared connection cannot be opened or a yearly database attached."""


class AttachLimitReached(ConnectionFailure):
    """Raised when the shared connection cannot hold another attached fiscal year."""


class ConnectionClosed(RouterError):
    """Raised when the router or one of its handles is used after shutdown."""
