"""Exception types raised by the synchronization subsystem."""

from __future__ import annotations


class LitewatchError(RuntimeError):
    """Base class for all litewatch failures."""


class InvalidIdentifierError(LitewatchError):
    """Raised when a table name contains characters outside ``[A-Za-z0-9_]``."""


class TableNotFoundError(LitewatchError):
    """Raised when schema introspection yields no columns for a table."""


class NoActiveDataSourceError(LitewatchError):
    """Raised when a request arrives while no database file is connected."""


class QueryFailedError(LitewatchError):
    """Raised when the underlying SQLite read fails."""


class SwitchFailedError(LitewatchError):
    """Raised when switching the active database file fails."""


class DirectoryNotFoundError(SwitchFailedError):
    """Raised when the target file's parent directory does not exist."""


class NoServerReachableError(LitewatchError):
    """Raised when every discovery candidate failed to handshake."""


class TransportLostError(LitewatchError):
    """Raised when a request is issued on a dropped connection."""


class PortUnavailableError(LitewatchError):
    """Raised when no port in the search range could be bound."""


__all__ = [
    "DirectoryNotFoundError",
    "InvalidIdentifierError",
    "LitewatchError",
    "NoActiveDataSourceError",
    "NoServerReachableError",
    "PortUnavailableError",
    "QueryFailedError",
    "SwitchFailedError",
    "TableNotFoundError",
    "TransportLostError",
]
