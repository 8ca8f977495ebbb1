"""
Exceptions for remote addressing, the local index and sync.
"""


class CanvasError(Exception):
    """Base exception for canvas client operations."""


class InvalidAddressError(CanvasError):
    """Raised when a string is not a valid ``user@remote:resource`` address."""


class InvalidAliasError(CanvasError):
    """Raised when an alias name is malformed or reserved."""


class UnboundRemoteError(CanvasError):
    """Raised when a bare resource id is used with no default remote bound."""


class RemoteNotFoundError(CanvasError):
    """Raised when an address or bind target names an unknown remote."""


class RemoteExistsError(CanvasError):
    """Raised when adding or renaming onto an existing remote identifier."""


class RemoteUnreachableError(CanvasError):
    """Raised on network errors or timeouts talking to a known remote."""


class RemoteApiError(CanvasError):
    """Raised when a remote answers with an error status or envelope."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class CacheCorruptionError(CanvasError):
    """Raised when writing one of the local index files fails."""
