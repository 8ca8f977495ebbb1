"""Remote addressing and the local index.

This package provides:
- Address grammar: parsing and building ``user@remote:resource/path``
- RemoteStore: locked JSON maps for remotes, caches, aliases, session
- ResourceResolver: tokens to (remote, resource) targets
- RemoteApiClient / RemoteClientFactory: per-remote HTTP clients
- SyncCoordinator: staleness checks and cache reconciliation

Only the dependency-free layers are re-exported here; import the client,
resolver and sync modules directly.
"""

from canvas_cli.remote.address import (
    Address,
    RemoteIdentifier,
    construct_address,
    construct_remote_identifier,
    parse_address,
    parse_remote_identifier,
    require_address,
)
from canvas_cli.remote.exceptions import (
    CacheCorruptionError,
    CanvasError,
    InvalidAddressError,
    InvalidAliasError,
    RemoteApiError,
    RemoteExistsError,
    RemoteNotFoundError,
    RemoteUnreachableError,
    UnboundRemoteError,
)
from canvas_cli.remote.models import Alias, Remote, RemoteAuth, Session
from canvas_cli.remote.store import JsonMapFile, RemoteStore

__all__ = [
    # Address grammar
    "Address",
    "RemoteIdentifier",
    "construct_address",
    "construct_remote_identifier",
    "parse_address",
    "parse_remote_identifier",
    "require_address",
    # Records
    "Alias",
    "Remote",
    "RemoteAuth",
    "Session",
    # Local index
    "JsonMapFile",
    "RemoteStore",
    # Exceptions
    "CanvasError",
    "InvalidAddressError",
    "InvalidAliasError",
    "UnboundRemoteError",
    "RemoteNotFoundError",
    "RemoteExistsError",
    "RemoteUnreachableError",
    "RemoteApiError",
    "CacheCorruptionError",
]
