"""Turn user-typed tokens into (remote, resource) targets.

Resolution order:

1. Alias lookup, one level only. An alias whose stored value is itself
   an alias name is *not* followed; that value is treated as a literal.
2. Full address parse: ``user@remote:resource[/path]``.
3. Bare resource id on the session's bound remote.
4. No bound remote: UnboundRemoteError.

Aliases come first because their stored value is a full address. Bare
tokens come last so a resource name that happens to look like a remote
never silently routes somewhere else.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from canvas_cli.remote.address import parse_address
from canvas_cli.remote.exceptions import InvalidAddressError, UnboundRemoteError
from canvas_cli.remote.models import Session
from canvas_cli.remote.store import RemoteStore

logger = logging.getLogger(__name__)

CONTAINER_TYPES = ("context", "workspace")


@dataclass(frozen=True)
class ResolvedResource:
    """Where a token points.

    ``container_type`` is always the caller's explicit choice; it is never
    inferred from the resource id.
    """

    token: str
    remote_id: str
    resource_id: str
    container_type: str = "context"
    path: str = ""
    alias: Optional[str] = None

    @property
    def key(self) -> str:
        """Local index key for this resource."""
        return f"{self.remote_id}:{self.resource_id}"


class ResourceResolver:
    """Resolves tokens against a store's aliases and an explicit session.

    Args:
        store: Local index providing aliases and the remote map
        session: Session snapshot to resolve bare tokens against. Loaded
            from the store when omitted.
    """

    def __init__(self, store: RemoteStore, session: Session | None = None):
        self.store = store
        self.session = session if session is not None else store.get_session()

    def bound_remote(self) -> Optional[str]:
        """The session's remote, or None if unset or no longer configured."""
        remote_id = self.session.bound_remote
        if not remote_id:
            return None
        if self.store.get_remote(remote_id) is None:
            logger.debug(f"Session is bound to unknown remote '{remote_id}', ignoring")
            return None
        return remote_id

    def require_bound_remote(self) -> str:
        remote_id = self.bound_remote()
        if not remote_id:
            raise UnboundRemoteError(
                "No default remote bound. Use: canvas remote bind <user@remote>"
            )
        return remote_id

    def resolve(self, token: str, container_type: str = "context") -> ResolvedResource:
        if container_type not in CONTAINER_TYPES:
            raise ValueError(f"Unknown container type: {container_type}")
        if not token or not token.strip():
            raise InvalidAddressError("A resource id, alias, or address is required")

        alias = self.store.get_alias(token)
        target = alias.address if alias else token

        parsed = parse_address(target)
        if parsed is not None:
            return ResolvedResource(
                token=token,
                remote_id=parsed.remote_id,
                resource_id=parsed.resource,
                container_type=container_type,
                path=parsed.path,
                alias=alias.name if alias else None,
            )

        remote_id = self.bound_remote()
        if not remote_id:
            raise UnboundRemoteError(
                f"Cannot resolve '{token}': no default remote bound. "
                "Use: canvas remote bind <user@remote> or provide a full address"
            )

        logger.debug(f"Resolved bare token '{target}' on bound remote '{remote_id}'")
        return ResolvedResource(
            token=token,
            remote_id=remote_id,
            resource_id=target,
            container_type=container_type,
            alias=alias.name if alias else None,
        )
