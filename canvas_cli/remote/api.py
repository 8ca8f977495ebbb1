"""High-level operations used by the CLI commands.

Each call follows the same sequence: resolve the target remote, refresh
its cache if stale, then talk to the server and fold what came back into
the local index. When the remote cannot be reached, listing falls back
to whatever is cached. A failed auto-sync ping counts as unreachable, so
no second request waits out the full timeout.
"""

import logging
from typing import Optional

from canvas_cli.remote.client import RemoteClientFactory
from canvas_cli.remote.exceptions import RemoteNotFoundError, RemoteUnreachableError
from canvas_cli.remote.models import Remote, utcnow
from canvas_cli.remote.resolver import ResolvedResource, ResourceResolver
from canvas_cli.remote.store import RemoteStore
from canvas_cli.remote.sync import SYNCED, UNREACHABLE, SyncCoordinator

logger = logging.getLogger(__name__)


class CanvasApi:
    """Resolver, client factory and sync coordinator behind one interface."""

    def __init__(
        self,
        store: RemoteStore,
        clients: RemoteClientFactory,
        sync: SyncCoordinator,
    ):
        self.store = store
        self.clients = clients
        self.sync = sync

    def resolver(self) -> ResourceResolver:
        # Fresh session snapshot per call; another process may have rebound.
        return ResourceResolver(self.store, self.store.get_session())

    def resolve(self, token: str, container_type: str = "context") -> ResolvedResource:
        resolved = self.resolver().resolve(token, container_type)
        if self.store.get_remote(resolved.remote_id) is None:
            raise RemoteNotFoundError(
                f"Remote '{resolved.remote_id}' for '{token}' not found"
            )
        return resolved

    def current_remote(self) -> Optional[Remote]:
        remote_id = self.resolver().bound_remote()
        return self.store.get_remote(remote_id) if remote_id else None

    def _target_remote(self, remote_id: Optional[str]) -> str:
        if remote_id is None:
            return self.resolver().require_bound_remote()
        if self.store.get_remote(remote_id) is None:
            raise RemoteNotFoundError(f"Remote '{remote_id}' not found")
        return remote_id

    def list_contexts(self, remote_id: Optional[str] = None) -> dict[str, dict]:
        """Contexts of one remote keyed by ``remote_id:context_id``."""
        remote_id = self._target_remote(remote_id)
        outcome = self.sync.auto_sync(remote_id)
        if outcome in (SYNCED, UNREACHABLE):
            return self.store.get_contexts(remote_id)

        try:
            fetched = self.clients.get(remote_id).get_contexts()
        except RemoteUnreachableError as e:
            logger.debug(f"Listing cached contexts for '{remote_id}': {e}")
            return self.store.get_contexts(remote_id)

        self.store.upsert_contexts(
            {f"{remote_id}:{c['id']}": c for c in fetched if c.get("id")}
        )
        return self.store.get_contexts(remote_id)

    def list_workspaces(self, remote_id: Optional[str] = None) -> dict[str, dict]:
        """Workspaces of one remote keyed by ``remote_id:workspace_id``."""
        remote_id = self._target_remote(remote_id)
        outcome = self.sync.auto_sync(remote_id)
        if outcome in (SYNCED, UNREACHABLE):
            return self.store.get_workspaces(remote_id)

        try:
            fetched = self.clients.get(remote_id).get_workspaces()
        except RemoteUnreachableError as e:
            logger.debug(f"Listing cached workspaces for '{remote_id}': {e}")
            return self.store.get_workspaces(remote_id)

        records = {}
        for workspace in fetched:
            workspace_id = workspace.get("id") or workspace.get("name")
            if workspace_id:
                records[f"{remote_id}:{workspace_id}"] = workspace
        self.store.upsert_workspaces(records)
        return self.store.get_workspaces(remote_id)

    def cached_contexts(self, remote_id: Optional[str] = None) -> dict[str, dict]:
        return self.store.get_contexts(remote_id)

    def cached_workspaces(self, remote_id: Optional[str] = None) -> dict[str, dict]:
        return self.store.get_workspaces(remote_id)

    def get_context(self, token: str) -> tuple[ResolvedResource, dict]:
        resolved = self.resolve(token, "context")
        try:
            record = self.clients.get(resolved.remote_id).get_context(
                resolved.resource_id
            )
        except RemoteUnreachableError:
            cached = self.store.get_contexts(resolved.remote_id).get(resolved.key)
            if cached is None:
                raise
            logger.debug(f"Using cached context for '{resolved.key}'")
            return resolved, cached

        self.store.update_context(resolved.key, record)
        return resolved, record

    def get_workspace(self, token: str) -> tuple[ResolvedResource, dict]:
        resolved = self.resolve(token, "workspace")
        try:
            record = self.clients.get(resolved.remote_id).get_workspace(
                resolved.resource_id
            )
        except RemoteUnreachableError:
            cached = self.store.get_workspaces(resolved.remote_id).get(resolved.key)
            if cached is None:
                raise
            logger.debug(f"Using cached workspace for '{resolved.key}'")
            return resolved, cached

        self.store.update_workspace(resolved.key, record)
        return resolved, record

    def bind_context(self, token: str) -> ResolvedResource:
        resolved = self.resolve(token, "context")
        self.store.update_session(bound_context=resolved.key, bound_at=utcnow())
        logger.debug(f"Bound context '{resolved.key}'")
        return resolved

    def bind_workspace(self, token: str) -> ResolvedResource:
        resolved = self.resolve(token, "workspace")
        self.store.update_session(default_workspace=resolved.key, bound_at=utcnow())
        logger.debug(f"Bound default workspace '{resolved.key}'")
        return resolved

    def current_context(self) -> tuple[Optional[str], Optional[dict]]:
        """The bound context key and its cached record, if any."""
        key = self.store.get_session().bound_context
        if not key:
            return None, None
        return key, self.store.get_contexts().get(key)
