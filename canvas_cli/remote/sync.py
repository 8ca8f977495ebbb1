"""Staleness checks and cache reconciliation against remotes.

A remote's cache moves through three states:

    unsynced (last_synced is None) -> fresh -> stale -> fresh ...

Reconciliation is a full fetch-and-replace per resource kind: every
fetched record is upserted under ``remote_id:resource_id`` and every
other cached entry for that remote is deleted. The replace runs inside
one locked read-merge-write of the index file, so it diffs against the
latest on-disk state, not a snapshot taken before the fetch.

Sync never blocks a command. Auto-sync failures are logged at debug
level and the command continues with whatever is cached.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Optional

from canvas_cli.config import CliConfig
from canvas_cli.remote.client import RemoteClientFactory
from canvas_cli.remote.exceptions import (
    CanvasError,
    RemoteApiError,
    RemoteNotFoundError,
    RemoteUnreachableError,
)
from canvas_cli.remote.models import Remote, utcnow
from canvas_cli.remote.store import RemoteStore

logger = logging.getLogger(__name__)

UNSYNCED = "unsynced"
FRESH = "fresh"
STALE = "stale"

# Outcomes of SyncCoordinator.auto_sync.
SYNCED = "synced"
SKIPPED = "skipped"
UNREACHABLE = "unreachable"
FAILED = "failed"


@dataclass
class KindSyncResult:
    """Outcome of reconciling one resource kind for one remote."""

    kind: str
    fetched: int = 0
    removed: list[str] = field(default_factory=list)
    error: Optional[str] = None
    attempted: bool = True

    @property
    def succeeded(self) -> bool:
        return self.attempted and self.error is None


@dataclass
class SyncResult:
    """Outcome of one reconciliation cycle."""

    remote_id: str
    workspaces: KindSyncResult = field(
        default_factory=lambda: KindSyncResult("workspaces", attempted=False)
    )
    contexts: KindSyncResult = field(
        default_factory=lambda: KindSyncResult("contexts", attempted=False)
    )
    synced_at: Optional[datetime] = None
    error: Optional[str] = None

    @property
    def kinds(self) -> list[KindSyncResult]:
        return [self.workspaces, self.contexts]

    @property
    def succeeded(self) -> bool:
        """True when at least one kind reconciled."""
        return any(kind.succeeded for kind in self.kinds)


def _workspace_id(record: dict) -> Optional[str]:
    return record.get("id") or record.get("name")


def _context_id(record: dict) -> Optional[str]:
    return record.get("id")


class SyncCoordinator:
    """Decides when a remote's cache is stale and reconciles it.

    Args:
        store: Local index
        clients: Per-remote client factory
        config: CLI config providing ``sync.enabled`` and the threshold
        now: Clock, injectable for tests
    """

    def __init__(
        self,
        store: RemoteStore,
        clients: RemoteClientFactory,
        config: CliConfig,
        now: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.clients = clients
        self.config = config
        self.now = now

    @property
    def stale_threshold(self) -> timedelta:
        return timedelta(minutes=self.config.stale_threshold_minutes)

    def freshness(self, remote: Remote) -> str:
        if remote.last_synced is None:
            return UNSYNCED
        if self.now() - remote.last_synced >= self.stale_threshold:
            return STALE
        return FRESH

    def needs_sync(self, remote: Remote) -> bool:
        return self.freshness(remote) != FRESH

    def is_remote_reachable(self, remote_id: str) -> bool:
        """Cheap health probe with the short ping timeout."""
        try:
            self.clients.get(remote_id).ping(timeout=self.config.ping_timeout)
            return True
        except CanvasError as e:
            logger.debug(f"Remote '{remote_id}' is not reachable: {e}")
            return False

    def auto_sync(self, remote_id: str) -> str:
        """Reconcile ``remote_id`` if sync is enabled and its cache is stale.

        Returns one of SYNCED, SKIPPED (disabled, unknown or fresh),
        UNREACHABLE (the ping failed) or FAILED. Never raises for sync
        problems.
        """
        if not self.config.sync_enabled:
            return SKIPPED

        remote = self.store.get_remote(remote_id)
        if remote is None:
            return SKIPPED

        state = self.freshness(remote)
        if state == FRESH:
            return SKIPPED

        if state == UNSYNCED:
            logger.debug(f"Remote '{remote_id}' has never been synced, syncing")
        else:
            age = self.now() - remote.last_synced
            logger.debug(
                f"Remote '{remote_id}' last synced {int(age.total_seconds() // 60)} minutes ago, syncing"
            )

        if not self.is_remote_reachable(remote_id):
            return UNREACHABLE

        try:
            result = self.sync_remote(remote_id)
        except CanvasError as e:
            logger.debug(f"Auto-sync failed for remote '{remote_id}': {e}")
            return FAILED
        return SYNCED if result.succeeded else FAILED

    def check_and_auto_sync(self, remote_id: str) -> bool:
        """True if a stale cache was reconciled and at least one kind succeeded."""
        return self.auto_sync(remote_id) == SYNCED

    def sync_remote(
        self, remote_id: str, contexts: bool = True, workspaces: bool = True
    ) -> SyncResult:
        """Full reconciliation, regardless of staleness.

        A fetch failure for one kind does not stop the other. The remote's
        ``last_synced`` moves forward if any kind succeeded.

        Raises:
            RemoteNotFoundError: Unknown remote
            CacheCorruptionError: Committing to the local index failed
        """
        if self.store.get_remote(remote_id) is None:
            raise RemoteNotFoundError(f"Remote '{remote_id}' not found")

        client = self.clients.get(remote_id)
        result = SyncResult(remote_id=remote_id)

        if workspaces:
            result.workspaces = self._reconcile(
                remote_id,
                "workspaces",
                client.get_workspaces,
                _workspace_id,
                self.store.replace_workspaces_for_remote,
            )

        if contexts:
            result.contexts = self._reconcile(
                remote_id,
                "contexts",
                client.get_contexts,
                _context_id,
                self.store.replace_contexts_for_remote,
            )

        if result.succeeded:
            result.synced_at = self.now()
            self.store.mark_synced(remote_id, result.synced_at)
            logger.debug(f"Sync completed for remote '{remote_id}'")
        else:
            result.error = "; ".join(k.error for k in result.kinds if k.error)

        return result

    def _reconcile(
        self,
        remote_id: str,
        kind: str,
        fetch: Callable[[], list[dict]],
        id_of: Callable[[dict], Optional[str]],
        commit: Callable[[str, dict[str, dict]], list[str]],
    ) -> KindSyncResult:
        outcome = KindSyncResult(kind)
        try:
            fetched = fetch()
        except (RemoteUnreachableError, RemoteApiError) as e:
            logger.debug(f"Failed to sync {kind} for remote '{remote_id}': {e}")
            outcome.error = str(e)
            return outcome

        records = {}
        for record in fetched:
            resource_id = id_of(record)
            if not resource_id:
                logger.debug(f"Skipping {kind} record without an id from '{remote_id}'")
                continue
            records[f"{remote_id}:{resource_id}"] = record

        outcome.fetched = len(records)
        outcome.removed = commit(remote_id, records)
        logger.debug(
            f"Synced {outcome.fetched} {kind} for remote '{remote_id}', "
            f"removed {len(outcome.removed)} stale entries"
        )
        return outcome

    def sync_all(self) -> list[SyncResult]:
        """Reconcile every configured remote, collecting per-remote errors."""
        results = []
        for remote_id in self.store.get_remotes():
            try:
                results.append(self.sync_remote(remote_id))
            except CanvasError as e:
                logger.debug(f"Failed to sync remote '{remote_id}': {e}")
                results.append(SyncResult(remote_id=remote_id, error=str(e)))
        return results


__all__ = [
    "FAILED",
    "FRESH",
    "SKIPPED",
    "STALE",
    "SYNCED",
    "UNREACHABLE",
    "UNSYNCED",
    "KindSyncResult",
    "SyncCoordinator",
    "SyncResult",
]
