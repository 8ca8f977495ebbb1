"""Local index: durable JSON maps for remotes, cached resources, aliases
and the session.

Every family lives in its own file and every file is its own unit of
atomicity. Writes are read-merge-write cycles run under an exclusive
advisory lock (``fcntl.flock`` on a sidecar ``.<name>.lock`` file), with
the merge applied to the on-disk state read *inside* the lock and the
result committed by temp file + ``os.replace``. Two CLI processes
touching the same file therefore serialize instead of losing updates.

Reads never fail: a missing, unreadable or unparseable file is an empty
map. Write failures raise CacheCorruptionError.

Layout under ``<config_dir>``:
    remotes.json            {"user@remote": Remote}
    contexts.index.json     {"user@remote:contextId": cached context}
    workspaces.index.json   {"user@remote:workspaceId": cached workspace}
    aliases.json            {"name": Alias}
    session-cli.json        Session
"""

import contextlib
import fcntl
import json
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Any, Callable, Iterator, Optional, TypeVar

from canvas_cli.remote.address import parse_address, parse_remote_identifier
from canvas_cli.remote.exceptions import (
    CacheCorruptionError,
    InvalidAddressError,
    InvalidAliasError,
    RemoteExistsError,
    RemoteNotFoundError,
)
from canvas_cli.remote.models import (
    Alias,
    Remote,
    Session,
    format_timestamp,
    utcnow,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

FILE_MODE = 0o600

REMOTES_FILE = "remotes.json"
CONTEXTS_FILE = "contexts.index.json"
WORKSPACES_FILE = "workspaces.index.json"
ALIASES_FILE = "aliases.json"
SESSION_FILE = "session-cli.json"

ALIAS_NAME_RE = re.compile(r"[A-Za-z0-9_-]+")
RESERVED_ALIAS_NAMES = frozenset(
    {"remote", "context", "workspace", "alias", "auth", "config", "help", "sync"}
)


class JsonMapFile:
    """One JSON object on disk with locked read-merge-write updates."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self.lock_path = self.path.parent / f".{self.path.name}.lock"

    @contextlib.contextmanager
    def _locked(self, exclusive: bool) -> Iterator[None]:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self.lock_path, os.O_RDWR | os.O_CREAT, FILE_MODE)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX if exclusive else fcntl.LOCK_SH)
            try:
                yield
            finally:
                fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            os.close(fd)

    def _load(self) -> tuple[dict, bool]:
        """Return (data, clean). ``clean`` is False when the file was corrupt."""
        if not self.path.exists():
            return {}, True

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable index file {self.path}: {e}")
            return {}, False

        if not isinstance(data, dict):
            logger.warning(f"Ignoring index file {self.path}: not a JSON object")
            return {}, False

        return data, True

    def _write(self, data: dict) -> None:
        fd, temp_path = tempfile.mkstemp(
            dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, sort_keys=True)
                f.flush()
                os.fsync(f.fileno())
            os.chmod(temp_path, FILE_MODE)
            os.replace(temp_path, self.path)
        except BaseException:
            with contextlib.suppress(OSError):
                os.unlink(temp_path)
            raise

    def read(self) -> dict:
        """Snapshot of the file; empty on any read failure."""
        try:
            with self._locked(exclusive=False):
                data, _ = self._load()
                return data
        except OSError as e:
            logger.debug(f"Failed to read {self.path}, treating as empty: {e}")
            return {}

    def update(self, mutator: Callable[[dict], T]) -> T:
        """Apply ``mutator`` to the latest on-disk map and commit it.

        The mutator edits the dict in place; its return value is passed
        through. The file is rewritten only when the content changed or
        the previous file was corrupt.
        """
        try:
            with self._locked(exclusive=True):
                data, clean = self._load()
                before = json.dumps(data, sort_keys=True)
                result = mutator(data)
                if not clean or json.dumps(data, sort_keys=True) != before:
                    self._write(data)
                return result
        except (OSError, TypeError, ValueError) as e:
            raise CacheCorruptionError(f"Failed to write {self.path}: {e}") from e

    def replace(self, data: dict) -> None:
        def _replace(current: dict) -> None:
            current.clear()
            current.update(data)

        self.update(_replace)


def _prefix(remote_id: str) -> str:
    return f"{remote_id}:"


def validate_alias_name(name: str) -> None:
    if not name or not ALIAS_NAME_RE.fullmatch(name):
        raise InvalidAliasError(
            f"Invalid alias name '{name}': use letters, numbers, underscores, and hyphens"
        )
    if name.lower() in RESERVED_ALIAS_NAMES:
        raise InvalidAliasError(
            f"'{name}' is a reserved name and cannot be used as an alias"
        )


class RemoteStore:
    """CRUD over the five local record families."""

    def __init__(self, config_dir: Path):
        self.config_dir = Path(config_dir)
        self.remotes_file = JsonMapFile(self.config_dir / REMOTES_FILE)
        self.contexts_file = JsonMapFile(self.config_dir / CONTEXTS_FILE)
        self.workspaces_file = JsonMapFile(self.config_dir / WORKSPACES_FILE)
        self.aliases_file = JsonMapFile(self.config_dir / ALIASES_FILE)
        self.session_file = JsonMapFile(self.config_dir / SESSION_FILE)

    # ------------------------------------------------------------------
    # Remotes
    # ------------------------------------------------------------------

    def get_remotes(self) -> dict[str, Remote]:
        remotes = {}
        for remote_id, data in self.remotes_file.read().items():
            if isinstance(data, dict):
                remotes[remote_id] = Remote.from_dict(remote_id, data)
        return remotes

    def get_remote(self, remote_id: str) -> Optional[Remote]:
        data = self.remotes_file.read().get(remote_id)
        if not isinstance(data, dict):
            return None
        return Remote.from_dict(remote_id, data)

    def add_remote(self, remote: Remote) -> bool:
        """Add a remote. Returns True if it was the first one configured.

        The first remote is bound as the session default.
        """
        if parse_remote_identifier(remote.id) is None:
            raise InvalidAddressError(
                f"Invalid remote identifier '{remote.id}'. Use: user@remote-name"
            )

        def _add(remotes: dict) -> bool:
            if remote.id in remotes:
                raise RemoteExistsError(f"Remote '{remote.id}' already exists")
            first = not remotes
            remotes[remote.id] = remote.to_dict()
            return first

        first = self.remotes_file.update(_add)
        if first:
            self.update_session(bound_remote=remote.id, bound_at=utcnow())
            logger.debug(f"Bound first remote '{remote.id}' as default")
        return first

    def update_remote(self, remote_id: str, **fields: Any) -> Remote:
        """Shallow-merge ``fields`` into a stored remote."""

        def _update(remotes: dict) -> dict:
            if remote_id not in remotes:
                raise RemoteNotFoundError(f"Remote '{remote_id}' not found")
            current = Remote.from_dict(remote_id, remotes[remote_id])
            for key, value in fields.items():
                if not hasattr(current, key) or key == "id":
                    raise AttributeError(f"Unknown remote field: {key}")
                setattr(current, key, value)
            remotes[remote_id] = current.to_dict()
            return remotes[remote_id]

        data = self.remotes_file.update(_update)
        return Remote.from_dict(remote_id, data)

    def mark_synced(self, remote_id: str, when=None) -> Remote:
        return self.update_remote(remote_id, last_synced=when or utcnow())

    def remove_remote(self, remote_id: str) -> None:
        """Remove a remote and, best-effort, everything cached under it.

        A failed cascade leaves orphaned cache entries behind; readers
        ignore them and prune_orphans() repairs them.
        """

        def _remove(remotes: dict) -> bool:
            return remotes.pop(remote_id, None) is not None

        if not self.remotes_file.update(_remove):
            raise RemoteNotFoundError(f"Remote '{remote_id}' not found")

        for index in (self.contexts_file, self.workspaces_file):
            try:
                removed = index.update(
                    lambda entries: self._drop_prefixed(entries, remote_id)
                )
                logger.debug(f"Removed {len(removed)} entries from {index.path.name}")
            except CacheCorruptionError as e:
                logger.warning(f"Cascade delete for '{remote_id}' failed: {e}")

        try:
            if self.get_session().bound_remote == remote_id:
                self.clear_session()
        except CacheCorruptionError as e:
            logger.warning(f"Failed to unbind removed remote '{remote_id}': {e}")

    def rename_remote(self, old_id: str, new_id: str) -> Remote:
        if parse_remote_identifier(new_id) is None:
            raise InvalidAddressError(
                f"Invalid remote identifier '{new_id}'. Use: user@remote-name"
            )

        def _rename(remotes: dict) -> dict:
            if old_id not in remotes:
                raise RemoteNotFoundError(f"Remote '{old_id}' not found")
            if new_id in remotes:
                raise RemoteExistsError(f"Remote '{new_id}' already exists")
            data = remotes.pop(old_id)
            data["id"] = new_id
            remotes[new_id] = data
            return data

        data = self.remotes_file.update(_rename)

        old_prefix, new_prefix = _prefix(old_id), _prefix(new_id)

        def _rekey(entries: dict) -> None:
            for key in [k for k in entries if k.startswith(old_prefix)]:
                entries[new_prefix + key[len(old_prefix) :]] = entries.pop(key)

        for index in (self.contexts_file, self.workspaces_file):
            index.update(_rekey)

        session = self.get_session()
        changes = {}
        if session.bound_remote == old_id:
            changes["bound_remote"] = new_id
        for name in ("bound_context", "default_workspace"):
            value = getattr(session, name)
            if value and value.startswith(f"{old_id}:"):
                changes[name] = new_id + value[len(old_id) :]
        if changes:
            self.update_session(**changes)

        return Remote.from_dict(new_id, data)

    # ------------------------------------------------------------------
    # Cached contexts and workspaces
    # ------------------------------------------------------------------

    @staticmethod
    def _filter(entries: dict, remote_id: Optional[str]) -> dict[str, dict]:
        if remote_id is None:
            return dict(entries)
        prefix = _prefix(remote_id)
        return {k: v for k, v in entries.items() if k.startswith(prefix)}

    @staticmethod
    def _drop_prefixed(entries: dict, remote_id: str, keep=frozenset()) -> list[str]:
        prefix = _prefix(remote_id)
        stale = [k for k in entries if k.startswith(prefix) and k not in keep]
        for key in stale:
            del entries[key]
        return stale

    @staticmethod
    def _stamp(record: dict) -> dict:
        return {**record, "last_synced": format_timestamp(utcnow())}

    def get_contexts(self, remote_id: Optional[str] = None) -> dict[str, dict]:
        return self._filter(self.contexts_file.read(), remote_id)

    def get_workspaces(self, remote_id: Optional[str] = None) -> dict[str, dict]:
        return self._filter(self.workspaces_file.read(), remote_id)

    def update_context(self, key: str, record: dict) -> None:
        self.contexts_file.update(lambda e: e.__setitem__(key, self._stamp(record)))

    def update_workspace(self, key: str, record: dict) -> None:
        self.workspaces_file.update(
            lambda e: e.__setitem__(key, self._stamp(record))
        )

    def _upsert(self, index: JsonMapFile, records: dict[str, dict]) -> None:
        def _merge(entries: dict) -> None:
            for key, record in records.items():
                entries[key] = self._stamp(record)

        index.update(_merge)

    def upsert_contexts(self, records: dict[str, dict]) -> None:
        self._upsert(self.contexts_file, records)

    def upsert_workspaces(self, records: dict[str, dict]) -> None:
        self._upsert(self.workspaces_file, records)

    def remove_context(self, key: str) -> bool:
        return self.contexts_file.update(lambda e: e.pop(key, None) is not None)

    def remove_workspace(self, key: str) -> bool:
        return self.workspaces_file.update(lambda e: e.pop(key, None) is not None)

    def _replace_for_remote(
        self, index: JsonMapFile, remote_id: str, records: dict[str, dict]
    ) -> list[str]:
        """Upsert ``records`` and drop every other entry of ``remote_id``.

        Runs as one locked cycle, so the diff is taken against the latest
        on-disk state rather than a snapshot from before the fetch.
        """
        if parse_remote_identifier(remote_id) is None:
            raise InvalidAddressError(
                f"Invalid remote identifier '{remote_id}'. Use: user@remote-name"
            )
        prefix = _prefix(remote_id)
        for key in records:
            if not key.startswith(prefix):
                raise ValueError(f"Cache key '{key}' does not belong to '{remote_id}'")

        def _reconcile(entries: dict) -> list[str]:
            stale = self._drop_prefixed(entries, remote_id, keep=frozenset(records))
            for key, record in records.items():
                entries[key] = self._stamp(record)
            return stale

        return index.update(_reconcile)

    def replace_contexts_for_remote(
        self, remote_id: str, records: dict[str, dict]
    ) -> list[str]:
        return self._replace_for_remote(self.contexts_file, remote_id, records)

    def replace_workspaces_for_remote(
        self, remote_id: str, records: dict[str, dict]
    ) -> list[str]:
        return self._replace_for_remote(self.workspaces_file, remote_id, records)

    def prune_orphans(self) -> int:
        """Drop cache entries whose remote no longer exists. Idempotent."""
        prefixes = tuple(_prefix(remote_id) for remote_id in self.remotes_file.read())

        def _prune(entries: dict) -> int:
            orphans = [k for k in entries if not k.startswith(prefixes)]
            for key in orphans:
                del entries[key]
            return len(orphans)

        removed = self.contexts_file.update(_prune)
        removed += self.workspaces_file.update(_prune)
        if removed:
            logger.debug(f"Pruned {removed} orphaned cache entries")
        return removed

    # ------------------------------------------------------------------
    # Aliases
    # ------------------------------------------------------------------

    def get_aliases(self) -> dict[str, Alias]:
        return {
            name: Alias.from_dict(name, data)
            for name, data in self.aliases_file.read().items()
            if isinstance(data, dict)
        }

    def get_alias(self, name: str) -> Optional[Alias]:
        data = self.aliases_file.read().get(name)
        return Alias.from_dict(name, data) if isinstance(data, dict) else None

    def set_alias(self, name: str, address: str) -> Alias:
        """Create or overwrite an alias, keeping its original created_at.

        Values that look like full addresses (contain ``@`` and ``:``) must
        parse. Anything else is stored verbatim and later resolved as a
        bare token, since aliases never chain.
        """
        validate_alias_name(name)
        if not address:
            raise InvalidAddressError("Alias address is required")
        if "@" in address and ":" in address and parse_address(address) is None:
            raise InvalidAddressError(
                f"Invalid resource address '{address}'. Use: user@remote:resource[/path]"
            )

        def _set(aliases: dict) -> dict:
            existing = aliases.get(name)
            now = utcnow()
            if isinstance(existing, dict):
                alias = Alias.from_dict(name, existing)
                alias.address = address
                alias.updated_at = now
            else:
                alias = Alias(name=name, address=address, created_at=now)
            aliases[name] = alias.to_dict()
            return aliases[name]

        return Alias.from_dict(name, self.aliases_file.update(_set))

    def remove_alias(self, name: str) -> bool:
        return self.aliases_file.update(lambda a: a.pop(name, None) is not None)

    def resolve_alias(self, token: str) -> str:
        """Single indirection: the alias target, or the token itself."""
        alias = self.get_alias(token) if token else None
        return alias.address if alias else token

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    def get_session(self) -> Session:
        return Session.from_dict(self.session_file.read())

    def update_session(self, **fields: Any) -> Session:
        unknown = set(fields) - set(Session.FIELDS)
        if unknown:
            raise AttributeError(f"Unknown session fields: {sorted(unknown)}")

        def _update(data: dict) -> dict:
            session = Session.from_dict(data)
            for key, value in fields.items():
                setattr(session, key, value)
            data.clear()
            data.update(session.to_dict())
            return dict(data)

        return Session.from_dict(self.session_file.update(_update))

    def clear_session(self) -> Session:
        return self.update_session(
            bound_remote=None, bound_context=None, default_workspace=None, bound_at=None
        )
