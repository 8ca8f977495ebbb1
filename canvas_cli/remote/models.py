"""Records persisted in the local index files.

Remote, Alias and Session are typed records. Cached contexts and
workspaces stay plain dicts shaped by the server, plus an injected
``last_synced`` timestamp.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

DEFAULT_API_BASE = "/rest/v2"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp, tolerating None, ``Z`` and naive values."""
    if not value:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class RemoteAuth:
    """Credentials for one remote.

    Attributes:
        method: "token" once a token is stored, "password" otherwise
        token: Bearer token sent with every request
        token_type: Kind of token issued by the server
    """

    method: str = "password"
    token: str = ""
    token_type: str = "jwt"

    @property
    def has_token(self) -> bool:
        return bool(self.token)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "RemoteAuth":
        data = data or {}
        return cls(
            method=data.get("method") or data.get("type") or "password",
            token=data.get("token") or "",
            token_type=data.get("token_type") or "jwt",
        )


@dataclass
class Remote:
    """A configured server endpoint, keyed by ``user@remote``."""

    id: str
    url: str
    api_base: str = DEFAULT_API_BASE
    description: str = ""
    auth: RemoteAuth = field(default_factory=RemoteAuth)
    version: Optional[str] = None
    last_synced: Optional[datetime] = None

    @property
    def base_url(self) -> str:
        return self.url.rstrip("/") + self.api_base

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "url": self.url,
            "api_base": self.api_base,
            "description": self.description,
            "auth": self.auth.to_dict(),
            "version": self.version,
            "last_synced": format_timestamp(self.last_synced),
        }

    @classmethod
    def from_dict(cls, remote_id: str, data: dict) -> "Remote":
        return cls(
            id=remote_id,
            url=data.get("url", ""),
            api_base=data.get("api_base") or DEFAULT_API_BASE,
            description=data.get("description") or "",
            auth=RemoteAuth.from_dict(data.get("auth")),
            version=data.get("version"),
            last_synced=parse_timestamp(data.get("last_synced")),
        )


@dataclass
class Alias:
    """A short name pointing at one full address. Aliases never chain."""

    name: str
    address: str
    created_at: datetime = field(default_factory=utcnow)
    updated_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "address": self.address,
            "created_at": format_timestamp(self.created_at),
            "updated_at": format_timestamp(self.updated_at),
        }

    @classmethod
    def from_dict(cls, name: str, data: dict) -> "Alias":
        return cls(
            name=name,
            address=data.get("address", ""),
            created_at=parse_timestamp(data.get("created_at")) or utcnow(),
            updated_at=parse_timestamp(data.get("updated_at")),
        )


@dataclass
class Session:
    """The "current" remote, context and workspace used for bare tokens."""

    bound_remote: Optional[str] = None
    bound_context: Optional[str] = None
    default_workspace: Optional[str] = None
    bound_at: Optional[datetime] = None

    FIELDS = ("bound_remote", "bound_context", "default_workspace", "bound_at")

    def to_dict(self) -> dict:
        return {
            "bound_remote": self.bound_remote,
            "bound_context": self.bound_context,
            "default_workspace": self.default_workspace,
            "bound_at": format_timestamp(self.bound_at),
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "Session":
        data = data or {}
        return cls(
            bound_remote=data.get("bound_remote"),
            bound_context=data.get("bound_context"),
            default_workspace=data.get("default_workspace"),
            bound_at=parse_timestamp(data.get("bound_at")),
        )
