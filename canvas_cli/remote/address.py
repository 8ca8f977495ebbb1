"""Resource address grammar.

Addresses identify a resource on a specific remote:

    user@remote:resource[/optional/path]

Examples:
    alice@canvas.local:workspace1
    bob@work.tld:workspace-baz/shell/bash

A remote identifier is the two-field prefix ``user@remote``; it is the
partition key for every cached context and workspace. Nothing here does
I/O.
"""

import logging
import re
from dataclasses import dataclass

from canvas_cli.remote.exceptions import InvalidAddressError

logger = logging.getLogger(__name__)

ADDRESS_RE = re.compile(r"([^@]+)@([^:]+):([^/]+)(.*)")

# Compared case-insensitively, for display only. These never collapse
# to a single cache key.
LOCAL_REMOTES = frozenset({"canvas.local", "local", "localhost", "127.0.0.1", "::1"})

# Characters each component may not contain. A remote with a ':' would
# make one remote's key prefix ("alice@srv:") match another's keys.
USER_FORBIDDEN = "@"
REMOTE_FORBIDDEN = "@:"
RESOURCE_FORBIDDEN = "/"


def _component_error(name: str, value: str, forbidden: str) -> str | None:
    if not isinstance(value, str) or not value.strip():
        return f"{name} is required"
    if value != value.strip():
        return f"{name} must not have leading or trailing whitespace: {value!r}"
    for char in forbidden:
        if char in value:
            return f"{name} must not contain {char!r}: {value!r}"
    return None


def _check_components(*components: tuple[str, str, str]) -> None:
    for name, value, forbidden in components:
        error = _component_error(name, value, forbidden)
        if error:
            raise InvalidAddressError(error)


@dataclass(frozen=True)
class Address:
    """A parsed resource address."""

    user_identifier: str
    remote: str
    resource: str
    path: str = ""

    @property
    def remote_id(self) -> str:
        return construct_remote_identifier(self.user_identifier, self.remote)

    @property
    def resource_key(self) -> str:
        """Key used by the local context/workspace indexes."""
        return f"{self.remote_id}:{self.resource}"

    @property
    def is_local(self) -> bool:
        return is_local_remote(self.remote)

    @property
    def resource_type(self) -> str:
        return infer_resource_type(self.resource)

    def __str__(self) -> str:
        return construct_address(
            self.user_identifier, self.remote, self.resource, self.path
        )


@dataclass(frozen=True)
class RemoteIdentifier:
    """A parsed ``user@remote`` identifier."""

    user_identifier: str
    remote: str

    @property
    def is_local(self) -> bool:
        return is_local_remote(self.remote)

    def __str__(self) -> str:
        return construct_remote_identifier(self.user_identifier, self.remote)


def parse_address(address: str | None) -> Address | None:
    """Parse a resource address.

    Returns None for anything that is not a full address, including bare
    resource ids, which are valid tokens in their own right.
    """
    if not address or not isinstance(address, str):
        return None

    match = ADDRESS_RE.fullmatch(address)
    if not match:
        logger.debug(f"Not a resource address: {address!r}")
        return None

    user_identifier, remote, resource, path = match.groups()
    if not user_identifier.strip() or not remote.strip() or not resource.strip():
        logger.debug(f"Address has empty components: {address!r}")
        return None
    if "@" in remote:
        logger.debug(f"Address has more than one '@' before the resource: {address!r}")
        return None

    return Address(
        user_identifier=user_identifier.strip(),
        remote=remote.strip(),
        resource=resource.strip(),
        path=path or "",
    )


def require_address(address: str) -> Address:
    """Parse a resource address, raising InvalidAddressError if malformed."""
    parsed = parse_address(address)
    if parsed is None:
        raise InvalidAddressError(
            f"Invalid resource address '{address}'. Use: user@remote:resource[/path]"
        )
    return parsed


def construct_address(
    user_identifier: str, remote: str, resource: str, path: str = ""
) -> str:
    """Build an address string; the inverse of parse_address.

    Raises InvalidAddressError for any component that would not parse
    back unchanged.
    """
    _check_components(
        ("user_identifier", user_identifier, USER_FORBIDDEN),
        ("remote", remote, REMOTE_FORBIDDEN),
        ("resource", resource, RESOURCE_FORBIDDEN),
    )
    if path and not path.startswith("/"):
        raise InvalidAddressError(f"Resource path must start with '/': {path!r}")
    return f"{user_identifier}@{remote}:{resource}{path}"


def parse_remote_identifier(remote_id: str | None) -> RemoteIdentifier | None:
    """Parse a ``user@remote`` identifier.

    Strict: exactly one ``@``, no ``:`` in the remote and no surrounding
    whitespace, because the identifier is used verbatim as a key prefix.
    """
    if not remote_id or not isinstance(remote_id, str):
        return None

    parts = remote_id.split("@")
    if len(parts) != 2:
        return None

    user_identifier, remote = parts
    if _component_error("user_identifier", user_identifier, USER_FORBIDDEN):
        return None
    if _component_error("remote", remote, REMOTE_FORBIDDEN):
        return None

    return RemoteIdentifier(user_identifier, remote)


def construct_remote_identifier(user_identifier: str, remote: str) -> str:
    _check_components(
        ("user_identifier", user_identifier, USER_FORBIDDEN),
        ("remote", remote, REMOTE_FORBIDDEN),
    )
    return f"{user_identifier}@{remote}"


def extract_remote_identifier(address: str) -> str | None:
    parsed = parse_address(address)
    return parsed.remote_id if parsed else None


def extract_resource_key(address: str) -> str | None:
    """Return ``user@remote:resource`` for a full address, else None."""
    parsed = parse_address(address)
    return parsed.resource_key if parsed else None


def is_valid_address(address: str) -> bool:
    return parse_address(address) is not None


def normalize_address(address: str) -> str | None:
    parsed = parse_address(address)
    return str(parsed) if parsed else None


def base_address(address: str) -> str | None:
    """Return the address without its path component."""
    parsed = parse_address(address)
    if parsed is None:
        return None
    return construct_address(parsed.user_identifier, parsed.remote, parsed.resource)


def is_local_remote(remote: str) -> bool:
    return remote.lower() in LOCAL_REMOTES


def infer_resource_type(resource: str) -> str:
    """Guess whether a resource id names a workspace or a context.

    Display only. Routing always takes an explicit container type.
    """
    if "workspace" in resource or resource.startswith("ws-"):
        return "workspace"
    return "context"


def split_path(path: str) -> list[str]:
    if not path or path == "/":
        return []
    return [component for component in path.split("/") if component]


def join_path(components: list[str]) -> str:
    if not components:
        return ""
    return "/" + "/".join(components)
