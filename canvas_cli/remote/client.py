"""HTTP client for a Canvas server's REST API, plus a per-remote factory."""

import logging
from typing import Any, Optional

import httpx

from canvas_cli import __version__
from canvas_cli.config import CliConfig
from canvas_cli.remote.exceptions import (
    RemoteApiError,
    RemoteNotFoundError,
    RemoteUnreachableError,
)
from canvas_cli.remote.models import Remote
from canvas_cli.remote.store import RemoteStore

logger = logging.getLogger(__name__)

USER_AGENT = f"canvas-cli/{__version__}"


def unwrap(body: Any) -> Any:
    """Extract the payload from a ``{status, payload}`` response envelope."""
    if isinstance(body, dict):
        if "payload" in body:
            return body["payload"]
        if "data" in body:
            return body["data"]
    return body


class RemoteApiClient:
    """Authenticated client for one remote.

    Args:
        remote: Remote record supplying base URL and bearer token
        timeout: Request timeout in seconds
        transport: Optional httpx transport (tests use httpx.MockTransport)
    """

    def __init__(
        self,
        remote: Remote,
        timeout: float = 30,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.remote = remote
        self.base_url = remote.base_url
        self.timeout = timeout

        headers = {"Accept": "application/json", "User-Agent": USER_AGENT}
        if remote.auth.token:
            headers["Authorization"] = f"Bearer {remote.auth.token}"

        self.client = httpx.Client(
            base_url=self.base_url,
            timeout=timeout,
            headers=headers,
            transport=transport,
        )

    def _request(
        self,
        method: str,
        path: str,
        *,
        timeout: Optional[float] = None,
        raw: bool = False,
        **kwargs,
    ) -> Any:
        logger.debug(f"{method} {self.base_url}{path}")
        try:
            response = self.client.request(
                method,
                path,
                timeout=timeout if timeout is not None else self.timeout,
                **kwargs,
            )
        except httpx.TransportError as e:
            raise RemoteUnreachableError(
                f"Unable to reach remote '{self.remote.id}' at {self.base_url}: {e}"
            ) from e

        try:
            body = response.json() if response.content else None
        except ValueError:
            body = {"message": response.text}

        if response.status_code >= 400:
            message = None
            if isinstance(body, dict):
                message = body.get("message") or body.get("error")
            raise RemoteApiError(
                f"API Error ({response.status_code}): {message or response.reason_phrase}",
                status_code=response.status_code,
            )

        if isinstance(body, dict) and body.get("status") == "error":
            raise RemoteApiError(
                f"API Error: {body.get('message', 'unknown error')}",
                status_code=body.get("statusCode") or response.status_code,
            )

        return body if raw else unwrap(body)

    def ping(self, timeout: Optional[float] = None) -> dict:
        """Health probe. The server must answer with a success envelope."""
        body = self._request("GET", "/ping", timeout=timeout, raw=True)
        if not isinstance(body, dict) or body.get("status") != "success":
            raise RemoteApiError(f"Unexpected ping response from '{self.remote.id}'")
        payload = unwrap(body)
        return payload if isinstance(payload, dict) else {}

    def get_contexts(
        self, limit: Optional[int] = None, offset: Optional[int] = None
    ) -> list[dict]:
        params = {}
        if limit:
            params["limit"] = limit
        if offset:
            params["offset"] = offset
        return self._as_list(self._request("GET", "/contexts", params=params))

    def get_context(self, context_id: str) -> dict:
        return self._request("GET", f"/contexts/{context_id}")

    def get_workspaces(self) -> list[dict]:
        return self._as_list(self._request("GET", "/workspaces"))

    def get_workspace(self, workspace_id: str) -> dict:
        return self._request("GET", f"/workspaces/{workspace_id}")

    def login(self, email: str, password: str, strategy: str = "auto") -> dict:
        """Log in and return the payload, normally ``{"token", "user"}``."""
        return self._request(
            "POST",
            "/auth/login",
            json={"email": email, "password": password, "strategy": strategy},
        )

    def logout(self) -> Any:
        return self._request("POST", "/auth/logout", json={})

    def _as_list(self, payload: Any) -> list[dict]:
        if not isinstance(payload, list):
            raise RemoteApiError(
                f"Expected a list from remote '{self.remote.id}', got {type(payload).__name__}"
            )
        return [item for item in payload if isinstance(item, dict)]

    def close(self):
        self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class RemoteClientFactory:
    """One lazily-built client per remote identifier, for one CLI invocation."""

    def __init__(
        self,
        store: RemoteStore,
        config: Optional[CliConfig] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.store = store
        self.config = config
        self.transport = transport
        self._clients: dict[str, RemoteApiClient] = {}

    def get(self, remote_id: str) -> RemoteApiClient:
        client = self._clients.get(remote_id)
        if client is not None:
            return client

        remote = self.store.get_remote(remote_id)
        if remote is None:
            raise RemoteNotFoundError(
                f"Remote '{remote_id}' not found. Add it with: canvas remote add {remote_id} <url>"
            )

        timeout = self.config.request_timeout if self.config else 30
        client = RemoteApiClient(remote, timeout=timeout, transport=self.transport)
        self._clients[remote_id] = client
        logger.debug(f"Created API client for remote: {remote_id}")
        return client

    def clear(self, remote_id: Optional[str] = None) -> None:
        """Drop cached clients, e.g. after a token or URL change."""
        ids = [remote_id] if remote_id else list(self._clients)
        for key in ids:
            client = self._clients.pop(key, None)
            if client is not None:
                client.close()

    def close(self) -> None:
        self.clear()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
