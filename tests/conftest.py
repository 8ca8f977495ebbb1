"""Shared fixtures: an isolated config dir, a fake Canvas server and a clock."""

import json
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from canvas_cli.config import CliConfig
from canvas_cli.remote.client import RemoteClientFactory
from canvas_cli.remote.models import Remote
from canvas_cli.remote.store import RemoteStore
from canvas_cli.remote.sync import SyncCoordinator

API_BASE = "/rest/v2"


class FakeCanvasServer:
    """In-memory stand-in for a Canvas server's REST API."""

    def __init__(self):
        self.contexts = []
        self.workspaces = []
        self.down = False
        self.failing = set()
        self.requests = []
        self.token = "issued-token"

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.down:
            raise httpx.ConnectError("connection refused", request=request)

        path = request.url.path
        if path.startswith(API_BASE):
            path = path[len(API_BASE) :]

        if path in self.failing:
            return httpx.Response(500, json={"status": "error", "message": "boom"})

        if path == "/ping":
            return self._ok({"version": "2.0.0", "hostname": "srv"})
        if path == "/contexts":
            return self._ok(self.contexts)
        if path == "/workspaces":
            return self._ok(self.workspaces)
        if path.startswith("/contexts/"):
            return self._find(self.contexts, path.split("/", 2)[2])
        if path.startswith("/workspaces/"):
            return self._find(self.workspaces, path.split("/", 2)[2])
        if path == "/auth/login":
            body = json.loads(request.content)
            if body.get("password") != "secret":
                return httpx.Response(
                    401, json={"status": "error", "message": "Invalid credentials"}
                )
            return self._ok(
                {"token": self.token, "user": {"email": body["email"], "name": "Alice"}}
            )
        if path == "/auth/logout":
            return self._ok({})

        return httpx.Response(404, json={"status": "error", "message": "Not found"})

    @staticmethod
    def _ok(payload) -> httpx.Response:
        return httpx.Response(200, json={"status": "success", "payload": payload})

    def _find(self, records, resource_id) -> httpx.Response:
        for record in records:
            if resource_id in (record.get("id"), record.get("name")):
                return self._ok(record)
        return httpx.Response(404, json={"status": "error", "message": "Not found"})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def paths(self) -> list[str]:
        return [r.url.path for r in self.requests]


class FakeClock:
    def __init__(self, now: datetime):
        self.current = now

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


@pytest.fixture
def config_dir(tmp_path):
    return tmp_path / "config"


@pytest.fixture
def store(config_dir):
    return RemoteStore(config_dir)


@pytest.fixture
def config(config_dir):
    return CliConfig(config_dir)


@pytest.fixture
def server():
    return FakeCanvasServer()


@pytest.fixture
def clients(store, config, server):
    factory = RemoteClientFactory(store, config, transport=server.transport)
    yield factory
    factory.close()


@pytest.fixture
def clock():
    return FakeClock(datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def coordinator(store, clients, config, clock):
    return SyncCoordinator(store, clients, config, now=clock)


@pytest.fixture
def remote(store):
    """A configured remote, bound as the default."""
    remote = Remote(id="alice@srv", url="http://srv.test")
    store.add_remote(remote)
    return remote
