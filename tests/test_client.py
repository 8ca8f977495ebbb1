"""
Tests for the REST client and client factory.
"""

import json

import httpx
import pytest

from canvas_cli.remote.client import RemoteApiClient, RemoteClientFactory, unwrap
from canvas_cli.remote.exceptions import (
    RemoteApiError,
    RemoteNotFoundError,
    RemoteUnreachableError,
)
from canvas_cli.remote.models import Remote, RemoteAuth


def _client(handler, token="tok") -> RemoteApiClient:
    remote = Remote(
        id="alice@srv",
        url="http://srv.test/",
        auth=RemoteAuth(method="token", token=token),
    )
    return RemoteApiClient(remote, transport=httpx.MockTransport(handler))


class TestUnwrap:
    def test_prefers_payload(self):
        assert unwrap({"status": "success", "payload": [1], "data": [2]}) == [1]

    def test_falls_back_to_data(self):
        assert unwrap({"data": {"a": 1}}) == {"a": 1}

    def test_returns_body_otherwise(self):
        assert unwrap([1, 2]) == [1, 2]


class TestRemoteApiClient:
    def test_base_url_and_bearer_token(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["auth"] = request.headers.get("authorization")
            return httpx.Response(200, json={"status": "success", "payload": []})

        with _client(handler) as client:
            assert client.get_contexts() == []

        assert seen["url"] == "http://srv.test/rest/v2/contexts"
        assert seen["auth"] == "Bearer tok"

    def test_no_token_no_auth_header(self):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers.get("authorization")
            return httpx.Response(200, json={"status": "success", "payload": []})

        _client(handler, token="").get_workspaces()
        assert seen["auth"] is None

    def test_ping_requires_success_status(self):
        def handler(request):
            return httpx.Response(200, json={"status": "ok"})

        with pytest.raises(RemoteApiError):
            _client(handler).ping()

    def test_ping_returns_payload(self):
        def handler(request):
            return httpx.Response(
                200, json={"status": "success", "payload": {"version": "2.0.0"}}
            )

        assert _client(handler).ping() == {"version": "2.0.0"}

    def test_http_error_carries_status(self):
        def handler(request):
            return httpx.Response(401, json={"status": "error", "message": "Unauthorized"})

        with pytest.raises(RemoteApiError) as exc_info:
            _client(handler).get_context("ctx1")

        assert exc_info.value.status_code == 401
        assert "Unauthorized" in str(exc_info.value)

    def test_error_envelope_with_200(self):
        def handler(request):
            return httpx.Response(200, json={"status": "error", "message": "nope"})

        with pytest.raises(RemoteApiError, match="nope"):
            _client(handler).get_workspaces()

    def test_transport_error_is_unreachable(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(RemoteUnreachableError, match="alice@srv"):
            _client(handler).ping()

    def test_non_list_payload_rejected(self):
        def handler(request):
            return httpx.Response(200, json={"status": "success", "payload": {"id": "x"}})

        with pytest.raises(RemoteApiError):
            _client(handler).get_contexts()

    def test_login_posts_credentials(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200, json={"status": "success", "payload": {"token": "jwt", "user": {}}}
            )

        payload = _client(handler).login("a@b.c", "pw")

        assert seen["path"] == "/rest/v2/auth/login"
        assert seen["body"] == {"email": "a@b.c", "password": "pw", "strategy": "auto"}
        assert payload["token"] == "jwt"

    def test_get_contexts_pagination_params(self):
        seen = {}

        def handler(request):
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, json={"status": "success", "payload": []})

        _client(handler).get_contexts(limit=10, offset=20)
        assert seen["params"] == {"limit": "10", "offset": "20"}


class TestRemoteClientFactory:
    def test_unknown_remote(self, store, server):
        factory = RemoteClientFactory(store, transport=server.transport)
        with pytest.raises(RemoteNotFoundError, match="ghost@srv"):
            factory.get("ghost@srv")

    def test_clients_are_cached_per_remote(self, store, remote, clients):
        store.add_remote(Remote(id="bob@other", url="http://other.test"))

        first = clients.get("alice@srv")
        assert clients.get("alice@srv") is first
        assert clients.get("bob@other") is not first
        assert clients.get("bob@other").base_url == "http://other.test/rest/v2"

    def test_clear_rebuilds_client(self, remote, clients):
        first = clients.get("alice@srv")
        clients.clear("alice@srv")
        assert clients.get("alice@srv") is not first

    def test_timeout_from_config(self, store, remote, config, server):
        config.set("http.timeout", 7)
        with RemoteClientFactory(store, config, transport=server.transport) as factory:
            assert factory.get("alice@srv").timeout == 7.0

    def test_requests_reach_fake_server(self, remote, clients, server):
        server.contexts = [{"id": "ctx1"}]
        assert clients.get("alice@srv").get_contexts() == [{"id": "ctx1"}]
        assert server.paths() == ["/rest/v2/contexts"]
