"""
Tests for the high-level CanvasApi operations.
"""

from datetime import timedelta

import pytest

from canvas_cli.remote.api import CanvasApi
from canvas_cli.remote.exceptions import (
    RemoteApiError,
    RemoteNotFoundError,
    RemoteUnreachableError,
    UnboundRemoteError,
)
from canvas_cli.remote.models import Remote


@pytest.fixture
def api(store, clients, coordinator):
    return CanvasApi(store, clients, coordinator)


class TestListing:
    def test_list_contexts_syncs_stale_remote(self, api, store, remote, server):
        store.update_context("alice@srv:gone", {"id": "gone"})
        server.contexts = [{"id": "ctx1"}]

        contexts = api.list_contexts()

        assert set(contexts) == {"alice@srv:ctx1"}
        assert store.get_remote("alice@srv").last_synced is not None

    def test_list_contexts_on_fresh_remote_merges(
        self, api, store, remote, server, clock
    ):
        store.mark_synced("alice@srv", clock() - timedelta(minutes=1))
        store.update_context("alice@srv:cached", {"id": "cached"})
        server.contexts = [{"id": "ctx1"}]

        contexts = api.list_contexts()

        assert set(contexts) == {"alice@srv:cached", "alice@srv:ctx1"}
        assert "/rest/v2/ping" not in server.paths()

    def test_unreachable_falls_back_to_cache(self, api, store, remote, server):
        store.update_workspace("alice@srv:ws1", {"id": "ws1"})
        server.down = True

        assert set(api.list_workspaces()) == {"alice@srv:ws1"}

    def test_failed_ping_skips_listing_request(self, api, store, remote, server):
        store.update_context("alice@srv:ctx1", {"id": "ctx1"})
        server.down = True

        assert set(api.list_contexts()) == {"alice@srv:ctx1"}
        assert server.paths() == ["/rest/v2/ping"]

    def test_fresh_remote_unreachable_falls_back(self, api, store, remote, server, clock):
        store.mark_synced("alice@srv", clock())
        store.update_workspace("alice@srv:ws1", {"id": "ws1"})
        server.down = True

        assert set(api.list_workspaces()) == {"alice@srv:ws1"}
        assert server.paths() == ["/rest/v2/workspaces"]

    def test_malformed_threshold_still_lists(self, api, store, remote, server, config):
        config.set("sync.stale_threshold", "15m")
        server.contexts = [{"id": "ctx1"}]

        assert set(api.list_contexts()) == {"alice@srv:ctx1"}
        assert store.get_remote("alice@srv").last_synced is not None

    def test_string_false_disables_auto_sync(self, api, store, remote, server, config):
        config.set("sync.enabled", "false")
        server.contexts = [{"id": "ctx1"}]

        assert set(api.list_contexts()) == {"alice@srv:ctx1"}
        assert "/rest/v2/ping" not in server.paths()
        assert store.get_remote("alice@srv").last_synced is None

    def test_api_errors_propagate(self, api, store, remote, server, clock):
        store.mark_synced("alice@srv", clock())
        server.failing = {"/contexts"}
        with pytest.raises(RemoteApiError):
            api.list_contexts()

    def test_explicit_remote(self, api, store, remote, server):
        store.add_remote(Remote(id="bob@other", url="http://other.test"))
        server.workspaces = [{"name": "universe"}]

        assert set(api.list_workspaces("bob@other")) == {"bob@other:universe"}
        assert store.get_workspaces("alice@srv") == {}

    def test_unknown_remote(self, api):
        with pytest.raises(RemoteNotFoundError):
            api.list_contexts("ghost@srv")

    def test_no_bound_remote(self, api):
        with pytest.raises(UnboundRemoteError):
            api.list_contexts()

    def test_cached_listing_makes_no_requests(self, api, store, remote, server):
        store.update_context("alice@srv:ctx1", {"id": "ctx1"})
        assert set(api.cached_contexts("alice@srv")) == {"alice@srv:ctx1"}
        assert server.requests == []


class TestGetAndBind:
    def test_get_context_caches_record(self, api, store, remote, server):
        server.contexts = [{"id": "ctx1", "url": "universe://work"}]

        resolved, record = api.get_context("ctx1")

        assert resolved.key == "alice@srv:ctx1"
        assert record["url"] == "universe://work"
        assert store.get_contexts()["alice@srv:ctx1"]["url"] == "universe://work"

    def test_get_context_via_alias(self, api, store, remote, server):
        server.contexts = [{"id": "ctx1"}]
        store.set_alias("c", "alice@srv:ctx1")

        resolved, _ = api.get_context("c")

        assert resolved.alias == "c"
        assert resolved.key == "alice@srv:ctx1"

    def test_get_workspace_falls_back_to_cache(self, api, store, remote, server):
        store.update_workspace("alice@srv:ws1", {"id": "ws1", "label": "cached"})
        server.down = True

        _, record = api.get_workspace("ws1")

        assert record["label"] == "cached"

    def test_get_uncached_while_unreachable_raises(self, api, remote, server):
        server.down = True
        with pytest.raises(RemoteUnreachableError):
            api.get_context("ctx1")

    def test_address_on_unknown_remote(self, api, remote):
        with pytest.raises(RemoteNotFoundError, match="ghost@srv"):
            api.get_context("ghost@srv:ctx1")

    def test_bind_context_and_workspace(self, api, store, remote):
        api.bind_context("ctx1")
        api.bind_workspace("alice@srv:universe")

        session = store.get_session()
        assert session.bound_context == "alice@srv:ctx1"
        assert session.default_workspace == "alice@srv:universe"
        assert session.bound_remote == "alice@srv"

    def test_current_context(self, api, store, remote):
        assert api.current_context() == (None, None)

        store.update_context("alice@srv:ctx1", {"id": "ctx1"})
        api.bind_context("ctx1")

        key, record = api.current_context()
        assert key == "alice@srv:ctx1"
        assert record["id"] == "ctx1"

    def test_current_remote(self, api, store, remote):
        assert api.current_remote().id == "alice@srv"
        store.clear_session()
        assert api.current_remote() is None
