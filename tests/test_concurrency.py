"""
Concurrent read-merge-write cycles against the same index files.

Each CLI invocation is its own process with its own store handle, so
these tests use independent RemoteStore/JsonMapFile instances pointed at
one directory.
"""

import multiprocessing
import threading
import time

from canvas_cli.remote.models import Remote
from canvas_cli.remote.store import JsonMapFile, RemoteStore


def _add_aliases(config_dir, prefix, count):
    store = RemoteStore(config_dir)
    for i in range(count):
        store.set_alias(f"{prefix}-{i}", f"alice@srv:{prefix}-{i}")


class TestLockedUpdates:
    def test_interleaved_writers_keep_both_updates(self, tmp_path):
        path = tmp_path / "aliases.json"
        first_inside = threading.Event()
        release = threading.Event()
        errors = []

        def slow_writer():
            def _mutate(data):
                first_inside.set()
                release.wait(timeout=5)
                data["first"] = {"address": "alice@srv:one"}

            try:
                JsonMapFile(path).update(_mutate)
            except Exception as e:  # surfaced through the errors list
                errors.append(e)

        def fast_writer():
            try:
                JsonMapFile(path).update(
                    lambda data: data.__setitem__("second", {"address": "alice@srv:two"})
                )
            except Exception as e:
                errors.append(e)

        slow = threading.Thread(target=slow_writer)
        slow.start()
        assert first_inside.wait(timeout=5)

        fast = threading.Thread(target=fast_writer)
        fast.start()
        # The fast writer is blocked on the lock while the slow one holds it.
        time.sleep(0.2)
        assert fast.is_alive()

        release.set()
        slow.join(timeout=5)
        fast.join(timeout=5)

        assert errors == []
        assert set(JsonMapFile(path).read()) == {"first", "second"}

    def test_two_stores_add_distinct_aliases(self, config_dir):
        threads = [
            threading.Thread(target=_add_aliases, args=(config_dir, name, 20))
            for name in ("left", "right")
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

        aliases = RemoteStore(config_dir).get_aliases()
        assert len(aliases) == 40
        assert "left-0" in aliases and "right-19" in aliases

    def test_sync_replace_keeps_concurrent_insert_for_other_remote(self, config_dir):
        store = RemoteStore(config_dir)
        store.add_remote(Remote(id="alice@srv", url="http://srv.test"))
        store.update_context("alice@srv:old", {"id": "old"})

        other = RemoteStore(config_dir)
        other.update_context("bob@other:ctx", {"id": "ctx"})

        store.replace_contexts_for_remote("alice@srv", {"alice@srv:new": {"id": "new"}})

        assert set(RemoteStore(config_dir).get_contexts()) == {
            "alice@srv:new",
            "bob@other:ctx",
        }


class TestMultipleProcesses:
    def test_processes_add_distinct_aliases(self, config_dir):
        ctx = multiprocessing.get_context("fork")
        processes = [
            ctx.Process(target=_add_aliases, args=(config_dir, f"p{n}", 15))
            for n in range(4)
        ]
        for process in processes:
            process.start()
        for process in processes:
            process.join(timeout=60)
            assert process.exitcode == 0

        aliases = RemoteStore(config_dir).get_aliases()
        assert len(aliases) == 60
        assert {f"p{n}-14" for n in range(4)} <= set(aliases)
