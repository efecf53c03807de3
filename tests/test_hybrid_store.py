"""
Brief: Tests for the sqlite-backed HybridStore with its LRU memory tier.

Inputs:
  - None

Outputs:
  - None
"""

import os
import sqlite3
import threading

import pytest

from tinydns.cache import HybridStore


def test_set_get_and_overwrite(tmp_path):
    store = HybridStore(str(tmp_path), memory_size=4)
    try:
        assert store.get(b"missing") is None
        store.set(b"k", b"v1")
        assert store.get(b"k") == b"v1"
        store.set(b"k", b"v2")
        assert store.get(b"k") == b"v2"
        assert len(store) == 1
    finally:
        store.close()


def test_entries_survive_reopen(tmp_path):
    """
    Brief: Values written by one store are readable after reopening the path.

    Inputs:
      - tmp_path: directory for the sqlite file

    Outputs:
      - None: Asserts persistence across instances
    """
    first = HybridStore(str(tmp_path))
    first.set(b"example.com.A", b'{"a":["192.0.2.1"]}')
    first.close()

    assert os.path.exists(os.path.join(str(tmp_path), "cache.db"))
    second = HybridStore(str(tmp_path))
    try:
        assert second.get(b"example.com.A") == b'{"a":["192.0.2.1"]}'
    finally:
        second.close()


def test_disk_hit_repopulates_memory_after_eviction(tmp_path):
    store = HybridStore(str(tmp_path), memory_size=1)
    try:
        store.set(b"a", b"1")
        store.set(b"b", b"2")
        # b"a" was evicted from memory but remains on disk
        assert b"a" not in store._memory
        assert store.get(b"a") == b"1"
        assert store._memory[b"a"] == b"1"
    finally:
        store.close()


def test_temporary_directory_removed_on_close():
    store = HybridStore()
    path = store.path
    store.set(b"k", b"v")
    assert os.path.isdir(path)
    store.close()
    assert not os.path.exists(path)
    # close is idempotent and reads after close miss
    store.close()
    assert store.get(b"k") is None


def test_set_after_close_raises(tmp_path):
    store = HybridStore(str(tmp_path))
    store.close()
    with pytest.raises(sqlite3.ProgrammingError):
        store.set(b"k", b"v")


def test_context_manager_closes(tmp_path):
    with HybridStore(str(tmp_path)) as store:
        store.set(b"k", b"v")
    assert store._closed


def test_concurrent_writers(tmp_path):
    store = HybridStore(str(tmp_path), memory_size=64)

    def _writer(n):
        for i in range(20):
            store.set(f"{n}-{i}".encode(), str(i).encode())

    threads = [threading.Thread(target=_writer, args=(n,)) for n in range(4)]
    try:
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(store) == 80
        assert store.get(b"3-19") == b"19"
    finally:
        store.close()
