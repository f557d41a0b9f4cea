"""Tests for the handle registry."""

import threading

import pytest

from procpipe.registry import HandleRegistry, UnknownHandleError


def test_handles_are_positive_and_unique():
    registry = HandleRegistry()
    handles = [registry.register(object()) for _ in range(10)]
    assert all(h > 0 for h in handles)
    assert len(set(handles)) == 10


def test_lookup_returns_record():
    registry = HandleRegistry()
    record = object()
    handle = registry.register(record)
    assert registry.lookup(handle) is record
    assert handle in registry


def test_unknown_handle():
    registry = HandleRegistry()
    with pytest.raises(UnknownHandleError) as info:
        registry.lookup(42)
    assert str(info.value) == "Unknown process handle: 42"


def test_removed_handle_is_unknown_and_not_reused():
    registry = HandleRegistry()
    handle = registry.register("a")
    assert registry.remove(handle) == "a"
    with pytest.raises(UnknownHandleError):
        registry.lookup(handle)
    with pytest.raises(UnknownHandleError):
        registry.remove(handle)
    assert registry.register("b") != handle
    assert len(registry) == 1


def test_concurrent_registration():
    registry = HandleRegistry()
    results = []
    lock = threading.Lock()

    def worker():
        mine = [registry.register(object()) for _ in range(200)]
        with lock:
            results.extend(mine)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(results) == 1600
    assert len(set(results)) == 1600
    assert len(registry) == 1600
