from __future__ import annotations

import os
import threading

import pytest

import labelpager.services.loader_service as loader_service
from labelpager.errors import ReadFailure
from labelpager.records import Label
from labelpager.services.cache_service import (
    PassOutcome,
    PrefetchCache,
    Window,
)
from labelpager.services.loader_service import CacheEntry, load_entry


def _make_images(tmp_path, count):
    folder = tmp_path / "images"
    folder.mkdir()
    for idx in range(count):
        (folder / f"img{idx}.png").write_bytes(b"\x89PNG")
    return folder


def _stub_loader(calls=None):
    def _load(item):
        if calls is not None:
            calls.append(item.index)
        return CacheEntry(path=item.path, index=item.index, payload="", mime_type="image/png")

    return _load


def test_window_rejects_negative_values():
    with pytest.raises(ValueError):
        Window(-1, 0, 0)
    with pytest.raises(ValueError):
        Window(0, 0, -2)
    with pytest.raises(ValueError):
        Window(True, 0, 0)


def test_window_targets_order_and_clipping():
    window = Window(prev_radius=2, next_radius=3, keep_buffer=5)

    assert window.targets(5, 100) == [5, 6, 7, 8, 4, 3]
    assert window.targets(0, 100) == [0, 1, 2, 3]
    assert window.targets(99, 100) == [99, 98, 97]
    assert window.targets(0, 1) == [0]
    assert window.retention == (7, 8)
    assert window.max_entries == 16


def test_initialize_places_cursor_on_start_item(tmp_path):
    folder = _make_images(tmp_path, 6)
    cache = PrefetchCache(Window(1, 1, 0), loader=_stub_loader())

    ref = cache.initialize(folder, folder / "img3.png")

    assert cache.cursor == 3
    assert ref.is_cached
    assert ref.index == 3
    assert cache.cached_indices() == [2, 3, 4]


def test_initialize_unknown_start_falls_back_to_first(tmp_path):
    folder = _make_images(tmp_path, 3)
    cache = PrefetchCache(Window(0, 1, 0), loader=_stub_loader())

    cache.initialize(folder, "missing.png")

    assert cache.cursor == 0
    assert cache.cached_indices() == [0, 1]


def test_initialize_again_resets_entries(tmp_path):
    folder = _make_images(tmp_path, 10)
    cache = PrefetchCache(Window(0, 1, 0), loader=_stub_loader())
    cache.initialize(folder, "img8.png")

    cache.initialize(folder, "img0.png")

    assert cache.cached_indices() == [0, 1]


def test_cache_size_stays_within_window_bound(tmp_path):
    folder = _make_images(tmp_path, 12)
    for prev in range(3):
        for nxt in range(3):
            for keep in range(3):
                window = Window(prev, nxt, keep)
                cache = PrefetchCache(window, loader=_stub_loader(), load_concurrency=1)
                cache.initialize(folder)
                for target in (5, 11, 3, 4, 0, 7, 6):
                    cache.goto_index(target)
                    indices = cache.cached_indices()
                    assert len(indices) <= window.max_entries
                    assert indices == sorted(set(indices))
                cache.close()


def test_eviction_after_long_jump(tmp_path):
    folder = _make_images(tmp_path, 70)
    cache = PrefetchCache(Window(2, 3, 5), loader=_stub_loader())
    cache.initialize(folder)
    assert cache.cached_indices() == [0, 1, 2, 3]

    cache.goto_index(50)

    indices = cache.cached_indices()
    assert 0 not in indices
    assert all(40 <= idx <= 63 for idx in indices)
    assert indices == [48, 49, 50, 51, 52, 53]
    assert cache.last_report.evicted == 4


def test_keep_buffer_retains_recent_entries(tmp_path):
    folder = _make_images(tmp_path, 20)
    cache = PrefetchCache(Window(0, 1, 2), loader=_stub_loader())
    cache.initialize(folder)

    cache.navigate_next()
    cache.navigate_next()

    assert cache.cached_indices() == [0, 1, 2, 3]


def test_navigate_past_end_is_noop_without_pass(tmp_path):
    folder = _make_images(tmp_path, 3)
    calls: list[int] = []
    cache = PrefetchCache(Window(1, 1, 0), loader=_stub_loader(calls))
    cache.initialize(folder, "img2.png")
    report = cache.last_report
    calls.clear()

    ref = cache.navigate_next()

    assert ref.index == 2
    assert cache.cursor == 2
    assert cache.last_report is report
    assert calls == []


def test_navigate_before_start_and_out_of_range_goto_are_noops(tmp_path):
    folder = _make_images(tmp_path, 3)
    calls: list[int] = []
    cache = PrefetchCache(Window(0, 0, 0), loader=_stub_loader(calls))
    cache.initialize(folder)
    report = cache.last_report

    assert cache.navigate_previous().index == 0
    assert cache.goto_index(7).index == 0
    assert cache.goto_index(-1).index == 0
    assert cache.last_report is report
    assert calls == [0]


def test_goto_current_index_reloads_after_failed_load(tmp_path):
    folder = _make_images(tmp_path, 3)
    broken = {1}
    calls: list[int] = []

    def _load(item):
        calls.append(item.index)
        if item.index in broken:
            raise ReadFailure(f"cannot read {item.path}")
        return _stub_loader()(item)

    cache = PrefetchCache(Window(0, 0, 0), loader=_load)
    ref = cache.initialize(folder, folder / "img1.png")
    assert not ref.is_cached
    assert cache.cached_indices() == []

    broken.clear()
    ref = cache.goto_index(1)

    assert ref.is_cached
    assert ref.index == 1
    assert calls == [1, 1]
    assert cache.status().current_is_cached is True
    assert cache.cached_indices() == [1]


def test_navigation_loads_missing_neighbours(tmp_path):
    folder = _make_images(tmp_path, 10)
    calls: list[int] = []
    cache = PrefetchCache(Window(1, 2, 0), loader=_stub_loader(calls), load_concurrency=1)
    cache.initialize(folder)
    assert calls == [0, 1, 2]

    calls.clear()
    ref = cache.navigate_next()

    assert ref.is_cached
    assert calls == [3]
    assert cache.cached_indices() == [0, 1, 2, 3]


def test_failed_load_is_isolated_and_retried(tmp_path):
    folder = _make_images(tmp_path, 5)
    broken = {2}

    def _load(item):
        if item.index in broken:
            raise ReadFailure(f"cannot read {item.path}")
        return _stub_loader()(item)

    cache = PrefetchCache(Window(0, 3, 0), loader=_load, load_concurrency=4)
    cache.initialize(folder)

    assert cache.cached_indices() == [0, 1, 3]
    assert cache.last_report.failed == 1
    assert cache.last_report.loaded == 3

    broken.clear()
    assert cache.request_pass() is PassOutcome.COMPLETED
    assert cache.cached_indices() == [0, 1, 2, 3]


def test_uncached_current_entry_resolves_without_caching(tmp_path):
    folder = _make_images(tmp_path, 3)

    def _load(item):
        if item.index == 1:
            raise ReadFailure("busy")
        return _stub_loader()(item)

    cache = PrefetchCache(Window(0, 0, 0), loader=_load)
    cache.initialize(folder)

    ref = cache.navigate_next()

    assert not ref.is_cached
    assert ref.path == folder / "img1.png"
    assert cache.status().current_is_cached is False
    with pytest.raises(ReadFailure):
        ref.resolve()


def test_deferred_reference_loads_outside_the_cache(tmp_path):
    folder = _make_images(tmp_path, 3)
    cache = PrefetchCache(Window(0, 0, 0), loader=_stub_loader())
    cache.initialize(folder)
    cache._pass_guard.acquire()
    try:
        ref = cache.navigate_next()
    finally:
        cache._pass_guard.release()

    assert not ref.is_cached
    entry = ref.resolve()
    assert entry.index == 1
    assert cache.cached_indices() == [0]


def test_request_pass_is_dropped_while_another_runs(tmp_path):
    folder = _make_images(tmp_path, 4)
    cache = PrefetchCache(Window(0, 0, 0), loader=_stub_loader())
    cache.initialize(folder)

    cache._pass_guard.acquire()
    try:
        assert cache.request_pass() is PassOutcome.DROPPED
        cache.goto_index(3)
    finally:
        cache._pass_guard.release()

    assert cache.cursor == 3
    assert cache.entry_for(3) is None
    assert cache.request_pass() is PassOutcome.COMPLETED
    assert cache.cached_indices() == [3]


def test_background_pass_drops_concurrent_requests(tmp_path):
    folder = _make_images(tmp_path, 12)
    started = threading.Event()
    release = threading.Event()

    def _load(item):
        if item.index == 10:
            started.set()
            release.wait(5)
        return _stub_loader()(item)

    cache = PrefetchCache(Window(0, 0, 0), loader=_load, background=True, load_concurrency=1)
    cache.initialize(folder)

    ref = cache.goto_index(10)
    assert not ref.is_cached
    assert started.wait(5)

    assert cache.request_pass() is PassOutcome.DROPPED
    cache.goto_index(11)
    release.set()
    assert cache.wait_for_pass(timeout=5)

    # the stale pass finished against the newer cursor, so nothing survives
    assert cache.cursor == 11
    assert cache.cached_indices() == []
    assert cache.status().current_is_cached is False

    assert cache.request_pass(wait=True) is PassOutcome.COMPLETED
    assert cache.cached_indices() == [11]
    cache.close()


def test_background_navigation_schedules_pass(tmp_path):
    folder = _make_images(tmp_path, 5)
    cache = PrefetchCache(Window(0, 1, 0), loader=_stub_loader(), background=True)
    with cache:
        cache.initialize(folder)
        assert cache.cached_indices() == [0, 1]

        cache.navigate_next()
        assert cache.wait_for_pass(timeout=5)

        assert cache.cached_indices() == [1, 2]
        assert cache.last_report.cursor == 1


def test_set_window_applies_to_next_pass(tmp_path):
    folder = _make_images(tmp_path, 10)
    cache = PrefetchCache(Window(0, 0, 0), loader=_stub_loader())
    cache.initialize(folder)

    window = cache.set_window(0, 2, 0)

    assert cache.window == window
    assert cache.cached_indices() == [0]
    cache.navigate_next()
    assert cache.cached_indices() == [1, 2, 3]

    with pytest.raises(ValueError):
        cache.set_window(-1, 0, 0)


def test_status_counts(tmp_path):
    folder = _make_images(tmp_path, 8)
    cache = PrefetchCache(Window(1, 2, 0), loader=_stub_loader())
    cache.initialize(folder, "img4.png")

    status = cache.status()

    assert status.cached_count == 4
    assert status.total_count == 8
    assert status.current_is_cached is True


def test_uninitialized_and_closed_cache_raise(tmp_path):
    folder = _make_images(tmp_path, 2)
    cache = PrefetchCache(loader=_stub_loader())

    with pytest.raises(RuntimeError):
        cache.navigate_next()
    with pytest.raises(RuntimeError):
        cache.get_current_labels()

    cache.initialize(folder)
    cache.close()

    assert cache.cached_indices() == []
    with pytest.raises(RuntimeError):
        cache.navigate_next()
    with pytest.raises(RuntimeError):
        cache.initialize(folder)


def _labelled_dataset(tmp_path, count=3):
    folder = _make_images(tmp_path, count)
    labels_dir = tmp_path / "labels"
    labels_dir.mkdir()
    return folder, labels_dir


def test_get_current_labels_rereads_newer_sidecar(tmp_path):
    folder, labels_dir = _labelled_dataset(tmp_path)
    sidecar = labels_dir / "img0.txt"
    sidecar.write_text("0 0.5 0.5 0.2 0.2\n", encoding="utf-8")
    cache = PrefetchCache(Window(0, 1, 0))
    cache.initialize(folder)
    assert cache.get_current_labels() == [Label(0, 0.5, 0.5, 0.2, 0.2)]

    previous = sidecar.stat().st_mtime
    sidecar.write_text("3 0.25 0.25 0.1 0.1\n", encoding="utf-8")
    os.utime(sidecar, (previous + 10, previous + 10))

    assert cache.get_current_labels() == [Label(3, 0.25, 0.25, 0.1, 0.1)]
    entry = cache.entry_for(0)
    assert entry.labels == [Label(3, 0.25, 0.25, 0.1, 0.1)]
    assert entry.label_mtime == sidecar.stat().st_mtime
    cache.close()


def test_get_current_labels_skips_read_when_cache_is_current(tmp_path, monkeypatch):
    folder, labels_dir = _labelled_dataset(tmp_path)
    (labels_dir / "img0.txt").write_text("0 0.5 0.5 0.2 0.2\n", encoding="utf-8")
    cache = PrefetchCache(Window(0, 0, 0))
    cache.initialize(folder)

    def _fail(_path):
        raise AssertionError("sidecar should not be re-read")

    monkeypatch.setattr(loader_service, "read_labels", _fail)

    assert cache.get_current_labels() == [Label(0, 0.5, 0.5, 0.2, 0.2)]
    cache.close()


def test_get_current_labels_after_sidecar_deleted(tmp_path):
    folder, labels_dir = _labelled_dataset(tmp_path)
    sidecar = labels_dir / "img0.txt"
    sidecar.write_text("0 0.5 0.5 0.2 0.2\n", encoding="utf-8")
    cache = PrefetchCache(Window(0, 0, 0))
    cache.initialize(folder)

    sidecar.unlink()

    assert cache.get_current_labels() == []
    assert cache.entry_for(0).label_mtime is None
    cache.close()


def test_get_current_labels_for_uncached_item_reads_disk(tmp_path):
    folder, labels_dir = _labelled_dataset(tmp_path)
    (labels_dir / "img1.txt").write_text("1 0.5 0.5 0.2 0.2\n", encoding="utf-8")
    cache = PrefetchCache(Window(0, 0, 0))
    cache.initialize(folder)
    cache._pass_guard.acquire()
    try:
        cache.navigate_next()
    finally:
        cache._pass_guard.release()

    assert cache.entry_for(1) is None
    assert cache.get_current_labels() == [Label(1, 0.5, 0.5, 0.2, 0.2)]
    cache.close()


def test_detections_are_not_reread_for_cached_entries(tmp_path):
    folder = _make_images(tmp_path, 2)
    detections_dir = tmp_path / "detections"
    detections_dir.mkdir()
    sidecar = detections_dir / "img0.det.txt"
    sidecar.write_text("0 0.5 0.5 0.2 0.2 0.9\n", encoding="utf-8")
    cache = PrefetchCache(Window(0, 0, 0), loader=load_entry)
    cache.initialize(folder)

    sidecar.write_text("1 0.1 0.1 0.1 0.1 0.5\n", encoding="utf-8")

    detections = cache.get_current_detections()
    assert [d.class_id for d in detections] == [0]
    cache.close()


def test_replace_labels_only_patches_cached_entries(tmp_path):
    folder = _make_images(tmp_path, 4)
    cache = PrefetchCache(Window(0, 0, 0), loader=_stub_loader())
    cache.initialize(folder)
    labels = [Label(0, 0.5, 0.5, 0.2, 0.2)]

    entry = cache.replace_labels(0, labels, 42.0)

    assert entry is not None
    assert entry.labels == labels
    assert entry.label_mtime == 42.0
    assert cache.replace_labels(3, labels, 42.0) is None
