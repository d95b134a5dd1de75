from __future__ import annotations

import base64
import os

import pytest

from labelpager import Label, PagerSession
from labelpager.config import Config


def _dataset(tmp_path, count):
    images = tmp_path / "project" / "images"
    images.mkdir(parents=True)
    for idx in range(count):
        (images / f"shot_{idx + 1}.png").write_bytes(f"png-{idx}".encode("ascii"))
    return images


def test_full_paging_session(tmp_path):
    images = _dataset(tmp_path, 30)
    labels_dir = tmp_path / "project" / "labels"
    labels_dir.mkdir()
    (labels_dir / "shot_10.txt").write_text(
        "0 0.5 0.5 0.2 0.2\n0 1.5 0.5 0.2 0.2\n", encoding="utf-8"
    )
    config = Config(prev_radius=2, next_radius=3, keep_buffer=2, load_concurrency=3)

    with PagerSession(config=config) as session:
        ref = session.initialize(images, images / "shot_9.png")
        assert ref.path.name == "shot_9.png"
        assert base64.b64decode(ref.resolve().payload) == b"png-8"

        # natural order puts shot_10 right after shot_9
        ref = session.navigate_next()
        assert ref.path.name == "shot_10.png"
        assert ref.is_cached
        assert session.get_current_labels() == [Label(0, 0.5, 0.5, 0.2, 0.2)]

        known = set(session.cache.cached_indices())
        for _ in range(5):
            session.navigate_next()
            window = session.cache.window
            assert len(session.cache.cached_indices()) <= window.max_entries
        batch = session.delta_since(known)
        assert batch.indices
        assert not set(batch.indices) & known
        messages = batch.messages()
        assert messages[-1]["command"] == "endOfBatch"
        assert messages[0]["dataUri"].startswith("data:image/png;base64,")

        result = session.save_labels(
            "shot_15.png",
            [{"classId": 2, "cx": 0.125, "cy": 0.875, "w": 0.0625, "h": 0.25}],
        )
        assert result.success
        saved = (labels_dir / "shot_15.txt").read_text(encoding="utf-8")
        assert saved == "2 0.125000 0.875000 0.062500 0.250000"
        assert session.get_current_item_info().filename == "shot_15.png"
        assert session.get_current_labels()[0].cx == pytest.approx(0.125, abs=1e-6)

        # an external edit with a newer mtime is picked up on the next read
        sidecar = labels_dir / "shot_15.txt"
        sidecar.write_text("3 0.5 0.5 0.5 0.5", encoding="utf-8")
        newer = sidecar.stat().st_mtime + 5
        os.utime(sidecar, (newer, newer))
        assert session.get_current_labels() == [Label(3, 0.5, 0.5, 0.5, 0.5)]

        session.goto_index(0)
        status = session.get_cache_status()
        assert status.total_count == 30
        assert status.current_is_cached
        assert max(session.cache.cached_indices()) <= 0 + 3 + 2

    with pytest.raises(RuntimeError):
        session.navigate_next()
