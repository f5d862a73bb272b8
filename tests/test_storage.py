"""Tests for screenshot naming and retention."""

import pytest

from match_notifier.capture import ScreenshotStore
from match_notifier.config import RetentionMode


def _fill(store: ScreenshotStore, count: int) -> list:
    paths = []
    for _ in range(count):
        path = store.next_path()
        path.write_bytes(b"png")
        paths.append(path)
    return paths


class TestNaming:
    def test_paths_strictly_increase(self, tmp_path):
        """Back-to-back calls never produce the same name."""
        store = ScreenshotStore(tmp_path)

        paths = [store.next_path() for _ in range(50)]

        stamps = [int(p.stem.split("-")[1]) for p in paths]
        assert stamps == sorted(set(stamps))

    def test_creates_directory(self, tmp_path):
        store = ScreenshotStore(tmp_path / "nested" / "shots")

        assert store.base_path.is_dir()
        assert store.is_writable()

    def test_listing_ignores_other_files(self, tmp_path):
        store = ScreenshotStore(tmp_path)
        _fill(store, 2)
        (tmp_path / "notes.txt").write_text("x")

        assert len(store.list_screenshots()) == 2


class TestRetention:
    @pytest.mark.asyncio
    async def test_keep_latest_trims_oldest(self, tmp_path):
        store = ScreenshotStore(tmp_path, retention_mode=RetentionMode.KEEP_LATEST, retention_count=2)
        paths = _fill(store, 5)

        removed = await store.apply_retention()

        assert removed == paths[:3]
        assert store.list_screenshots() == paths[3:]

    @pytest.mark.asyncio
    async def test_keep_all(self, tmp_path):
        store = ScreenshotStore(tmp_path, retention_mode=RetentionMode.KEEP_ALL)
        _fill(store, 3)

        assert await store.apply_retention() == []
        assert store.get_storage_stats()["total_files"] == 3

    @pytest.mark.asyncio
    async def test_delete_after_dispatch_only_when_delivered(self, tmp_path):
        store = ScreenshotStore(tmp_path, retention_mode=RetentionMode.DELETE_AFTER_DISPATCH)
        first, second = _fill(store, 2)

        assert await store.apply_retention(latest=first, dispatched=False) == []
        assert await store.apply_retention(latest=second, dispatched=True) == [second]
        assert store.list_screenshots() == [first]

    @pytest.mark.asyncio
    async def test_delete_missing_file(self, tmp_path):
        store = ScreenshotStore(tmp_path)

        assert await store.delete(tmp_path / "screenshot-1.png") is False
