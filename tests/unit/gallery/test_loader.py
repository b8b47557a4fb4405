"""Unit tests for gallery/loader.py — single and batched downloads."""

import threading
from datetime import datetime
from unittest.mock import MagicMock

import pytest

from photo_disk_bot.disk.client import FetchFailed
from photo_disk_bot.disk.models import ImageRecord
from photo_disk_bot.gallery.loader import ContentLoader

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _record(name: str, preview_url: str | None = None, file_url: str | None = None) -> ImageRecord:
    return ImageRecord(
        name=name,
        file_url=f"https://dl.example/{name}" if file_url is None else file_url,
        preview_url=f"https://dl.example/preview/{name}" if preview_url is None else preview_url,
        mime_type="image/jpeg",
        size_bytes=10,
        captured_at=datetime(2020, 5, 1),
        parent_folder_name="Camera",
    )


def _client(failing: set[str] | None = None) -> MagicMock:
    failing = failing or set()

    def download(url: str) -> bytes:
        if any(url.endswith(name) for name in failing):
            raise FetchFailed(500, "boom")
        return f"bytes:{url}".encode()

    client = MagicMock()
    client.download.side_effect = download
    return client


# ---------------------------------------------------------------------------
# Single loads
# ---------------------------------------------------------------------------


class TestSingleLoads:
    def test_thumbnail_uses_preview_url(self) -> None:
        client = _client()
        content = ContentLoader(client).load_thumbnail(_record("a.jpg"))
        assert content == b"bytes:https://dl.example/preview/a.jpg"

    def test_original_uses_file_url(self) -> None:
        client = _client()
        content = ContentLoader(client).load_original(_record("a.jpg"))
        assert content == b"bytes:https://dl.example/a.jpg"

    def test_single_failure_raises(self) -> None:
        with pytest.raises(FetchFailed):
            ContentLoader(_client({"a.jpg"})).load_original(_record("a.jpg"))

    def test_missing_link_raises_without_request(self) -> None:
        client = _client()
        with pytest.raises(FetchFailed, match="No thumbnail link"):
            ContentLoader(client).load_thumbnail(_record("a.jpg", preview_url=""))
        client.download.assert_not_called()


# ---------------------------------------------------------------------------
# Batched loads
# ---------------------------------------------------------------------------


class TestBatchedLoads:
    def test_results_keep_input_order(self) -> None:
        records = [_record(f"{i}.jpg") for i in range(6)]
        results = ContentLoader(_client(), max_workers=3).load_originals(records)
        assert results == [f"bytes:https://dl.example/{i}.jpg".encode() for i in range(6)]

    def test_failed_item_does_not_abort_batch(self) -> None:
        records = [_record("a.jpg"), _record("b.jpg"), _record("c.jpg")]
        results = ContentLoader(_client({"b.jpg"})).load_thumbnails(records)
        assert results[0] is not None
        assert results[1] is None
        assert results[2] is not None

    def test_empty_batch(self) -> None:
        client = _client()
        assert ContentLoader(client).load_thumbnails([]) == []
        client.download.assert_not_called()

    def test_downloads_run_concurrently(self) -> None:
        barrier = threading.Barrier(3, timeout=5)

        def download(url: str) -> bytes:
            barrier.wait()
            return b"ok"

        client = MagicMock()
        client.download.side_effect = download
        records = [_record(f"{i}.jpg") for i in range(3)]

        results = ContentLoader(client, max_workers=3).load_originals(records)

        assert results == [b"ok", b"ok", b"ok"]
