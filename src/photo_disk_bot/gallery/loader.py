"""Thumbnail and original downloads, one at a time or fanned out."""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING

from photo_disk_bot.disk.client import FetchFailed

if TYPE_CHECKING:
    from collections.abc import Sequence

    from photo_disk_bot.config import AppConfig
    from photo_disk_bot.disk.client import DiskClient
    from photo_disk_bot.disk.models import ImageRecord

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 8

KIND_THUMBNAIL = "thumbnail"
KIND_ORIGINAL = "original"


class ContentLoader:
    """Downloads image bytes through the disk client.

    Single loads raise FetchFailed. Batched loads run the downloads
    concurrently, wait for all of them, and return None in place of any
    download that failed.
    """

    def __init__(self, client: DiskClient, max_workers: int = DEFAULT_MAX_WORKERS) -> None:
        self._client = client
        self._max_workers = max_workers

    def load_thumbnail(self, record: ImageRecord) -> bytes:
        return self._fetch(record, KIND_THUMBNAIL)

    def load_original(self, record: ImageRecord) -> bytes:
        return self._fetch(record, KIND_ORIGINAL)

    def load_thumbnails(self, records: Sequence[ImageRecord]) -> list[bytes | None]:
        """Download thumbnails for ``records`` concurrently, in input order."""
        return self._fetch_many(records, KIND_THUMBNAIL)

    def load_originals(self, records: Sequence[ImageRecord]) -> list[bytes | None]:
        """Download originals for ``records`` concurrently, in input order."""
        return self._fetch_many(records, KIND_ORIGINAL)

    def _fetch(self, record: ImageRecord, kind: str) -> bytes:
        url = record.preview_url if kind == KIND_THUMBNAIL else record.file_url
        if not url:
            raise FetchFailed(0, f"No {kind} link for {record.name}")
        started = time.perf_counter()
        try:
            content = self._client.download(url)
        except FetchFailed:
            logger.warning(
                "[load_%s] download failed; name:%s;elapsed_ms:%d",
                kind,
                record.name,
                (time.perf_counter() - started) * 1000,
            )
            raise
        logger.info(
            "[load_%s] downloaded; name:%s;bytes:%d;elapsed_ms:%d",
            kind,
            record.name,
            len(content),
            (time.perf_counter() - started) * 1000,
        )
        return content

    def _fetch_or_none(self, record: ImageRecord, kind: str) -> bytes | None:
        try:
            return self._fetch(record, kind)
        except FetchFailed:
            return None

    def _fetch_many(self, records: Sequence[ImageRecord], kind: str) -> list[bytes | None]:
        if not records:
            return []
        started = time.perf_counter()
        workers = max(1, min(self._max_workers, len(records)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix=f"{kind}-loader") as pool:
            results = list(pool.map(lambda r: self._fetch_or_none(r, kind), records))
        failed = sum(1 for r in results if r is None)
        logger.info(
            "[load_%ss] batch complete; count:%d;failed:%d;elapsed_ms:%d",
            kind,
            len(records),
            failed,
            (time.perf_counter() - started) * 1000,
        )
        return results


def content_loader_from_config(client: DiskClient, config: AppConfig) -> ContentLoader:
    """Construct a ContentLoader from application configuration."""
    return ContentLoader(client=client, max_workers=config.download_workers)
