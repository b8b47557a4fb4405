"""In-memory index of JPEG photos, loaded folder by folder from the disk."""

from __future__ import annotations

import logging
import random
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import TYPE_CHECKING

from photo_disk_bot.disk.client import DecodeFailed, FetchFailed
from photo_disk_bot.disk.models import FolderRecord, ImageRecord, Outcome, normalize_name

if TYPE_CHECKING:
    from datetime import date

    from photo_disk_bot.config import AppConfig
    from photo_disk_bot.disk.client import DiskClient
    from photo_disk_bot.disk.listing import MetadataFetcher

logger = logging.getLogger(__name__)

DEFAULT_FIRST_PAGE_SIZE = 20
DEFAULT_PAGE_SIZE = 100


class EmptyFolder(Exception):
    """Raised when a random pick is requested from a folder with no cached images."""

    def __init__(self, folder: str) -> None:
        super().__init__(f"No images cached for folder {folder!r}")
        self.folder = folder


class ImageIndex:
    """Append-only cache of ImageRecords across every folder loaded so far.

    Records from previously selected folders are kept when the user switches
    folders; queries filter by the folder passed in. A folder is loaded in two
    phases: a small first page synchronously, then the remaining pages on a
    background worker that appends as each page arrives.

    All structural mutations and snapshots happen under one lock, so the
    background loader and command handlers can run concurrently. Deleted
    paths are remembered so a page fetched before a delete cannot bring the
    record back.
    """

    def __init__(
        self,
        fetcher: MetadataFetcher,
        client: DiskClient,
        photos_root: str,
        first_page_size: int = DEFAULT_FIRST_PAGE_SIZE,
        page_size: int = DEFAULT_PAGE_SIZE,
        rng: random.Random | None = None,
    ) -> None:
        """Initialise an empty index.

        Args:
            fetcher: MetadataFetcher used to list folder pages.
            client: DiskClient used for remote deletes.
            photos_root: Disk folder whose subfolders hold the photos.
            first_page_size: Entries fetched before ensure_folder_loaded returns.
            page_size: Entries per page for the background load.
            rng: Random source; a private instance when omitted.
        """
        self._fetcher = fetcher
        self._client = client
        self._photos_root = photos_root.rstrip("/")
        self._first_page_size = first_page_size
        self._page_size = page_size
        self._rng = rng or random.Random()
        self._lock = threading.Lock()
        self._records: list[ImageRecord] = []
        self._loaded_folders: set[str] = set()
        self._deleted_paths: set[str] = set()
        self._pending: dict[str, Future[int]] = {}
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="index-loader")

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def folder_path(self, folder: str) -> str:
        return f"{self._photos_root}/{folder}"

    def ensure_folder_loaded(self, folder: str) -> Outcome[int]:
        """Make sure ``folder`` has been (or is being) loaded into the cache.

        Returns immediately when the folder was loaded before. Otherwise the
        first page is fetched synchronously and the rest is scheduled in the
        background.

        Args:
            folder: Folder name under the photos root.

        Returns:
            OK with the number of images cached so far for the folder, EMPTY
            if the folder holds no JPEGs, FAILED if the first page could not
            be fetched (the folder is then retried on the next call).
        """
        with self._lock:
            if folder in self._loaded_folders or self._has_folder_locked(folder):
                count = self._count_locked(folder)
                return Outcome.ok(count) if count else Outcome.empty(0)
            self._loaded_folders.add(folder)

        path = self.folder_path(folder)
        try:
            images, raw_count = self._fetcher.fetch_images(path, 0, self._first_page_size)
        except (FetchFailed, DecodeFailed) as exc:
            logger.warning("[ensure_folder_loaded] first page failed; folder:%s;error:%s", folder, exc)
            with self._lock:
                self._loaded_folders.discard(folder)
            return Outcome.failed(0, str(exc))

        self._append(images)
        logger.info(
            "[ensure_folder_loaded] first page cached; folder:%s;image_count:%d",
            folder,
            len(images),
        )

        has_more = raw_count >= self._first_page_size
        if has_more:
            future = self._executor.submit(self._load_remaining, folder, path, raw_count)
            future.add_done_callback(self._log_background_failure)
            with self._lock:
                self._pending[folder] = future

        if images or has_more:
            return Outcome.ok(len(images))
        return Outcome.empty(0)

    def _load_remaining(self, folder: str, path: str, offset: int) -> int:
        """Fetch every page after ``offset``; stop at the last page or first failure."""
        added = 0
        while True:
            try:
                images, raw_count = self._fetcher.fetch_images(path, offset, self._page_size)
            except (FetchFailed, DecodeFailed) as exc:
                logger.warning(
                    "[_load_remaining] page failed, stopping; folder:%s;offset:%d;error:%s",
                    folder,
                    offset,
                    exc,
                )
                break
            self._append(images)
            added += len(images)
            if raw_count < self._page_size:
                break
            offset += raw_count
        logger.info("[_load_remaining] background load complete; folder:%s;image_count:%d", folder, added)
        return added

    @staticmethod
    def _log_background_failure(future: Future[int]) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.error("[_load_remaining] background load crashed", exc_info=exc)

    def wait_for_background(self, timeout: float | None = None) -> None:
        """Block until every scheduled background load has finished."""
        with self._lock:
            pending = list(self._pending.values())
        for future in pending:
            future.exception(timeout=timeout)

    def list_folders(self) -> Outcome[list[FolderRecord]]:
        """List switchable folders under the photos root (never cached)."""
        try:
            folders = self._fetcher.fetch_folders(self._photos_root)
        except (FetchFailed, DecodeFailed) as exc:
            logger.warning("[list_folders] folder listing failed; error:%s", exc)
            return Outcome.failed([], str(exc))
        return Outcome.ok(folders) if folders else Outcome.empty([])

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def random_image(self, folder: str) -> ImageRecord:
        """Pick a cached image from ``folder`` uniformly at random.

        Raises:
            EmptyFolder: If no cached image belongs to ``folder``.
        """
        candidates = self._snapshot(folder)
        if not candidates:
            raise EmptyFolder(folder)
        return self._rng.choice(candidates)

    def images_on_date(self, day: date, folder: str | None = None) -> list[ImageRecord]:
        """All cached images captured on ``day``, in load order."""
        return [r for r in self._snapshot(folder) if r.captured_on == day]

    def random_image_on_date(self, day: date, folder: str | None = None) -> ImageRecord | None:
        """Random image captured on ``day``, or None when there is none."""
        candidates = self.images_on_date(day, folder)
        if not candidates:
            return None
        return self._rng.choice(candidates)

    def random_image_on_date_or_any(self, day: date, folder: str) -> tuple[ImageRecord, bool]:
        """Random image from ``day``, falling back to any image in ``folder``.

        Returns:
            A tuple of (image, matched_day); matched_day is False when the
            fallback was used.

        Raises:
            EmptyFolder: If the folder has no cached images at all.
        """
        match = self.random_image_on_date(day, folder)
        if match is not None:
            return match, True
        return self.random_image(folder), False

    def find_by_name(self, substring: str, folder: str | None = None) -> ImageRecord | None:
        """First cached image whose name contains ``substring`` (case-insensitive)."""
        for record in self._snapshot(folder):
            if record.matches(substring):
                return record
        return None

    def find_exact(self, name: str, folder: str | None = None) -> ImageRecord | None:
        """Cached image whose normalized name equals ``name``'s."""
        wanted = normalize_name(name)
        for record in self._snapshot(folder):
            if normalize_name(record.name) == wanted:
                return record
        return None

    def count(self, folder: str | None = None) -> int:
        with self._lock:
            return self._count_locked(folder)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def delete_image(self, name: str, folder: str | None = None) -> ImageRecord | None:
        """Delete an image from the disk and drop it from the index.

        The remote delete is issued first; if it fails the FetchFailed is
        raised and the index is left unchanged. Downloads already in flight
        are not affected.

        Returns:
            The removed record, or None if no cached image has that name.
        """
        target = self.find_exact(name, folder)
        if target is None:
            return None
        remote_path = self._remote_path(target)
        self._client.delete_resource(remote_path)
        with self._lock:
            self._deleted_paths.add(remote_path)
            self._records = [r for r in self._records if self._remote_path(r) != remote_path]
        logger.info("[delete_image] deleted image; name:%s;folder:%s", target.name, target.parent_folder_name)
        return target

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _remote_path(self, record: ImageRecord) -> str:
        return record.path or f"{self.folder_path(record.parent_folder_name)}/{record.name}"

    def _append(self, images: list[ImageRecord]) -> None:
        if not images:
            return
        with self._lock:
            self._records.extend(r for r in images if self._remote_path(r) not in self._deleted_paths)

    def _snapshot(self, folder: str | None) -> list[ImageRecord]:
        with self._lock:
            if folder is None:
                return list(self._records)
            return [r for r in self._records if r.parent_folder_name == folder]

    def _has_folder_locked(self, folder: str) -> bool:
        return any(r.parent_folder_name == folder for r in self._records)

    def _count_locked(self, folder: str | None) -> int:
        if folder is None:
            return len(self._records)
        return sum(1 for r in self._records if r.parent_folder_name == folder)


def image_index_from_config(fetcher: MetadataFetcher, client: DiskClient, config: AppConfig) -> ImageIndex:
    """Construct an ImageIndex from application configuration."""
    return ImageIndex(
        fetcher=fetcher,
        client=client,
        photos_root=config.photos_root,
        first_page_size=config.first_page_size,
        page_size=config.page_size,
    )
