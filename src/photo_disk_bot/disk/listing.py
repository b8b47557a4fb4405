"""Paginated folder listing against the disk resources endpoint."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from photo_disk_bot.disk.client import DecodeFailed, DiskClient
from photo_disk_bot.disk.models import (
    FIELD_DATE_TIME,
    FIELD_EXIF,
    FIELD_FILE,
    FIELD_MIME_TYPE,
    FIELD_NAME,
    FIELD_PATH,
    FIELD_PREVIEW,
    FIELD_SIZE,
    FIELD_TYPE,
    JPEG_EXTENSIONS,
    JPEG_MIME_TYPE,
    RESOURCE_TYPE_DIR,
    FolderRecord,
    ImageRecord,
    parent_folder_name,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from photo_disk_bot.config import AppConfig

logger = logging.getLogger(__name__)

# The ``fields`` filter below makes the listing body exactly
# {"_embedded":{"items":[...]}}. The wrapper is stripped by length, so any
# change to ``fields`` must keep this framing.
ENVELOPE_PREFIX = '{"_embedded":{"items":'
ENVELOPE_SUFFIX = "}}"

IMAGE_FIELDS = ",".join(
    f"_embedded.items.{f}"
    for f in (FIELD_NAME, FIELD_FILE, FIELD_PREVIEW, FIELD_MIME_TYPE, FIELD_SIZE, FIELD_PATH, FIELD_EXIF)
)
FOLDER_FIELDS = ",".join(f"_embedded.items.{f}" for f in (FIELD_NAME, FIELD_TYPE))

# Upper bound on a single listing request accepted by the disk API.
MAX_PAGE_SIZE = 1000
DEFAULT_PREVIEW_SIZE = "XL"


def strip_envelope(
    body: str,
    prefix: str = ENVELOPE_PREFIX,
    suffix: str = ENVELOPE_SUFFIX,
) -> list[dict[str, Any]]:
    """Remove the fixed-length wrapper around a listing page and parse the array.

    Args:
        body: Raw response text.
        prefix: Expected leading wrapper.
        suffix: Expected trailing wrapper.

    Returns:
        The decoded list of raw entries.

    Raises:
        DecodeFailed: If the wrapper does not match or the inner text is not
            a JSON array.
    """
    text = body.strip()
    if not text.startswith(prefix) or not text.endswith(suffix):
        raise DecodeFailed(f"Unexpected listing envelope: {text[:40]!r}")
    inner = text[len(prefix) : len(text) - len(suffix)]
    try:
        items = json.loads(inner)
    except ValueError as exc:
        raise DecodeFailed(f"Listing payload is not valid JSON: {exc}") from exc
    if not isinstance(items, list):
        raise DecodeFailed("Listing payload is not a JSON array")
    return items


def parse_captured_at(raw: dict[str, Any], now: Callable[[], datetime] = datetime.now) -> datetime:
    """Read ``exif.date_time`` from a raw entry, falling back to ``now()``."""
    exif = raw.get(FIELD_EXIF) or {}
    value = exif.get(FIELD_DATE_TIME) if isinstance(exif, dict) else None
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            logger.debug("[parse_captured_at] unparseable exif date; value:%s", value)
    return now()


def is_jpeg_entry(raw: dict[str, Any]) -> bool:
    name = str(raw.get(FIELD_NAME, ""))
    mime = str(raw.get(FIELD_MIME_TYPE, ""))
    return name.lower().endswith(JPEG_EXTENSIONS) and mime == JPEG_MIME_TYPE


def parse_image_entry(raw: dict[str, Any], now: Callable[[], datetime] = datetime.now) -> ImageRecord:
    """Map a raw listing entry to an ImageRecord."""
    path = str(raw.get(FIELD_PATH, ""))
    size = raw.get(FIELD_SIZE)
    return ImageRecord(
        name=str(raw.get(FIELD_NAME, "")),
        file_url=str(raw.get(FIELD_FILE, "")),
        preview_url=str(raw.get(FIELD_PREVIEW, "")),
        mime_type=str(raw.get(FIELD_MIME_TYPE, "")),
        size_bytes=int(size) if isinstance(size, int) else None,
        captured_at=parse_captured_at(raw, now),
        parent_folder_name=parent_folder_name(path),
        path=path,
    )


class MetadataFetcher:
    """Fetches and decodes folder listing pages from the disk API."""

    def __init__(self, client: DiskClient, preview_size: str = DEFAULT_PREVIEW_SIZE) -> None:
        """Initialise the fetcher.

        Args:
            client: Authenticated DiskClient instance.
            preview_size: Thumbnail size requested for ``preview`` links.
        """
        self._client = client
        self._preview_size = preview_size

    def fetch_folder_listing(
        self,
        path: str,
        offset: int = 0,
        limit: int = 100,
        fields: str = IMAGE_FIELDS,
    ) -> list[dict[str, Any]]:
        """Fetch one page of raw entries for a folder.

        Args:
            path: Disk path of the folder (e.g. "disk:/Photos/Vacation").
            offset: Index of the first entry to return.
            limit: Page size, capped at MAX_PAGE_SIZE.
            fields: ``fields`` filter; must keep the listing envelope framing.

        Returns:
            Raw entry dicts for that page.

        Raises:
            FetchFailed: If the HTTP call fails.
            DecodeFailed: If the envelope or JSON is malformed.
        """
        params = {
            "path": path,
            "offset": offset,
            "limit": min(limit, MAX_PAGE_SIZE),
            "preview_size": self._preview_size,
            "fields": fields,
        }
        body = self._client.get_raw("/resources", params)
        try:
            text = body.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecodeFailed(f"Listing body is not UTF-8: {exc}") from exc
        items = strip_envelope(text)
        logger.info(
            "[fetch_folder_listing] fetched page; path:%s;offset:%d;entry_count:%d",
            path,
            offset,
            len(items),
        )
        return items

    def fetch_images(self, path: str, offset: int = 0, limit: int = 100) -> tuple[list[ImageRecord], int]:
        """Fetch one page and keep only JPEG entries.

        Returns:
            A tuple of (images, raw_count) where raw_count is the number of
            entries on the page before filtering; callers use it to detect
            the last page.
        """
        raw_items = self.fetch_folder_listing(path, offset, limit)
        images = [parse_image_entry(raw) for raw in raw_items if is_jpeg_entry(raw)]
        skipped = len(raw_items) - len(images)
        if skipped:
            logger.info("[fetch_images] skipped non-jpeg entries; path:%s;count:%d", path, skipped)
        return images, len(raw_items)

    def fetch_folders(self, path: str, limit: int = MAX_PAGE_SIZE) -> list[FolderRecord]:
        """List the immediate subdirectories of ``path``."""
        raw_items = self.fetch_folder_listing(path, 0, limit, fields=FOLDER_FIELDS)
        return [
            FolderRecord(name=str(raw[FIELD_NAME]), kind=RESOURCE_TYPE_DIR)
            for raw in raw_items
            if raw.get(FIELD_TYPE) == RESOURCE_TYPE_DIR and FIELD_NAME in raw
        ]


def metadata_fetcher_from_config(client: DiskClient, config: AppConfig) -> MetadataFetcher:
    """Construct a MetadataFetcher from application configuration."""
    return MetadataFetcher(client=client, preview_size=config.preview_size)
