"""Data models for cloud disk resources and folder listings."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import date, datetime
from typing import Generic, TypeVar

# Disk API JSON field names
FIELD_EMBEDDED = "_embedded"
FIELD_ITEMS = "items"
FIELD_NAME = "name"
FIELD_FILE = "file"
FIELD_PREVIEW = "preview"
FIELD_MIME_TYPE = "mime_type"
FIELD_SIZE = "size"
FIELD_PATH = "path"
FIELD_TYPE = "type"
FIELD_EXIF = "exif"
FIELD_DATE_TIME = "date_time"
FIELD_PUBLIC_URL = "public_url"

RESOURCE_TYPE_DIR = "dir"

JPEG_EXTENSIONS = (".jpg", ".jpeg")
JPEG_MIME_TYPE = "image/jpeg"

T = TypeVar("T")


def normalize_name(name: str) -> str:
    """Fold a user-facing name for matching: case-insensitive, '_' equals ' '."""
    return name.replace("_", " ").lower()


def parent_folder_name(path: str) -> str:
    """Return the last path segment before the file name.

    ``disk:/Photos/Vacation/sunset.jpg`` -> ``Vacation``.
    """
    head, _, _ = path.rpartition("/")
    return head.rpartition("/")[2].rpartition(":")[2]


@dataclass(frozen=True)
class ImageRecord:
    """Represents one JPEG photo on the disk."""

    name: str
    file_url: str
    preview_url: str
    mime_type: str
    size_bytes: int | None
    captured_at: datetime
    parent_folder_name: str
    path: str = ""

    @property
    def captured_on(self) -> date:
        return self.captured_at.date()

    def matches(self, query: str) -> bool:
        """True if ``query`` is a case-insensitive substring of the name."""
        return normalize_name(query) in normalize_name(self.name)


@dataclass(frozen=True)
class FolderRecord:
    """Represents a disk directory usable as the current folder."""

    name: str
    kind: str = RESOURCE_TYPE_DIR


class OutcomeStatus(enum.Enum):
    OK = "ok"
    EMPTY = "empty"
    FAILED = "failed"


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Tagged result that keeps "nothing there" apart from "remote call failed".

    Attributes:
        status: OK when ``value`` holds data, EMPTY for a legitimate empty
            result, FAILED when a remote call failed.
        value: The payload (may be an empty container for EMPTY/FAILED).
        reason: Human-readable failure reason for FAILED outcomes.
    """

    status: OutcomeStatus
    value: T
    reason: str = ""

    @classmethod
    def ok(cls, value: T) -> Outcome[T]:
        return cls(OutcomeStatus.OK, value)

    @classmethod
    def empty(cls, value: T) -> Outcome[T]:
        return cls(OutcomeStatus.EMPTY, value)

    @classmethod
    def failed(cls, value: T, reason: str) -> Outcome[T]:
        return cls(OutcomeStatus.FAILED, value, reason)

    @property
    def is_ok(self) -> bool:
        return self.status is OutcomeStatus.OK
