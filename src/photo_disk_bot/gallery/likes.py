"""Per-chat liked photos mirrored into a public disk folder."""

from __future__ import annotations

import enum
import io
import logging
import threading
import zipfile
from dataclasses import dataclass
from typing import TYPE_CHECKING

from photo_disk_bot.disk.client import STATUS_NOT_FOUND, DecodeFailed, FetchFailed
from photo_disk_bot.disk.models import FIELD_PUBLIC_URL, ImageRecord, normalize_name

if TYPE_CHECKING:
    from photo_disk_bot.config import AppConfig
    from photo_disk_bot.disk.client import DiskClient
    from photo_disk_bot.disk.listing import MetadataFetcher
    from photo_disk_bot.gallery.loader import ContentLoader

logger = logging.getLogger(__name__)

FOLDER_META_FIELDS = "path,type,public_url"
LIKES_PAGE_SIZE = 100


class LikeStatus(enum.Enum):
    ADDED = "added"
    ALREADY_LIKED = "already_liked"
    REMOVED = "removed"
    NOT_LIKED = "not_liked"


class ProvisionState(enum.Enum):
    """Lifecycle of a chat's public likes folder.

    UNKNOWN -> EXISTS when the folder is found already public.
    UNKNOWN -> CREATED -> PUBLISHED -> EXISTS on first use.
    A chat stuck in CREATED or PUBLISHED resumes from there on the next access.
    """

    UNKNOWN = "unknown"
    CREATED = "created"
    PUBLISHED = "published"
    EXISTS = "exists"


class FolderProvisioningIncomplete(Exception):
    """Raised when the create/publish sequence for a likes folder did not finish."""

    def __init__(self, path: str, state: ProvisionState) -> None:
        super().__init__(f"Likes folder {path!r} left in state {state.value}")
        self.path = path
        self.state = state


@dataclass
class LikeEntry:
    """One liked photo of one chat.

    Attributes:
        chat_id: Owning Telegram chat.
        image_name: Disk file name of the liked photo.
        record: Source record used for downloads, when known.
    """

    chat_id: int
    image_name: str
    record: ImageRecord | None = None


class LikesStore:
    """Keeps the liked photos of every chat and mirrors them to the disk.

    Each chat gets a folder ``<likes_root>/<chat_id>`` that is created and
    published on first use, after ``likes_root`` itself. Liking copies the
    source file into it.
    """

    def __init__(
        self,
        client: DiskClient,
        fetcher: MetadataFetcher,
        loader: ContentLoader,
        likes_root: str,
    ) -> None:
        """Initialise an empty store.

        Args:
            client: DiskClient for folder provisioning, copies and deletes.
            fetcher: MetadataFetcher used to list a chat's folder after a restart.
            loader: ContentLoader for thumbnails and archive originals.
            likes_root: Disk folder that holds the per-chat folders.
        """
        self._client = client
        self._fetcher = fetcher
        self._loader = loader
        self._likes_root = likes_root.rstrip("/")
        self._lock = threading.Lock()
        self._provision_lock = threading.Lock()
        self._likes: dict[int, dict[str, LikeEntry]] = {}
        self._loaded_chats: set[int] = set()
        self._states: dict[int, ProvisionState] = {}
        self._root_ready = False
        self._public_urls: dict[int, str] = {}

    def folder_path(self, chat_id: int) -> str:
        return f"{self._likes_root}/{chat_id}"

    def provision_state(self, chat_id: int) -> ProvisionState:
        with self._provision_lock:
            return self._states.get(chat_id, ProvisionState.UNKNOWN)

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def add_like(self, chat_id: int, record: ImageRecord) -> LikeStatus:
        """Like ``record`` for ``chat_id``.

        Provisions the chat folder if needed, then copies the source file
        into it. The local set is only updated once the copy succeeded.

        Raises:
            FolderProvisioningIncomplete: If the folder could not be made public.
            FetchFailed: If the copy failed.
        """
        self._ensure_likes_loaded(chat_id)
        key = normalize_name(record.name)
        with self._lock:
            if key in self._likes.setdefault(chat_id, {}):
                return LikeStatus.ALREADY_LIKED

        self._ensure_folder(chat_id)
        copied = self._client.copy(record.path, f"{self.folder_path(chat_id)}/{record.name}")
        if not copied:
            logger.info("[add_like] file already in likes folder; chat_id:%d;name:%s", chat_id, record.name)

        with self._lock:
            chat_likes = self._likes.setdefault(chat_id, {})
            if key in chat_likes:
                return LikeStatus.ALREADY_LIKED
            chat_likes[key] = LikeEntry(chat_id=chat_id, image_name=record.name, record=record)
        logger.info("[add_like] liked; chat_id:%d;name:%s", chat_id, record.name)
        return LikeStatus.ADDED

    def remove_like(self, chat_id: int, name: str) -> LikeStatus:
        """Unlike ``name`` and delete its copy from the chat folder."""
        self._ensure_likes_loaded(chat_id)
        key = normalize_name(name)
        with self._lock:
            entry = self._likes.get(chat_id, {}).get(key)
        if entry is None:
            return LikeStatus.NOT_LIKED

        try:
            self._client.delete_resource(f"{self.folder_path(chat_id)}/{entry.image_name}")
        except FetchFailed as exc:
            if exc.status_code != STATUS_NOT_FOUND:
                raise
        with self._lock:
            self._likes.get(chat_id, {}).pop(key, None)
        logger.info("[remove_like] unliked; chat_id:%d;name:%s", chat_id, entry.image_name)
        return LikeStatus.REMOVED

    def is_liked(self, chat_id: int, name: str) -> bool:
        with self._lock:
            return normalize_name(name) in self._likes.get(chat_id, {})

    def list_likes(self, chat_id: int) -> list[LikeEntry]:
        """Return the chat's likes, listing its disk folder once per process."""
        self._ensure_likes_loaded(chat_id)
        with self._lock:
            return list(self._likes.get(chat_id, {}).values())

    def like_thumbnails(self, chat_id: int) -> list[tuple[LikeEntry, bytes]]:
        """Return (entry, thumbnail) pairs, downloading the thumbnails in one batch.

        Thumbnails are fetched for each call and not kept. Entries whose
        thumbnail could not be downloaded are left out.
        """
        entries = [e for e in self.list_likes(chat_id) if e.record is not None]
        thumbnails = self._loader.load_thumbnails([e.record for e in entries])  # type: ignore[misc]
        return [(e, t) for e, t in zip(entries, thumbnails, strict=True) if t is not None]

    def public_folder_url(self, chat_id: int) -> str:
        """Shareable link to the chat's likes folder, provisioning it if needed.

        Raises:
            FolderProvisioningIncomplete: If the folder could not be made public.
        """
        return self._ensure_folder(chat_id)

    def export_originals_archive(self, chat_id: int) -> bytes:
        """Download every liked original and pack them into a zip in memory.

        Entries are named by position (``1.jpg``, ``2.jpg``, ...) over the
        downloads that succeeded.
        """
        records = [e.record for e in self.list_likes(chat_id) if e.record is not None]
        originals = self._loader.load_originals(records)
        buffer = io.BytesIO()
        position = 0
        with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
            for content in originals:
                if content is None:
                    continue
                position += 1
                archive.writestr(f"{position}.jpg", content)
        logger.info(
            "[export_originals_archive] archive built; chat_id:%d;entries:%d;skipped:%d",
            chat_id,
            position,
            len(originals) - position,
        )
        return buffer.getvalue()

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _ensure_likes_loaded(self, chat_id: int) -> None:
        """Populate the chat's likes from its disk folder the first time they are needed."""
        with self._lock:
            if chat_id in self._loaded_chats or self._likes.get(chat_id):
                self._loaded_chats.add(chat_id)
                return
            self._loaded_chats.add(chat_id)

        path = self.folder_path(chat_id)
        records: list[ImageRecord] = []
        offset = 0
        try:
            while True:
                images, raw_count = self._fetcher.fetch_images(path, offset, LIKES_PAGE_SIZE)
                records.extend(images)
                if raw_count < LIKES_PAGE_SIZE:
                    break
                offset += raw_count
        except FetchFailed as exc:
            if exc.status_code != STATUS_NOT_FOUND:
                logger.warning("[list_likes] likes folder listing failed; chat_id:%d;error:%s", chat_id, exc)
                with self._lock:
                    self._loaded_chats.discard(chat_id)
                return
        except DecodeFailed as exc:
            logger.warning("[list_likes] likes folder listing undecodable; chat_id:%d;error:%s", chat_id, exc)
            with self._lock:
                self._loaded_chats.discard(chat_id)
            return

        with self._lock:
            chat_likes = self._likes.setdefault(chat_id, {})
            for record in records:
                chat_likes.setdefault(
                    normalize_name(record.name),
                    LikeEntry(chat_id=chat_id, image_name=record.name, record=record),
                )
        logger.info("[list_likes] loaded likes from disk; chat_id:%d;count:%d", chat_id, len(records))

    def _ensure_folder(self, chat_id: int) -> str:
        """Drive the provisioning state machine to EXISTS and return the public URL."""
        path = self.folder_path(chat_id)
        with self._provision_lock:
            state = self._states.get(chat_id, ProvisionState.UNKNOWN)
            if state is ProvisionState.EXISTS:
                return self._public_urls[chat_id]

            if state is ProvisionState.UNKNOWN:
                meta = self._folder_meta(path)
                if meta is None:
                    self._ensure_root()
                    self._client.create_folder(path)
                    state = ProvisionState.CREATED
                elif meta.get(FIELD_PUBLIC_URL):
                    return self._mark_exists(chat_id, str(meta[FIELD_PUBLIC_URL]))
                else:
                    state = ProvisionState.CREATED
                self._states[chat_id] = state

            if state is ProvisionState.CREATED:
                try:
                    self._client.publish(path)
                except FetchFailed as exc:
                    logger.error(
                        "[_ensure_folder] folder created but not published; path:%s;error:%s",
                        path,
                        exc,
                    )
                    raise FolderProvisioningIncomplete(path, state) from exc
                state = ProvisionState.PUBLISHED
                self._states[chat_id] = state

            try:
                meta = self._folder_meta(path)
            except FetchFailed as exc:
                logger.error("[_ensure_folder] public link lookup failed; path:%s;error:%s", path, exc)
                raise FolderProvisioningIncomplete(path, state) from exc
            url = (meta or {}).get(FIELD_PUBLIC_URL)
            if not url:
                logger.error("[_ensure_folder] published folder has no public link; path:%s", path)
                self._states[chat_id] = ProvisionState.CREATED
                raise FolderProvisioningIncomplete(path, ProvisionState.CREATED)
            return self._mark_exists(chat_id, str(url))

    def _ensure_root(self) -> None:
        if self._root_ready:
            return
        if self._client.create_folder(self._likes_root):
            logger.info("[_ensure_folder] created likes root; path:%s", self._likes_root)
        self._root_ready = True

    def _folder_meta(self, path: str) -> dict[str, object] | None:
        try:
            return self._client.get_resource(path, fields=FOLDER_META_FIELDS)
        except FetchFailed as exc:
            if exc.status_code == STATUS_NOT_FOUND:
                return None
            raise

    def _mark_exists(self, chat_id: int, url: str) -> str:
        self._states[chat_id] = ProvisionState.EXISTS
        self._public_urls[chat_id] = url
        logger.info("[_ensure_folder] likes folder ready; chat_id:%d;url:%s", chat_id, url)
        return url


def likes_store_from_config(
    client: DiskClient,
    fetcher: MetadataFetcher,
    loader: ContentLoader,
    config: AppConfig,
) -> LikesStore:
    """Construct a LikesStore from application configuration."""
    return LikesStore(client=client, fetcher=fetcher, loader=loader, likes_root=config.likes_root)
