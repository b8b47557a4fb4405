"""Process-wide wiring of the disk client, index, loader and likes store."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING

from photo_disk_bot.disk.client import DiskClient, disk_client_from_config
from photo_disk_bot.disk.listing import MetadataFetcher, metadata_fetcher_from_config
from photo_disk_bot.gallery.index import ImageIndex, image_index_from_config
from photo_disk_bot.gallery.likes import LikesStore, likes_store_from_config
from photo_disk_bot.gallery.loader import ContentLoader, content_loader_from_config

if TYPE_CHECKING:
    from photo_disk_bot.config import AppConfig

logger = logging.getLogger(__name__)


@dataclass
class BotRuntime:
    """Everything a command handler needs, built once per process."""

    config: AppConfig
    client: DiskClient
    fetcher: MetadataFetcher
    index: ImageIndex
    loader: ContentLoader
    likes: LikesStore

    def warm_up(self) -> None:
        """Load the default folder so the first command is answered quickly."""
        outcome = self.index.ensure_folder_loaded(self.config.default_folder)
        logger.info(
            "[warm_up] default folder load; folder:%s;status:%s;image_count:%d",
            self.config.default_folder,
            outcome.status.value,
            outcome.value,
        )


def runtime_from_config(config: AppConfig) -> BotRuntime:
    """Construct a BotRuntime from application configuration.

    Args:
        config: Application configuration instance.

    Returns:
        Wired BotRuntime instance (nothing is fetched yet).
    """
    client = disk_client_from_config(config)
    fetcher = metadata_fetcher_from_config(client, config)
    loader = content_loader_from_config(client, config)
    return BotRuntime(
        config=config,
        client=client,
        fetcher=fetcher,
        index=image_index_from_config(fetcher, client, config),
        loader=loader,
        likes=likes_store_from_config(client, fetcher, loader, config),
    )


_runtime: BotRuntime | None = None
_runtime_lock = threading.Lock()


def get_runtime(config: AppConfig) -> BotRuntime:
    """Return the process-wide runtime, building it on first use.

    The index and likes live in memory, so every trigger in a warm process
    must share one instance.
    """
    global _runtime
    with _runtime_lock:
        if _runtime is None:
            _runtime = runtime_from_config(config)
            logger.info("[get_runtime] runtime created")
        return _runtime


def reset_runtime() -> None:
    """Drop the process-wide runtime (used by tests)."""
    global _runtime
    with _runtime_lock:
        if _runtime is not None:
            _runtime.index.close()
        _runtime = None
