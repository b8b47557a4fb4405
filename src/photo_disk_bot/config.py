"""Application configuration loaded from environment variables."""

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class AppConfig:
    """Centralized application configuration.

    Required fields have no defaults and will cause a KeyError at startup
    if the corresponding environment variable is missing. Domain constants
    have sensible defaults but can be overridden via environment variables.
    """

    # Required, no defaults: fail at startup if missing
    telegram_token: str
    disk_token: str
    allowed_user_id: int

    # Domain constants, overridable via env
    photos_root: str = "disk:/Photos"
    default_folder: str = "Camera"
    likes_root: str = "disk:/PhotoBotLikes"
    first_page_size: int = 20
    page_size: int = 100
    preview_size: str = "XL"
    http_timeout_seconds: float = 30.0
    download_workers: int = 8
    open_in_browser_url: str = (
        "https://disk.yandex.ru/client/disk/Photos?idApp=client&dialog=slider&idDialog=%2Fdisk%2FPhotos%2F"
    )
    webhook_secret: str = ""


def load_config() -> AppConfig:
    """Construct an AppConfig from environment variables.

    Required environment variables:
        PDB_TELEGRAM_TOKEN: Telegram bot API token.
        PDB_DISK_TOKEN: OAuth token for the cloud disk REST API.
        PDB_ALLOWED_USER_ID: Telegram user id of the only user the bot serves.

    Optional environment variables (with defaults):
        PDB_PHOTOS_ROOT: Disk folder whose subfolders can be browsed (default: disk:/Photos).
        PDB_DEFAULT_FOLDER: Subfolder selected for a new chat (default: Camera).
        PDB_LIKES_ROOT: Disk folder holding the per-chat like folders (default: disk:/PhotoBotLikes).
        PDB_FIRST_PAGE_SIZE: Entries fetched synchronously when a folder is first loaded (default: 20).
        PDB_PAGE_SIZE: Entries per page for the background load (default: 100).
        PDB_PREVIEW_SIZE: Thumbnail size requested from the disk API (default: XL).
        PDB_HTTP_TIMEOUT_SECONDS: Timeout applied to every outbound HTTP call (default: 30).
        PDB_DOWNLOAD_WORKERS: Max concurrent downloads in a batch (default: 8).
        PDB_OPEN_IN_BROWSER_URL: Link prefix used in photo captions.
        PDB_WEBHOOK_SECRET: Expected Telegram webhook secret token (default: disabled).

    Returns:
        Configured AppConfig instance.
    """
    return AppConfig(
        telegram_token=os.environ["PDB_TELEGRAM_TOKEN"],
        disk_token=os.environ["PDB_DISK_TOKEN"],
        allowed_user_id=int(os.environ["PDB_ALLOWED_USER_ID"]),
        photos_root=os.environ.get("PDB_PHOTOS_ROOT", "disk:/Photos"),
        default_folder=os.environ.get("PDB_DEFAULT_FOLDER", "Camera"),
        likes_root=os.environ.get("PDB_LIKES_ROOT", "disk:/PhotoBotLikes"),
        first_page_size=int(os.environ.get("PDB_FIRST_PAGE_SIZE", "20")),
        page_size=int(os.environ.get("PDB_PAGE_SIZE", "100")),
        preview_size=os.environ.get("PDB_PREVIEW_SIZE", "XL"),
        http_timeout_seconds=float(os.environ.get("PDB_HTTP_TIMEOUT_SECONDS", "30")),
        download_workers=int(os.environ.get("PDB_DOWNLOAD_WORKERS", "8")),
        open_in_browser_url=os.environ.get(
            "PDB_OPEN_IN_BROWSER_URL", AppConfig.open_in_browser_url
        ),
        webhook_secret=os.environ.get("PDB_WEBHOOK_SECRET", ""),
    )
