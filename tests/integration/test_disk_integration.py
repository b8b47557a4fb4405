"""Integration tests for cloud disk REST API connectivity.

These tests require a real disk OAuth token and are skipped in CI/CD unless
the PDB_DISK_TOKEN environment variable is set.
"""

import os

import pytest

pytestmark = pytest.mark.skipif(
    not os.getenv("PDB_DISK_TOKEN"),
    reason="Real disk credentials not available",
)


def test_list_folders_real() -> None:
    """List the photos root on the real disk without raising."""
    from photo_disk_bot.disk.client import disk_client_from_config
    from photo_disk_bot.disk.listing import metadata_fetcher_from_config
    from photo_disk_bot.gallery.index import image_index_from_config

    os.environ.setdefault("PDB_TELEGRAM_TOKEN", "unused")
    os.environ.setdefault("PDB_ALLOWED_USER_ID", "0")
    from photo_disk_bot.config import load_config

    config = load_config()
    client = disk_client_from_config(config)
    index = image_index_from_config(metadata_fetcher_from_config(client, config), client, config)
    try:
        outcome = index.list_folders()
    finally:
        index.close()

    assert isinstance(outcome.value, list)


def test_first_page_real() -> None:
    """Load the first page of the default folder from the real disk."""
    os.environ.setdefault("PDB_TELEGRAM_TOKEN", "unused")
    os.environ.setdefault("PDB_ALLOWED_USER_ID", "0")
    from photo_disk_bot.config import load_config
    from photo_disk_bot.orchestration.runtime import runtime_from_config

    runtime = runtime_from_config(load_config())
    try:
        outcome = runtime.index.ensure_folder_loaded(runtime.config.default_folder)
        runtime.index.wait_for_background(timeout=120)
    finally:
        runtime.index.close()

    assert outcome.value >= 0
