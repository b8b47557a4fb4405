"""Unit tests for orchestration/runtime.py — wiring and warm-up."""

from unittest.mock import MagicMock, patch

import pytest

from photo_disk_bot.config import AppConfig
from photo_disk_bot.disk.client import DiskClient
from photo_disk_bot.disk.listing import MetadataFetcher
from photo_disk_bot.disk.models import Outcome
from photo_disk_bot.gallery.index import ImageIndex
from photo_disk_bot.gallery.likes import LikesStore
from photo_disk_bot.gallery.loader import ContentLoader
from photo_disk_bot.orchestration.runtime import (
    BotRuntime,
    get_runtime,
    reset_runtime,
    runtime_from_config,
)


def _make_config() -> AppConfig:
    return AppConfig(
        telegram_token="123:abc",
        disk_token="disk-token",
        allowed_user_id=1,
        default_folder="Vacation",
    )


@pytest.fixture(autouse=True)
def _fresh_runtime():
    reset_runtime()
    yield
    reset_runtime()


class TestRuntimeFromConfig:
    def test_wires_all_components(self) -> None:
        runtime = runtime_from_config(_make_config())

        assert isinstance(runtime.client, DiskClient)
        assert isinstance(runtime.fetcher, MetadataFetcher)
        assert isinstance(runtime.index, ImageIndex)
        assert isinstance(runtime.loader, ContentLoader)
        assert isinstance(runtime.likes, LikesStore)
        runtime.index.close()

    def test_does_not_touch_the_network(self) -> None:
        with patch("photo_disk_bot.disk.client.urllib_request.urlopen") as urlopen:
            runtime = runtime_from_config(_make_config())
            runtime.index.close()
        urlopen.assert_not_called()


class TestWarmUp:
    def test_loads_default_folder(self) -> None:
        index = MagicMock()
        index.ensure_folder_loaded.return_value = Outcome.ok(20)
        runtime = BotRuntime(
            config=_make_config(),
            client=MagicMock(),
            fetcher=MagicMock(),
            index=index,
            loader=MagicMock(),
            likes=MagicMock(),
        )

        runtime.warm_up()

        index.ensure_folder_loaded.assert_called_once_with("Vacation")

    def test_failed_load_does_not_raise(self) -> None:
        index = MagicMock()
        index.ensure_folder_loaded.return_value = Outcome.failed(0, "timeout")
        runtime = BotRuntime(
            config=_make_config(),
            client=MagicMock(),
            fetcher=MagicMock(),
            index=index,
            loader=MagicMock(),
            likes=MagicMock(),
        )

        runtime.warm_up()


class TestGetRuntime:
    def test_returns_same_instance(self) -> None:
        config = _make_config()
        assert get_runtime(config) is get_runtime(config)

    def test_reset_builds_a_new_instance(self) -> None:
        config = _make_config()
        first = get_runtime(config)
        reset_runtime()
        assert get_runtime(config) is not first
