"""Unit tests for disk/client.py — authenticated HTTP calls and error mapping."""

import json
from io import BytesIO
from unittest.mock import MagicMock, patch
from urllib.error import HTTPError, URLError

import pytest

from photo_disk_bot.disk.client import ERROR_PARENT_MISSING, DecodeFailed, DiskClient, FetchFailed

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_URLOPEN = "photo_disk_bot.disk.client.urllib_request.urlopen"


def _response(body: bytes) -> MagicMock:
    mock_response = MagicMock()
    mock_response.read.return_value = body
    mock_response.__enter__ = lambda s: s
    mock_response.__exit__ = MagicMock(return_value=False)
    return mock_response


def _http_error(code: int, body: bytes = b"{}") -> HTTPError:
    return HTTPError(
        url="https://cloud-api.yandex.net/v1/disk/resources",
        code=code,
        msg="error",
        hdrs=MagicMock(),  # type: ignore[arg-type]
        fp=BytesIO(body),
    )


# ---------------------------------------------------------------------------
# get() tests
# ---------------------------------------------------------------------------


class TestDiskClientGet:
    def test_get_constructs_url_headers_and_timeout(self) -> None:
        client = DiskClient(token="tok-123", timeout=7.0)
        with patch(_URLOPEN, return_value=_response(b'{"path": "disk:/x"}')) as mock_urlopen:
            result = client.get("/resources", {"path": "disk:/x", "limit": 5})

        assert result == {"path": "disk:/x"}
        req = mock_urlopen.call_args[0][0]
        assert req.full_url == "https://cloud-api.yandex.net/v1/disk/resources?path=disk%3A%2Fx&limit=5"
        assert req.get_header("Authorization") == "OAuth tok-123"
        assert req.get_method() == "GET"
        assert mock_urlopen.call_args[1]["timeout"] == 7.0

    def test_get_raises_fetch_failed_on_http_error(self) -> None:
        client = DiskClient(token="tok")
        error = _http_error(404, json.dumps({"message": "Resource not found."}).encode())
        with patch(_URLOPEN, side_effect=error), pytest.raises(FetchFailed) as exc_info:
            client.get("/resources", {"path": "disk:/missing"})

        assert exc_info.value.status_code == 404
        assert "Resource not found." in exc_info.value.message

    def test_get_raises_fetch_failed_with_zero_status_on_network_error(self) -> None:
        client = DiskClient(token="tok")
        refused = URLError("connection refused")
        with patch(_URLOPEN, side_effect=refused), pytest.raises(FetchFailed) as exc_info:
            client.get("/resources")

        assert exc_info.value.status_code == 0

    def test_get_raises_fetch_failed_on_timeout(self) -> None:
        client = DiskClient(token="tok")
        with patch(_URLOPEN, side_effect=TimeoutError("timed out")), pytest.raises(FetchFailed):
            client.get("/resources")

    def test_get_raises_decode_failed_on_invalid_json(self) -> None:
        client = DiskClient(token="tok")
        with patch(_URLOPEN, return_value=_response(b"<html>")), pytest.raises(DecodeFailed):
            client.get("/resources")

    def test_get_raw_returns_undecoded_body(self) -> None:
        client = DiskClient(token="tok")
        with patch(_URLOPEN, return_value=_response(b"not json")):
            assert client.get_raw("/resources") == b"not json"


# ---------------------------------------------------------------------------
# Resource operation tests
# ---------------------------------------------------------------------------


class TestResourceOperations:
    def test_create_folder_uses_put(self) -> None:
        client = DiskClient(token="tok")
        with patch(_URLOPEN, return_value=_response(b'{"href": "x"}')) as mock_urlopen:
            assert client.create_folder("disk:/Likes/1") is True
        req = mock_urlopen.call_args[0][0]
        assert req.get_method() == "PUT"
        assert "path=disk%3A%2FLikes%2F1" in req.full_url

    def test_create_folder_treats_conflict_as_existing(self) -> None:
        client = DiskClient(token="tok")
        with patch(_URLOPEN, side_effect=_http_error(409)):
            assert client.create_folder("disk:/Likes/1") is False

    def test_create_folder_raises_when_parent_is_missing(self) -> None:
        client = DiskClient(token="tok")
        body = json.dumps({"error": ERROR_PARENT_MISSING, "message": "Parent not found."}).encode()
        with patch(_URLOPEN, side_effect=_http_error(409, body)), pytest.raises(FetchFailed) as exc_info:
            client.create_folder("disk:/Likes/1")

        assert exc_info.value.status_code == 409
        assert exc_info.value.error == ERROR_PARENT_MISSING

    def test_create_folder_conflict_with_existing_directory_error(self) -> None:
        client = DiskClient(token="tok")
        body = json.dumps({"error": "DiskPathPointsToExistentDirectoryError"}).encode()
        with patch(_URLOPEN, side_effect=_http_error(409, body)):
            assert client.create_folder("disk:/Likes/1") is False

    def test_create_folder_propagates_other_errors(self) -> None:
        client = DiskClient(token="tok")
        with patch(_URLOPEN, side_effect=_http_error(500)), pytest.raises(FetchFailed):
            client.create_folder("disk:/Likes/1")

    def test_publish_uses_publish_endpoint(self) -> None:
        client = DiskClient(token="tok")
        with patch(_URLOPEN, return_value=_response(b"{}")) as mock_urlopen:
            client.publish("disk:/Likes/1")
        req = mock_urlopen.call_args[0][0]
        assert req.get_method() == "PUT"
        assert "/resources/publish?" in req.full_url

    def test_copy_posts_from_and_path(self) -> None:
        client = DiskClient(token="tok")
        with patch(_URLOPEN, return_value=_response(b"")) as mock_urlopen:
            assert client.copy("disk:/Photos/a.jpg", "disk:/Likes/1/a.jpg") is True
        req = mock_urlopen.call_args[0][0]
        assert req.get_method() == "POST"
        assert "from=disk%3A%2FPhotos%2Fa.jpg" in req.full_url

    def test_copy_treats_conflict_as_existing(self) -> None:
        client = DiskClient(token="tok")
        with patch(_URLOPEN, side_effect=_http_error(409)):
            assert client.copy("disk:/a.jpg", "disk:/b.jpg") is False

    def test_copy_raises_when_target_parent_is_missing(self) -> None:
        client = DiskClient(token="tok")
        body = json.dumps({"error": ERROR_PARENT_MISSING}).encode()
        with patch(_URLOPEN, side_effect=_http_error(409, body)), pytest.raises(FetchFailed):
            client.copy("disk:/a.jpg", "disk:/missing/b.jpg")

    def test_delete_resource_uses_delete(self) -> None:
        client = DiskClient(token="tok")
        with patch(_URLOPEN, return_value=_response(b"")) as mock_urlopen:
            client.delete_resource("disk:/Photos/a.jpg")
        req = mock_urlopen.call_args[0][0]
        assert req.get_method() == "DELETE"
        assert "permanently=false" in req.full_url

    def test_download_uses_absolute_url_with_auth(self) -> None:
        client = DiskClient(token="tok")
        with patch(_URLOPEN, return_value=_response(b"\xff\xd8jpeg")) as mock_urlopen:
            content = client.download("https://downloader.disk.example/preview/abc")
        assert content == b"\xff\xd8jpeg"
        req = mock_urlopen.call_args[0][0]
        assert req.full_url == "https://downloader.disk.example/preview/abc"
        assert req.get_header("Authorization") == "OAuth tok"
