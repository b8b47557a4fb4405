"""Cloud disk REST API client with static OAuth token authentication."""

from __future__ import annotations

import json
import logging
import time
from typing import TYPE_CHECKING, Any
from urllib import request as urllib_request
from urllib.error import HTTPError, URLError
from urllib.parse import urlencode

if TYPE_CHECKING:
    from photo_disk_bot.config import AppConfig

logger = logging.getLogger(__name__)

DISK_BASE_URL = "https://cloud-api.yandex.net/v1/disk"
DEFAULT_TIMEOUT_SECONDS = 30.0

# Status codes the disk API uses for "target already exists" and "no such resource".
STATUS_CONFLICT = 409
STATUS_NOT_FOUND = 404

# Error code the disk API sends with a 409 when the parent folder is missing.
ERROR_PARENT_MISSING = "DiskPathDoesntExistsError"


class FetchFailed(Exception):
    """Raised when a disk API call fails at the network or HTTP level.

    ``status_code`` is 0 when no HTTP response was received (DNS failure,
    refused connection, timeout). ``error`` is the API's machine-readable
    error code, empty when the response carried none.
    """

    def __init__(self, status_code: int, message: str, error: str = "") -> None:
        super().__init__(f"Disk API error {status_code}: {message}")
        self.status_code = status_code
        self.message = message
        self.error = error


class DecodeFailed(Exception):
    """Raised when a disk API response body cannot be decoded."""


class DiskClient:
    """Authenticated client for the cloud disk REST API."""

    def __init__(
        self,
        token: str,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        base_url: str = DISK_BASE_URL,
    ) -> None:
        """Initialise the client.

        Args:
            token: Static OAuth token sent with every request.
            timeout: Seconds before any single call is abandoned.
            base_url: API root; overridable for tests.
        """
        self._token = token
        self._timeout = timeout
        self._base_url = base_url

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"OAuth {self._token}",
            "Accept": "application/json",
        }

    def _url(self, path: str, params: dict[str, Any] | None) -> str:
        url = f"{self._base_url}{path}"
        if params:
            url = f"{url}?{urlencode(params)}"
        return url

    def _send(self, method: str, url: str) -> bytes:
        """Perform one authenticated request and return the raw body.

        Raises:
            FetchFailed: On transport errors, timeouts and non-2xx responses.
        """
        req = urllib_request.Request(url, headers=self._headers(), method=method)
        started = time.perf_counter()
        try:
            with urllib_request.urlopen(req, timeout=self._timeout) as resp:
                body: bytes = resp.read()
        except HTTPError as exc:
            raw = exc.read()
            detail, error = exc.reason, ""
            try:
                payload = json.loads(raw)
                detail = payload.get("message", exc.reason)
                error = str(payload.get("error", ""))
            except (ValueError, AttributeError):
                pass
            logger.warning(
                "[_send] disk call failed; method:%s;status:%d;elapsed_ms:%d",
                method,
                exc.code,
                (time.perf_counter() - started) * 1000,
            )
            raise FetchFailed(exc.code, str(detail), error) from exc
        except (URLError, TimeoutError, OSError) as exc:
            logger.warning(
                "[_send] disk call unreachable; method:%s;error:%s;elapsed_ms:%d",
                method,
                exc,
                (time.perf_counter() - started) * 1000,
            )
            raise FetchFailed(0, str(exc)) from exc
        logger.info(
            "[_send] disk call complete; method:%s;bytes:%d;elapsed_ms:%d",
            method,
            len(body),
            (time.perf_counter() - started) * 1000,
        )
        return body

    @staticmethod
    def _decode(body: bytes) -> dict[str, Any]:
        if not body:
            return {}
        try:
            data = json.loads(body)
        except ValueError as exc:
            raise DecodeFailed(f"Response is not valid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise DecodeFailed("Response JSON is not an object")
        return data

    def get_raw(self, path: str, params: dict[str, Any] | None = None) -> bytes:
        """Perform an authenticated GET and return the undecoded body.

        Args:
            path: URL path relative to the API root (must start with '/').
            params: Query string parameters.

        Raises:
            FetchFailed: If the call fails.
        """
        return self._send("GET", self._url(path, params))

    def get(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """Perform an authenticated GET and parse the JSON body.

        Raises:
            FetchFailed: If the call fails.
            DecodeFailed: If the body is not a JSON object.
        """
        return self._decode(self.get_raw(path, params))

    def put(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """Perform an authenticated PUT (create folder, publish)."""
        return self._decode(self._send("PUT", self._url(path, params)))

    def post(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """Perform an authenticated POST (copy)."""
        return self._decode(self._send("POST", self._url(path, params)))

    def delete(self, path: str, params: dict[str, Any] | None = None) -> None:
        """Perform an authenticated DELETE."""
        self._send("DELETE", self._url(path, params))

    def download(self, url: str) -> bytes:
        """Download content from an absolute link returned by the API.

        Args:
            url: Absolute ``file`` or ``preview`` link.

        Returns:
            Raw content bytes.

        Raises:
            FetchFailed: If the download fails.
        """
        return self._send("GET", url)

    # ------------------------------------------------------------------
    # Resource operations
    # ------------------------------------------------------------------

    def get_resource(self, path: str, fields: str = "") -> dict[str, Any]:
        """Return metadata for a single file or folder."""
        params: dict[str, Any] = {"path": path}
        if fields:
            params["fields"] = fields
        return self.get("/resources", params)

    def create_folder(self, path: str) -> bool:
        """Create a folder; return False if it already existed.

        Raises:
            FetchFailed: On any other failure, including a 409 caused by a
                missing parent folder.
        """
        try:
            self.put("/resources", {"path": path})
        except FetchFailed as exc:
            if exc.status_code == STATUS_CONFLICT and exc.error != ERROR_PARENT_MISSING:
                return False
            raise
        logger.info("[create_folder] created folder; path:%s", path)
        return True

    def publish(self, path: str) -> None:
        """Make a resource publicly accessible."""
        self.put("/resources/publish", {"path": path})
        logger.info("[publish] published resource; path:%s", path)

    def copy(self, src: str, dst: str) -> bool:
        """Copy a resource; return False if ``dst`` already existed."""
        try:
            self.post("/resources/copy", {"from": src, "path": dst})
        except FetchFailed as exc:
            if exc.status_code == STATUS_CONFLICT and exc.error != ERROR_PARENT_MISSING:
                return False
            raise
        logger.info("[copy] copied resource; src:%s;dst:%s", src, dst)
        return True

    def delete_resource(self, path: str, permanently: bool = False) -> None:
        """Delete a file or folder (to the trash unless ``permanently``)."""
        self.delete("/resources", {"path": path, "permanently": str(permanently).lower()})
        logger.info("[delete_resource] deleted resource; path:%s", path)


def disk_client_from_config(config: AppConfig) -> DiskClient:
    """Construct a DiskClient from application configuration.

    Args:
        config: Application configuration instance.

    Returns:
        Configured DiskClient instance.
    """
    return DiskClient(token=config.disk_token, timeout=config.http_timeout_seconds)
