"""HTTP access to the update server.

``ServerClient`` builds the endpoint URLs, adds the standard headers
(``Accept``, ``User-Agent`` and the optional bearer token) and performs GET
requests through aiohttp. TLS certificate verification is always on and every
request is bounded by the configured timeout (15 seconds by default).

Transport-level problems are raised as ``TransportError`` (``DownloadError``
for artifact downloads); HTTP status problems are mapped by
``check_status``.
"""

from __future__ import annotations

import json
import time
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as get_package_version
from typing import TYPE_CHECKING, Any
from urllib.parse import quote, urlencode

import aiohttp
import structlog

from .errors import AuthError, DownloadError, InvalidResponseError, TransportError

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from .models import ClientConfig

logger = structlog.get_logger(__name__)

DEFAULT_TIMEOUT_SECONDS = 15.0
DEFAULT_CHUNK_SIZE = 65536  # 64 KB chunks


def _client_version() -> str:
    try:
        return get_package_version("secure-updates-client")
    except PackageNotFoundError:
        return "0.0.0"


def check_status(status: int, url: str) -> None:
    """Map a non-200 HTTP status to the matching pipeline error.

    Raises:
        AuthError: For 401 and 403.
        InvalidResponseError: For any other status except 200.
    """
    if status in (401, 403):
        raise AuthError(f"Server rejected credentials ({status})", status=status, detail=url)
    if status != 200:
        raise InvalidResponseError(f"Server returned {status} status code", detail=url)


class ServerClient:
    """Authenticated GET requests against one unit's update server."""

    def __init__(self, config: ClientConfig, timeout_seconds: float | None = None) -> None:
        """Initialize the client.

        Args:
            config: Configuration of the update unit.
            timeout_seconds: Override of ``config.options.timeout_seconds``.
        """
        self.base_url = config.server_url
        self.unit = config.unit
        self.current_version = config.current_version
        self.timeout_seconds = timeout_seconds or config.options.timeout_seconds
        self._token = config.bearer_token
        self._user_agent = (
            f"{config.host_name}/{config.host_version or 'unknown'}; "
            f"secure-updates-client/{_client_version()}"
        )
        self._log = logger.bind(component="server_client", unit=config.unit)

    # Endpoints

    def info_url(self, slug: str | None = None) -> str:
        return f"{self.base_url}/info/{quote(slug or self.unit)}"

    def download_url(self) -> str:
        return f"{self.base_url}/download/{quote(self.unit)}"

    def checksum_url(self, version: str | None = None) -> str:
        query = urlencode({"action": "checksum", "version": version or self.current_version})
        return f"{self.base_url}/verify_file/{quote(self.unit)}?{query}"

    def connected_url(self) -> str:
        return f"{self.base_url}/connected"

    def headers(self, accept: str = "application/json") -> dict[str, str]:
        """Return the headers sent with every request."""
        headers = {"Accept": accept, "User-Agent": self._user_agent}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    def _timeout(self) -> aiohttp.ClientTimeout:
        return aiohttp.ClientTimeout(total=self.timeout_seconds)

    # Requests

    async def request(self, url: str, accept: str = "application/json") -> tuple[int, bytes]:
        """Perform a GET request and return ``(status, body)``.

        Raises:
            TransportError: On connection, TLS, DNS or timeout failures.
        """
        try:
            async with (
                aiohttp.ClientSession(timeout=self._timeout()) as session,
                session.get(url, headers=self.headers(accept), ssl=True) as response,
            ):
                body = await response.read()
                return response.status, body
        except aiohttp.ClientError as e:
            raise TransportError(f"Network error: {e}", detail=repr(e)) from e
        except TimeoutError:
            raise TransportError("Request timed out", detail=url) from None

    async def get_json(self, url: str) -> Any:
        """GET ``url`` and decode a JSON body.

        Raises:
            TransportError: On transport failures.
            AuthError: On 401/403.
            InvalidResponseError: On any other non-200 status or a non-JSON body.
        """
        status, body = await self.request(url)
        check_status(status, url)
        try:
            return json.loads(body)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise InvalidResponseError("Response is not valid JSON", detail=str(e)) from e

    async def get_text(self, url: str) -> str:
        """GET ``url`` and return the body as text."""
        status, body = await self.request(url, accept="text/plain")
        check_status(status, url)
        try:
            return body.decode("utf-8")
        except UnicodeDecodeError as e:
            raise InvalidResponseError("Response is not valid UTF-8 text", detail=str(e)) from e

    async def probe(self, url: str) -> tuple[int, float]:
        """GET ``url`` and return ``(status, elapsed_ms)``."""
        start = time.monotonic()
        status, _ = await self.request(url)
        return status, (time.monotonic() - start) * 1000

    async def download(
        self,
        url: str,
        destination: Path,
        on_chunk: Callable[[bytes], None] | None = None,
    ) -> int:
        """Stream ``url`` into ``destination``.

        Args:
            url: Artifact URL.
            destination: File to write; created or truncated.
            on_chunk: Called with every chunk as it is written.

        Returns:
            Number of bytes written.

        Raises:
            DownloadError: On transport failures, timeouts, HTTP errors or when
                the destination cannot be written.
        """
        headers = self.headers("application/octet-stream")
        if not url.startswith(f"{self.base_url}/"):
            # The token is only ever sent to the configured update server
            headers.pop("Authorization", None)

        bytes_downloaded = 0
        try:
            async with (
                aiohttp.ClientSession(timeout=self._timeout()) as session,
                session.get(url, headers=headers, ssl=True) as response,
            ):
                if response.status != 200:
                    raise DownloadError(
                        f"HTTP error {response.status}: {response.reason}",
                        detail=url,
                    )

                with destination.open("wb") as f:
                    async for chunk in response.content.iter_chunked(DEFAULT_CHUNK_SIZE):
                        f.write(chunk)
                        bytes_downloaded += len(chunk)
                        if on_chunk:
                            on_chunk(chunk)

        except aiohttp.ClientError as e:
            raise DownloadError(f"Network error: {e}", detail=repr(e)) from e
        except TimeoutError:
            raise DownloadError("Download timed out", detail=url) from None
        except OSError as e:
            raise DownloadError(f"Cannot write download: {e}", detail=str(destination)) from e

        self._log.debug("download_complete", url=url, bytes=bytes_downloaded)
        return bytes_downloaded
