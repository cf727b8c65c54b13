"""Test doubles and sample data shared by the secure updates tests."""

from __future__ import annotations

import hashlib
import json
from typing import Any

from secure_updates.errors import DownloadError, TransportError
from secure_updates.models import ClientConfig
from secure_updates.transport import ServerClient

SERVER_URL = "https://updates.example.com"
PACKAGE_BYTES = b"PK\x03\x04 pretend this is a release archive"
PACKAGE_SHA256 = hashlib.sha256(PACKAGE_BYTES).hexdigest()


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeServer(ServerClient):
    """ServerClient answering from a route table instead of the network.

    Routes map a full URL to ``(status, body)`` or to an exception to raise.
    Unknown URLs answer 404.
    """

    def __init__(self, config: ClientConfig) -> None:
        super().__init__(config)
        self.routes: dict[str, tuple[int, bytes] | Exception] = {}
        self.requests: list[str] = []
        self.downloads: list[str] = []

    def route_json(self, url: str, data: Any, status: int = 200) -> None:
        self.routes[url] = (status, json.dumps(data).encode())

    def route_text(self, url: str, text: str, status: int = 200) -> None:
        self.routes[url] = (status, text.encode())

    def _answer(self, url: str) -> tuple[int, bytes]:
        response = self.routes.get(url, (404, b""))
        if isinstance(response, Exception):
            raise response
        return response

    async def request(self, url: str, accept: str = "application/json") -> tuple[int, bytes]:
        self.requests.append(url)
        return self._answer(url)

    async def download(self, url, destination, on_chunk=None) -> int:  # noqa: ANN001
        self.downloads.append(url)
        try:
            status, body = self._answer(url)
        except TransportError as e:
            raise DownloadError(e.message) from e
        if status != 200:
            raise DownloadError(f"HTTP error {status}", detail=url)
        destination.write_bytes(body)
        if on_chunk:
            on_chunk(body)
        return len(body)


def metadata_payload(version: str = "1.1.0", **overrides: Any) -> dict[str, Any]:
    """Build a typical ``info`` response."""
    payload = {
        "name": "My Plugin",
        "slug": "my-plugin",
        "version": version,
        "author": '<a href="https://example.com">Example</a>',
        "homepage": "https://example.com/my-plugin",
        "requires": "5.0",
        "tested": "6.4",
        "requires_php": "7.4",
        "download_link": f"{SERVER_URL}/download/my-plugin",
        "sections": {
            "description": "<p>Does things.</p>",
            "installation": "<p>Upload it.</p>",
            "changelog": "<h4>1.1.0</h4><ul><li>Fixes</li></ul>",
        },
    }
    payload.update(overrides)
    return payload
