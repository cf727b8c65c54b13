"""Retrieval of the latest version metadata from the update server.

Successful lookups are cached for 6 hours. Failed lookups store the
``FAILED`` sentinel for 1 hour, so an unreachable server is not hit again
until the backoff expires. Both live in the unit's cache namespace under a
key derived from the unit slug and the installed version.
"""

from __future__ import annotations

import hashlib
from typing import TYPE_CHECKING, Any, Final

from pydantic import ValidationError

from .cache import FAILED, HOUR_IN_SECONDS
from .errors import CachedFailureError, InvalidResponseError, UpdateError
from .models import RemoteMetadata, Sections
from .sanitize import AUTHOR_TAGS, sanitize_html, sanitize_slug, sanitize_text, sanitize_url

if TYPE_CHECKING:
    from .cache import CacheNamespace
    from .logsink import UnitLog
    from .models import ClientConfig
    from .transport import ServerClient

SUCCESS_TTL: Final = 6 * HOUR_IN_SECONDS
FAILURE_TTL: Final = HOUR_IN_SECONDS


def sanitize_metadata(data: dict[str, Any], fallback_slug: str) -> RemoteMetadata:
    """Build RemoteMetadata from an untrusted server payload.

    Args:
        data: Decoded JSON object from the ``info`` endpoint.
        fallback_slug: Slug used when the payload has none.

    Returns:
        Sanitized, immutable metadata.

    Raises:
        InvalidResponseError: If the version is missing or not a valid version.
    """
    version = sanitize_text(data.get("version"))
    if not version:
        raise InvalidResponseError("Invalid plugin info received: missing version")

    sections = data.get("sections")
    if not isinstance(sections, dict):
        sections = {}

    try:
        return RemoteMetadata(
            name=sanitize_text(data.get("name")),
            slug=sanitize_slug(data.get("slug"), fallback_slug),
            version=version,
            author=sanitize_html(data.get("author"), allowed=AUTHOR_TAGS),
            homepage=sanitize_url(data.get("homepage")),
            requires=sanitize_text(data.get("requires")),
            tested=sanitize_text(data.get("tested")),
            requires_php=sanitize_text(data.get("requires_php")),
            download_link=sanitize_url(data.get("download_link")),
            sections=Sections(
                description=sanitize_html(sections.get("description")),
                installation=sanitize_html(sections.get("installation")),
                changelog=sanitize_html(sections.get("changelog")),
            ),
        )
    except ValidationError as e:
        raise InvalidResponseError(
            f"Invalid plugin info received: bad version {version!r}", detail=str(e)
        ) from e


class MetadataFetcher:
    """Fetches, sanitizes and caches the remote metadata of one unit."""

    def __init__(
        self,
        config: ClientConfig,
        client: ServerClient,
        cache: CacheNamespace,
        log: UnitLog,
    ) -> None:
        self._config = config
        self._client = client
        self._cache = cache
        self._log = log

    @property
    def cache_key(self) -> str:
        """Cache key of the metadata for the installed version."""
        digest = hashlib.md5(
            f"{self._config.unit}{self._config.current_version}".encode(),
            usedforsecurity=False,
        )
        return f"info:{digest.hexdigest()}"

    async def fetch_info(self) -> RemoteMetadata:
        """Return the latest metadata, from cache when possible.

        Returns:
            RemoteMetadata of the newest version on the server.

        Raises:
            CachedFailureError: A failure is cached and still inside its backoff.
            TransportError: The server could not be reached.
            AuthError: The server rejected the credentials.
            InvalidResponseError: The response was not usable metadata.
        """
        cached = self._cache.get(self.cache_key)
        if isinstance(cached, RemoteMetadata):
            self._log.debug("Using cached plugin info", version=cached.version)
            return cached
        if cached is FAILED:
            raise CachedFailureError(
                "Previous update check failed; waiting before contacting the server again"
            )

        try:
            metadata = await self._fetch_remote()
        except UpdateError as e:
            self._cache.set(self.cache_key, FAILED, FAILURE_TTL)
            self._log.error(f"Failed to fetch plugin info: {e.message}", kind=e.kind.value)
            if e.detail:
                self._log.debug("Plugin info fetch error detail", error=e.detail)
            raise

        self._cache.set(self.cache_key, metadata, SUCCESS_TTL)
        self._log.info("Fetched plugin info", remote_version=metadata.version)
        return metadata

    async def _fetch_remote(self) -> RemoteMetadata:
        data = await self._client.get_json(self._client.info_url())
        if not isinstance(data, dict):
            raise InvalidResponseError("Invalid plugin info received: expected an object")
        return sanitize_metadata(data, self._config.unit)

    async def fetch_information(self, slug: str) -> RemoteMetadata | None:
        """Fetch detailed information for the host's "view details" screen.

        The request bypasses the cache. Slugs other than this unit's are not
        ours to answer, so None is returned for them without a request.

        Raises:
            UpdateError: On transport, auth or response problems, including a
                payload without a ``name``.
        """
        if slug != self._config.unit:
            return None

        data = await self._client.get_json(self._client.info_url(slug))
        if not isinstance(data, dict) or not data.get("name"):
            self._log.warning("Invalid plugin information received", slug=slug)
            raise InvalidResponseError("Invalid plugin information received")

        metadata = sanitize_metadata(data, self._config.unit)
        self._log.info("Fetched plugin information", remote_version=metadata.version)
        return metadata

    def invalidate(self) -> None:
        """Forget the cached metadata or failure for the installed version."""
        self._cache.delete(self.cache_key)
