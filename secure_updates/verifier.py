"""Checksum verification of downloaded update packages.

The package is streamed to a temporary file while its SHA-256 digest is
computed, the expected digest is requested from the server's ``verify_file``
endpoint, and the two are compared exactly. The temporary file is removed on
every exit path.
"""

from __future__ import annotations

import hashlib
import os
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING

from .errors import ChecksumMismatchError, InvalidResponseError, UpdateError

if TYPE_CHECKING:
    from .logsink import UnitLog
    from .transport import ServerClient

CHECKSUM_ALGORITHM = "sha256"


class PackageVerifier:
    """Downloads a candidate package and checks it against the server digest."""

    def __init__(
        self,
        client: ServerClient,
        log: UnitLog,
        temp_dir: Path | None = None,
    ) -> None:
        """Initialize the verifier.

        Args:
            client: Client of the unit's update server.
            log: The unit's log.
            temp_dir: Directory for temporary downloads. None = system temp.
        """
        self._client = client
        self._log = log
        self._temp_dir = temp_dir

    def _temp_path(self) -> Path:
        fd, name = tempfile.mkstemp(
            prefix=f"{self._client.unit}-", suffix=".download", dir=self._temp_dir
        )
        os.close(fd)
        return Path(name)

    async def expected_checksum(self, version: str | None = None) -> str:
        """Ask the server for the SHA-256 digest of the package.

        Raises:
            UpdateError: On transport, auth or response problems.
        """
        body = await self._client.get_text(self._client.checksum_url(version))
        checksum = body.strip().lower()
        if not checksum:
            raise InvalidResponseError("Server returned an empty checksum")
        return checksum

    async def verify(self, download_url: str) -> str:
        """Download ``download_url`` and verify it.

        Returns:
            The verified SHA-256 hex digest.

        Raises:
            DownloadError: The package could not be downloaded.
            ChecksumMismatchError: The digest differs from the server's.
            UpdateError: The expected checksum could not be retrieved.
        """
        temp_path = self._temp_path()
        hasher = hashlib.new(CHECKSUM_ALGORITHM)

        try:
            size = await self._client.download(download_url, temp_path, on_chunk=hasher.update)
            expected = await self.expected_checksum()
            actual = hasher.hexdigest()

            if actual != expected:
                self._log.error("Package verification failed", expected=expected, actual=actual)
                raise ChecksumMismatchError(expected, actual)

            self._log.info("Package verified", checksum=actual, size=size)
            return actual

        except ChecksumMismatchError:
            raise
        except UpdateError as e:
            self._log.error(f"Package verification aborted: {e.message}", kind=e.kind.value)
            raise
        finally:
            temp_path.unlink(missing_ok=True)
