"""Backup and rollback of an installed update unit.

Before the host installs a new package, the current installation directory is
archived into ``{backup_dir}/{unit}-{version}-{YYYY-MM-DD-HH-MM-SS}.zip``
(UTC). Archive members are rooted at the installation directory's name, so
extracting an archive next to the install dir recreates it.

Old backups are never pruned here; retention is left to the operator.
"""

from __future__ import annotations

import asyncio
import re
import shutil
import uuid
import zipfile
from datetime import UTC, datetime
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING

from .config import get_default_backup_dir
from .errors import BackupError
from .models import BackupInfo

if TYPE_CHECKING:
    from .logsink import UnitLog

TIMESTAMP_FORMAT = "%Y-%m-%d-%H-%M-%S"


class BackupManager:
    """Creates, lists and restores backup archives of one unit."""

    def __init__(
        self,
        unit: str,
        version: str,
        install_dir: Path | None,
        log: UnitLog,
        backup_dir: Path | None = None,
    ) -> None:
        """Initialize the backup manager.

        Args:
            unit: Unit slug, used in archive names.
            version: Installed version, used in archive names.
            install_dir: Directory holding the installed unit.
            log: The unit's log.
            backup_dir: Directory for archives. None = XDG data dir.
        """
        self.unit = unit
        self.version = version
        self.install_dir = install_dir
        self.backup_dir = backup_dir or get_default_backup_dir()
        self._log = log
        self._name_pattern = re.compile(
            rf"^{re.escape(unit)}-(?P<version>v?\d.*?)-"
            r"(?P<timestamp>\d{4}(?:-\d{2}){5})(?:-(?P<counter>\d+))?\.zip$"
        )

    def _archive_path(self, created_at: datetime) -> Path:
        stem = f"{self.unit}-{self.version}-{created_at.strftime(TIMESTAMP_FORMAT)}"
        path = self.backup_dir / f"{stem}.zip"
        counter = 1
        while path.exists():
            path = self.backup_dir / f"{stem}-{counter}.zip"
            counter += 1
        return path

    def _require_install_dir(self) -> Path:
        if self.install_dir is None:
            raise BackupError(f"No install_dir configured for unit '{self.unit}'")
        return self.install_dir

    async def backup_current(self) -> BackupInfo:
        """Archive the current installation.

        Returns:
            BackupInfo describing the new archive.

        Raises:
            BackupError: If the install dir is missing, or the archive cannot be
                written (permission denied, disk full...).
        """
        install_dir = self._require_install_dir()
        if not install_dir.is_dir():
            raise BackupError(f"Install directory not found: {install_dir}")

        created_at = datetime.now(tz=UTC)

        try:
            self.backup_dir.mkdir(parents=True, exist_ok=True)
            archive_path = self._archive_path(created_at)
            await asyncio.to_thread(self._write_archive, install_dir, archive_path)
        except (OSError, zipfile.BadZipFile, ValueError) as e:
            self._log.error(f"Backup failed: {e}", install_dir=str(install_dir))
            raise BackupError(f"Failed to back up {install_dir}: {e}", detail=repr(e)) from e

        info = BackupInfo(
            path=archive_path,
            unit=self.unit,
            version=self.version,
            created_at=created_at,
            size_bytes=archive_path.stat().st_size,
        )
        self._log.info("Backup created", path=str(archive_path), size=info.size_bytes)
        return info

    def _write_archive(self, install_dir: Path, archive_path: Path) -> None:
        root = PurePosixPath(install_dir.name)
        try:
            with zipfile.ZipFile(archive_path, "w", compression=zipfile.ZIP_DEFLATED) as zf:
                zf.write(install_dir, f"{root}/")
                for path in sorted(install_dir.rglob("*")):
                    arcname = root / path.relative_to(install_dir).as_posix()
                    if path.is_dir():
                        zf.write(path, f"{arcname}/")
                    else:
                        zf.write(path, str(arcname))
        except BaseException:
            archive_path.unlink(missing_ok=True)
            raise

    def list_backups(self) -> list[BackupInfo]:
        """List this unit's archives, newest first."""
        if not self.backup_dir.is_dir():
            return []

        found = []
        for path in self.backup_dir.iterdir():
            match = self._name_pattern.match(path.name)
            if not match or not path.is_file():
                continue
            created_at = datetime.strptime(match["timestamp"], TIMESTAMP_FORMAT)
            created_at = created_at.replace(tzinfo=UTC)
            info = BackupInfo(
                path=path,
                unit=self.unit,
                version=match["version"],
                created_at=created_at,
                size_bytes=path.stat().st_size,
            )
            # Same-second archives are ordered by their collision suffix
            found.append((created_at, int(match["counter"] or 0), info))

        found.sort(key=lambda item: item[:2], reverse=True)
        return [info for _, _, info in found]

    async def restore_backup(self, archive_path: Path) -> Path:
        """Replace the installation with the contents of ``archive_path``.

        The archive is extracted next to the install dir first and swapped in
        only after extraction succeeded.

        Returns:
            The restored install dir.

        Raises:
            BackupError: If the archive is missing, invalid, or the swap fails.
        """
        install_dir = self._require_install_dir()
        if not archive_path.is_file():
            raise BackupError(f"Backup archive not found: {archive_path}")

        try:
            await asyncio.to_thread(self._swap_in, archive_path, install_dir)
        except (OSError, zipfile.BadZipFile, ValueError) as e:
            self._log.error(f"Restore failed: {e}", archive=str(archive_path))
            raise BackupError(f"Failed to restore {archive_path}: {e}", detail=repr(e)) from e

        self._log.info("Backup restored", archive=str(archive_path), install_dir=str(install_dir))
        return install_dir

    def _swap_in(self, archive_path: Path, install_dir: Path) -> None:
        token = uuid.uuid4().hex[:8]
        staging = install_dir.parent / f".{install_dir.name}.restore-{token}"
        previous = install_dir.parent / f".{install_dir.name}.previous-{token}"

        try:
            with zipfile.ZipFile(archive_path) as zf:
                root = _archive_root(zf)
                zf.extractall(staging)

            if install_dir.exists():
                install_dir.rename(previous)
            try:
                (staging / root).rename(install_dir)
            except OSError:
                if previous.exists():
                    previous.rename(install_dir)
                raise
        finally:
            shutil.rmtree(staging, ignore_errors=True)

        shutil.rmtree(previous, ignore_errors=True)


def _archive_root(zf: zipfile.ZipFile) -> str:
    """Return the single top-level directory of an archive, validating members."""
    roots = set()
    for name in zf.namelist():
        member = PurePosixPath(name)
        if member.is_absolute() or ".." in member.parts or not member.parts:
            raise ValueError(f"Unsafe archive member: {name!r}")
        roots.add(member.parts[0])

    if len(roots) != 1:
        raise ValueError(f"Archive must have exactly one top-level directory, found {len(roots)}")
    return roots.pop()
