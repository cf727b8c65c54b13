"""Host-facing update client for one update unit.

``UpdateClient`` wires the components together and is the only surface a
host application needs:

    client = UpdateClient(config)
    result = await client.check_for_updates()
    if result.update_available:
        prepared = await client.prepare_update(result)

Every public method returns a result model. Pipeline failures are caught here
and reported through the result, the status reporter and the unit's log;
they never propagate to the host.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

from .backup import BackupManager
from .cache import get_cache_store
from .errors import UpdateError
from .health import HealthMonitor
from .logsink import UnitLog, get_log_sink
from .metadata import MetadataFetcher
from .models import (
    CheckState,
    ConnectionResult,
    HealthReport,
    InformationResult,
    PrepareResult,
    UpdateCheckResult,
    UpdateStatus,
)
from .rate_limit import RateLimiter
from .status import StatusReporter
from .transport import ServerClient
from .verifier import PackageVerifier
from .version import is_newer

if TYPE_CHECKING:
    from pathlib import Path
    from typing import Any

    from .cache import CacheStore
    from .logsink import LogEntry, LogSink
    from .models import BackupInfo, ClientConfig

logger = structlog.get_logger(__name__)

INFO_ENDPOINT = "info"
CONNECTED_ENDPOINT = "connected"


class UpdateClient:
    """Checks, verifies and backs up updates for one unit.

    Clients for different units may share a CacheStore and a LogSink; their
    entries are kept apart by unit.
    """

    def __init__(
        self,
        config: ClientConfig,
        cache_store: CacheStore | None = None,
        log_sink: LogSink | None = None,
        server: ServerClient | None = None,
        temp_dir: Path | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            config: Configuration of the update unit.
            cache_store: Shared cache. None = process-wide store.
            log_sink: Where the unit's log is kept. None = process-wide sink.
            server: HTTP client of the update server. None = built from config.
            temp_dir: Directory for package downloads. None = system temp.
        """
        self.config = config
        self.state = CheckState.IDLE

        store = cache_store if cache_store is not None else get_cache_store()
        self._cache = store.namespace(config.unit)
        self.log = UnitLog(config, log_sink if log_sink is not None else get_log_sink())
        self.server = server if server is not None else ServerClient(config)

        self.rate_limiter = RateLimiter.from_config(
            self._cache, config.unit, config.options.rate_limiting
        )
        self.metadata = MetadataFetcher(config, self.server, self._cache, self.log)
        self.verifier = PackageVerifier(self.server, self.log, temp_dir=temp_dir)
        self.backups = BackupManager(
            config.unit,
            config.current_version,
            config.install_dir,
            self.log,
            backup_dir=config.backup_dir,
        )
        self.health = HealthMonitor(config, self.test_server_connection)
        self.status = StatusReporter(self._cache)

        self._lock = asyncio.Lock()
        self._log = logger.bind(component="update_client", unit=config.unit)

    @property
    def unit(self) -> str:
        return self.config.unit

    # Update check

    async def check_for_updates(self) -> UpdateCheckResult:
        """Run one update check.

        Returns:
            The terminal outcome: ``update_available``, ``up_to_date`` or
            ``failed`` with the error kind.
        """
        self.state = CheckState.CHECKING
        current = self.config.current_version

        try:
            self.rate_limiter.allow(INFO_ENDPOINT)
            metadata = await self.metadata.fetch_info()
        except UpdateError as e:
            self.state = CheckState.FAILED
            self.status.error(e.message)
            self.log.warning(f"Update check failed: {e.message}", kind=e.kind.value)
            return UpdateCheckResult(
                unit=self.unit,
                state=CheckState.FAILED,
                current_version=current,
                error=e.kind,
                message=e.message,
            )

        if is_newer(metadata.version, current):
            self.state = CheckState.UPDATE_AVAILABLE
            message = f"Update available: {current} -> {metadata.version}"
        else:
            self.state = CheckState.UP_TO_DATE
            message = f"Up to date ({current})"

        self.status.success(message)
        self.log.info(message, remote_version=metadata.version)
        return UpdateCheckResult(
            unit=self.unit,
            state=self.state,
            current_version=current,
            metadata=metadata,
            message=message,
        )

    async def fetch_plugin_information(self, slug: str) -> InformationResult | None:
        """Fetch details for the host's "view details" screen.

        Returns:
            None when ``slug`` belongs to another unit, otherwise the result.
        """
        if slug != self.unit:
            return None

        try:
            self.rate_limiter.allow(INFO_ENDPOINT)
            metadata = await self.metadata.fetch_information(slug)
        except UpdateError as e:
            self.log.error(f"Plugin information request failed: {e.message}", kind=e.kind.value)
            return InformationResult(error=e.kind, message=e.message)

        return InformationResult(metadata=metadata, message="OK")

    # Diagnostics

    async def test_server_connection(self) -> ConnectionResult:
        """Probe the server's ``connected`` endpoint."""
        url = self.server.connected_url()
        try:
            self.rate_limiter.allow(CONNECTED_ENDPOINT)
            status_code, elapsed_ms = await self.server.probe(url)
        except UpdateError as e:
            self.log.warning(f"Connection test failed: {e.message}", kind=e.kind.value)
            return ConnectionResult(connected=False, message=e.message)

        if status_code != 200:
            message = f"Server returned {status_code} status code"
            self.log.warning(f"Connection test failed: {message}")
            return ConnectionResult(
                connected=False,
                status_code=status_code,
                message=message,
                elapsed_ms=elapsed_ms,
            )

        self.log.debug("Connection test succeeded", elapsed_ms=round(elapsed_ms, 1))
        return ConnectionResult(
            connected=True,
            status_code=status_code,
            message="Connected",
            elapsed_ms=elapsed_ms,
        )

    async def check_system_health(self) -> HealthReport:
        """Run the health checks, or return an empty disabled report."""
        if not self.config.options.health_monitoring:
            return HealthReport(unit=self.unit, enabled=False)

        report = await self.health.check_health()
        if report.passed:
            self.log.debug("Health check passed")
        else:
            failed = [check.name for check in report.checks if not check.passed]
            self.log.warning("Health check failed", failed=failed)
        return report

    async def health_summary(self) -> dict[str, Any]:
        """Return the site-health style summary of ``check_system_health``."""
        report = await self.check_system_health()
        return report.summary()

    def get_last_status(self) -> UpdateStatus | None:
        """Return the outcome recorded within the last 30 seconds."""
        return self.status.last()

    # Install preparation

    async def prepare_update(self, result: UpdateCheckResult) -> PrepareResult:
        """Verify the offered package and back up the current installation.

        The host installs the package only when the returned result is
        successful.
        """
        package_url = result.package
        if not result.update_available or not package_url:
            return PrepareResult(success=False, message="No update available")

        async with self._lock:
            checksum = None
            try:
                if self.config.options.verify_packages:
                    checksum = await self.verifier.verify(package_url)
                backup = await self.backups.backup_current()
            except UpdateError as e:
                self.status.error(e.message)
                self.log.error(f"Update preparation failed: {e.message}", kind=e.kind.value)
                return PrepareResult(
                    success=False,
                    package_url=package_url,
                    verified=checksum is not None,
                    checksum=checksum,
                    error=e.kind,
                    message=e.message,
                )

        message = f"Update {result.new_version} ready to install"
        self.status.success(message)
        self.log.info(message, backup=str(backup.path), verified=checksum is not None)
        return PrepareResult(
            success=True,
            package_url=package_url,
            verified=checksum is not None,
            checksum=checksum,
            backup=backup,
            message=message,
        )

    async def backup_current(self) -> UpdateStatus:
        """Archive the current installation outside of an update.

        Returns:
            The recorded status of the backup.
        """
        async with self._lock:
            try:
                info = await self.backups.backup_current()
            except UpdateError as e:
                self.log.error(f"Backup failed: {e.message}", kind=e.kind.value)
                return self.status.error(e.message)

        return self.status.success(f"Backup created: {info.path} ({info.size_bytes} bytes)")

    def list_backups(self) -> list[BackupInfo]:
        """List this unit's backup archives, newest first."""
        return self.backups.list_backups()

    async def restore_backup(self, archive_path: Path) -> UpdateStatus:
        """Roll the installation back to ``archive_path``.

        Returns:
            The recorded status of the rollback.
        """
        async with self._lock:
            try:
                await self.backups.restore_backup(archive_path)
            except UpdateError as e:
                return self.status.error(e.message)

        return self.status.success(f"Restored backup {archive_path.name}")

    # Housekeeping

    def get_logs(self) -> list[LogEntry]:
        """Return the unit's log, newest first."""
        return self.log.entries()

    def clear_cache(self) -> None:
        """Drop everything this unit keeps: cache, status and log."""
        removed = self._cache.clear()
        self.log.clear()
        self.state = CheckState.IDLE
        self._log.info("unit_state_cleared", removed=removed)
