"""Health checks of the update environment.

``HealthMonitor.check_health`` runs every check in a fixed order. A failing or
crashing check never stops the remaining ones.
"""

from __future__ import annotations

import os
import platform
from typing import TYPE_CHECKING

import structlog

from .errors import UpdateError
from .models import HealthCheck, HealthReport
from .version import compare_versions

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from .models import ClientConfig, ConnectionResult

logger = structlog.get_logger(__name__)


def _at_least(version: str | None, minimum: str) -> bool:
    if not version:
        return False
    try:
        return compare_versions(version, minimum) >= 0
    except ValueError:
        return False


class HealthMonitor:
    """Runs the health check battery for one unit."""

    CHECKS = (
        "host_version",
        "runtime_version",
        "ssl_support",
        "write_permissions",
        "server_connection",
    )

    def __init__(
        self,
        config: ClientConfig,
        test_connection: Callable[[], Awaitable[ConnectionResult]],
    ) -> None:
        """Initialize the monitor.

        Args:
            config: Configuration of the update unit.
            test_connection: Probe of the update server's ``connected`` endpoint.
        """
        self._config = config
        self._test_connection = test_connection
        self._log = logger.bind(component="health_monitor", unit=config.unit)

    async def check_health(self) -> HealthReport:
        """Run all checks and return their results in order."""
        checks = []
        for name in self.CHECKS:
            method = getattr(self, f"_check_{name}")
            try:
                checks.append(await method())
            except (UpdateError, OSError, ValueError) as e:
                self._log.warning("health_check_crashed", check=name, error=str(e))
                checks.append(HealthCheck(name=name, passed=False, message=f"Check failed: {e}"))

        report = HealthReport(unit=self._config.unit, checks=checks)
        self._log.info("health_checked", overall=report.overall)
        return report

    async def _check_host_version(self) -> HealthCheck:
        options = self._config.options
        host_version = self._config.host_version
        return HealthCheck(
            name="host_version",
            passed=_at_least(host_version, options.min_host_version),
            message=(
                f"{self._config.host_name} version {host_version or 'unknown'} "
                f"(requires {options.min_host_version})"
            ),
        )

    async def _check_runtime_version(self) -> HealthCheck:
        minimum = self._config.options.min_runtime_version
        runtime = platform.python_version()
        return HealthCheck(
            name="runtime_version",
            passed=_at_least(runtime, minimum),
            message=f"Python version {runtime} (requires {minimum})",
        )

    async def _check_ssl_support(self) -> HealthCheck:
        try:
            import ssl
        except ImportError:
            return HealthCheck(name="ssl_support", passed=False, message="ssl module unavailable")
        return HealthCheck(
            name="ssl_support",
            passed=bool(getattr(ssl, "OPENSSL_VERSION", "")),
            message=f"TLS library: {getattr(ssl, 'OPENSSL_VERSION', 'unknown')}",
        )

    async def _check_write_permissions(self) -> HealthCheck:
        install_dir = self._config.install_dir
        if install_dir is None:
            return HealthCheck(
                name="write_permissions",
                passed=False,
                message="Write permissions: no install directory configured",
            )
        writable = install_dir.is_dir() and os.access(install_dir, os.W_OK | os.X_OK)
        return HealthCheck(
            name="write_permissions",
            passed=writable,
            message=f"Write permissions for {install_dir}",
        )

    async def _check_server_connection(self) -> HealthCheck:
        result = await self._test_connection()
        return HealthCheck(
            name="server_connection",
            passed=result.connected,
            message=f"Update server connection: {result.message}",
        )
