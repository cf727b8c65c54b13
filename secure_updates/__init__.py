"""Secure updates client.

Checks a remote update server for newer versions of an installed unit,
verifies downloaded packages against server-published SHA-256 checksums,
snapshots the current installation before an update and reports status and
health to the host application.

The host-facing entry point is ``UpdateClient``; the components it wires
together are importable on their own for hosts that need finer control.
"""

from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as _package_version

from .backup import BackupManager
from .cache import FAILED, CacheNamespace, CacheStore, get_cache_store, reset_cache_store
from .client import UpdateClient
from .config import ConfigManager, YamlConfigLoader
from .errors import (
    AuthError,
    BackupError,
    CachedFailureError,
    ChecksumMismatchError,
    ConfigError,
    DownloadError,
    ErrorKind,
    InvalidResponseError,
    RateLimitedError,
    TransportError,
    UpdateError,
)
from .health import HealthMonitor
from .logsink import LogEntry, LogSink, MemoryLogSink, UnitLog, get_log_sink, reset_log_sink
from .metadata import MetadataFetcher
from .models import (
    BackupInfo,
    CheckState,
    ClientConfig,
    ClientOptions,
    ConnectionResult,
    HealthCheck,
    HealthReport,
    InformationResult,
    PrepareResult,
    RateLimitConfig,
    RemoteMetadata,
    StatusKind,
    UpdateCheckResult,
    UpdateStatus,
)
from .rate_limit import RateLimiter
from .status import StatusReporter
from .transport import ServerClient
from .verifier import PackageVerifier
from .version import Version, compare_versions, is_newer, is_valid_version

try:
    __version__ = _package_version("secure-updates-client")
except PackageNotFoundError:
    __version__ = "0.0.0"

__all__ = [
    "FAILED",
    "AuthError",
    "BackupError",
    "BackupInfo",
    "BackupManager",
    "CacheNamespace",
    "CacheStore",
    "CachedFailureError",
    "CheckState",
    "ChecksumMismatchError",
    "ClientConfig",
    "ClientOptions",
    "ConfigError",
    "ConfigManager",
    "ConnectionResult",
    "DownloadError",
    "ErrorKind",
    "HealthCheck",
    "HealthMonitor",
    "HealthReport",
    "InformationResult",
    "InvalidResponseError",
    "LogEntry",
    "LogSink",
    "MemoryLogSink",
    "MetadataFetcher",
    "PackageVerifier",
    "PrepareResult",
    "RateLimitConfig",
    "RateLimitedError",
    "RateLimiter",
    "RemoteMetadata",
    "ServerClient",
    "StatusKind",
    "StatusReporter",
    "TransportError",
    "UnitLog",
    "UpdateCheckResult",
    "UpdateClient",
    "UpdateError",
    "UpdateStatus",
    "Version",
    "YamlConfigLoader",
    "__version__",
    "compare_versions",
    "get_cache_store",
    "get_log_sink",
    "is_newer",
    "is_valid_version",
    "reset_cache_store",
    "reset_log_sink",
]
