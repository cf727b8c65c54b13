"""Core data models for the secure updates client.

This module defines Pydantic models for client configuration, remote
metadata returned by the update server, and the results reported to the
host application.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from pathlib import Path  # noqa: TC003 - needed at runtime by Pydantic
from typing import Any, NamedTuple
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator, model_validator

from .errors import ErrorKind  # noqa: TC001 - needed at runtime by Pydantic
from .version import is_valid_version

SLUG_PATTERN = r"^[a-z0-9][a-z0-9_-]*$"


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class RateLimitConfig(BaseModel):
    """Fixed-window request limit applied per endpoint."""

    model_config = ConfigDict(frozen=True)

    requests_per_window: int = Field(default=30, gt=0, description="Requests allowed per window")
    window_seconds: int = Field(default=60, gt=0, description="Window length in seconds")


class ClientOptions(BaseModel):
    """Feature switches for one update unit."""

    model_config = ConfigDict(frozen=True)

    verify_packages: bool = Field(
        default=True, description="Verify the package checksum before handing it to the host"
    )
    enable_logging: bool = Field(default=True, description="Record entries in the unit's log")
    health_monitoring: bool = Field(default=True, description="Run health checks on request")
    rate_limiting: RateLimitConfig = Field(default_factory=RateLimitConfig)
    timeout_seconds: float = Field(default=15.0, gt=0, description="Per-request timeout")
    min_host_version: str = Field(default="5.0", description="Oldest supported host version")
    min_runtime_version: str = Field(default="3.11", description="Oldest supported Python")


class ClientConfig(BaseModel):
    """Immutable configuration of one update unit."""

    model_config = ConfigDict(frozen=True)

    server_url: str = Field(..., description="Base URL of the update server")
    unit: str = Field(..., pattern=SLUG_PATTERN, description="Stable slug of the update unit")
    current_version: str = Field(..., description="Installed version of the unit")
    api_key: SecretStr | None = Field(default=None, description="Bearer token for the server")
    test_mode: bool = Field(default=False, description="Allow plain http for local test servers")
    install_dir: Path | None = Field(default=None, description="Installed unit directory")
    backup_dir: Path | None = Field(default=None, description="Where backups are written")
    host_name: str = Field(default="secure-updates-client", description="Host application name")
    host_version: str | None = Field(default=None, description="Host application version")
    options: ClientOptions = Field(default_factory=ClientOptions)

    @field_validator("server_url")
    @classmethod
    def _check_server_url(cls, value: str) -> str:
        value = value.strip().rstrip("/")
        parts = urlsplit(value)
        if parts.scheme not in ("http", "https") or not parts.netloc:
            raise ValueError(f"server_url must be an absolute http(s) URL, got {value!r}")
        return value

    @field_validator("current_version")
    @classmethod
    def _check_version(cls, value: str) -> str:
        value = value.strip()
        if not is_valid_version(value):
            raise ValueError(f"current_version is not a valid version: {value!r}")
        return value

    @field_validator("api_key", mode="before")
    @classmethod
    def _empty_key_is_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @model_validator(mode="after")
    def _require_https(self) -> ClientConfig:
        if not self.test_mode and not self.server_url.startswith("https://"):
            raise ValueError("server_url must use https unless test_mode is enabled")
        return self

    @property
    def bearer_token(self) -> str | None:
        """Return the API key in clear text, or None."""
        return self.api_key.get_secret_value() if self.api_key else None


class Sections(BaseModel):
    """Free-text sections of the remote metadata, already sanitized."""

    model_config = ConfigDict(frozen=True)

    description: str = ""
    installation: str = ""
    changelog: str = ""


class Requirements(NamedTuple):
    """Environment requirements declared by the server."""

    min_host_version: str
    tested_up_to: str
    min_runtime_version: str


class RemoteMetadata(BaseModel):
    """Sanitized description of the latest version available on the server."""

    model_config = ConfigDict(frozen=True)

    name: str = ""
    slug: str
    version: str
    author: str = ""
    homepage: str = ""
    requires: str = ""
    tested: str = ""
    requires_php: str = ""
    download_link: str = ""
    sections: Sections = Field(default_factory=Sections)

    @field_validator("version")
    @classmethod
    def _check_version(cls, value: str) -> str:
        value = value.strip()
        if not is_valid_version(value):
            raise ValueError(f"version is not a valid version: {value!r}")
        return value

    @property
    def requirements(self) -> Requirements:
        """Return the declared requirements."""
        return Requirements(
            min_host_version=self.requires,
            tested_up_to=self.tested,
            min_runtime_version=self.requires_php,
        )


class CheckState(str, Enum):
    """States of one update check."""

    IDLE = "idle"
    CHECKING = "checking"
    UP_TO_DATE = "up_to_date"
    UPDATE_AVAILABLE = "update_available"
    FAILED = "failed"


class UpdateCheckResult(BaseModel):
    """Terminal outcome of ``UpdateClient.check_for_updates``."""

    unit: str
    state: CheckState
    current_version: str
    metadata: RemoteMetadata | None = None
    error: ErrorKind | None = None
    message: str = ""
    checked_at: datetime = Field(default_factory=_utcnow)

    @property
    def update_available(self) -> bool:
        """Whether the host should offer an update."""
        return self.state == CheckState.UPDATE_AVAILABLE

    @property
    def new_version(self) -> str | None:
        """Version offered by the server, if an update is available."""
        return self.metadata.version if self.update_available and self.metadata else None

    @property
    def package(self) -> str | None:
        """Download link of the available package."""
        if not self.update_available or self.metadata is None:
            return None
        return self.metadata.download_link or None


class InformationResult(BaseModel):
    """Outcome of a detailed information request for the host's UI."""

    metadata: RemoteMetadata | None = None
    error: ErrorKind | None = None
    message: str = ""

    @property
    def ok(self) -> bool:
        """Whether metadata was retrieved."""
        return self.metadata is not None


class ConnectionResult(BaseModel):
    """Outcome of a connectivity probe against the update server."""

    connected: bool
    status_code: int | None = None
    message: str = ""
    elapsed_ms: float | None = None


class StatusKind(str, Enum):
    """Kind of the last recorded operation outcome."""

    SUCCESS = "success"
    ERROR = "error"


class UpdateStatus(BaseModel):
    """Last operation outcome of a unit, kept briefly for host display."""

    status: StatusKind
    message: str
    timestamp: datetime = Field(default_factory=_utcnow)


class HealthCheck(BaseModel):
    """Result of one health check."""

    name: str
    passed: bool
    message: str


class HealthReport(BaseModel):
    """Ordered results of the health check battery."""

    unit: str
    checks: list[HealthCheck] = Field(default_factory=list)
    enabled: bool = True
    generated_at: datetime = Field(default_factory=_utcnow)

    @property
    def passed(self) -> bool:
        """True when every check passed."""
        return all(check.passed for check in self.checks)

    @property
    def overall(self) -> str:
        """``critical`` if any check failed, otherwise ``good``."""
        return "good" if self.passed else "critical"

    def get(self, name: str) -> HealthCheck | None:
        """Return the check called ``name``."""
        return next((check for check in self.checks if check.name == name), None)

    def as_dict(self) -> dict[str, dict[str, Any]]:
        """Return ``{name: {"status": bool, "message": str}}`` in check order."""
        return {
            check.name: {"status": check.passed, "message": check.message}
            for check in self.checks
        }

    def summary(self) -> dict[str, Any]:
        """Build a site-health style test result for the host to render."""
        label = f"{self.unit.replace('-', ' ').replace('_', ' ').title()} Update System"
        if self.passed:
            description = "Your update system is working correctly."
        else:
            failed = ", ".join(check.name for check in self.checks if not check.passed)
            description = f"There are issues with your update system: {failed}."
        return {
            "label": label,
            "status": self.overall,
            "badge": {"label": "Security", "color": "blue"},
            "description": description,
            "test": f"secure_updates_{self.unit}",
            "checks": self.as_dict(),
        }


class BackupInfo(BaseModel):
    """A backup archive of an installed unit."""

    path: Path
    unit: str
    version: str
    created_at: datetime
    size_bytes: int = 0


class PrepareResult(BaseModel):
    """Outcome of verifying and backing up before the host installs a package."""

    success: bool
    package_url: str | None = None
    verified: bool = False
    checksum: str | None = None
    backup: BackupInfo | None = None
    error: ErrorKind | None = None
    message: str = ""
