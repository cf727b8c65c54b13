"""Shared test fixtures for secure updates tests."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pytest
from helpers import SERVER_URL, FakeClock, FakeServer

from secure_updates.cache import CacheStore, reset_cache_store
from secure_updates.logsink import MemoryLogSink, reset_log_sink
from secure_updates.models import ClientConfig

if TYPE_CHECKING:
    from collections.abc import Callable, Generator
    from pathlib import Path


@pytest.fixture(autouse=True)
def isolated_dirs(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> Generator[Path, None, None]:
    """Isolate tests from the real user config and data directories.

    Sets XDG_CONFIG_HOME and XDG_DATA_HOME to temporary directories and
    resets the process-wide cache and log sink.
    """
    data_home = tmp_path / "xdg_data"
    config_home = tmp_path / "xdg_config"
    data_home.mkdir(parents=True, exist_ok=True)
    config_home.mkdir(parents=True, exist_ok=True)

    monkeypatch.setenv("XDG_DATA_HOME", str(data_home))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(config_home))
    reset_cache_store()
    reset_log_sink()

    yield data_home

    reset_cache_store()
    reset_log_sink()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> CacheStore:
    return CacheStore(clock=clock)


@pytest.fixture
def sink() -> MemoryLogSink:
    return MemoryLogSink()


@pytest.fixture
def install_dir(tmp_path: Path) -> Path:
    """An installed unit with a nested file layout."""
    root = tmp_path / "plugins" / "my-plugin"
    (root / "includes").mkdir(parents=True)
    (root / "my-plugin.py").write_text("VERSION = '1.0.0'\n")
    (root / "includes" / "helpers.py").write_text("def helper():\n    return 42\n")
    (root / "assets.bin").write_bytes(bytes(range(256)))
    return root


@pytest.fixture
def make_config(tmp_path: Path, install_dir: Path) -> Callable[..., ClientConfig]:
    """Factory for ClientConfig with test defaults."""

    def factory(**overrides: Any) -> ClientConfig:
        values: dict[str, Any] = {
            "server_url": SERVER_URL,
            "unit": "my-plugin",
            "current_version": "1.0.0",
            "api_key": "secret-token",
            "install_dir": install_dir,
            "backup_dir": tmp_path / "backups",
            "host_name": "TestHost",
            "host_version": "6.4",
        }
        values.update(overrides)
        return ClientConfig(**values)

    return factory


@pytest.fixture
def config(make_config: Callable[..., ClientConfig]) -> ClientConfig:
    return make_config()


@pytest.fixture
def server(config: ClientConfig) -> FakeServer:
    return FakeServer(config)
