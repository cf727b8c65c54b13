"""Per-unit structured log that the host can display.

The pipeline writes ``(level, message, context)`` entries through a
``UnitLog``; a ``LogSink`` decides where they are kept. ``MemoryLogSink``
keeps the newest 100 entries per unit. Every entry is also mirrored to
structlog.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from .models import ClientConfig

logger = structlog.get_logger(__name__)

LOG_LEVELS = ("error", "warning", "info", "debug")
MAX_ENTRIES = 100


@dataclass
class LogEntry:
    """One entry of a unit's log."""

    level: str
    message: str
    unit: str
    version: str
    context: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(tz=UTC))

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "timestamp": self.timestamp.isoformat(),
            "level": self.level,
            "message": self.message,
            "unit": self.unit,
            "version": self.version,
            "context": self.context,
        }


class LogSink(ABC):
    """Append-only store of log entries, partitioned by unit."""

    @abstractmethod
    def append(self, entry: LogEntry) -> None:
        """Store an entry."""
        ...

    @abstractmethod
    def entries(self, unit: str) -> list[LogEntry]:
        """Return the retained entries of ``unit``, newest first."""
        ...

    @abstractmethod
    def clear(self, unit: str) -> None:
        """Drop all entries of ``unit``."""
        ...


class MemoryLogSink(LogSink):
    """In-memory sink retaining the newest ``max_entries`` entries per unit."""

    def __init__(self, max_entries: int = MAX_ENTRIES) -> None:
        self._max_entries = max_entries
        self._entries: dict[str, deque[LogEntry]] = {}
        self._lock = threading.Lock()

    def append(self, entry: LogEntry) -> None:
        with self._lock:
            bucket = self._entries.setdefault(entry.unit, deque(maxlen=self._max_entries))
            bucket.appendleft(entry)

    def entries(self, unit: str) -> list[LogEntry]:
        with self._lock:
            return list(self._entries.get(unit, ()))

    def clear(self, unit: str) -> None:
        with self._lock:
            self._entries.pop(unit, None)


class UnitLog:
    """Writes entries for one unit, honouring its ``enable_logging`` option."""

    def __init__(self, config: ClientConfig, sink: LogSink) -> None:
        self._config = config
        self._sink = sink
        self._log = logger.bind(unit=config.unit, version=config.current_version)

    @property
    def enabled(self) -> bool:
        return self._config.options.enable_logging

    def log(self, level: str, message: str, **context: Any) -> None:
        """Record an entry. Unknown levels are recorded as ``info``."""
        if level not in LOG_LEVELS:
            level = "info"

        getattr(self._log, level)(message, **context)

        if not self.enabled:
            return

        self._sink.append(
            LogEntry(
                level=level,
                message=message,
                unit=self._config.unit,
                version=self._config.current_version,
                context=context,
            )
        )

    def error(self, message: str, **context: Any) -> None:
        self.log("error", message, **context)

    def warning(self, message: str, **context: Any) -> None:
        self.log("warning", message, **context)

    def info(self, message: str, **context: Any) -> None:
        self.log("info", message, **context)

    def debug(self, message: str, **context: Any) -> None:
        self.log("debug", message, **context)

    def entries(self) -> list[LogEntry]:
        """Return this unit's retained entries, newest first."""
        return self._sink.entries(self._config.unit)

    def clear(self) -> None:
        self._sink.clear(self._config.unit)


_default_sink: LogSink | None = None
_default_lock = threading.Lock()


def get_log_sink() -> LogSink:
    """Get the process-wide LogSink instance."""
    global _default_sink

    with _default_lock:
        if _default_sink is None:
            _default_sink = MemoryLogSink()
        return _default_sink


def reset_log_sink() -> None:
    """Reset the process-wide LogSink instance.

    Useful for testing.
    """
    global _default_sink

    with _default_lock:
        _default_sink = None
