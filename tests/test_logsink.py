"""Tests for the per-unit log."""

from __future__ import annotations

from typing import TYPE_CHECKING

from secure_updates.logsink import (
    MAX_ENTRIES,
    MemoryLogSink,
    UnitLog,
    get_log_sink,
    reset_log_sink,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from secure_updates.models import ClientConfig


class TestMemoryLogSink:
    """Tests for MemoryLogSink."""

    def test_newest_first(self, config: ClientConfig, sink: MemoryLogSink) -> None:
        log = UnitLog(config, sink)
        log.info("first")
        log.error("second")

        entries = sink.entries("my-plugin")
        assert [entry.message for entry in entries] == ["second", "first"]
        assert entries[0].level == "error"
        assert entries[0].version == "1.0.0"

    def test_capped_at_max_entries(self, config: ClientConfig, sink: MemoryLogSink) -> None:
        log = UnitLog(config, sink)
        for i in range(MAX_ENTRIES + 20):
            log.debug(f"entry {i}")

        entries = log.entries()
        assert len(entries) == MAX_ENTRIES
        assert entries[0].message == f"entry {MAX_ENTRIES + 19}"
        assert entries[-1].message == "entry 20"

    def test_units_are_separate(
        self, make_config: Callable[..., ClientConfig], sink: MemoryLogSink
    ) -> None:
        UnitLog(make_config(unit="first"), sink).info("one")
        UnitLog(make_config(unit="second"), sink).info("two")

        assert [e.message for e in sink.entries("first")] == ["one"]
        sink.clear("first")
        assert sink.entries("first") == []
        assert len(sink.entries("second")) == 1


class TestUnitLog:
    """Tests for UnitLog."""

    def test_unknown_level_becomes_info(self, config: ClientConfig, sink: MemoryLogSink) -> None:
        UnitLog(config, sink).log("critical", "odd")
        assert sink.entries("my-plugin")[0].level == "info"

    def test_context_is_kept(self, config: ClientConfig, sink: MemoryLogSink) -> None:
        UnitLog(config, sink).warning("slow", elapsed_ms=1200)

        data = sink.entries("my-plugin")[0].to_dict()
        assert data["context"] == {"elapsed_ms": 1200}
        assert data["unit"] == "my-plugin"
        assert "timestamp" in data

    def test_disabled_logging(
        self, make_config: Callable[..., ClientConfig], sink: MemoryLogSink
    ) -> None:
        config = make_config(options={"enable_logging": False})
        log = UnitLog(config, sink)

        log.error("not stored")

        assert not log.enabled
        assert log.entries() == []


class TestLogSinkSingleton:
    """Tests for the process-wide sink."""

    def test_reset(self) -> None:
        sink = get_log_sink()
        assert get_log_sink() is sink
        reset_log_sink()
        assert get_log_sink() is not sink
