"""Tests for StatusReporter."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from secure_updates.models import StatusKind
from secure_updates.status import STATUS_TTL, StatusReporter

if TYPE_CHECKING:
    from helpers import FakeClock

    from secure_updates.cache import CacheStore


@pytest.fixture
def reporter(cache: CacheStore) -> StatusReporter:
    return StatusReporter(cache.namespace("my-plugin"))


class TestStatusReporter:
    """Tests for recording and reading the last status."""

    def test_empty(self, reporter: StatusReporter) -> None:
        assert reporter.last() is None

    def test_record_and_read(self, reporter: StatusReporter) -> None:
        reporter.record(StatusKind.SUCCESS, "Checked")

        last = reporter.last()
        assert last is not None
        assert last.status == StatusKind.SUCCESS
        assert last.message == "Checked"

    def test_latest_wins(self, reporter: StatusReporter) -> None:
        reporter.success("first")
        reporter.error("second")

        last = reporter.last()
        assert last is not None
        assert last.status == StatusKind.ERROR
        assert last.message == "second"

    def test_expires_after_thirty_seconds(
        self, reporter: StatusReporter, clock: FakeClock
    ) -> None:
        assert STATUS_TTL == 30
        reporter.success("Checked")

        clock.advance(29)
        assert reporter.last() is not None
        clock.advance(1)
        assert reporter.last() is None

    def test_units_are_isolated(self, cache: CacheStore) -> None:
        StatusReporter(cache.namespace("first")).success("first")

        assert StatusReporter(cache.namespace("second")).last() is None

    def test_clear(self, reporter: StatusReporter) -> None:
        reporter.success("Checked")
        reporter.clear()
        assert reporter.last() is None
