"""Tests for the paginated fetcher.

The page supplier is a plain function serving rendered report pages, so
these tests never touch the network.
"""

from __future__ import annotations

import threading
import time

import pytest

from app.core.exceptions import (
    FetchFailedError,
    VendorConnectionError,
    VendorHTTPError,
    VendorUnauthorizedError,
)
from app.services.vendor.fetcher import (
    PaginatedFetcher,
    apply_page_limit,
    calculate_worker_ranges,
)


@pytest.fixture
def page_server(report_page, make_vendor_row):
    """Supplier factory: serves rows whose customer_ref is the row offset."""

    def factory(failing_offsets=(), error=None):
        calls: list[tuple[int, int]] = []
        lock = threading.Lock()

        def supplier(offset: int, maxrows: int) -> str:
            with lock:
                calls.append((offset, maxrows))
            if offset in failing_offsets:
                raise error or VendorHTTPError(503, "unavailable")
            rows = [make_vendor_row(str(i), f"ID{i}") for i in range(offset, offset + maxrows)]
            return report_page(rows)

        supplier.calls = calls
        return supplier

    return factory


def _fetcher(supplier, **kwargs) -> PaginatedFetcher:
    kwargs.setdefault("network_backoff", 0)
    kwargs.setdefault("response_backoff", 0)
    return PaginatedFetcher(supplier, **kwargs)


# ── Range calculation ───────────────────────────────────────────────


class TestWorkerRanges:
    def test_250_rows_over_4_workers(self):
        ranges = calculate_worker_ranges(250, 4)

        assert [r.size for r in ranges] == [63, 63, 62, 62]
        assert [r.offset for r in ranges] == [0, 63, 126, 188]

    @pytest.mark.parametrize("total", [1, 7, 99, 100, 101, 250, 1000, 1003])
    @pytest.mark.parametrize("workers", [1, 2, 3, 4, 8])
    def test_ranges_cover_total_contiguously(self, total, workers):
        ranges = calculate_worker_ranges(total, workers)

        assert sum(r.size for r in ranges) == total
        assert ranges[0].offset == 0
        for prev, nxt in zip(ranges, ranges[1:]):
            assert nxt.offset == prev.end
        sizes = [r.size for r in ranges]
        assert max(sizes) - min(sizes) <= 1

    def test_empty_ranges_dropped(self):
        ranges = calculate_worker_ranges(2, 4)

        assert [(r.index, r.offset, r.size) for r in ranges] == [(0, 0, 1), (1, 1, 1)]

    def test_zero_total(self):
        assert calculate_worker_ranges(0, 3) == []

    def test_invalid_worker_count(self):
        with pytest.raises(ValueError):
            calculate_worker_ranges(10, 0)


class TestPageLimit:
    def test_no_limit(self):
        assert apply_page_limit(1234, 0) == 1234

    def test_caps_total(self):
        assert apply_page_limit(1234, 2) == 200

    def test_cap_above_total(self):
        assert apply_page_limit(50, 2) == 50


# ── Fetching ────────────────────────────────────────────────────────


class TestPaginatedFetcher:
    def test_one_page_per_worker(self, page_server):
        supplier = page_server()

        result = _fetcher(supplier, worker_count=4).fetch(250)

        assert sorted(supplier.calls) == [(0, 63), (63, 63), (126, 62), (188, 62)]
        assert len(result.records) == 250
        assert [r.customer_ref for r in result.records] == [str(i) for i in range(250)]
        assert result.is_partial is False
        assert result.failures == []
        assert result.total_requested == 250

    def test_multiple_pages_per_worker(self, page_server):
        supplier = page_server()

        result = _fetcher(supplier, worker_count=2).fetch(450)

        assert sorted(supplier.calls) == [
            (0, 100),
            (100, 100),
            (200, 25),
            (225, 100),
            (325, 100),
            (425, 25),
        ]
        assert [r.customer_ref for r in result.records] == [str(i) for i in range(450)]

    def test_zero_total_makes_no_requests(self, page_server):
        supplier = page_server()

        result = _fetcher(supplier).fetch(0)

        assert supplier.calls == []
        assert result.records == []
        assert result.is_partial is False

    def test_one_failing_worker_gives_partial_result(self, page_server):
        # 300 rows / 3 workers -> offsets 0, 100, 200
        supplier = page_server(failing_offsets={100})

        result = _fetcher(supplier, worker_count=3, max_retries=2).fetch(300)

        assert result.is_partial is True
        assert result.failed_workers == [1]
        assert result.failures[0].offset == 100
        assert result.failures[0].size == 100
        assert result.failures[0].reason == "VendorHTTPError"
        assert [r.customer_ref for r in result.records] == (
            [str(i) for i in range(100)] + [str(i) for i in range(200, 300)]
        )
        # first attempt + 2 retries for the failing page
        assert sum(1 for offset, _ in supplier.calls if offset == 100) == 3

    def test_unexpected_worker_error_is_isolated(self, page_server):
        supplier = page_server(failing_offsets={0}, error=RuntimeError("boom"))

        result = _fetcher(supplier, worker_count=2, max_retries=3).fetch(2)

        assert result.failed_workers == [0]
        assert result.failures[0].reason == "RuntimeError"
        assert [r.customer_ref for r in result.records] == ["1"]
        # not a transport error, so never retried
        assert sum(1 for offset, _ in supplier.calls if offset == 0) == 1

    def test_all_workers_failing_raises(self, page_server):
        supplier = page_server(failing_offsets={0, 50})

        with pytest.raises(FetchFailedError) as exc_info:
            _fetcher(supplier, worker_count=2, max_retries=0).fetch(100)

        assert [f.worker_index for f in exc_info.value.failures] == [0, 1]

    def test_unauthorized_is_not_retried(self, page_server):
        supplier = page_server(failing_offsets={0}, error=VendorUnauthorizedError("no"))

        with pytest.raises(FetchFailedError):
            _fetcher(supplier, worker_count=1, max_retries=3).fetch(10)

        assert supplier.calls == [(0, 10)]

    def test_transient_error_then_success(self, report_page, make_vendor_row):
        attempts = {"n": 0}

        def supplier(offset, maxrows):
            attempts["n"] += 1
            if attempts["n"] == 1:
                raise VendorConnectionError("reset")
            return report_page([make_vendor_row(str(offset), "ID")])

        result = _fetcher(supplier, worker_count=1).fetch(1)

        assert attempts["n"] == 2
        assert result.is_partial is False
        assert len(result.records) == 1

    def test_malformed_page_is_retried(self, report_page, make_vendor_row):
        pages = iter(["<DataRows><ReportResults>", report_page([make_vendor_row("0", "ID")])])

        result = _fetcher(lambda offset, maxrows: next(pages), worker_count=1).fetch(1)

        assert len(result.records) == 1

    def test_backoff_grows_linearly(self, page_server, monkeypatch):
        waits: list[float] = []
        monkeypatch.setattr(
            PaginatedFetcher, "_pause", staticmethod(lambda cancel, delay: waits.append(delay) or False)
        )
        supplier = page_server(failing_offsets={0})

        with pytest.raises(FetchFailedError):
            PaginatedFetcher(
                supplier, worker_count=1, max_retries=3, response_backoff=1.0
            ).fetch(5)

        assert waits == [1.0, 2.0, 3.0]

    def test_network_errors_use_network_backoff(self, page_server, monkeypatch):
        waits: list[float] = []
        monkeypatch.setattr(
            PaginatedFetcher, "_pause", staticmethod(lambda cancel, delay: waits.append(delay) or False)
        )
        supplier = page_server(failing_offsets={0}, error=VendorConnectionError("down"))

        with pytest.raises(FetchFailedError):
            PaginatedFetcher(
                supplier, worker_count=1, max_retries=2, network_backoff=1.5
            ).fetch(5)

        assert waits == [1.5, 3.0]

    def test_slow_worker_times_out_others_succeed(self, report_page, make_vendor_row):
        release = threading.Event()

        def supplier(offset, maxrows):
            if offset == 0:
                release.wait(2)
            return report_page([make_vendor_row(str(offset), "ID")] * maxrows)

        started = time.monotonic()
        result = _fetcher(supplier, worker_count=2, worker_timeout=0.2).fetch(4)
        release.set()

        assert time.monotonic() - started < 2
        assert result.is_partial is True
        assert result.failed_workers == [0]
        assert result.failures[0].reason == "timeout"
        assert len(result.records) == 2

    def test_rejects_oversized_pages(self, page_server):
        with pytest.raises(ValueError):
            PaginatedFetcher(page_server(), page_size=101)
