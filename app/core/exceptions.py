"""Exception hierarchy for the subscriber sync service.

Transport errors carry a ``retryable`` flag so the paginated fetcher can
decide whether re-requesting a page makes sense.  Data errors (a counter
that is not a number, an odd date) are never raised; the normalizer and
classifier degrade them to ``None`` or the ``"invalid"`` bucket instead.
"""

from __future__ import annotations

from typing import Optional, Sequence


class SyncError(Exception):
    """Base exception for the sync service."""

    pass


class VendorTransportError(SyncError):
    """A request to the vendor did not produce a usable response."""

    retryable: bool = True


class VendorTimeoutError(VendorTransportError):
    """The vendor did not answer within the configured timeout."""

    pass


class VendorConnectionError(VendorTransportError):
    """Connection refused, reset, or the host could not be resolved."""

    pass


class VendorHTTPError(VendorTransportError):
    """The vendor answered with a non-2xx status."""

    def __init__(self, status_code: int, body: str = "") -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"Vendor returned HTTP {status_code}")


class VendorUnauthorizedError(VendorHTTPError):
    """HTTP 401: credentials are wrong or expired.  Never retried."""

    retryable = False

    def __init__(self, body: str = "") -> None:
        super().__init__(401, body)


class ReportDecodeError(SyncError):
    """The report payload is not well-formed XML."""

    pass


class WorkerTimeoutError(SyncError):
    """A fetch worker exceeded its execution ceiling."""

    def __init__(self, worker_index: int, timeout: float) -> None:
        self.worker_index = worker_index
        self.timeout = timeout
        super().__init__(f"Worker {worker_index} timed out after {timeout}s")


class FetchFailedError(SyncError):
    """Every fetch worker failed; there is no target dataset to reconcile."""

    def __init__(self, failures: Sequence, message: Optional[str] = None) -> None:
        self.failures = list(failures)
        super().__init__(
            message or f"All {len(self.failures)} fetch workers failed"
        )
