"""Action classification for subscribers present on both sides.

Each rule is a small pure function so it can be tested on its own; the
``classify`` function walks the intersection once, applies them and builds
the collection / unpaid-invoice histograms along the way.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional, Sequence

from app.core.logging import get_logger
from app.schemas.subscriber import CanonicalSubscriber, SubscriptionStatus

logger = get_logger(__name__)

DEFAULT_SUSPEND_THRESHOLD = 2

HISTOGRAM_BUCKETS: tuple[str, ...] = ("0", "1", "2", "3+", "invalid", "nil")

LOCKED_SUBSCRIPTION_TYPE = "locked"


def empty_histogram() -> dict[str, int]:
    return {bucket: 0 for bucket in HISTOGRAM_BUCKETS}


@dataclass(frozen=True)
class ClassificationResult:
    """Actions derived from the present-in-both partition."""

    suspend: tuple[CanonicalSubscriber, ...] = ()
    cancel: tuple[CanonicalSubscriber, ...] = ()
    unsuspend: tuple[CanonicalSubscriber, ...] = ()
    skipped: int = 0
    suspend_threshold: int = DEFAULT_SUSPEND_THRESHOLD
    total_analyzed: int = 0
    collection_summary: dict[str, int] = field(default_factory=empty_histogram)
    unpaid_invoices_summary: dict[str, int] = field(default_factory=empty_histogram)

    @property
    def suspend_count(self) -> int:
        return len(self.suspend)

    @property
    def cancel_count(self) -> int:
        return len(self.cancel)

    @property
    def unsuspend_count(self) -> int:
        return len(self.unsuspend)


# ── Rules ───────────────────────────────────────────────────────────


def counter_bucket(record: CanonicalSubscriber, counter: str) -> str:
    """Histogram bucket for one counter of *record*."""
    if counter in record.invalid_counters:
        return "invalid"
    value = getattr(record, counter)
    if value is None:
        return "nil"
    if value < 0:
        return "invalid"
    if value >= 3:
        return "3+"
    return str(value)


def is_pending_cancel(record: CanonicalSubscriber) -> bool:
    return record.status is SubscriptionStatus.PENDING_CANCEL


def exceeds_collection_threshold(record: CanonicalSubscriber, threshold: int) -> bool:
    return record.collections is not None and record.collections >= threshold


def should_suspend(record: CanonicalSubscriber, threshold: int) -> bool:
    """Locked contracts over the threshold are suspended, not cancelled."""
    return (
        exceeds_collection_threshold(record, threshold)
        and record.subscription_type == LOCKED_SUBSCRIPTION_TYPE
    )


def should_cancel(record: CanonicalSubscriber, threshold: int) -> bool:
    return (
        exceeds_collection_threshold(record, threshold)
        and record.subscription_type != LOCKED_SUBSCRIPTION_TYPE
    )


def should_unsuspend(record: CanonicalSubscriber) -> bool:
    """No collections and no unpaid invoices, both actually reported."""
    return record.collections == 0 and record.unpaid_invoices == 0


# ── Classification ──────────────────────────────────────────────────


def classify(
    records: Sequence[CanonicalSubscriber],
    suspend_threshold: Optional[int] = None,
) -> ClassificationResult:
    """Decide suspend / cancel / unsuspend for every record.

    Args:
        records: The present-in-both partition (source merged with vendor).
        suspend_threshold: Collections count at which action is taken.

    Returns:
        A ``ClassificationResult``; histograms cover every record,
        including the ones that were skipped.
    """
    threshold = DEFAULT_SUSPEND_THRESHOLD if suspend_threshold is None else suspend_threshold
    suspend: list[CanonicalSubscriber] = []
    cancel: list[CanonicalSubscriber] = []
    unsuspend: list[CanonicalSubscriber] = []
    collection_summary = empty_histogram()
    unpaid_summary = empty_histogram()
    skipped = 0

    for record in records:
        collection_summary[counter_bucket(record, "collections")] += 1
        unpaid_summary[counter_bucket(record, "unpaid_invoices")] += 1

        if is_pending_cancel(record):
            skipped += 1
            continue

        if should_suspend(record, threshold):
            suspend.append(record)
        elif should_cancel(record, threshold):
            cancel.append(record)
        elif should_unsuspend(record):
            unsuspend.append(record)

    result = ClassificationResult(
        suspend=tuple(suspend),
        cancel=tuple(cancel),
        unsuspend=tuple(unsuspend),
        skipped=skipped,
        suspend_threshold=threshold,
        total_analyzed=len(records),
        collection_summary=collection_summary,
        unpaid_invoices_summary=unpaid_summary,
    )
    logger.info(
        "Classification complete: analyzed=%d suspend=%d cancel=%d unsuspend=%d "
        "skipped=%d threshold=%d",
        result.total_analyzed,
        result.suspend_count,
        result.cancel_count,
        result.unsuspend_count,
        result.skipped,
        threshold,
    )
    return result


def target_analytics(records: Iterable[CanonicalSubscriber]) -> dict[str, int]:
    """Count vendor customers with unpaid invoices and with collections."""
    unpaid = 0
    collections = 0
    for record in records:
        if record.unpaid_invoices is not None and record.unpaid_invoices > 0:
            unpaid += 1
        if record.collections is not None and record.collections > 0:
            collections += 1
    return {
        "customers_with_unpaid_invoices": unpaid,
        "customers_with_collections": collections,
    }
