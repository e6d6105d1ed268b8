"""Canonical normalizer for source and vendor subscriber records.

These functions provide a single place to handle the messy reality of two
very different record shapes: the source system hands us typed, nested
subscriber + subscription rows, the vendor hands us flat rows where every
cell is a string (or nil).  Both are mapped into ``CanonicalSubscriber``.

Everything here is pure.  Bad data never raises; it becomes ``None``.
"""

from __future__ import annotations

from datetime import date, datetime, time
from enum import Enum
from typing import Any, Iterable, List, Optional, Tuple

from app.core.logging import get_logger
from app.schemas.subscriber import (
    CanonicalSubscriber,
    Origin,
    RawTargetRecord,
    SourceSubscriberRow,
    SubscriptionStatus,
)

logger = get_logger(__name__)

# Vendor counters that are parsed into non-negative integers
COUNTER_FIELDS: tuple[str, ...] = ("paid_invoices", "unpaid_invoices", "collections")


class CounterState(str, Enum):
    """Outcome of parsing a counter cell."""

    OK = "ok"
    NIL = "nil"
    INVALID = "invalid"


def parse_counter(value: Any) -> Tuple[Optional[int], CounterState]:
    """Parse a vendor counter into a non-negative integer.

    Args:
        value: Cell text, an int, or None.

    Returns:
        ``(number, OK)`` on success, ``(None, NIL)`` when the value is
        absent or blank, ``(None, INVALID)`` when it is present but not a
        non-negative whole number.
    """
    if value is None:
        return None, CounterState.NIL
    if isinstance(value, bool):
        return None, CounterState.INVALID
    if isinstance(value, int):
        if value >= 0:
            return value, CounterState.OK
        return None, CounterState.INVALID

    stripped = str(value).strip()
    if stripped == "":
        return None, CounterState.NIL
    if stripped.isascii() and stripped.isdigit():
        return int(stripped), CounterState.OK
    return None, CounterState.INVALID


def parse_int(value: Any) -> Optional[int]:
    """Parse an identifier into an int, returning None on failure."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except ValueError:
        return None


def parse_active_flag(value: Optional[str]) -> Optional[bool]:
    """Map the vendor's active cell to a bool.

    The report emits ``"true"``/``"True"``, so the comparison ignores case
    and surrounding whitespace rather than matching ``"true"`` literally.
    Anything else means inactive. A nil cell stays None.
    """
    if value is None:
        return None
    return value.strip().lower() == "true"


def format_end_date(value: Any) -> Optional[str]:
    """Format an end date as an ISO-8601 string.

    A ``date`` (or a ``datetime`` at exactly midnight) becomes
    ``YYYY-MM-DD``; other datetimes keep their time component.
    Strings are passed through untouched.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.time() == time(0, 0) and value.tzinfo is None:
            return value.date().isoformat()
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    stripped = str(value).strip()
    return stripped or None


# ── Source side ──────────────────────────────────────────────────────


def from_source(row: Any) -> CanonicalSubscriber:
    """Convert a source subscriber (ORM row, dict or schema) to canonical form."""
    if not isinstance(row, SourceSubscriberRow):
        if isinstance(row, dict):
            row = SourceSubscriberRow.model_validate(row)
        else:
            row = SourceSubscriberRow.model_validate(row, from_attributes=True)

    subscription = row.subscription
    status = SubscriptionStatus.parse(subscription.status)
    if status is None and subscription.status is not None:
        logger.warning(
            "Unknown subscription status %r for source subscriber %s",
            subscription.status,
            row.id,
        )

    return CanonicalSubscriber(
        national_id=row.personal_number,
        source_id=parse_int(row.id),
        source_subscription_id=parse_int(subscription.id),
        payment_method=subscription.payment_method,
        status=status,
        subscription_type=subscription.subscription_type,
        end_date=format_end_date(subscription.end_date),
        origin=Origin.SOURCE,
    )


def from_source_list(rows: Iterable[Any]) -> List[CanonicalSubscriber]:
    return [from_source(row) for row in rows]


# ── Vendor side ──────────────────────────────────────────────────────


def from_target(record: RawTargetRecord) -> CanonicalSubscriber:
    """Convert a decoded vendor report row to canonical form."""
    counters: dict[str, Optional[int]] = {}
    invalid: set[str] = set()
    for name in COUNTER_FIELDS:
        number, state = parse_counter(getattr(record, name))
        counters[name] = number
        if state is CounterState.INVALID:
            invalid.add(name)

    if invalid:
        logger.debug(
            "Vendor row %s has unparseable counters: %s",
            record.customer_ref,
            sorted(invalid),
        )

    return CanonicalSubscriber(
        national_id=record.id_number,
        target_ref=parse_int(record.customer_ref),
        contract_ref=record.contract_ref,
        end_date=format_end_date(record.end_date),
        origin=Origin.TARGET,
        target_active=parse_active_flag(record.active),
        paid_invoices=counters["paid_invoices"],
        unpaid_invoices=counters["unpaid_invoices"],
        collections=counters["collections"],
        last_invoice_status=record.last_invoice_status,
        invalid_counters=frozenset(invalid),
    )


def from_target_list(records: Iterable[RawTargetRecord]) -> List[CanonicalSubscriber]:
    return [from_target(record) for record in records]
