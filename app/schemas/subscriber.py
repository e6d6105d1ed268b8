"""Subscriber shapes used by the sync pipeline.

Three shapes flow through a run:

* ``SourceSubscriberRow``: a source-system subscriber with its nested
  subscription, validated from ORM rows or plain dicts.
* ``RawTargetRecord``: one decoded row of the vendor report, all strings.
* ``CanonicalSubscriber``: the single comparable shape both sides are
  mapped into before differencing.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import FrozenSet, List, Optional, Union

from pydantic import BaseModel, ConfigDict


class SubscriptionStatus(str, Enum):
    """Subscription/contract status in the source system."""

    ACTIVE = "active"
    ON_HOLD = "on_hold"
    CANCELLED = "cancelled"
    PENDING_CANCEL = "pending_cancel"
    PENDING = "pending"
    EXPIRED = "expired"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"

    @classmethod
    def parse(cls, value: object) -> Optional[SubscriptionStatus]:
        """Parse ``"pending-cancel"``, ``"Pending_Cancel"`` etc.; None if unknown."""
        if value is None:
            return None
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower().replace("-", "_")
        try:
            return cls(key)
        except ValueError:
            return None


class Origin(str, Enum):
    SOURCE = "source"
    TARGET = "target"


class ActionType(str, Enum):
    """Kinds of action items a sync run can produce."""

    CREATE = "create"
    REMOVE = "remove"
    SUSPEND = "suspend"
    UNSUSPEND = "unsuspend"
    CANCEL = "cancel"
    CANCEL_CONTRACT = "cancel_contract"
    UPDATE_REFERENCE = "update_reference"


class ActionStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


# ── Source rows ──────────────────────────────────────────────────────


class SourceSubscriptionRow(BaseModel):
    """The subscription nested under a source subscriber."""

    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    payment_method: Optional[str] = None
    status: Optional[str] = None
    end_date: Optional[Union[datetime, date, str]] = None
    subscription_type: Optional[str] = None


class SourceSubscriberRow(BaseModel):
    """One row from the source supplier."""

    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    personal_number: Optional[str] = None
    subscription: SourceSubscriptionRow


# ── Vendor report rows ───────────────────────────────────────────────

# Column order of the vendor report; index == position in <Rows>.
TARGET_COLUMNS: tuple[str, ...] = (
    "row_number",
    "dataset_id",
    "customer_ref",
    "id_number",
    "name",
    "contract_ref",
    "reg_date",
    "start_date",
    "end_date",
    "active",
    "paid_invoices",
    "unpaid_invoices",
    "collections",
    "last_invoice_status",
)


@dataclass
class RawTargetRecord:
    """One ``<ReportResults>`` block of the vendor report.

    Every named field is the cell text (or None for a nil cell).
    ``raw_fields`` holds all cells in order, including columns past the
    known layout.
    """

    row_number: Optional[str] = None
    dataset_id: Optional[str] = None
    customer_ref: Optional[str] = None
    id_number: Optional[str] = None
    name: Optional[str] = None
    contract_ref: Optional[str] = None
    reg_date: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    active: Optional[str] = None
    paid_invoices: Optional[str] = None
    unpaid_invoices: Optional[str] = None
    collections: Optional[str] = None
    last_invoice_status: Optional[str] = None
    origin: Origin = Origin.TARGET
    raw_fields: List[Optional[str]] = field(default_factory=list)


# ── Canonical shape ──────────────────────────────────────────────────


@dataclass(frozen=True)
class CanonicalSubscriber:
    """Comparable subscriber record, keyed by ``national_id``.

    Attributes:
        national_id: Personal/national identifier; the join key.
        source_id: Source subscriber id (source origin only, until merged).
        source_subscription_id: Source subscription id.
        target_ref: Vendor customer reference (target origin only, until merged).
        contract_ref: Vendor contract reference.
        payment_method: Source payment method.
        status: Source subscription status.
        subscription_type: Source classification, e.g. ``"locked"``.
        end_date: ISO-8601 end date.
        origin: Which system the record came from.
        target_active: Vendor active flag.
        paid_invoices / unpaid_invoices / collections: Vendor counters;
            None when absent or unparseable.
        last_invoice_status: Vendor last invoice status.
        invalid_counters: Names of counters that were present but could
            not be parsed, so "absent" and "garbage" stay distinguishable.
    """

    national_id: Optional[str] = None
    source_id: Optional[int] = None
    source_subscription_id: Optional[int] = None
    target_ref: Optional[int] = None
    contract_ref: Optional[str] = None
    payment_method: Optional[str] = None
    status: Optional[SubscriptionStatus] = None
    subscription_type: Optional[str] = None
    end_date: Optional[str] = None
    origin: Origin = Origin.SOURCE
    target_active: Optional[bool] = None
    paid_invoices: Optional[int] = None
    unpaid_invoices: Optional[int] = None
    collections: Optional[int] = None
    last_invoice_status: Optional[str] = None
    invalid_counters: FrozenSet[str] = frozenset()

    def has_valid_key(self, key: str = "national_id") -> bool:
        value = getattr(self, key, None)
        return value is not None and str(value).strip() != ""
