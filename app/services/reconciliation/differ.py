"""Source-to-vendor differencing.

Given the canonical source set (what we bill) and the canonical vendor set
(what the vendor bills), work out who has to be created at the vendor, who
has to be removed, who exists on both sides, who moved to another payment
method while the vendor contract is still active, and who only needs the
vendor's customer reference fixed.

All matching is done with dicts and sets keyed on the join field, so the
cost is linear in the size of both inputs.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Iterable, Optional, Sequence

from app.core.logging import get_logger
from app.schemas.subscriber import CanonicalSubscriber, SubscriptionStatus

logger = get_logger(__name__)

# Fields copied from the vendor record when a subscriber exists on both sides
_TARGET_FIELDS = (
    "target_ref",
    "contract_ref",
    "target_active",
    "paid_invoices",
    "unpaid_invoices",
    "collections",
    "last_invoice_status",
    "invalid_counters",
)


@dataclass(frozen=True)
class ReconciliationResult:
    """Partitions produced by one diff.

    Attributes:
        create: Source subscribers the vendor does not know about.
        remove: Vendor customers that are no longer in the source.
        existing_in_both: Source records merged with their vendor fields.
        plan_change: Subscribers paying another way whose vendor contract
            is still active.
        reference_update: Create candidates the vendor already holds
            under their source id, but without an identifier.
        total_source / total_target: Input sizes.
        duplicate_source_keys / duplicate_target_keys: Keys seen more than
            once; only the first record per key takes part in matching.
    """

    create: tuple[CanonicalSubscriber, ...] = ()
    remove: tuple[CanonicalSubscriber, ...] = ()
    existing_in_both: tuple[CanonicalSubscriber, ...] = ()
    plan_change: tuple[CanonicalSubscriber, ...] = ()
    reference_update: tuple[CanonicalSubscriber, ...] = ()
    total_source: int = 0
    total_target: int = 0
    duplicate_source_keys: tuple[str, ...] = ()
    duplicate_target_keys: tuple[str, ...] = ()

    @property
    def create_count(self) -> int:
        return len(self.create)

    @property
    def remove_count(self) -> int:
        return len(self.remove)

    @property
    def existing_in_both_count(self) -> int:
        return len(self.existing_in_both)

    @property
    def plan_change_count(self) -> int:
        return len(self.plan_change)

    @property
    def reference_update_count(self) -> int:
        return len(self.reference_update)


def _key(record: CanonicalSubscriber, field_name: str) -> Optional[str]:
    value = getattr(record, field_name, None)
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _index_first(
    records: Iterable[CanonicalSubscriber], field_name: str
) -> tuple[dict[str, CanonicalSubscriber], list[str]]:
    """Map key -> first record with that key; also return repeated keys."""
    index: dict[str, CanonicalSubscriber] = {}
    duplicates: list[str] = []
    for record in records:
        key = _key(record, field_name)
        if key is None:
            continue
        if key in index:
            if key not in duplicates:
                duplicates.append(key)
            continue
        index[key] = record
    return index, duplicates


def merge_with_target(
    source: CanonicalSubscriber, target: CanonicalSubscriber
) -> CanonicalSubscriber:
    """Return the source record carrying the vendor-side fields of *target*."""
    return replace(source, **{name: getattr(target, name) for name in _TARGET_FIELDS})


class ReconciliationDiffer:
    """Diffs canonical source records against canonical vendor records.

    Args:
        vendor_payment_method: Payment method value meaning "billed
            through the vendor".
        key: Canonical field used as the join key.
    """

    def __init__(self, vendor_payment_method: str = "vendor", key: str = "national_id") -> None:
        self.vendor_payment_method = vendor_payment_method
        self.key = key

    def diff(
        self,
        source: Sequence[CanonicalSubscriber],
        target: Sequence[CanonicalSubscriber],
    ) -> ReconciliationResult:
        key = self.key

        # 1. Source records without a key cannot be matched and are always created
        valid_source = [r for r in source if _key(r, key) is not None]
        invalid_source = [r for r in source if _key(r, key) is None]

        # 2. Key sets
        source_index, dup_source = _index_first(valid_source, key)
        target_index, dup_target = _index_first(target, key)
        keyless_targets = [r for r in target if _key(r, key) is None]

        source_keys = set(source_index)
        target_keys = set(target_index)
        remove_keys = target_keys - source_keys
        both_keys = target_keys & source_keys

        if dup_source:
            logger.warning("Duplicate source keys (first record wins): %s", dup_source)
        if dup_target:
            logger.warning("Duplicate vendor keys (first record wins): %s", dup_target)

        # 3. Create candidates
        create_candidates: list[CanonicalSubscriber] = list(invalid_source)
        for record in valid_source:
            if source_index[_key(record, key)] is not record:
                continue
            if (
                record.payment_method == self.vendor_payment_method
                and record.status is not SubscriptionStatus.CANCELLED
                and _key(record, key) not in target_keys
            ):
                create_candidates.append(record)

        # 4. Plan change: paying another way, vendor contract still active
        plan_change: list[CanonicalSubscriber] = []
        for record in valid_source:
            record_key = _key(record, key)
            if source_index[record_key] is not record:
                continue
            if record.payment_method == self.vendor_payment_method:
                continue
            matched = target_index.get(record_key)
            if matched is not None and matched.target_active is True:
                plan_change.append(
                    replace(
                        record,
                        target_active=matched.target_active,
                        target_ref=matched.target_ref,
                        contract_ref=matched.contract_ref,
                    )
                )

        # 5. Reference update: vendor holds the customer under the source id
        refs_without_key = {
            r.target_ref: r for r in keyless_targets if r.target_ref is not None
        }
        create: list[CanonicalSubscriber] = []
        reference_update: list[CanonicalSubscriber] = []
        for record in create_candidates:
            matched = (
                refs_without_key.get(record.source_id)
                if record.source_id is not None
                else None
            )
            if matched is not None:
                reference_update.append(replace(record, target_ref=matched.target_ref))
            else:
                create.append(record)

        # 6. Intersection, in source order
        existing_in_both = [
            merge_with_target(record, target_index[_key(record, key)])
            for record in valid_source
            if _key(record, key) in both_keys and source_index[_key(record, key)] is record
        ]

        remove = [
            record
            for record in target
            if _key(record, key) in remove_keys and target_index[_key(record, key)] is record
        ]

        result = ReconciliationResult(
            create=tuple(create),
            remove=tuple(remove),
            existing_in_both=tuple(existing_in_both),
            plan_change=tuple(plan_change),
            reference_update=tuple(reference_update),
            total_source=len(source),
            total_target=len(target),
            duplicate_source_keys=tuple(dup_source),
            duplicate_target_keys=tuple(dup_target),
        )

        logger.info(
            "Diff complete: source=%d target=%d create=%d remove=%d both=%d "
            "plan_change=%d reference_update=%d",
            result.total_source,
            result.total_target,
            result.create_count,
            result.remove_count,
            result.existing_in_both_count,
            result.plan_change_count,
            result.reference_update_count,
        )
        return result


def reconcile(
    source: Sequence[CanonicalSubscriber],
    target: Sequence[CanonicalSubscriber],
    vendor_payment_method: str = "vendor",
    key: str = "national_id",
) -> ReconciliationResult:
    """Diff *source* against *target* with a one-off ``ReconciliationDiffer``."""
    return ReconciliationDiffer(vendor_payment_method, key).diff(source, target)
