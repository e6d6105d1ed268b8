"""Sync engine: runs one full source/vendor reconciliation.

A run goes through these steps:
  1. Record a new report (status=running).
  2. Load the source subscribers from the DB.
  3. Ask the vendor how many customers it has, then fetch the contract
     report page by page on a pool of workers.
  4. Normalize both sides into canonical records and diff them.
  5. Classify the subscribers present on both sides.
  6. Persist one action item per required change and finalize the report.

If the vendor fetch fails completely the report ends up ``failed`` with
the error attached; it never looks like a run without discrepancies.
"""

from __future__ import annotations

import time
import uuid
from datetime import datetime
from typing import Callable, Iterable, Optional

from sqlalchemy.orm import Session

from app.core.config import Settings
from app.core.logging import get_logger
from app.models.action_item import ActionItem
from app.models.sync_report import SyncReport
from app.schemas.subscriber import ActionStatus, ActionType, CanonicalSubscriber
from app.services.ingestion.normalizer import from_source_list, from_target_list
from app.services.reconciliation.classifier import (
    ClassificationResult,
    classify,
    target_analytics,
)
from app.services.reconciliation.differ import ReconciliationDiffer, ReconciliationResult
from app.services.source.subscribers import fetch_source_rows
from app.services.vendor.customer_count import CustomerCountClient
from app.services.vendor.fetcher import (
    FetchResult,
    PageSupplier,
    PaginatedFetcher,
    apply_page_limit,
)
from app.services.vendor.report_client import ReportClient

logger = get_logger(__name__)

CountSupplier = Callable[[], int]

_REASONS: dict[ActionType, str] = {
    ActionType.CREATE: "Billed through the vendor but unknown to the vendor",
    ActionType.UPDATE_REFERENCE: "Vendor customer has no identifier; reference matches source id",
    ActionType.REMOVE: "Vendor customer no longer present in the source",
    ActionType.CANCEL_CONTRACT: "Payment method changed but vendor contract is still active",
    ActionType.SUSPEND: "Collections at or above threshold on a locked subscription",
    ActionType.CANCEL: "Collections at or above threshold",
    ActionType.UNSUSPEND: "No collections and no unpaid invoices",
}


def format_duration(ms: int) -> str:
    """Human-readable duration: ``850ms``, ``1.50s``, ``2.25m``, ``1.10h``."""
    if ms < 1000:
        return f"{ms}ms"
    if ms < 60_000:
        return f"{ms / 1000:.2f}s"
    if ms < 3_600_000:
        return f"{ms / 60_000:.2f}m"
    return f"{ms / 3_600_000:.2f}h"


def report_summary_text(report: SyncReport) -> str:
    """Multi-line summary of a finished report, for the log."""
    summary = report.summary or {}
    analytics = summary.get("vendor_analytics", {})
    lines = [
        f"Sync report {report.id} [{report.status}] in {report.duration_formatted}",
        f"  source subscribers:      {report.total_source}",
        f"  vendor customers:        {report.total_target} "
        f"(expected {report.target_rows_expected})",
        f"  to create:               {report.create_count}",
        f"  to remove:               {report.remove_count}",
        f"  present in both:         {report.existing_in_both_count}",
        f"  plan changes:            {report.plan_change_count}",
        f"  reference updates:       {report.reference_update_count}",
        f"  suspend / cancel:        {report.suspend_count} / {report.cancel_count} "
        f"(threshold {report.suspend_threshold})",
        f"  unsuspend:               {report.unsuspend_count}",
        f"  collections histogram:   {summary.get('collection_summary', {})}",
        f"  unpaid invoices:         {summary.get('unpaid_invoices_summary', {})}",
        f"  with unpaid invoices:    {analytics.get('customers_with_unpaid_invoices', 0)}",
        f"  with collections:        {analytics.get('customers_with_collections', 0)}",
    ]
    if report.failed_workers:
        lines.append(
            "  failed workers:          "
            + ", ".join(str(w["worker_index"]) for w in report.failed_workers)
        )
    if report.error:
        lines.append(f"  error:                   {report.error}")
    return "\n".join(lines)


def _ids(records: Iterable[CanonicalSubscriber]) -> list[str]:
    ids = []
    for r in records:
        if r.national_id:
            ids.append(r.national_id)
        elif r.source_id is not None:
            ids.append(f"source:{r.source_id}")
        else:
            ids.append(f"ref:{r.target_ref}")
    return ids


class SyncEngine:
    """Runs a full sync between the source DB and the vendor report.

    Args:
        db: Session used for source rows, the report and action items.
        config: Application settings.
        count_supplier: Returns the vendor's total row count; defaults to
            ``CustomerCountClient.get_total``.
        page_supplier: ``(offset, maxrows) -> payload``; defaults to
            ``ReportClient.fetch_page``.
    """

    def __init__(
        self,
        db: Session,
        config: Settings,
        count_supplier: Optional[CountSupplier] = None,
        page_supplier: Optional[PageSupplier] = None,
    ) -> None:
        self.db = db
        self.config = config
        self.count_supplier = count_supplier
        self.page_supplier = page_supplier
        self.differ = ReconciliationDiffer(config.vendor_payment_method)

    # ── Public API ───────────────────────────────────────────────────

    def run(
        self,
        worker_count: Optional[int] = None,
        suspend_threshold: Optional[int] = None,
        max_pages: Optional[int] = None,
    ) -> SyncReport:
        """Execute a full sync run.

        Args:
            worker_count: Overrides ``fetch_worker_count``.
            suspend_threshold: Overrides ``suspend_threshold``.
            max_pages: Overrides ``fetch_max_pages`` (0 = no cap).

        Returns:
            The persisted ``SyncReport`` with linked action items.
        """
        threshold = (
            self.config.suspend_threshold if suspend_threshold is None else suspend_threshold
        )
        page_cap = self.config.fetch_max_pages if max_pages is None else max_pages

        started = time.monotonic()
        report = self._create_report(threshold)
        logger.info("Sync run started: id=%s", report.id)

        owned_clients: list = []
        try:
            # 2. Source side
            source_rows = fetch_source_rows(self.db)
            source = from_source_list(source_rows)

            # 3. Vendor side
            count_supplier, page_supplier = self._suppliers(owned_clients)
            total = apply_page_limit(count_supplier(), page_cap)
            report.target_rows_expected = total
            fetcher = PaginatedFetcher.from_settings(
                page_supplier, self.config, worker_count=worker_count
            )
            fetch_result = fetcher.fetch(total)
            target = from_target_list(fetch_result.records)

            logger.info(
                "Data loaded: source=%d vendor=%d (expected %d)",
                len(source),
                len(target),
                total,
            )

            # 4 + 5. Diff and classify
            diff = self.differ.diff(source, target)
            classification = classify(diff.existing_in_both, threshold)

            # 6. Persist
            items = self._save_action_items(diff, classification, report.id)
            self._finalize_report(
                report, diff, classification, fetch_result, target, started
            )
            logger.info(
                "Sync complete: id=%s status=%s action_items=%d",
                report.id,
                report.status,
                len(items),
            )
            logger.info("\n%s", report_summary_text(report))

        except Exception as exc:
            report.status = "failed"
            report.error = str(exc)
            report.completed_at = datetime.utcnow()
            report.duration_ms = int((time.monotonic() - started) * 1000)
            report.duration_formatted = format_duration(report.duration_ms)
            self.db.commit()
            logger.exception("Sync run failed: id=%s", report.id)
            raise
        finally:
            for client in owned_clients:
                client.close()

        return report

    # ── Private helpers ──────────────────────────────────────────────

    def _suppliers(self, owned_clients: list) -> tuple[CountSupplier, PageSupplier]:
        count_supplier = self.count_supplier
        page_supplier = self.page_supplier
        if count_supplier is None:
            count_client = CustomerCountClient(self.config)
            owned_clients.append(count_client)
            count_supplier = count_client.get_total
        if page_supplier is None:
            report_client = ReportClient(self.config)
            owned_clients.append(report_client)
            page_supplier = report_client.fetch_page
        return count_supplier, page_supplier

    def _create_report(self, threshold: int) -> SyncReport:
        """Insert a new report row with status='running'."""
        now = datetime.utcnow()
        report = SyncReport(
            id=uuid.uuid4(),
            started_at=now,
            created_at=now,
            status="running",
            suspend_threshold=threshold,
        )
        self.db.add(report)
        self.db.flush()
        return report

    def _save_action_items(
        self,
        diff: ReconciliationResult,
        classification: ClassificationResult,
        report_id: uuid.UUID,
    ) -> list[ActionItem]:
        """One ``ActionItem`` per record in every actionable partition."""
        groups: list[tuple[ActionType, Iterable[CanonicalSubscriber]]] = [
            (ActionType.CREATE, diff.create),
            (ActionType.UPDATE_REFERENCE, diff.reference_update),
            (ActionType.REMOVE, diff.remove),
            (ActionType.CANCEL_CONTRACT, diff.plan_change),
            (ActionType.SUSPEND, classification.suspend),
            (ActionType.CANCEL, classification.cancel),
            (ActionType.UNSUSPEND, classification.unsuspend),
        ]

        now = datetime.utcnow()
        db_objects: list[ActionItem] = []
        for action, records in groups:
            for record in records:
                obj = ActionItem(
                    id=uuid.uuid4(),
                    action=action.value,
                    status=ActionStatus.PENDING.value,
                    national_id=record.national_id,
                    source_id=record.source_id,
                    target_ref=record.target_ref,
                    reason=_REASONS[action],
                    sync_report_id=report_id,
                    created_at=now,
                )
                self.db.add(obj)
                db_objects.append(obj)

        self.db.flush()
        return db_objects

    def _finalize_report(
        self,
        report: SyncReport,
        diff: ReconciliationResult,
        classification: ClassificationResult,
        fetch_result: FetchResult,
        target: list[CanonicalSubscriber],
        started: float,
    ) -> None:
        """Fill in counts and summary, mark the report completed or partial."""
        report.completed_at = datetime.utcnow()
        report.duration_ms = int((time.monotonic() - started) * 1000)
        report.duration_formatted = format_duration(report.duration_ms)
        report.status = "partial" if fetch_result.is_partial else "completed"
        report.total_source = diff.total_source
        report.total_target = diff.total_target
        report.create_count = diff.create_count
        report.remove_count = diff.remove_count
        report.existing_in_both_count = diff.existing_in_both_count
        report.plan_change_count = diff.plan_change_count
        report.reference_update_count = diff.reference_update_count
        report.suspend_count = classification.suspend_count
        report.cancel_count = classification.cancel_count
        report.unsuspend_count = classification.unsuspend_count
        report.suspend_threshold = classification.suspend_threshold
        report.failed_workers = [f.to_dict() for f in fetch_result.failures] or None
        report.summary = {
            "create": _ids(diff.create),
            "remove": _ids(diff.remove),
            "plan_change": _ids(diff.plan_change),
            "reference_update": _ids(diff.reference_update),
            "suspend": _ids(classification.suspend),
            "cancel": _ids(classification.cancel),
            "unsuspend": _ids(classification.unsuspend),
            "skipped": classification.skipped,
            "collection_summary": classification.collection_summary,
            "unpaid_invoices_summary": classification.unpaid_invoices_summary,
            "vendor_analytics": target_analytics(target),
            "duplicate_source_keys": list(diff.duplicate_source_keys),
            "duplicate_target_keys": list(diff.duplicate_target_keys),
        }

        self.db.commit()
