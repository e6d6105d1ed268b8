"""Tests for the mock data generator.

The generated dataset is run through the whole sync pipeline and every
planted discrepancy has to come back as the matching action.
"""

from __future__ import annotations

import pytest

from app.core.config import Settings
from app.models.action_item import ActionItem
from app.services.ingestion.report_decoder import decode_report
from app.services.reconciliation.engine import SyncEngine
from scripts import generate_mock_data as mock_data


@pytest.fixture(scope="module")
def dataset():
    return mock_data.generate_dataset()


class TestDataset:
    def test_reproducible(self, dataset):
        again = mock_data.generate_dataset()

        assert again["manifest"] == dataset["manifest"]
        assert again["vendor_rows"] == dataset["vendor_rows"]

    def test_manifest_counts(self, dataset):
        manifest = dataset["manifest"]

        for key, count in mock_data.PLANTED.items():
            assert len(manifest[key]) == count, key

    def test_unique_personal_numbers(self, dataset):
        numbers = [s["personal_number"] for s in dataset["subscribers"]]

        assert len(numbers) == len(set(numbers)) == mock_data.SUBSCRIBER_COUNT

    def test_pages(self, dataset):
        pages = mock_data.paginate(dataset["vendor_rows"])

        assert all(len(page) <= mock_data.PAGE_SIZE for page in pages)
        assert sum(len(page) for page in pages) == len(dataset["vendor_rows"])

    def test_rendered_page_decodes(self, dataset):
        rows = dataset["vendor_rows"][:25]

        records = decode_report(mock_data.render_report_page(rows))

        assert len(records) == 25
        assert [r.customer_ref for r in records] == [row[2] for row in rows]
        assert [r.id_number for r in records] == [row[3] for row in rows]
        assert [r.collections for r in records] == [row[12] for row in rows]


def _actions(db, report_id) -> dict[str, set]:
    grouped: dict[str, set] = {}
    for item in db.query(ActionItem).filter(ActionItem.sync_report_id == report_id):
        value = item.source_id if item.action == "update_reference" else item.national_id
        grouped.setdefault(item.action, set()).add(value)
    return grouped


def test_sync_finds_planted_discrepancies(db_session):
    dataset = mock_data.generate_dataset()
    manifest = dataset["manifest"]
    rows = dataset["vendor_rows"]
    mock_data.add_source_rows(db_session, dataset["subscribers"])

    config = Settings(
        fetch_worker_count=2,
        fetch_max_retries=0,
        fetch_max_pages=0,
        vendor_payment_method=mock_data.VENDOR_PAYMENT_METHOD,
        suspend_threshold=2,
    )
    engine = SyncEngine(
        db_session,
        config,
        count_supplier=lambda: len(rows),
        page_supplier=lambda offset, maxrows: mock_data.render_report_page(
            rows[offset : offset + maxrows]
        ),
    )

    report = engine.run()

    assert report.status == "completed"
    assert report.total_source == mock_data.SUBSCRIBER_COUNT
    assert report.total_target == len(rows)

    actions = _actions(db_session, report.id)
    assert actions["create"] == set(manifest["create"])
    assert actions["remove"] == set(manifest["remove"])
    assert actions["update_reference"] == set(manifest["reference_update"])
    assert actions["cancel_contract"] == set(manifest["plan_change"])
    assert actions["suspend"] == set(manifest["suspend"])
    assert actions["cancel"] == set(manifest["cancel"])
