"""Unit tests for the action classifier rules and histograms."""

from __future__ import annotations

import pytest

from app.schemas.subscriber import CanonicalSubscriber, SubscriptionStatus
from app.services.reconciliation.classifier import (
    HISTOGRAM_BUCKETS,
    classify,
    counter_bucket,
    should_cancel,
    should_suspend,
    should_unsuspend,
    target_analytics,
)


def _rec(
    collections=0,
    unpaid=0,
    subscription_type="standard",
    status=SubscriptionStatus.ACTIVE,
    invalid=frozenset(),
    national_id="A",
) -> CanonicalSubscriber:
    return CanonicalSubscriber(
        national_id=national_id,
        collections=collections,
        unpaid_invoices=unpaid,
        subscription_type=subscription_type,
        status=status,
        invalid_counters=frozenset(invalid),
    )


# ── Individual rules ────────────────────────────────────────────────


class TestRules:
    def test_locked_at_threshold_is_suspended(self):
        assert should_suspend(_rec(collections=2, subscription_type="locked"), 2) is True

    def test_unlocked_at_threshold_is_cancelled(self):
        record = _rec(collections=2, subscription_type="standard")

        assert should_suspend(record, 2) is False
        assert should_cancel(record, 2) is True

    def test_missing_type_is_cancelled(self):
        assert should_cancel(_rec(collections=5, subscription_type=None), 2) is True

    def test_below_threshold_no_action(self):
        record = _rec(collections=1, subscription_type="locked")

        assert should_suspend(record, 2) is False
        assert should_cancel(record, 2) is False

    def test_unknown_collections_no_action(self):
        record = _rec(collections=None, subscription_type="locked")

        assert should_suspend(record, 2) is False
        assert should_cancel(record, 2) is False

    def test_unsuspend_requires_both_zero(self):
        assert should_unsuspend(_rec(collections=0, unpaid=0)) is True
        assert should_unsuspend(_rec(collections=0, unpaid=1)) is False
        assert should_unsuspend(_rec(collections=0, unpaid=None)) is False
        assert should_unsuspend(_rec(collections=None, unpaid=0)) is False


class TestCounterBucket:
    @pytest.mark.parametrize(
        "value, bucket",
        [(0, "0"), (1, "1"), (2, "2"), (3, "3+"), (17, "3+"), (None, "nil"), (-1, "invalid")],
    )
    def test_buckets(self, value, bucket):
        assert counter_bucket(_rec(collections=value), "collections") == bucket

    def test_flagged_counter_is_invalid(self):
        record = _rec(collections=None, invalid={"collections"})

        assert counter_bucket(record, "collections") == "invalid"


# ── classify() ──────────────────────────────────────────────────────


class TestClassify:
    def test_suspend_cancel_unsuspend(self):
        locked = _rec(collections=2, subscription_type="locked", national_id="L")
        plain = _rec(collections=2, subscription_type="standard", national_id="P")
        clean = _rec(collections=0, unpaid=0, national_id="C")

        result = classify([locked, plain, clean], suspend_threshold=2)

        assert result.suspend == (locked,)
        assert result.cancel == (plain,)
        assert result.unsuspend == (clean,)
        assert result.suspend_count == 1
        assert result.cancel_count == 1
        assert result.unsuspend_count == 1
        assert result.total_analyzed == 3
        assert result.suspend_threshold == 2

    def test_higher_threshold(self):
        result = classify([_rec(collections=2, subscription_type="locked")], suspend_threshold=3)

        assert result.suspend == ()
        assert result.cancel == ()

    def test_default_threshold(self):
        result = classify([_rec(collections=2, subscription_type="locked")])

        assert result.suspend_threshold == 2
        assert result.suspend_count == 1

    def test_explicit_zero_threshold_is_kept(self):
        result = classify([_rec(collections=0, subscription_type="locked")], suspend_threshold=0)

        assert result.suspend_threshold == 0
        assert result.suspend_count == 1

    def test_pending_cancel_gets_no_action_but_is_counted(self):
        records = [
            _rec(collections=4, subscription_type="locked", status=SubscriptionStatus.PENDING_CANCEL),
            _rec(collections=0, unpaid=0, status=SubscriptionStatus.PENDING_CANCEL),
        ]

        result = classify(records)

        assert result.suspend == ()
        assert result.cancel == ()
        assert result.unsuspend == ()
        assert result.skipped == 2
        assert result.collection_summary["3+"] == 1
        assert result.collection_summary["0"] == 1

    def test_histograms_have_all_buckets(self):
        result = classify([])

        assert list(result.collection_summary) == list(HISTOGRAM_BUCKETS)
        assert list(result.unpaid_invoices_summary) == list(HISTOGRAM_BUCKETS)
        assert all(v == 0 for v in result.collection_summary.values())

    def test_histogram_counts(self):
        records = [
            _rec(collections=0, unpaid=0),
            _rec(collections=1, unpaid=None),
            _rec(collections=2, unpaid=5),
            _rec(collections=None, unpaid=1, invalid={"collections"}),
            _rec(collections=None, unpaid=2),
        ]

        result = classify(records)

        assert result.collection_summary == {
            "0": 1, "1": 1, "2": 1, "3+": 0, "invalid": 1, "nil": 1,
        }
        assert result.unpaid_invoices_summary == {
            "0": 1, "1": 1, "2": 1, "3+": 1, "invalid": 0, "nil": 1,
        }
        assert sum(result.collection_summary.values()) == result.total_analyzed


def test_target_analytics():
    records = [
        _rec(collections=0, unpaid=0),
        _rec(collections=2, unpaid=1),
        _rec(collections=None, unpaid=3),
        _rec(collections=1, unpaid=None),
    ]

    assert target_analytics(records) == {
        "customers_with_unpaid_invoices": 2,
        "customers_with_collections": 2,
    }
