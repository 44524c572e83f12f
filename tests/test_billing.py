"""
Tests for billing period close and aggregation.
"""
import pytest
from datetime import date, datetime

import pytz
from sqlalchemy import select

from commonmeal.core.errors import NotFoundError
from commonmeal.models.billing import BillingPeriodSummary, Invoice, Transaction
from commonmeal.models.enums import OrderAuditAction, OrderState
from commonmeal.services.billing import BillingAggregator
from commonmeal.services.booking import OrderService

CLOSE_TIME = datetime(2024, 6, 1, 3, 0, tzinfo=pytz.UTC)


class TestClosePeriod:
    def test_may_2024_scenario(self, db, may_2024_orders):
        orders, households = may_2024_orders

        result = BillingAggregator(db, cutoff_day=17).close_period("2024-05", now=CLOSE_TIME)

        assert result.closed == 7
        assert result.failures == []
        summary = result.summary
        assert summary.total_amount == 1400
        assert summary.household_count == 3
        assert summary.ticket_count == 7
        assert summary.cutoff_date == date(2024, 5, 17)
        assert summary.payment_date == date(2024, 6, 1)

        invoices = BillingAggregator(db, cutoff_day=17).invoices_for_period("2024-05")
        assert [(i.pbs_id, i.amount) for i in invoices] == [(101, 600), (102, 400), (103, 400)]
        assert sum(i.amount for i in invoices) == summary.total_amount
        assert all(i.billing_period_summary_id == summary.id for i in invoices)

    def test_orders_are_closed_with_audit(self, db, may_2024_orders):
        orders, _ = may_2024_orders
        BillingAggregator(db, cutoff_day=17).close_period("2024-05", now=CLOSE_TIME)

        for order in orders:
            db.refresh(order)
            assert order.state == OrderState.CLOSED
            assert order.closed_at == datetime(2024, 6, 1, 3, 0)
        last = OrderService(db).history(orders[3].id)[-1]
        assert last.action == OrderAuditAction.SYSTEM_UPDATED
        assert last.audit_data == {"from": "RELEASED", "to": "CLOSED"}

    def test_transactions_carry_snapshots(self, db, may_2024_orders):
        orders, households = may_2024_orders
        BillingAggregator(db, cutoff_day=17).close_period("2024-05", now=CLOSE_TIME)

        booked_by_user = db.scalar(select(Transaction).where(Transaction.order_id == orders[0].id))
        assert booked_by_user.amount == 400
        assert booked_by_user.billing_period == "2024-05"
        assert booked_by_user.pbs_id == 101
        assert booked_by_user.user_email_handle == "anna@example.com"
        assert booked_by_user.order_snapshot["household"]["address"] == "Fællesvej 1"
        assert booked_by_user.order_snapshot["dinner"]["date"] == "2024-04-22"

        no_user = db.scalar(select(Transaction).where(Transaction.order_id == orders[2].id))
        assert no_user.user_email_handle == "unknown"

        # later household edits never reach an existing snapshot
        households[0].address = "Nyvej 9"
        db.commit()
        db.refresh(booked_by_user)
        assert booked_by_user.order_snapshot["household"]["address"] == "Fællesvej 1"

    def test_close_is_idempotent(self, db, may_2024_orders):
        aggregator = BillingAggregator(db, cutoff_day=17)
        first = aggregator.close_period("2024-05", now=CLOSE_TIME)
        share_token = first.summary.share_token

        second = aggregator.close_period("2024-05", now=CLOSE_TIME)

        assert second.closed == 0
        assert second.summary.total_amount == 1400
        assert second.summary.share_token == share_token
        assert db.query(Transaction).count() == 7
        assert db.query(Invoice).count() == 3
        assert db.query(BillingPeriodSummary).count() == 1

    def test_failed_order_is_excluded_and_others_commit(self, db, may_2024_orders):
        orders, _ = may_2024_orders
        orders[5].price_at_booking = None
        db.commit()

        result = BillingAggregator(db, cutoff_day=17).close_period("2024-05", now=CLOSE_TIME)

        assert result.closed == 6
        assert [f.order_id for f in result.failures] == [orders[5].id]
        assert result.to_dict()["failed"] == 1
        assert result.summary.total_amount == 1000
        assert result.summary.ticket_count == 6
        db.refresh(orders[5])
        assert orders[5].state == OrderState.BOOKED

    def test_resumes_orders_closed_without_transaction(self, db, may_2024_orders):
        orders, _ = may_2024_orders
        # a run that closed the order but died before writing its transaction
        OrderService(db).close(orders[0], now=datetime(2024, 6, 1, 2, 0, tzinfo=pytz.UTC))
        db.commit()
        assert db.query(Transaction).count() == 0

        result = BillingAggregator(db, cutoff_day=17).close_period("2024-05", now=CLOSE_TIME)

        assert result.closed == 7
        assert result.summary.total_amount == 1400
        assert db.query(Transaction).count() == 7
        resumed = db.scalar(select(Transaction).where(Transaction.order_id == orders[0].id))
        assert resumed.amount == 400
        db.refresh(orders[0])
        assert orders[0].closed_at == datetime(2024, 6, 1, 2, 0)
        closes = [h for h in OrderService(db).history(orders[0].id) if h.audit_data.get("to") == "CLOSED"]
        assert len(closes) == 1

    def test_user_snapshot_is_the_booker_only(self, db, may_2024_orders):
        orders, _ = may_2024_orders
        # Anna has a login but nobody is recorded as having booked this ticket
        orders[0].booked_by_user_id = None
        db.commit()

        BillingAggregator(db, cutoff_day=17).close_period("2024-05", now=CLOSE_TIME)

        transaction = db.scalar(select(Transaction).where(Transaction.order_id == orders[0].id))
        assert transaction.user_email_handle == "unknown"
        assert transaction.user_snapshot["id"] is None

    def test_recompute_is_a_pure_fold(self, db, may_2024_orders):
        aggregator = BillingAggregator(db, cutoff_day=17)
        aggregator.close_period("2024-05", now=CLOSE_TIME)

        again = aggregator.recompute_period("2024-05")
        assert (again.total_amount, again.household_count, again.ticket_count) == (1400, 3, 7)


class TestUnbilledPeriods:
    def test_pending_period_found(self, db, may_2024_orders):
        assert BillingAggregator(db, cutoff_day=17).unbilled_periods(date(2024, 6, 1)) == ["2024-05"]

    def test_open_period_not_included(self, db, may_2024_orders):
        # 2024-06 (May 18 .. Jun 17) has not closed yet on Jun 1
        assert "2024-06" not in BillingAggregator(db, cutoff_day=17).unbilled_periods(date(2024, 6, 1))

    def test_empty_last_period_still_gets_a_summary(self, db):
        aggregator = BillingAggregator(db, cutoff_day=17)
        assert aggregator.unbilled_periods(date(2024, 8, 1)) == ["2024-07"]

        result = aggregator.close_period("2024-07")
        assert result.summary.total_amount == 0
        assert aggregator.unbilled_periods(date(2024, 8, 1)) == []


class TestSummaryLookup:
    def test_share_token_lookup(self, db, may_2024_orders):
        aggregator = BillingAggregator(db, cutoff_day=17)
        summary = aggregator.close_period("2024-05", now=CLOSE_TIME).summary

        assert aggregator.get_summary_by_share_token(summary.share_token).id == summary.id
        with pytest.raises(NotFoundError):
            aggregator.get_summary_by_share_token("not-a-token")

    def test_missing_summary(self, db):
        with pytest.raises(NotFoundError):
            BillingAggregator(db, cutoff_day=17).get_summary("2023-01")
