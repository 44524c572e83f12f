"""
Billing aggregation.

Closing a period runs in two phases:

1. Each eligible order is closed on its own: state -> CLOSED plus exactly
   one Transaction carrying frozen snapshots, committed per order. A failing
   order is recorded and skipped; orders closed before a crash stay closed.
2. Invoices (one per household per period) and the period summary are
   rebuilt as sums over the period's transactions. Re-running this step
   always yields the same totals.

Orders are processed one at a time because a Session is not safe to share
between threads and the per-household invoice must not be written by two
workers at once.
"""
import logging
import secrets
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, List, Optional

from sqlalchemy import and_, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from commonmeal.core.billing_period import BillingPeriod, last_closed_period, period_key_for_date
from commonmeal.core.calendar import local_date, utcnow
from commonmeal.core.config import get_settings
from commonmeal.core.errors import DataIntegrityError, DomainError, NotFoundError
from commonmeal.models.billing import BillingPeriodSummary, Invoice, Transaction
from commonmeal.models.dinner_event import DinnerEvent
from commonmeal.models.enums import DinnerState, OrderState
from commonmeal.models.household import Household
from commonmeal.models.order import Order
from commonmeal.schemas.snapshots import (
    DinnerSnapshot,
    HouseholdSnapshot,
    InhabitantSnapshot,
    OrderSnapshot,
    UserSnapshot,
)
from commonmeal.services.booking import OrderService

logger = logging.getLogger(__name__)


@dataclass
class OrderCloseFailure:
    order_id: int
    error: str


@dataclass
class PeriodCloseResult:
    """Outcome of closing one billing period."""
    billing_period: str
    closed: int = 0
    failures: List[OrderCloseFailure] = field(default_factory=list)
    summary: Optional[BillingPeriodSummary] = None

    @property
    def eligible(self) -> int:
        return self.closed + len(self.failures)

    def to_dict(self) -> Dict:
        return {
            "billing_period": self.billing_period,
            "eligible": self.eligible,
            "closed": self.closed,
            "failed": len(self.failures),
            "errors": [{"order_id": f.order_id, "error": f.error} for f in self.failures[:10]],
            "total_amount": self.summary.total_amount if self.summary else 0,
            "household_count": self.summary.household_count if self.summary else 0,
            "ticket_count": self.summary.ticket_count if self.summary else 0,
        }


def build_snapshots(order: Order) -> tuple[OrderSnapshot, UserSnapshot]:
    """Freeze the billable view of an order and of whoever booked it."""
    inhabitant = order.inhabitant
    household = inhabitant.household if inhabitant else None
    if inhabitant is None or household is None:
        raise DataIntegrityError(f"Order {order.id} has no inhabitant household to bill")

    order_snapshot = OrderSnapshot(
        id=order.id,
        state=order.state.value,
        ticket_type=order.ticket_price.ticket_type.value if order.ticket_price else None,
        ticket_price_id=order.ticket_price_id,
        price_at_booking=order.price_at_booking,
        dinner_mode=order.dinner_mode.value,
        is_guest_ticket=order.is_guest_ticket,
        booked_by_user_id=order.booked_by_user_id,
        created_at=order.created_at,
        released_at=order.released_at,
        closed_at=order.closed_at,
        dinner=DinnerSnapshot.model_validate(order.dinner_event),
        inhabitant=InhabitantSnapshot.model_validate(inhabitant),
        household=HouseholdSnapshot.model_validate(household),
    )
    # the ticket holder's own login is not a stand-in for the booker
    booker = order.booked_by
    user_snapshot = UserSnapshot(id=booker.id, email=booker.email) if booker else UserSnapshot()
    return order_snapshot, user_snapshot


class BillingAggregator:
    """Closes billing periods into transactions, invoices and summaries."""

    def __init__(self, db: Session, cutoff_day: Optional[int] = None):
        self.db = db
        self.cutoff_day = cutoff_day or get_settings().BILLING_CUTOFF_DAY
        self.orders = OrderService(db)

    def period(self, key: str) -> BillingPeriod:
        return BillingPeriod.from_key(key, self.cutoff_day)

    # ---- phase 1: close orders ----

    def _eligible_condition(self):
        """Open orders on consumed dinners, plus closed orders never turned into a transaction."""
        return and_(
            DinnerEvent.state == DinnerState.CONSUMED,
            or_(
                Order.state.in_([OrderState.BOOKED, OrderState.RELEASED]),
                and_(Order.state == OrderState.CLOSED, Transaction.id.is_(None)),
            ),
        )

    def eligible_orders(self, period: BillingPeriod) -> List[Order]:
        stmt = (
            select(Order)
            .join(DinnerEvent, Order.dinner_event_id == DinnerEvent.id)
            .outerjoin(Transaction, Transaction.order_id == Order.id)
            .where(
                self._eligible_condition(),
                DinnerEvent.date >= period.start,
                DinnerEvent.date <= period.cutoff_date,
            )
            .order_by(DinnerEvent.date, Order.id)
        )
        return list(self.db.scalars(stmt))

    def close_order(self, order: Order, period: BillingPeriod, now: Optional[datetime] = None) -> Transaction:
        """Close one order and write its transaction inside a savepoint."""
        with self.db.begin_nested():
            self.orders.close(order, now)
            order_snapshot, user_snapshot = build_snapshots(order)
            transaction = Transaction(
                order_id=order.id,
                order_snapshot=order_snapshot.model_dump(mode="json"),
                user_snapshot=user_snapshot.model_dump(mode="json"),
                amount=order_snapshot.price_at_booking,
                user_email_handle=user_snapshot.email,
                billing_period=period.key,
                pbs_id=order_snapshot.household.pbs_id,
                household_id=order_snapshot.household.id,
            )
            self.db.add(transaction)
            self.db.flush()
        return transaction

    # ---- phase 2: aggregate ----

    def recompute_period(self, key: str) -> BillingPeriodSummary:
        """
        Rebuild invoices and the summary from the period's transactions.

        Pure fold over transactions: calling it again changes nothing.
        """
        period = self.period(key)
        transactions = list(self.db.scalars(
            select(Transaction).where(Transaction.billing_period == period.key).order_by(Transaction.id)
        ))

        by_pbs: Dict[int, List[Transaction]] = defaultdict(list)
        for transaction in transactions:
            by_pbs[transaction.pbs_id].append(transaction)

        summary = self.db.scalar(
            select(BillingPeriodSummary).where(BillingPeriodSummary.billing_period == period.key)
        )
        if summary is None:
            summary = BillingPeriodSummary(
                billing_period=period.key,
                share_token=secrets.token_urlsafe(32),
                cutoff_date=period.cutoff_date,
                payment_date=period.payment_date,
            )
            self.db.add(summary)
            self.db.flush()

        invoices = []
        for pbs_id, household_transactions in sorted(by_pbs.items()):
            invoice = self._get_or_create_invoice(period, pbs_id, household_transactions[0])
            for transaction in household_transactions:
                transaction.invoice_id = invoice.id
            invoice.amount = sum(t.amount for t in household_transactions)
            invoice.billing_period_summary_id = summary.id
            invoices.append(invoice)

        summary.total_amount = sum(i.amount for i in invoices)
        summary.household_count = len(invoices)
        summary.ticket_count = len(transactions)
        self.db.commit()
        self.db.refresh(summary)
        logger.info(
            f"Billing period {period.key}: {summary.ticket_count} tickets, "
            f"{summary.household_count} households, total {summary.total_amount}"
        )
        return summary

    def _get_or_create_invoice(self, period: BillingPeriod, pbs_id: int, sample: Transaction) -> Invoice:
        invoice = self.db.scalar(
            select(Invoice).where(Invoice.billing_period == period.key, Invoice.pbs_id == pbs_id)
        )
        if invoice is not None:
            return invoice

        household_snapshot = sample.order_snapshot["household"]
        household_id = sample.household_id
        if household_id is not None and self.db.get(Household, household_id) is None:
            household_id = None
        invoice = Invoice(
            billing_period=period.key,
            cutoff_date=period.cutoff_date,
            payment_date=period.payment_date,
            pbs_id=pbs_id,
            household_id=household_id,
            address=household_snapshot["address"],
            amount=0,
        )
        try:
            with self.db.begin_nested():
                self.db.add(invoice)
                self.db.flush()
        except IntegrityError:
            # created concurrently by another run
            invoice = self.db.scalar(
                select(Invoice).where(Invoice.billing_period == period.key, Invoice.pbs_id == pbs_id)
            )
        return invoice

    # ---- entry points ----

    def close_period(self, key: str, now: Optional[datetime] = None) -> PeriodCloseResult:
        """Close every eligible order of the period, then aggregate."""
        period = self.period(key)
        result = PeriodCloseResult(billing_period=period.key)
        orders = self.eligible_orders(period)
        logger.info(f"Closing billing period {period.key}: {len(orders)} eligible orders")

        for order in orders:
            order_id = order.id
            try:
                self.close_order(order, period, now)
                self.db.commit()
                result.closed += 1
            except (DomainError, IntegrityError) as e:
                self.db.rollback()
                logger.warning(f"Order {order_id} could not be closed for {period.key}: {e}")
                result.failures.append(OrderCloseFailure(order_id=order_id, error=str(e)))

        result.summary = self.recompute_period(period.key)
        logger.info(f"Billing period {period.key}: {result.closed}/{result.eligible} closed")
        return result

    def unbilled_periods(self, reference_date: Optional[date] = None) -> List[str]:
        """
        Closed periods with work left, oldest first.

        The last closed period is always included when it has no summary yet,
        so every month gets a summary even when nothing was eaten.
        """
        reference_date = reference_date or local_date(utcnow())
        last = last_closed_period(reference_date, self.cutoff_day)
        pending_dates = self.db.scalars(
            select(DinnerEvent.date)
            .distinct()
            .join(Order, Order.dinner_event_id == DinnerEvent.id)
            .outerjoin(Transaction, Transaction.order_id == Order.id)
            .where(self._eligible_condition(), DinnerEvent.date <= last.cutoff_date)
        )
        keys = {period_key_for_date(d, self.cutoff_day) for d in pending_dates}
        has_summary = self.db.scalar(
            select(BillingPeriodSummary.id).where(BillingPeriodSummary.billing_period == last.key)
        )
        if has_summary is None:
            keys.add(last.key)
        return sorted(keys)

    # ---- reads ----

    def get_summary(self, key: str) -> BillingPeriodSummary:
        self.period(key)
        summary = self.db.scalar(
            select(BillingPeriodSummary).where(BillingPeriodSummary.billing_period == key)
        )
        if summary is None:
            raise NotFoundError("BillingPeriodSummary", key)
        return summary

    def get_summary_by_share_token(self, share_token: str) -> BillingPeriodSummary:
        summary = self.db.scalar(
            select(BillingPeriodSummary).where(BillingPeriodSummary.share_token == share_token)
        )
        if summary is None:
            raise NotFoundError("BillingPeriodSummary", "for share token")
        return summary

    def list_summaries(self) -> List[BillingPeriodSummary]:
        return list(self.db.scalars(
            select(BillingPeriodSummary).order_by(BillingPeriodSummary.billing_period.desc())
        ))

    def invoices_for_period(self, key: str) -> List[Invoice]:
        self.period(key)
        return list(self.db.scalars(
            select(Invoice).where(Invoice.billing_period == key).order_by(Invoice.pbs_id)
        ))
