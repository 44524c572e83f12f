"""
Billing models: Transaction, Invoice and BillingPeriodSummary.

Transactions are written once when an order is closed and never change.
Invoices and summaries are folds over transactions and can be recomputed.
"""
from sqlalchemy import JSON, Column, Date, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import relationship

from commonmeal.db.base import Base


class Transaction(Base):
    """
    The billed copy of a closed order.

    order_snapshot/user_snapshot are point-in-time copies taken at close;
    pbs_id and household_id are lifted out of the snapshot for grouping.
    """
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="SET NULL"), nullable=True, unique=True)
    order_snapshot = Column(JSON, nullable=False)
    user_snapshot = Column(JSON, nullable=False)
    amount = Column(Integer, nullable=False)
    user_email_handle = Column(String(255), nullable=False)
    billing_period = Column(String(7), nullable=False)
    pbs_id = Column(Integer, nullable=False)
    household_id = Column(Integer, nullable=True)
    invoice_id = Column(Integer, ForeignKey("invoices.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    order = relationship("Order", back_populates="transaction")
    invoice = relationship("Invoice", back_populates="transactions")

    __table_args__ = (
        Index("idx_transactions_period_pbs", "billing_period", "pbs_id"),
    )


class Invoice(Base):
    """One household's bill for one billing period."""
    __tablename__ = "invoices"

    id = Column(Integer, primary_key=True, autoincrement=True)
    cutoff_date = Column(Date, nullable=False)
    payment_date = Column(Date, nullable=False)
    billing_period = Column(String(7), nullable=False)
    amount = Column(Integer, nullable=False, default=0)
    household_id = Column(Integer, ForeignKey("households.id", ondelete="SET NULL"), nullable=True)
    billing_period_summary_id = Column(
        Integer, ForeignKey("billing_period_summaries.id", ondelete="SET NULL"), nullable=True
    )
    pbs_id = Column(Integer, nullable=False)
    address = Column(String(255), nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    household = relationship("Household")
    billing_period_summary = relationship("BillingPeriodSummary", back_populates="invoices")
    transactions = relationship("Transaction", back_populates="invoice", order_by="Transaction.id")

    __table_args__ = (
        UniqueConstraint("billing_period", "pbs_id", name="uq_invoices_period_pbs"),
    )


class BillingPeriodSummary(Base):
    __tablename__ = "billing_period_summaries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    billing_period = Column(String(7), nullable=False, unique=True)
    share_token = Column(String(64), nullable=False, unique=True)
    total_amount = Column(Integer, nullable=False, default=0)
    household_count = Column(Integer, nullable=False, default=0)
    ticket_count = Column(Integer, nullable=False, default=0)
    cutoff_date = Column(Date, nullable=False)
    payment_date = Column(Date, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    invoices = relationship("Invoice", back_populates="billing_period_summary", order_by="Invoice.pbs_id")
