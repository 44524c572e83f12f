"""
Billing schemas.
"""
from datetime import date
from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class InvoiceResponse(BaseModel):
    id: int
    billing_period: str
    cutoff_date: date
    payment_date: date
    amount: int
    pbs_id: int
    household_id: Optional[int]
    address: str

    model_config = ConfigDict(from_attributes=True)


class BillingPeriodSummaryResponse(BaseModel):
    id: int
    billing_period: str
    share_token: str
    total_amount: int
    household_count: int
    ticket_count: int
    cutoff_date: date
    payment_date: date

    model_config = ConfigDict(from_attributes=True)


class PublicBillingSummary(BaseModel):
    """Shared read-only view; the share token itself is not echoed back."""
    billing_period: str
    total_amount: int
    household_count: int
    ticket_count: int
    cutoff_date: date
    payment_date: date
    invoices: List[InvoiceResponse]

    model_config = ConfigDict(from_attributes=True)


class OrderCloseFailureResponse(BaseModel):
    order_id: int
    error: str


class PeriodCloseResponse(BaseModel):
    billing_period: str
    eligible: int
    closed: int
    failed: int
    errors: List[OrderCloseFailureResponse]
    total_amount: int
    household_count: int
    ticket_count: int
