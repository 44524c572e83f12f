"""
Billing router: period close, recompute, summaries, invoices and the PBS
payment export.
"""
from typing import List

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from sqlalchemy.orm import Session

from commonmeal.db.session import get_db
from commonmeal.schemas.billing import (
    BillingPeriodSummaryResponse,
    InvoiceResponse,
    PeriodCloseResponse,
    PublicBillingSummary,
)
from commonmeal.services.billing import BillingAggregator
from commonmeal.services.payment_export import PaymentExporter

router = APIRouter(tags=["billing"])


@router.get("/billing/periods", response_model=List[BillingPeriodSummaryResponse])
def list_periods(db: Session = Depends(get_db)):
    return BillingAggregator(db).list_summaries()


@router.post("/billing/periods/{billing_period}/close", response_model=PeriodCloseResponse)
def close_period(billing_period: str, db: Session = Depends(get_db)):
    """
    Close a billing period (YYYY-MM).

    Safe to repeat: already closed orders are skipped and totals are
    recomputed from transactions.
    """
    return BillingAggregator(db).close_period(billing_period).to_dict()


@router.post("/billing/periods/{billing_period}/recompute", response_model=BillingPeriodSummaryResponse)
def recompute_period(billing_period: str, db: Session = Depends(get_db)):
    return BillingAggregator(db).recompute_period(billing_period)


@router.get("/billing/periods/{billing_period}", response_model=BillingPeriodSummaryResponse)
def get_period_summary(billing_period: str, db: Session = Depends(get_db)):
    return BillingAggregator(db).get_summary(billing_period)


@router.get("/billing/periods/{billing_period}/invoices", response_model=List[InvoiceResponse])
def list_period_invoices(billing_period: str, db: Session = Depends(get_db)):
    return BillingAggregator(db).invoices_for_period(billing_period)


@router.get("/billing/periods/{billing_period}/pbs.csv")
def export_period_pbs(billing_period: str, db: Session = Depends(get_db)):
    """The PBS payment file for a period, as CSV."""
    export = PaymentExporter(db).export_period(billing_period)
    return Response(
        content=export.content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="pbs_{billing_period}.csv"'},
    )


@router.get("/public/billing/{share_token}", response_model=PublicBillingSummary)
def get_shared_summary(share_token: str, db: Session = Depends(get_db)):
    """Read-only period summary for whoever holds the share link."""
    return BillingAggregator(db).get_summary_by_share_token(share_token)
