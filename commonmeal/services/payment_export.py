"""
PBS payment export: one CSV line per household invoice of a billing period.
"""
import csv
import io
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from sqlalchemy.orm import Session

from commonmeal.models.billing import Invoice
from commonmeal.services.billing import BillingAggregator

logger = logging.getLogger(__name__)

PBS_COLUMNS = ["pbsId", "billingPeriod", "amount", "paymentDate", "address"]


@dataclass
class PaymentExport:
    billing_period: str
    content: str = ""
    exported: int = 0
    skipped: List[dict] = field(default_factory=list)
    path: Optional[Path] = None

    def to_dict(self) -> dict:
        return {
            "billing_period": self.billing_period,
            "exported": self.exported,
            "skipped": len(self.skipped),
            "errors": self.skipped[:10],
            "path": str(self.path) if self.path else None,
        }


def invoice_problem(invoice: Invoice) -> Optional[str]:
    """Why an invoice cannot be sent to the payment system, if it cannot."""
    if invoice.pbs_id is None or invoice.pbs_id <= 0:
        return "missing pbs id"
    if invoice.amount is None or invoice.amount < 0:
        return f"invalid amount {invoice.amount}"
    if not invoice.address:
        return "missing address"
    return None


class PaymentExporter:
    def __init__(self, db: Session):
        self.db = db

    def export_period(self, billing_period: str, output_dir: Optional[str] = None) -> PaymentExport:
        """Render the period's invoices as PBS CSV, optionally writing it to output_dir."""
        invoices = BillingAggregator(self.db).invoices_for_period(billing_period)
        result = PaymentExport(billing_period=billing_period)

        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(PBS_COLUMNS)
        for invoice in invoices:
            problem = invoice_problem(invoice)
            if problem:
                logger.warning(f"Skipping invoice {invoice.id} in PBS export: {problem}")
                result.skipped.append({"invoice_id": invoice.id, "error": problem})
                continue
            writer.writerow([
                invoice.pbs_id,
                invoice.billing_period,
                invoice.amount,
                invoice.payment_date.isoformat(),
                invoice.address,
            ])
            result.exported += 1
        result.content = buffer.getvalue()

        if output_dir:
            directory = Path(output_dir)
            directory.mkdir(parents=True, exist_ok=True)
            result.path = directory / f"pbs_{billing_period}.csv"
            result.path.write_text(result.content, encoding="utf-8")

        logger.info(
            f"PBS export {billing_period}: {result.exported} invoice(s) exported, "
            f"{len(result.skipped)} skipped"
        )
        return result
