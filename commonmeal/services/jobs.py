"""
Job runner and the scheduled/triggered jobs it executes.

Every run inserts its JobRun row as RUNNING and commits before any work
starts, then writes exactly one terminal update:

    SUCCESS  every unit succeeded (or there was nothing to do)
    PARTIAL  some units succeeded, some failed
    FAILED   all units failed, or the job raised

A job that raises is recorded as FAILED and the exception is re-raised to
the caller.
"""
import logging
import time
from dataclasses import dataclass, field
from datetime import date, datetime
from functools import partial
from pathlib import Path
from typing import Callable, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from commonmeal.core.billing_period import last_closed_period
from commonmeal.core.calendar import local_date, to_db_timestamp, utcnow
from commonmeal.core.config import get_settings
from commonmeal.core.errors import DomainError, NotFoundError
from commonmeal.models.enums import JobStatus, JobType
from commonmeal.models.job_run import JobRun
from commonmeal.services.billing import BillingAggregator
from commonmeal.services.dinner_event import DinnerEventService
from commonmeal.services.membership_import import (
    JsonFileMembershipSource,
    MembershipImporter,
    MembershipSource,
)
from commonmeal.services.payment_export import PaymentExporter
from commonmeal.services.prebooking import PrebookingService
from commonmeal.services.season_import import SeasonImporter

logger = logging.getLogger(__name__)


@dataclass
class JobOutcome:
    """Unit counts and details reported by a job body."""
    succeeded: int = 0
    failed: int = 0
    summary: Dict = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)
    unit: str = "units"
    verb: str = "processed"

    @property
    def status(self) -> JobStatus:
        if self.failed == 0:
            return JobStatus.SUCCESS
        if self.succeeded > 0:
            return JobStatus.PARTIAL
        return JobStatus.FAILED

    @property
    def message(self) -> str:
        """e.g. '6/7 closed'"""
        return f"{self.succeeded}/{self.succeeded + self.failed} {self.verb}"

    def to_summary(self) -> Dict:
        return {
            "message": self.message,
            "unit": self.unit,
            "succeeded": self.succeeded,
            "failed": self.failed,
            **self.summary,
        }


class JobRunner:
    """Records one JobRun around a job body."""

    def __init__(self, db: Session, triggered_by: str = "SCHEDULER"):
        self.db = db
        self.triggered_by = triggered_by

    def run(self, job_type: JobType, work: Callable[[Session], JobOutcome]) -> JobRun:
        job_run = JobRun(
            job_type=job_type,
            status=JobStatus.RUNNING,
            started_at=to_db_timestamp(utcnow()),
            triggered_by=self.triggered_by,
        )
        self.db.add(job_run)
        self.db.commit()
        self.db.refresh(job_run)
        logger.info(f"Job {job_type.value} started (run {job_run.id}, triggered by {self.triggered_by})")

        started = time.monotonic()
        try:
            outcome = work(self.db)
        except Exception as e:
            self.db.rollback()
            self._complete(job_run, JobStatus.FAILED, started, None, str(e) or e.__class__.__name__)
            logger.error(f"Job {job_type.value} failed (run {job_run.id}): {e}", exc_info=True)
            raise

        self._complete(
            job_run,
            outcome.status,
            started,
            outcome.to_summary(),
            outcome.errors[0] if outcome.errors else None,
        )
        log = logger.info if outcome.status == JobStatus.SUCCESS else logger.warning
        log(f"Job {job_type.value} finished {outcome.status.value}: {outcome.message} (run {job_run.id})")
        return job_run

    def _complete(
        self,
        job_run: JobRun,
        status: JobStatus,
        started: float,
        result_summary: Optional[Dict],
        error_message: Optional[str],
    ) -> None:
        job_run.status = status
        job_run.completed_at = to_db_timestamp(utcnow())
        job_run.duration_ms = int((time.monotonic() - started) * 1000)
        job_run.result_summary = result_summary
        job_run.error_message = error_message
        self.db.commit()
        self.db.refresh(job_run)


# ============ Job bodies ============

def daily_maintenance(db: Session, now: Optional[datetime] = None) -> JobOutcome:
    """
    Consume every open dinner whose dinner time has ended, then prebook
    the active season from inhabitants' preferences.

    Units are consumed dinners plus prebooking changes.
    """
    dinners = DinnerEventService(db)
    outcome = JobOutcome(unit="dinners and tickets", verb="processed")
    due = dinners.dinners_due_for_consumption(now)
    for dinner_id in [d.id for d in due]:
        try:
            dinners.consume(dinner_id)
            outcome.succeeded += 1
        except DomainError as e:
            db.rollback()
            logger.warning(f"Dinner {dinner_id} could not be consumed: {e}")
            outcome.failed += 1
            outcome.errors.append(f"Dinner {dinner_id}: {e}")
    consumed = outcome.succeeded

    prebooking = PrebookingService(db).scaffold(now=now)
    outcome.succeeded += prebooking.created + prebooking.removed
    outcome.failed += len(prebooking.failures)
    outcome.errors.extend(prebooking.failures)
    outcome.summary = {"due": len(due), "consumed": consumed, "prebooking": prebooking.to_dict()}
    return outcome


def monthly_billing(db: Session, reference_date: Optional[date] = None, now: Optional[datetime] = None) -> JobOutcome:
    """Close every unbilled period up to the last closed one, oldest first."""
    aggregator = BillingAggregator(db)
    outcome = JobOutcome(unit="orders", verb="closed")
    periods = []
    for key in aggregator.unbilled_periods(reference_date):
        result = aggregator.close_period(key, now)
        outcome.succeeded += result.closed
        outcome.failed += len(result.failures)
        outcome.errors.extend(f"Order {f.order_id}: {f.error}" for f in result.failures)
        periods.append(result.to_dict())
    outcome.summary = {"periods": periods}
    return outcome


def heynabo_import(db: Session, source: Optional[MembershipSource] = None) -> JobOutcome:
    """Upsert every household the membership source delivers."""
    source = source or JsonFileMembershipSource(get_settings().MEMBERSHIP_IMPORT_FILE)
    importer = MembershipImporter(db)
    outcome = JobOutcome(unit="households", verb="imported")
    for record in source.fetch_households():
        try:
            importer.upsert_household(record)
            outcome.succeeded += 1
        except (DomainError, IntegrityError) as e:
            db.rollback()
            logger.warning(f"Household {record.heynabo_id} could not be imported: {e}")
            outcome.failed += 1
            outcome.errors.append(f"Household {record.heynabo_id}: {e}")
    return outcome


def maintenance_import(
    db: Session,
    calendar_csv: bytes,
    teams_csv: bytes,
    short_name: Optional[str] = None,
) -> JobOutcome:
    """Season import. Each team member name is a unit; unmatched names fail."""
    result = SeasonImporter(db).import_season(calendar_csv, teams_csv, short_name)
    return JobOutcome(
        succeeded=result.matched_members,
        failed=len(result.unmatched),
        summary=result.to_dict(),
        errors=[f"No inhabitant matches '{name}'" for name in result.unmatched],
        unit="members",
        verb="matched",
    )


def maintenance_import_files(
    db: Session,
    calendar_path: str,
    teams_path: str,
    short_name: Optional[str] = None,
) -> JobOutcome:
    """Season import from CSV files on disk; read errors fail the run."""
    return maintenance_import(
        db,
        calendar_csv=Path(calendar_path).read_bytes(),
        teams_csv=Path(teams_path).read_bytes(),
        short_name=short_name,
    )


def maintenance_export(
    db: Session,
    billing_period: Optional[str] = None,
    output_dir: Optional[str] = None,
) -> JobOutcome:
    """PBS export of one period's invoices; defaults to the last closed period."""
    billing_period = billing_period or last_closed_period(local_date(utcnow())).key
    export = PaymentExporter(db).export_period(billing_period, output_dir or get_settings().EXPORT_DIR)
    return JobOutcome(
        succeeded=export.exported,
        failed=len(export.skipped),
        summary=export.to_dict(),
        errors=[f"Invoice {s['invoice_id']}: {s['error']}" for s in export.skipped],
        unit="invoices",
        verb="exported",
    )


def job_body(job_type: JobType, arguments: Optional[List[str]] = None) -> Callable[[Session], JobOutcome]:
    """
    Bind command-line style string arguments to a job body.

    DAILY_MAINTENANCE, MONTHLY_BILLING and HEYNABO_IMPORT take none;
    MAINTENANCE_EXPORT takes an optional billing period;
    MAINTENANCE_IMPORT takes the calendar and teams CSV paths and an
    optional season short name.
    """
    arguments = arguments or []
    if job_type == JobType.DAILY_MAINTENANCE:
        return daily_maintenance
    if job_type == JobType.MONTHLY_BILLING:
        return monthly_billing
    if job_type == JobType.HEYNABO_IMPORT:
        if arguments:
            return partial(heynabo_import, source=JsonFileMembershipSource(arguments[0]))
        return heynabo_import
    if job_type == JobType.MAINTENANCE_EXPORT:
        return partial(maintenance_export, billing_period=arguments[0] if arguments else None)
    if job_type == JobType.MAINTENANCE_IMPORT:
        if len(arguments) < 2:
            raise ValueError("MAINTENANCE_IMPORT needs a calendar CSV path and a teams CSV path")
        return partial(
            maintenance_import_files,
            calendar_path=arguments[0],
            teams_path=arguments[1],
            short_name=arguments[2] if len(arguments) > 2 else None,
        )
    raise ValueError(f"Unknown job type {job_type}")


def list_job_runs(db: Session, job_type: Optional[JobType] = None, limit: int = 50) -> List[JobRun]:
    stmt = select(JobRun).order_by(JobRun.started_at.desc(), JobRun.id.desc()).limit(limit)
    if job_type is not None:
        stmt = stmt.where(JobRun.job_type == job_type)
    return list(db.scalars(stmt))


def get_job_run(db: Session, job_run_id: int) -> JobRun:
    job_run = db.get(JobRun, job_run_id)
    if job_run is None:
        raise NotFoundError("JobRun", job_run_id)
    return job_run
