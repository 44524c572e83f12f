"""
Run one job from the command line, e.g. from cron.

Usage:
    python -m commonmeal.scripts.run_job DAILY_MAINTENANCE
    python -m commonmeal.scripts.run_job MONTHLY_BILLING
    python -m commonmeal.scripts.run_job HEYNABO_IMPORT [households.json]
    python -m commonmeal.scripts.run_job MAINTENANCE_IMPORT calendar.csv teams.csv [short_name]
    python -m commonmeal.scripts.run_job MAINTENANCE_EXPORT [YYYY-MM]

Exits 0 on SUCCESS, 2 on PARTIAL, 1 on FAILED.
"""
import argparse
import logging
import sys

from commonmeal.core.config import get_settings
from commonmeal.db.session import SessionLocal
from commonmeal.models.enums import JobStatus, JobType
from commonmeal.services.jobs import JobRunner, job_body

logger = logging.getLogger("commonmeal.run_job")

EXIT_CODES = {
    JobStatus.SUCCESS: 0,
    JobStatus.PARTIAL: 2,
    JobStatus.FAILED: 1,
}


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Run a common meal job")
    parser.add_argument("job_type", choices=[t.value for t in JobType])
    parser.add_argument("arguments", nargs="*", help="job specific arguments")
    parser.add_argument("--triggered-by", default="CLI")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, get_settings().LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    job_type = JobType(args.job_type)

    db = SessionLocal()
    try:
        work = job_body(job_type, args.arguments)
        job_run = JobRunner(db, triggered_by=args.triggered_by).run(job_type, work)
    except Exception as e:
        logger.error(f"{job_type.value} failed: {e}")
        return 1
    finally:
        db.close()

    message = (job_run.result_summary or {}).get("message", "")
    print(f"{job_type.value}: {job_run.status.value} {message} ({job_run.duration_ms} ms)")
    return EXIT_CODES.get(job_run.status, 1)


if __name__ == "__main__":
    sys.exit(main())
