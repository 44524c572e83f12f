"""
Job router: trigger a job and inspect run history.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from commonmeal.db.session import get_db
from commonmeal.models.enums import JobType
from commonmeal.schemas.job_run import JobRunListResponse, JobRunResponse, JobTrigger
from commonmeal.services.jobs import JobRunner, get_job_run, job_body, list_job_runs

router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.post("", response_model=JobRunResponse)
def trigger_job(body: JobTrigger, db: Session = Depends(get_db)):
    """
    Run a job now and return its run record.

    Batch jobs with failing units come back PARTIAL; a job that raises is
    recorded as FAILED and surfaces as an error response.
    """
    work = job_body(body.job_type, body.arguments)
    return JobRunner(db, triggered_by=body.triggered_by).run(body.job_type, work)


@router.get("", response_model=JobRunListResponse)
def list_jobs(
    job_type: Optional[JobType] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
):
    runs = list_job_runs(db, job_type, limit)
    return JobRunListResponse(runs=[JobRunResponse.model_validate(r) for r in runs], total=len(runs))


@router.get("/{job_run_id}", response_model=JobRunResponse)
def get_job(job_run_id: int, db: Session = Depends(get_db)):
    return get_job_run(db, job_run_id)
