"""
Job run model: one row per execution attempt of a scheduled or manual job.
"""
from sqlalchemy import JSON, Column, DateTime, Index, Integer, String, Text

from commonmeal.db.base import Base
from commonmeal.models.enums import JobStatus, JobType, enum_column_type


class JobRun(Base):
    """
    Execution record.

    A row left in RUNNING means the process died before its terminal update.
    Nothing cleans those up; they are the stuck-job signal.
    """
    __tablename__ = "job_runs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    job_type = Column(enum_column_type(JobType), nullable=False)
    status = Column(enum_column_type(JobStatus), nullable=False, default=JobStatus.RUNNING)
    started_at = Column(DateTime, nullable=False)
    completed_at = Column(DateTime, nullable=True)
    duration_ms = Column(Integer, nullable=True)
    result_summary = Column(JSON, nullable=True)
    error_message = Column(Text, nullable=True)
    triggered_by = Column(String(100), nullable=False, default="SCHEDULER")

    __table_args__ = (
        Index("idx_job_runs_type_started", "job_type", "started_at"),
    )
