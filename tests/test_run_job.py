"""
Tests for the job command-line entry point.
"""
import pytest
from sqlalchemy.orm import sessionmaker

from commonmeal.models.enums import JobStatus, JobType
from commonmeal.models.job_run import JobRun
from commonmeal.scripts import run_job


@pytest.fixture
def cli_sessions(db, monkeypatch):
    monkeypatch.setattr(run_job, "SessionLocal", sessionmaker(autoflush=False, bind=db.get_bind()))


class TestRunJob:
    def test_daily_maintenance_exits_zero(self, db, cli_sessions, capsys):
        assert run_job.main(["DAILY_MAINTENANCE", "--triggered-by", "CRON"]) == 0

        assert capsys.readouterr().out.startswith("DAILY_MAINTENANCE: SUCCESS")
        run = db.query(JobRun).one()
        assert (run.job_type, run.status, run.triggered_by) == (JobType.DAILY_MAINTENANCE, JobStatus.SUCCESS, "CRON")

    def test_bad_arguments_exit_one(self, db, cli_sessions):
        assert run_job.main(["MAINTENANCE_IMPORT", "calendar.csv"]) == 1

    def test_missing_import_file_leaves_failed_run(self, db, cli_sessions, tmp_path):
        missing = str(tmp_path / "kalender.csv")
        assert run_job.main(["MAINTENANCE_IMPORT", missing, missing]) == 1

        run = db.query(JobRun).one()
        assert (run.job_type, run.status) == (JobType.MAINTENANCE_IMPORT, JobStatus.FAILED)
        assert "kalender.csv" in run.error_message

    def test_unknown_job_type_is_rejected(self):
        with pytest.raises(SystemExit):
            run_job.parse_args(["WEEKLY_NOTHING"])

    def test_partial_exit_code(self):
        assert run_job.EXIT_CODES[JobStatus.PARTIAL] == 2
