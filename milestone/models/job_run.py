from sqlalchemy import Column, String, Text, DateTime, UniqueConstraint
from .base import BaseModel
from .enums import JobRunStatus


class JobRun(BaseModel):
    """Claim marker for a scheduled job run.

    ``run_key`` identifies the scheduled occurrence (the local date); the
    unique constraint lets only one process claim it.
    """
    __tablename__ = "job_runs"
    __table_args__ = (
        UniqueConstraint("job_name", "run_key", name="uq_job_runs_job_key"),
    )

    job_name = Column(String, nullable=False)
    run_key = Column(String, nullable=False)
    status = Column(String, nullable=False, default=JobRunStatus.RUNNING.value)
    started_at = Column(DateTime(timezone=True), nullable=False)
    finished_at = Column(DateTime(timezone=True), nullable=True)
    error = Column(Text, nullable=True)
