from sqlalchemy import Column, String, Integer, Float, JSON, Text, DateTime, Index, func
from webprov.db import Base

JOB_STATUSES = ("queued", "active", "stalled", "completed", "failed")
TERMINAL_STATUSES = ("completed", "failed")


class Job(Base):
    __tablename__ = "provisioning_jobs"
    job_id = Column(String(64), primary_key=True)
    owner = Column(String(32), index=True, nullable=False)  # sanitized
    request = Column(JSON, nullable=False)
    status = Column(String(16), nullable=False, default="queued")  # queued|active|stalled|completed|failed
    progress = Column(Integer, nullable=False, default=0)
    attempts = Column(Integer, nullable=False, default=1)
    max_attempts = Column(Integer, nullable=False, default=3)
    result = Column(JSON, nullable=True)
    error = Column(Text, nullable=True)
    last_error = Column(Text, nullable=True)
    worker_id = Column(String(64), nullable=True)
    available_at = Column(Float, nullable=False)  # epoch seconds
    heartbeat_at = Column(Float, nullable=True)
    finished_at = Column(Float, nullable=True)
    created_at = Column(Float, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("ix_provisioning_jobs_status_available", "status", "available_at"),
    )
