from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid4())


class Base(DeclarativeBase):
    pass


class TrainingJob(Base):
    __tablename__ = "training_jobs"
    __table_args__ = (Index("ix_training_jobs_status_created", "status", "created_at"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    status: Mapped[str] = mapped_column(String(20), default="pending", nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_utc, nullable=False)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    canceled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    failed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_heartbeat: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    data_bucket: Mapped[str] = mapped_column(String(200), nullable=False)
    checkpoint_bucket: Mapped[str] = mapped_column(String(200), nullable=False)
    checkpoint_prefix: Mapped[str] = mapped_column(String(1024), nullable=False)
    instance_data_prefix: Mapped[str] = mapped_column(String(1024), nullable=False)
    class_data_prefix: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    model_bucket: Mapped[str | None] = mapped_column(String(200), nullable=True)
    model_key: Mapped[str | None] = mapped_column(String(1024), nullable=True)

    params_json: Mapped[dict] = mapped_column(JSON, default=dict)


class JobEvent(Base):
    __tablename__ = "job_events"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    job_id: Mapped[str] = mapped_column(ForeignKey("training_jobs.id", ondelete="CASCADE"), index=True)
    event_type: Mapped[str] = mapped_column(String(20), nullable=False)
    event_data: Mapped[dict] = mapped_column(JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_utc, nullable=False)
    # Insertion order within a job, for events sharing a timestamp.
    seq: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


class JobFailure(Base):
    __tablename__ = "job_failures"

    job_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_utc, onupdate=now_utc)


class WorkerBan(Base):
    __tablename__ = "worker_bans"
    __table_args__ = (UniqueConstraint("worker_identity", "job_id", name="uq_worker_bans_worker_job"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    worker_identity: Mapped[str] = mapped_column(String(256), nullable=False, index=True)
    job_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_utc)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
