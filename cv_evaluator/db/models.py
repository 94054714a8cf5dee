# =============================================================================
# Database Models — SQLAlchemy ORM
# =============================================================================
#
# Two tables back the evaluation service:
#
# ┌────────────────────┐        ┌───────────────────────────────────┐
# │  documents         │        │  jobs                             │
# ├────────────────────┤        ├───────────────────────────────────┤
# │ id (PK, file_…)    │◀──────│ cv_document_id                    │
# │ filename           │◀──────│ project_document_id               │
# │ document_type      │        │ id (PK, job_…)                    │
# │ storage_path       │        │ job_title                         │
# │ created_at         │        │ status                            │
# └────────────────────┘        │ result (json, nullable)           │
#                               │ failure_log (json, nullable)      │
#                               │ created_at / updated_at           │
#                               └───────────────────────────────────┘
#
# NOTES:
# 1. Ids are prefixed UUID strings (file_<uuid>, job_<uuid>) so they are
#    recognisable in logs and API payloads.
# 2. Document rows are written once by the upload endpoint and never change.
# 3. Job document ids are plain columns, not foreign keys: a job may name a
#    document that does not exist, and the pipeline fails that job cleanly.
# 4. result and failure_log use the portable JSON type so the same models
#    run on PostgreSQL and on SQLite in tests.
# 5. Timestamps are filled in Python (timezone-aware UTC) rather than by a
#    server default, so conditional UPDATEs can set updated_at explicitly.
# =============================================================================

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, DateTime, Enum, Index, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_document_id() -> str:
    return f"file_{uuid.uuid4()}"


def new_job_id() -> str:
    return f"job_{uuid.uuid4()}"


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""

    pass


class DocumentType(str, enum.Enum):
    """Which artifact an uploaded document is."""

    CV = "cv"
    PROJECT = "project"


class JobStatus(str, enum.Enum):
    """
    Evaluation job lifecycle.

    State machine:
        QUEUED → PROCESSING → COMPLETED
           │          │
           └──────────┴──→ FAILED

    Transitions only move forward. COMPLETED and FAILED are terminal.
    """

    QUEUED = "queued"            # Created, waiting for a worker
    PROCESSING = "processing"    # Claimed by a worker
    COMPLETED = "completed"      # Result persisted
    FAILED = "failed"            # See failure_log


class Document(Base):
    """An uploaded CV or project report stored on disk."""

    __tablename__ = "documents"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_document_id)

    # Original filename as uploaded
    filename: Mapped[str] = mapped_column(String(500), nullable=False)

    document_type: Mapped[DocumentType] = mapped_column(
        Enum(DocumentType),
        nullable=False,
    )

    # Absolute or working-directory-relative path of the stored file
    storage_path: Mapped[str] = mapped_column(Text, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Document(id={self.id}, filename='{self.filename}', type={self.document_type})>"


class Job(Base):
    """
    One evaluation request: a CV and a project report scored against a
    job title.

    `result` holds the EvaluationResult JSON once COMPLETED.
    `failure_log` holds {"error", "stack"} once FAILED and is never exposed
    through the API.
    """

    __tablename__ = "jobs"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_job_id)

    job_title: Mapped[str] = mapped_column(String(255), nullable=False)

    cv_document_id: Mapped[str] = mapped_column(String(64), nullable=False)
    project_document_id: Mapped[str] = mapped_column(String(64), nullable=False)

    status: Mapped[JobStatus] = mapped_column(
        Enum(JobStatus),
        nullable=False,
        default=JobStatus.QUEUED,
    )

    result: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    failure_log: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    # The stale-job sweep filters on (status, updated_at)
    __table_args__ = (
        Index("ix_jobs_status_updated_at", "status", "updated_at"),
    )

    def __repr__(self) -> str:
        return f"<Job(id={self.id}, status={self.status})>"
