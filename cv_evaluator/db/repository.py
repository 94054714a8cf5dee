# =============================================================================
# Repositories — Document Lookup + Job Store
# =============================================================================
#
# The orchestrator only depends on the two protocols below; the SQL
# implementations are what the worker and the API wire in.
#
# JOB TRANSITIONS
# Every status write is a single conditional UPDATE:
#
#   UPDATE jobs SET status = :new, ... WHERE id = :id AND status IN (:allowed)
#
#   queued                → processing   (claim)
#   processing            → completed    (with result)
#   queued | processing   → failed       (with failure log)
#
# A write whose precondition no longer holds touches zero rows and returns
# False, so a redelivered task can never move a terminal job backwards or
# overwrite a result.
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import Callable
from contextlib import AbstractContextManager
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Protocol

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from cv_evaluator.db.engine import get_sync_session
from cv_evaluator.db.models import Document, DocumentType, Job, JobStatus, utcnow

logger = logging.getLogger(__name__)

SessionScope = Callable[[], AbstractContextManager[Session]]

# Allowed source states per target state
ALLOWED_TRANSITIONS: dict[JobStatus, tuple[JobStatus, ...]] = {
    JobStatus.PROCESSING: (JobStatus.QUEUED,),
    JobStatus.COMPLETED: (JobStatus.PROCESSING,),
    JobStatus.FAILED: (JobStatus.QUEUED, JobStatus.PROCESSING),
}


# ---------------------------------------------------------------------------
# Records + Protocols
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DocumentRecord:
    id: str
    filename: str
    document_type: DocumentType
    storage_path: str


@dataclass(frozen=True)
class JobRecord:
    id: str
    job_title: str
    cv_document_id: str
    project_document_id: str
    status: JobStatus
    result: dict | None
    failure_log: dict | None
    updated_at: datetime


class DocumentLookup(Protocol):
    def get_document(self, document_id: str) -> DocumentRecord | None: ...


class JobStore(Protocol):
    def set_status(self, job_id: str, status: JobStatus) -> bool: ...

    def set_result(self, job_id: str, result: dict) -> bool: ...

    def set_failure(self, job_id: str, failure_log: dict) -> bool: ...

    def get_job(self, job_id: str) -> JobRecord | None: ...


def to_job_record(job: Job) -> JobRecord:
    return JobRecord(
        id=job.id,
        job_title=job.job_title,
        cv_document_id=job.cv_document_id,
        project_document_id=job.project_document_id,
        status=job.status,
        result=job.result,
        failure_log=job.failure_log,
        updated_at=job.updated_at,
    )


# ---------------------------------------------------------------------------
# SQL Implementations
# ---------------------------------------------------------------------------


class SqlDocumentLookup:
    """Reads Document rows. Documents are never modified here."""

    def __init__(self, session_scope: SessionScope = get_sync_session) -> None:
        self._session_scope = session_scope

    def get_document(self, document_id: str) -> DocumentRecord | None:
        with self._session_scope() as session:
            doc = session.get(Document, document_id)
            if doc is None:
                return None
            return DocumentRecord(
                id=doc.id,
                filename=doc.filename,
                document_type=doc.document_type,
                storage_path=doc.storage_path,
            )


class SqlJobStore:
    """
    Job persistence with monotonic, conditional status writes.

    Each method opens its own short session, so a failed write never leaves
    the caller holding a broken transaction.
    """

    def __init__(self, session_scope: SessionScope = get_sync_session) -> None:
        self._session_scope = session_scope

    def create_job(
        self,
        job_title: str,
        cv_document_id: str,
        project_document_id: str,
    ) -> JobRecord:
        with self._session_scope() as session:
            job = Job(
                job_title=job_title,
                cv_document_id=cv_document_id,
                project_document_id=project_document_id,
                status=JobStatus.QUEUED,
            )
            session.add(job)
            session.flush()
            return to_job_record(job)

    def set_status(self, job_id: str, status: JobStatus) -> bool:
        """
        Move a job to `status` if its current status allows it.

        Returns:
            True if the row changed, False if the transition was refused.
        """
        return self._transition(job_id, status, {})

    def set_result(self, job_id: str, result: dict) -> bool:
        """Persist the result and mark the job completed (processing only)."""
        return self._transition(job_id, JobStatus.COMPLETED, {"result": result})

    def set_failure(self, job_id: str, failure_log: dict) -> bool:
        """Persist the failure log and mark the job failed (non-terminal only)."""
        return self._transition(job_id, JobStatus.FAILED, {"failure_log": failure_log})

    def get_job(self, job_id: str) -> JobRecord | None:
        with self._session_scope() as session:
            job = session.get(Job, job_id)
            return to_job_record(job) if job is not None else None

    def fail_stale_processing(self, older_than: timedelta) -> list[str]:
        """
        Fail every job stuck in processing since before now − older_than.

        Returns:
            Ids of the jobs that were failed.
        """
        cutoff = utcnow() - older_than
        with self._session_scope() as session:
            stale_ids = list(
                session.scalars(
                    select(Job.id).where(
                        Job.status == JobStatus.PROCESSING,
                        Job.updated_at < cutoff,
                    )
                )
            )

        failed: list[str] = []
        for job_id in stale_ids:
            failure_log = {
                "error": (
                    "Job exceeded the processing lease of "
                    f"{int(older_than.total_seconds())}s without finishing"
                ),
                "stack": "",
            }
            if self.set_failure(job_id, failure_log):
                failed.append(job_id)
        return failed

    def _transition(self, job_id: str, status: JobStatus, values: dict) -> bool:
        allowed = ALLOWED_TRANSITIONS[status]
        with self._session_scope() as session:
            outcome = session.execute(
                update(Job)
                .where(Job.id == job_id, Job.status.in_(allowed))
                .values(status=status, updated_at=utcnow(), **values)
                .execution_options(synchronize_session=False)
            )
            changed = outcome.rowcount == 1

        if not changed:
            logger.info(
                "[%s] Transition to %s refused (allowed from: %s)",
                job_id, status.value, ", ".join(s.value for s in allowed),
            )
        return changed
