# =============================================================================
# Evaluation API — Upload, Submit, Poll
# =============================================================================
#
# ENDPOINTS:
#   POST /upload       — Store a CV and a project report, return their ids
#   POST /evaluate     — Create a queued job and dispatch it
#   GET  /result/{id}  — Poll a job's status and result
#
# FLOW:
#   upload → {cv_id, project_id}
#   evaluate → {id, status: "queued"}
#   result (poll) → {id, status, result: {...} | null}
#
# DESIGN DECISION: Handlers are plain `def` functions. Everything they call
# (SQLAlchemy session, Celery dispatch, the inline pipeline) is blocking, so
# FastAPI runs them in its threadpool.
#
# The job's failure log is never returned here; operators read it from the
# database.
# =============================================================================

import logging
from pathlib import Path

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from sqlalchemy.orm import Session

from cv_evaluator.config import Settings, get_settings
from cv_evaluator.db.engine import get_session
from cv_evaluator.db.models import Document, DocumentType, Job, JobStatus, new_document_id
from cv_evaluator.db.repository import SqlJobStore
from cv_evaluator.models.requests import EvaluateRequest
from cv_evaluator.models.responses import EvaluateResponse, JobResultResponse, UploadResponse
from cv_evaluator.workers.tasks import submit_evaluation

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Evaluation"])


# ---------------------------------------------------------------------------
# POST /upload — Store the two documents
# ---------------------------------------------------------------------------


def _store_upload(
    session: Session,
    upload: UploadFile,
    document_type: DocumentType,
    upload_dir: Path,
) -> Document:
    content = upload.file.read()
    if not content:
        raise HTTPException(
            status_code=400,
            detail=f"Uploaded {document_type.value} file is empty.",
        )

    doc_id = new_document_id()
    # Keep only the final path component of the client-supplied name
    original_name = Path(upload.filename or document_type.value).name
    file_path = upload_dir / f"{doc_id}_{original_name}"
    file_path.write_bytes(content)

    doc = Document(
        id=doc_id,
        filename=original_name,
        document_type=document_type,
        storage_path=str(file_path),
    )
    session.add(doc)

    logger.info(
        "Saved %s upload: %s (%d bytes) → %s",
        document_type.value, original_name, len(content), file_path,
    )
    return doc


@router.post(
    "/upload",
    response_model=UploadResponse,
    summary="Upload a CV and a project report",
    description=(
        "Multipart upload with two files, `cv` and `project_report` "
        "(plain text or PDF). Returns the document ids used by POST /evaluate."
    ),
)
def upload_documents(
    cv: UploadFile | None = File(default=None, description="Candidate CV"),
    project_report: UploadFile | None = File(
        default=None, description="Candidate project report",
    ),
    settings: Settings = Depends(get_settings),
    session: Session = Depends(get_session),
) -> UploadResponse:
    """Save both files to the upload directory and record a Document row for each."""
    if cv is None or project_report is None:
        raise HTTPException(
            status_code=400,
            detail="Both 'cv' and 'project_report' files are required.",
        )

    upload_dir = Path(settings.upload_dir)
    upload_dir.mkdir(parents=True, exist_ok=True)

    cv_doc = _store_upload(session, cv, DocumentType.CV, upload_dir)
    project_doc = _store_upload(session, project_report, DocumentType.PROJECT, upload_dir)

    # The session commits automatically via the get_session dependency
    return UploadResponse(cv_id=cv_doc.id, project_id=project_doc.id)


# ---------------------------------------------------------------------------
# POST /evaluate — Create and dispatch a job
# ---------------------------------------------------------------------------


@router.post(
    "/evaluate",
    response_model=EvaluateResponse,
    summary="Start evaluating a candidate",
    description=(
        "Creates a queued evaluation job for the given documents and job "
        "title, then dispatches it to the worker queue. Poll "
        "GET /result/{id} for the outcome. With `inline: true` the job runs "
        "in-process and the response carries its terminal status."
    ),
)
def start_evaluation(
    request: EvaluateRequest,
    settings: Settings = Depends(get_settings),
) -> EvaluateResponse:
    """
    1. Insert the job row (status queued) and commit it
    2. Dispatch to Celery, or run inline
    3. Return the job id and its status
    """
    store = SqlJobStore()
    job = store.create_job(request.job_title, request.cv_id, request.project_id)
    logger.info("[%s] Job created for title=%r", job.id, request.job_title)

    try:
        submit_evaluation(job, settings, inline=request.inline)
    except Exception as exc:
        logger.exception("[%s] Could not dispatch job: %s", job.id, exc)
        store.set_failure(job.id, {"error": f"Dispatch failed: {exc}"[:1000], "stack": ""})
        raise HTTPException(
            status_code=503,
            detail="Evaluation queue unavailable; the job was marked failed.",
        ) from exc

    if not request.inline:
        return EvaluateResponse(id=job.id, status=JobStatus.QUEUED.value)

    current = store.get_job(job.id)
    status = current.status if current is not None else JobStatus.QUEUED
    return EvaluateResponse(id=job.id, status=status.value)


# ---------------------------------------------------------------------------
# GET /result/{id} — Poll a job
# ---------------------------------------------------------------------------


@router.get(
    "/result/{job_id}",
    response_model=JobResultResponse,
    summary="Get job status and result",
    description=(
        "Returns the job status and, once completed, the evaluation result. "
        "`result` is null until the job completes."
    ),
)
def get_result(
    job_id: str,
    session: Session = Depends(get_session),
) -> JobResultResponse:
    job = session.get(Job, job_id)
    if job is None:
        raise HTTPException(status_code=404, detail=f"Job {job_id} not found")

    result = job.result if job.status == JobStatus.COMPLETED else None
    return JobResultResponse(id=job.id, status=job.status.value, result=result)
