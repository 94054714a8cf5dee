# =============================================================================
# Celery Task Definitions — Evaluation Pipeline
# =============================================================================
#
# TASKS:
#   - evaluate_job:     run the EvaluationOrchestrator for one job
#   - sweep_stale_jobs: fail jobs stuck in "processing" past their lease
#
# DISPATCH:
#   submit_evaluation() is the single entry point used by the API. It either
#   enqueues evaluate_job or, in inline mode, runs the orchestrator in the
#   calling process. Exactly one of the two happens per call.
#
# RETRY STRATEGY:
# None at the task level. Provider calls already retry internally, and the
# job row records the terminal state; re-running a failed job would break
# monotonic status transitions.
#
# IMPORTANT: Celery workers are SYNCHRONOUS. Everything here uses the sync
# SQLAlchemy session and blocking HTTP clients.
# =============================================================================

import logging
from datetime import timedelta

from cv_evaluator.config import Settings, get_settings
from cv_evaluator.db.models import JobStatus
from cv_evaluator.db.repository import JobRecord, SqlJobStore
from cv_evaluator.services.evaluation import build_orchestrator
from cv_evaluator.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Evaluation Task
# ---------------------------------------------------------------------------


@celery_app.task(bind=True, name="evaluate_job")
def evaluate_job(
    self,
    job_id: str,
    job_title: str,
    cv_document_id: str,
    project_document_id: str,
) -> dict:
    """
    Evaluate one job in a Celery worker.

    Returns:
        dict with the job id and the status this run wrote ("skipped" when
        the job had already been claimed or finished).
    """
    logger.info("[%s] evaluate_job received (task_id=%s)", job_id, self.request.id)

    orchestrator = build_orchestrator(get_settings())
    status = orchestrator.run(job_id, job_title, cv_document_id, project_document_id)

    summary = {
        "job_id": job_id,
        "status": status.value if status is not None else "skipped",
    }
    logger.info("[%s] evaluate_job finished: %s", job_id, summary)
    return summary


# ---------------------------------------------------------------------------
# Stale Job Sweep (Celery beat)
# ---------------------------------------------------------------------------


@celery_app.task(name="sweep_stale_jobs")
def sweep_stale_jobs() -> dict:
    """Fail jobs whose worker disappeared while they were processing."""
    timeout = timedelta(seconds=get_settings().stale_job_timeout_seconds)
    failed = SqlJobStore().fail_stale_processing(timeout)

    if failed:
        logger.warning("Failed %d stale processing jobs: %s", len(failed), failed)
    else:
        logger.debug("No stale processing jobs")
    return {"failed": failed}


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


def submit_evaluation(
    job: JobRecord,
    settings: Settings,
    inline: bool = False,
) -> JobStatus | None:
    """
    Start evaluating a queued job.

    Args:
        job: The freshly created job record.
        settings: Settings used to wire the inline orchestrator.
        inline: Run in this process instead of enqueueing.

    Returns:
        The terminal status for inline runs, None for queued dispatch.
    """
    if inline:
        logger.info("[%s] Running evaluation inline", job.id)
        orchestrator = build_orchestrator(settings)
        return orchestrator.run(
            job.id, job.job_title, job.cv_document_id, job.project_document_id,
        )

    task = evaluate_job.delay(
        job.id, job.job_title, job.cv_document_id, job.project_document_id,
    )
    logger.info("[%s] Dispatched evaluate_job (task_id=%s)", job.id, task.id)
    return None
