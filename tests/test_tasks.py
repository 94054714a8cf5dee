# =============================================================================
# Unit Tests — Celery Tasks and Dispatch
# =============================================================================
#
# Tasks are called directly (Celery runs a task synchronously when it is
# invoked as a function), so no broker is needed. Queue dispatch is
# asserted against a patched evaluate_job.
# =============================================================================

from datetime import timedelta
from unittest.mock import MagicMock, patch

from sqlalchemy import update

from cv_evaluator.db.engine import get_sync_session
from cv_evaluator.db.models import DocumentType, Job, JobStatus, utcnow
from cv_evaluator.db.repository import SqlJobStore
from cv_evaluator.workers.tasks import evaluate_job, submit_evaluation, sweep_stale_jobs

CV_TEXT = "Python and Postgres, 4 years, mentored the team."
PROJECT_TEXT = "Clean, modular service with tests and a README."


def _queued_job(make_document):
    cv_id = make_document(CV_TEXT, DocumentType.CV)
    project_id = make_document(PROJECT_TEXT, DocumentType.PROJECT)
    return SqlJobStore().create_job("Backend Engineer", cv_id, project_id)


class TestSubmitEvaluation:
    """Exactly one of queue dispatch or inline run happens."""

    def test_queued_dispatch(self, settings, make_document):
        job = _queued_job(make_document)
        with patch("cv_evaluator.workers.tasks.evaluate_job") as task, patch(
            "cv_evaluator.workers.tasks.build_orchestrator",
        ) as build:
            task.delay.return_value = MagicMock(id="task-1")
            assert submit_evaluation(job, settings) is None

        task.delay.assert_called_once_with(
            job.id, job.job_title, job.cv_document_id, job.project_document_id,
        )
        build.assert_not_called()
        assert SqlJobStore().get_job(job.id).status == JobStatus.QUEUED

    def test_inline_run(self, settings, make_document):
        job = _queued_job(make_document)
        with patch("cv_evaluator.workers.tasks.evaluate_job") as task:
            status = submit_evaluation(job, settings, inline=True)

        task.delay.assert_not_called()
        assert status == JobStatus.COMPLETED
        assert SqlJobStore().get_job(job.id).status == JobStatus.COMPLETED


class TestEvaluateJobTask:
    def test_runs_pipeline(self, settings, make_document):
        job = _queued_job(make_document)
        with patch("cv_evaluator.workers.tasks.get_settings", return_value=settings):
            summary = evaluate_job(
                job.id, job.job_title, job.cv_document_id, job.project_document_id,
            )
        assert summary == {"job_id": job.id, "status": "completed"}

    def test_redelivery_is_skipped(self, settings, make_document):
        job = _queued_job(make_document)
        args = (job.id, job.job_title, job.cv_document_id, job.project_document_id)
        with patch("cv_evaluator.workers.tasks.get_settings", return_value=settings):
            evaluate_job(*args)
            summary = evaluate_job(*args)
        assert summary["status"] == "skipped"


class TestSweepStaleJobs:
    def test_fails_expired_processing_jobs(self, settings, make_document):
        job = _queued_job(make_document)
        store = SqlJobStore()
        store.set_status(job.id, JobStatus.PROCESSING)
        with get_sync_session() as session:
            session.execute(
                update(Job)
                .where(Job.id == job.id)
                .values(updated_at=utcnow() - timedelta(hours=2))
            )

        with patch("cv_evaluator.workers.tasks.get_settings", return_value=settings):
            outcome = sweep_stale_jobs()

        assert outcome == {"failed": [job.id]}
        assert store.get_job(job.id).status == JobStatus.FAILED

    def test_nothing_to_sweep(self, settings, db):
        with patch("cv_evaluator.workers.tasks.get_settings", return_value=settings):
            assert sweep_stale_jobs() == {"failed": []}
