# =============================================================================
# Unit Tests — Job Store + Document Lookup (SQLite)
# =============================================================================
#
# Status writes are conditional UPDATEs; these tests pin the allowed
# transitions and show that terminal jobs can never move again.
# =============================================================================

from datetime import timedelta

from sqlalchemy import update

from cv_evaluator.db.engine import get_sync_session
from cv_evaluator.db.models import DocumentType, Job, JobStatus, utcnow
from cv_evaluator.db.repository import SqlDocumentLookup, SqlJobStore

RESULT = {
    "cv_match_rate": 0.5,
    "cv_feedback": "ok",
    "project_score": 3.0,
    "project_feedback": "ok",
    "overall_summary": "ok",
}


def _new_job(store: SqlJobStore):
    return store.create_job("Backend Engineer", "file_cv", "file_project")


class TestCreateJob:
    def test_new_job_is_queued(self, db):
        store = SqlJobStore()
        job = _new_job(store)
        assert job.id.startswith("job_")
        assert job.status == JobStatus.QUEUED
        assert job.result is None
        assert store.get_job(job.id).status == JobStatus.QUEUED

    def test_unknown_job(self, db):
        assert SqlJobStore().get_job("job_missing") is None


class TestTransitions:
    """Tests for the monotonic job lifecycle."""

    def test_happy_path(self, db):
        store = SqlJobStore()
        job = _new_job(store)

        assert store.set_status(job.id, JobStatus.PROCESSING)
        assert store.set_result(job.id, RESULT)

        stored = store.get_job(job.id)
        assert stored.status == JobStatus.COMPLETED
        assert stored.result == RESULT
        assert stored.failure_log is None

    def test_claim_only_once(self, db):
        store = SqlJobStore()
        job = _new_job(store)
        assert store.set_status(job.id, JobStatus.PROCESSING)
        assert not store.set_status(job.id, JobStatus.PROCESSING)

    def test_result_requires_processing(self, db):
        store = SqlJobStore()
        job = _new_job(store)
        assert not store.set_result(job.id, RESULT)
        assert store.get_job(job.id).status == JobStatus.QUEUED

    def test_queued_job_can_fail(self, db):
        store = SqlJobStore()
        job = _new_job(store)
        assert store.set_failure(job.id, {"error": "x", "stack": ""})
        assert store.get_job(job.id).failure_log == {"error": "x", "stack": ""}

    def test_completed_job_is_final(self, db):
        store = SqlJobStore()
        job = _new_job(store)
        store.set_status(job.id, JobStatus.PROCESSING)
        store.set_result(job.id, RESULT)

        assert not store.set_failure(job.id, {"error": "late", "stack": ""})
        assert not store.set_status(job.id, JobStatus.PROCESSING)
        assert not store.set_result(job.id, {**RESULT, "cv_feedback": "overwrite"})

        stored = store.get_job(job.id)
        assert stored.status == JobStatus.COMPLETED
        assert stored.result == RESULT

    def test_failed_job_is_final(self, db):
        store = SqlJobStore()
        job = _new_job(store)
        store.set_status(job.id, JobStatus.PROCESSING)
        store.set_failure(job.id, {"error": "boom", "stack": ""})

        assert not store.set_result(job.id, RESULT)
        assert not store.set_status(job.id, JobStatus.PROCESSING)
        assert store.get_job(job.id).status == JobStatus.FAILED

    def test_transition_on_unknown_job(self, db):
        assert not SqlJobStore().set_status("job_missing", JobStatus.PROCESSING)


class TestStaleSweep:
    """Tests for fail_stale_processing()."""

    def _age(self, job_id: str, seconds: int) -> None:
        with get_sync_session() as session:
            session.execute(
                update(Job)
                .where(Job.id == job_id)
                .values(updated_at=utcnow() - timedelta(seconds=seconds))
            )

    def test_old_processing_jobs_fail(self, db):
        store = SqlJobStore()
        stale = _new_job(store)
        fresh = _new_job(store)
        queued = _new_job(store)
        store.set_status(stale.id, JobStatus.PROCESSING)
        store.set_status(fresh.id, JobStatus.PROCESSING)
        self._age(stale.id, 3600)
        self._age(queued.id, 3600)

        failed = store.fail_stale_processing(timedelta(seconds=1800))

        assert failed == [stale.id]
        assert store.get_job(stale.id).status == JobStatus.FAILED
        assert "processing lease" in store.get_job(stale.id).failure_log["error"]
        assert store.get_job(fresh.id).status == JobStatus.PROCESSING
        assert store.get_job(queued.id).status == JobStatus.QUEUED

    def test_result_after_sweep_is_refused(self, db):
        store = SqlJobStore()
        job = _new_job(store)
        store.set_status(job.id, JobStatus.PROCESSING)
        self._age(job.id, 3600)
        store.fail_stale_processing(timedelta(seconds=60))

        assert not store.set_result(job.id, RESULT)
        assert store.get_job(job.id).status == JobStatus.FAILED


class TestDocumentLookup:
    def test_existing_document(self, make_document):
        doc_id = make_document("cv text", DocumentType.CV)
        record = SqlDocumentLookup().get_document(doc_id)
        assert record.id == doc_id
        assert record.document_type == DocumentType.CV
        assert record.storage_path.endswith(".txt")

    def test_missing_document(self, db):
        assert SqlDocumentLookup().get_document("file_missing") is None
