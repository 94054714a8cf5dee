# =============================================================================
# API Tests — Upload, Evaluate, Result
# =============================================================================
#
# FastAPI TestClient against a SQLite database. Settings are overridden to
# demo mode; queue dispatch is patched so no broker is needed.
# =============================================================================

from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import select

from cv_evaluator.config import get_settings
from cv_evaluator.db.engine import get_sync_session
from cv_evaluator.db.models import Job, JobStatus
from cv_evaluator.db.repository import SqlJobStore
from cv_evaluator.main import create_app

CV_TEXT = b"Experienced Node developer with 5 years experience, reduced latency by 30%."
PROJECT_TEXT = b"Project includes unit tests and retry/backoff logic and a README."


@pytest.fixture
def client(settings, db):
    app = create_app()
    app.dependency_overrides[get_settings] = lambda: settings
    with TestClient(app) as test_client:
        yield test_client


def _upload(client) -> dict:
    response = client.post(
        "/upload",
        files={
            "cv": ("cv.txt", CV_TEXT, "text/plain"),
            "project_report": ("report.txt", PROJECT_TEXT, "text/plain"),
        },
    )
    assert response.status_code == 200
    return response.json()


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"


class TestUpload:
    def test_upload_returns_document_ids(self, client):
        ids = _upload(client)
        assert ids["cv_id"].startswith("file_")
        assert ids["project_id"].startswith("file_")
        assert ids["cv_id"] != ids["project_id"]

    def test_missing_file_is_rejected(self, client):
        response = client.post("/upload", files={"cv": ("cv.txt", CV_TEXT, "text/plain")})
        assert response.status_code == 400

    def test_empty_file_is_rejected(self, client):
        response = client.post(
            "/upload",
            files={
                "cv": ("cv.txt", b"", "text/plain"),
                "project_report": ("report.txt", PROJECT_TEXT, "text/plain"),
            },
        )
        assert response.status_code == 400


class TestEvaluate:
    def test_queued_evaluation(self, client):
        ids = _upload(client)
        with patch("cv_evaluator.workers.tasks.evaluate_job") as task:
            task.delay.return_value = MagicMock(id="task-1")
            response = client.post(
                "/evaluate",
                json={"job_title": "Backend Engineer", **ids},
            )

        assert response.status_code == 200
        body = response.json()
        assert body["id"].startswith("job_")
        assert body["status"] == "queued"
        task.delay.assert_called_once()

        polled = client.get(f"/result/{body['id']}").json()
        assert polled == {"id": body["id"], "status": "queued", "result": None}

    def test_inline_evaluation_completes(self, client):
        ids = _upload(client)
        response = client.post(
            "/evaluate",
            json={"job_title": "Backend Engineer", **ids, "inline": True},
        )
        body = response.json()
        assert body["status"] == "completed"

        polled = client.get(f"/result/{body['id']}").json()
        assert polled["status"] == "completed"
        result = polled["result"]
        assert set(result) == {
            "cv_match_rate", "cv_feedback", "project_score",
            "project_feedback", "overall_summary",
        }
        assert "5 years" in result["cv_feedback"]

    def test_alias_keys_accepted(self, client):
        ids = _upload(client)
        response = client.post(
            "/evaluate",
            json={
                "job_title": "Backend Engineer",
                "cvDocId": ids["cv_id"],
                "reportDocId": ids["project_id"],
                "inline": True,
            },
        )
        assert response.status_code == 200
        assert response.json()["status"] == "completed"

    def test_unknown_documents_fail_the_job(self, client):
        response = client.post(
            "/evaluate",
            json={
                "job_title": "Backend Engineer",
                "cv_id": "file_nope",
                "project_id": "file_nope_either",
                "inline": True,
            },
        )
        body = response.json()
        assert body["status"] == "failed"

        polled = client.get(f"/result/{body['id']}").json()
        assert polled["status"] == "failed"
        assert polled["result"] is None
        assert "failure_log" not in polled

    def test_missing_job_title(self, client):
        response = client.post("/evaluate", json={"cv_id": "a", "project_id": "b"})
        assert response.status_code == 422

    def test_dispatch_failure_marks_job_failed(self, client):
        ids = _upload(client)
        with patch("cv_evaluator.workers.tasks.evaluate_job") as task:
            task.delay.side_effect = ConnectionError("broker down")
            response = client.post(
                "/evaluate",
                json={"job_title": "Backend Engineer", **ids},
            )

        assert response.status_code == 503
        # The only job created is now failed
        with get_sync_session() as session:
            job_id = session.scalars(select(Job.id)).one()
        assert SqlJobStore().get_job(job_id).status == JobStatus.FAILED


class TestResult:
    def test_unknown_job_is_404(self, client):
        assert client.get("/result/job_unknown").status_code == 404
