# =============================================================================
# Shared Test Fixtures
# =============================================================================
#
# Every test runs offline:
#   - Settings are built directly (no .env), demo mode on
#   - The database is a throwaway SQLite file per test
#   - The vector index is an in-process Chroma collection with a unique name
# =============================================================================

import uuid
from pathlib import Path

import pytest

from cv_evaluator.config import Settings
from cv_evaluator.db.engine import build_engine, configure_engine, get_sync_session, init_db
from cv_evaluator.db.models import Document, DocumentType


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        _env_file=None,
        demo_mode=True,
        database_url=f"sqlite:///{tmp_path / 'test.db'}",
        upload_dir=str(tmp_path / "uploads"),
        qdrant_collection=f"test_{uuid.uuid4().hex[:12]}",
        embedding_dimensions=16,
        provider_backoff_seconds=0.0,
        gemini_api_key="test-key",
    )


@pytest.fixture
def db(settings: Settings):
    """Point the process-wide engine at a fresh SQLite database."""
    engine = build_engine(settings.database_url)
    configure_engine(engine)
    init_db()
    yield engine
    configure_engine(None)


@pytest.fixture
def make_document(db, tmp_path: Path):
    """Write a file to disk and register it as a Document row."""

    def _make(content: str | bytes, document_type: DocumentType = DocumentType.CV) -> str:
        doc_id = f"file_{uuid.uuid4()}"
        path = tmp_path / f"{doc_id}.txt"
        data = content.encode("utf-8") if isinstance(content, str) else content
        path.write_bytes(data)
        with get_sync_session() as session:
            session.add(Document(
                id=doc_id,
                filename=path.name,
                document_type=document_type,
                storage_path=str(path),
            ))
        return doc_id

    return _make
