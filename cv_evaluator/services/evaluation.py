# =============================================================================
# Evaluation Orchestrator — End-to-End Job Pipeline
# =============================================================================
#
# Drives one evaluation job from claim to terminal state.
#
# PIPELINE:
#   1. Claim the job (queued → processing); unclaimable jobs are skipped
#   2. Resolve the CV and project documents
#   3. Extract text from both files
#   4. Chunk both texts and assign chunk/point ids
#   5. Embed and upsert the chunks            (non-fatal)
#   6. Retrieve top-k context for each text   (non-fatal, [] on failure)
#   7. Build the structured scoring inputs
#   8. Score (model with per-artifact heuristic fallback)
#   9. Persist the result (processing → completed)
#
# FAILURE HANDLING:
#   - Anything raised in steps 2–8 fails the job with {"error", "stack"}.
#   - A failure while persisting the result is logged as a persistence
#     failure and still fails the job.
#   - If the failure itself cannot be recorded, that error propagates.
#   - Index and embedding problems in steps 5–6 only degrade retrieval.
# =============================================================================

from __future__ import annotations

import logging
import traceback

from cv_evaluator.config import Settings
from cv_evaluator.db.models import DocumentType, JobStatus
from cv_evaluator.db.repository import (
    DocumentLookup,
    DocumentRecord,
    JobStore,
    SqlDocumentLookup,
    SqlJobStore,
)
from cv_evaluator.exceptions import DocumentNotFoundError, JobNotFoundError, ProviderError
from cv_evaluator.models.scores import EvaluationResult
from cv_evaluator.services.chunker import TextChunk, build_chunks
from cv_evaluator.services.embedder import Embedder
from cv_evaluator.services.llm import get_llm_provider
from cv_evaluator.services.parser import extract_text
from cv_evaluator.services.scoring import ScoringGenerator
from cv_evaluator.services.vectorstore import VectorPoint, VectorStore, get_vector_store

logger = logging.getLogger(__name__)

# Cap on the error message kept in the failure log
_MAX_ERROR_CHARS = 1000


class EvaluationOrchestrator:
    """
    Runs the evaluation pipeline for a single job.

    All collaborators are injected, so tests can swap any of them:
        orchestrator = EvaluationOrchestrator(
            settings, documents, jobs, embedder, vector_store, scorer,
        )
        orchestrator.run(job_id, "Backend Engineer", cv_id, project_id)
    """

    def __init__(
        self,
        settings: Settings,
        documents: DocumentLookup,
        jobs: JobStore,
        embedder: Embedder,
        vector_store: VectorStore,
        scorer: ScoringGenerator,
    ) -> None:
        self.settings = settings
        self.documents = documents
        self.jobs = jobs
        self.embedder = embedder
        self.vector_store = vector_store
        self.scorer = scorer

    def run(
        self,
        job_id: str,
        job_title: str,
        cv_document_id: str,
        project_document_id: str,
    ) -> JobStatus | None:
        """
        Execute the pipeline for one job.

        Returns:
            The terminal status this run wrote, or None when the job could
            not be claimed (already running or finished elsewhere).

        Raises:
            JobNotFoundError: If no job with this id exists.
        """
        logger.info(
            "[%s] Step 1/9: Claiming job (title=%r, cv=%s, project=%s)",
            job_id, job_title, cv_document_id, project_document_id,
        )
        if not self.jobs.set_status(job_id, JobStatus.PROCESSING):
            current = self.jobs.get_job(job_id)
            if current is None:
                raise JobNotFoundError(job_id)
            logger.warning(
                "[%s] Job is %s, not queued; skipping this delivery",
                job_id, current.status.value,
            )
            return None

        try:
            result = self._evaluate(job_id, job_title, cv_document_id, project_document_id)
        except Exception as exc:
            logger.exception("[%s] Evaluation failed: %s", job_id, exc)
            self._record_failure(job_id, exc)
            return JobStatus.FAILED

        logger.info("[%s] Step 9/9: Persisting result", job_id)
        try:
            stored = self.jobs.set_result(job_id, result.model_dump())
        except Exception as exc:
            logger.exception("[%s] Persistence failed after scoring: %s", job_id, exc)
            self._record_failure(job_id, exc)
            return JobStatus.FAILED

        if not stored:
            # Another actor (the stale sweep) already finished this job
            logger.warning("[%s] Result discarded; job left processing elsewhere", job_id)
            return None

        logger.info(
            "[%s] Evaluation complete: cv_match_rate=%.2f, project_score=%.2f",
            job_id, result.cv_match_rate, result.project_score,
        )
        return JobStatus.COMPLETED

    # -------------------------------------------------------------------------
    # Pipeline Steps
    # -------------------------------------------------------------------------

    def _evaluate(
        self,
        job_id: str,
        job_title: str,
        cv_document_id: str,
        project_document_id: str,
    ) -> EvaluationResult:
        logger.info("[%s] Step 2/9: Resolving documents", job_id)
        cv_doc = self._resolve(cv_document_id)
        project_doc = self._resolve(project_document_id)

        logger.info("[%s] Step 3/9: Extracting text", job_id)
        cv_text = extract_text(cv_doc.storage_path)
        project_text = extract_text(project_doc.storage_path)
        logger.info(
            "[%s] Extracted %d CV chars, %d project chars",
            job_id, len(cv_text), len(project_text),
        )

        logger.info("[%s] Step 4/9: Chunking", job_id)
        cv_chunks = build_chunks(
            cv_text, DocumentType.CV.value,
            size=self.settings.chunk_size, overlap=self.settings.chunk_overlap,
        )
        project_chunks = build_chunks(
            project_text, DocumentType.PROJECT.value,
            size=self.settings.chunk_size, overlap=self.settings.chunk_overlap,
        )

        logger.info(
            "[%s] Step 5/9: Indexing %d chunks",
            job_id, len(cv_chunks) + len(project_chunks),
        )
        self._index(job_id, cv_doc.id, cv_chunks)
        self._index(job_id, project_doc.id, project_chunks)

        logger.info("[%s] Step 6/9: Retrieving context", job_id)
        cv_hits = self._retrieve(job_id, job_title, cv_text, cv_doc.id)
        project_hits = self._retrieve(job_id, job_title, project_text, project_doc.id)

        logger.info("[%s] Step 7/9: Building scoring inputs", job_id)
        limit = self.settings.scoring_input_chars
        cv_input = {"raw_text": cv_text[:limit], "top_hits": cv_hits}
        project_input = {"raw_text": project_text[:limit], "top_hits": project_hits}

        logger.info("[%s] Step 8/9: Scoring", job_id)
        return self.scorer.evaluate(cv_input, project_input, job_title)

    def _resolve(self, document_id: str) -> DocumentRecord:
        doc = self.documents.get_document(document_id)
        if doc is None:
            raise DocumentNotFoundError(document_id)
        return doc

    def _index(self, job_id: str, document_id: str, chunks: list[TextChunk]) -> None:
        if not chunks:
            return
        try:
            vectors = self.embedder.embed_many([c.text for c in chunks])
        except ProviderError as e:
            logger.warning("[%s] Embedding failed, skipping indexing: %s", job_id, e)
            return

        points = [
            VectorPoint(
                id=chunk.point_id,
                vector=vector,
                payload={
                    "text": chunk.text,
                    "document_id": document_id,
                    "chunk_id": chunk.chunk_id,
                },
            )
            for chunk, vector in zip(chunks, vectors)
        ]
        self.vector_store.ensure_collection()
        self.vector_store.upsert(points)

    def _retrieve(
        self, job_id: str, job_title: str, text: str, document_id: str,
    ) -> list[dict]:
        query = f"{job_title} {text[: self.settings.retrieval_query_chars]}"
        try:
            vector = self.embedder.embed(query)
        except ProviderError as e:
            logger.warning("[%s] Query embedding failed, no context: %s", job_id, e)
            return []

        # Hits are scoped to the artifact being scored
        hits = self.vector_store.search(
            vector, k=self.settings.retrieval_top_k, document_id=document_id,
        )
        return [hit.to_dict() for hit in hits]

    def _record_failure(self, job_id: str, exc: BaseException) -> None:
        failure_log = {
            "error": str(exc)[:_MAX_ERROR_CHARS],
            "stack": "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
        }
        try:
            self.jobs.set_failure(job_id, failure_log)
        except Exception:
            logger.exception("[%s] Could not record job failure", job_id)
            raise


def build_orchestrator(settings: Settings) -> EvaluationOrchestrator:
    """Wire the orchestrator with the configured backends."""
    provider = get_llm_provider(settings)
    return EvaluationOrchestrator(
        settings=settings,
        documents=SqlDocumentLookup(),
        jobs=SqlJobStore(),
        embedder=Embedder(settings, provider),
        vector_store=get_vector_store(settings),
        scorer=ScoringGenerator(settings, provider),
    )
