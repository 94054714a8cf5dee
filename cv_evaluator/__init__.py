# =============================================================================
# Candidate Evaluation Service
# =============================================================================
# Scores a candidate's CV and project report against a job title.
# Documents are extracted, chunked, embedded and indexed for retrieval, then
# scored by an LLM with a deterministic keyword-heuristic fallback. Each
# evaluation runs as a background job with durable status transitions.
#
# Package structure:
#   cv_evaluator/
#   ├── api/          → FastAPI route handlers (upload, evaluate, result)
#   ├── db/           → Database engine, session, ORM models, job/document stores
#   ├── models/       → Pydantic V2 request/response and score schemas
#   ├── services/     → Business logic (parsing, chunking, embedding,
#   │                    vector index, scoring, evaluation pipeline)
#   └── workers/      → Celery task definitions and configuration
# =============================================================================
