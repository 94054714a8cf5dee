# =============================================================================
# Database Package
# =============================================================================
# Provides the SQLAlchemy engine, session management, ORM models and the
# repositories the pipeline talks to.
#
# Key exports:
#   - get_sync_session / get_session: session lifecycle (workers / FastAPI)
#   - Base, Document, Job: ORM models
#   - SqlDocumentLookup, SqlJobStore: repositories used by the orchestrator
# =============================================================================
