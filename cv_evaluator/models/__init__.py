# =============================================================================
# Models Package — Pydantic V2 Schemas
# =============================================================================
# Request/response schemas for the API and the score-block schemas used to
# validate model output. These are separate from the database models
# (cv_evaluator/db/models.py).
# =============================================================================
