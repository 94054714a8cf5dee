# =============================================================================
# API Response Models — Pydantic V2 Schemas
# =============================================================================
#
# These models define the shape of data coming OUT of the API.
# Failure logs (error message + stack) stay in the database for operators
# and are never part of a response.
# =============================================================================

from pydantic import BaseModel, Field

from cv_evaluator.models.scores import EvaluationResult


class HealthResponse(BaseModel):
    """Response for GET /health — confirms the API is running."""

    status: str = "ok"
    version: str
    service: str


class UploadResponse(BaseModel):
    """Response for POST /upload — ids of the stored documents."""

    cv_id: str = Field(description="Document id of the stored CV")
    project_id: str = Field(description="Document id of the stored project report")


class EvaluateResponse(BaseModel):
    """
    Response for POST /evaluate.

    Queued jobs report "queued"; inline runs report the terminal status.
    Poll GET /result/{id} for the outcome.
    """

    id: str = Field(description="Job id")
    status: str = Field(description="queued | processing | completed | failed")


class JobResultResponse(BaseModel):
    """Response for GET /result/{id} — job status and result when completed."""

    id: str
    status: str
    result: EvaluationResult | None = None
