# =============================================================================
# API Request Models — Pydantic V2 Schemas
# =============================================================================
#
# These models define the shape of data coming INTO the API. FastAPI uses
# them for request validation (422 on bad input) and OpenAPI docs.
# =============================================================================

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class EvaluateRequest(BaseModel):
    """
    Request body for POST /evaluate — start an evaluation job.

    `cv_id` and `project_id` come from POST /upload. A few alternative key
    spellings used by older clients are accepted.

    Example:
        {
            "job_title": "Backend Engineer",
            "cv_id": "file_3f0c...",
            "project_id": "file_9a41..."
        }
    """

    job_title: str = Field(
        ...,
        min_length=1,
        max_length=255,
        description="Job title the candidate is evaluated against",
        examples=["Backend Engineer"],
    )

    cv_id: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("cv_id", "cvId", "cv_doc_id", "cvDocId", "cv"),
        description="Document id of the uploaded CV",
    )

    project_id: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices(
            "project_id", "projectId", "report_doc_id", "reportDocId", "project",
        ),
        description="Document id of the uploaded project report",
    )

    # Runs the evaluation in the request process instead of dispatching it
    # to the Celery queue. Intended for demos and local testing.
    inline: bool = Field(
        default=False,
        description=(
            "Run the evaluation synchronously in-process instead of "
            "enqueueing it. The response then reflects the terminal status."
        ),
    )

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {
                    "job_title": "Backend Engineer",
                    "cv_id": "file_3f0c6a2e-1b7d-4f0e-9f3a-2c1d5e6f7a8b",
                    "project_id": "file_9a41b2c3-d4e5-4f60-8a7b-9c0d1e2f3a4b",
                },
            ],
        },
    )
