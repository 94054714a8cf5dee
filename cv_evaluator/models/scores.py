# =============================================================================
# Score Schemas — Pydantic V2 Validation for Model Output
# =============================================================================
#
# The generative backend is asked for JSON score blocks. Its output is only
# trusted after validating against these models:
#   - every rating is a strict integer in 1..5 (no floats, strings or bools)
#   - every rating field is required
#   - feedback text is optional
#   - unknown keys are ignored
#
# EvaluationResult is the weighted reduction of both blocks and is the only
# scoring structure that gets persisted.
# =============================================================================

from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field

Rating = Annotated[int, Field(strict=True, ge=1, le=5)]


class CvScores(BaseModel):
    """CV score block: four 1–5 ratings plus feedback."""

    technical_skills: Rating
    experience_level: Rating
    relevant_achievements: Rating
    cultural_fit: Rating
    cv_feedback: str = ""

    model_config = ConfigDict(extra="ignore")


class ProjectScores(BaseModel):
    """Project score block: five 1–5 ratings plus feedback."""

    correctness: Rating
    code_quality: Rating
    resilience: Rating
    documentation: Rating
    creativity: Rating
    project_feedback: str = ""

    model_config = ConfigDict(extra="ignore")


class EvaluationResult(BaseModel):
    """
    Final evaluation persisted on a completed job.

    Example:
        {
            "cv_match_rate": 0.72,
            "cv_feedback": "Strong backend tech footprint. 6 years experience detected.",
            "project_score": 3.85,
            "project_feedback": "Includes testing or validation mentions.",
            "overall_summary": "Good candidate fit with some areas to improve; ..."
        }
    """

    cv_match_rate: float = Field(ge=0.0, le=1.0)
    cv_feedback: str
    project_score: float = Field(ge=1.0, le=5.0)
    project_feedback: str
    overall_summary: str
