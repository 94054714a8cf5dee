# =============================================================================
# Scoring Generator — Model Scoring with Heuristic Fallback
# =============================================================================
#
# Turns the structured CV and project inputs into one EvaluationResult.
#
# FLOW (per artifact, CV and project run concurrently):
#   prompt → provider.generate_text() → parse JSON → validate (pydantic)
#                  │                        │             │
#                  └── ProviderError ───────┴── invalid ──┴──→ heuristic score
#
# The two artifacts fall back independently: a bad CV answer never discards
# a valid project answer, and vice versa. Whatever happens upstream, the
# result always conforms to EvaluationResult.
#
# REDUCTION:
#   cv_match_rate = clamp(0.4·tech + 0.25·exp + 0.2·ach + 0.15·culture, 0, 5) / 5
#   project_score = clamp(0.3·corr + 0.25·qual + 0.2·res + 0.15·doc + 0.1·cre, 1, 5)
#   both rounded to two decimals
# =============================================================================

from __future__ import annotations

import json
import logging
import re
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, TypeVar

from pydantic import BaseModel, ValidationError

from cv_evaluator.config import Settings
from cv_evaluator.exceptions import ProviderError
from cv_evaluator.models.scores import CvScores, EvaluationResult, ProjectScores
from cv_evaluator.services import heuristics
from cv_evaluator.services.llm import LLMProvider
from cv_evaluator.services.prompts import (
    SYSTEM_PROMPT,
    build_cv_prompt,
    build_project_prompt,
)

logger = logging.getLogger(__name__)

INVALID_OUTPUT_NOTE = "(Fallback heuristic used due to invalid LLM output.)"
PROVIDER_ERROR_NOTE = "(Fallback heuristic used due to LLM error.)"

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*(.*?)```", re.IGNORECASE | re.DOTALL)

ScoreBlock = TypeVar("ScoreBlock", CvScores, ProjectScores)


class InvalidModelOutput(ValueError):
    """Model output could not be read as a JSON object."""


# ---------------------------------------------------------------------------
# Output Parsing
# ---------------------------------------------------------------------------


def parse_json_object(text: str) -> dict:
    """
    Pull a JSON object out of model output.

    Tried in order: the whole text, the first fenced code block, and the
    slice from the first "{" to the last "}".

    Raises:
        InvalidModelOutput: If none of them decode to a JSON object.
    """
    candidates = [text.strip()]

    fenced = _FENCED_BLOCK.search(text)
    if fenced:
        candidates.append(fenced.group(1).strip())

    start, end = text.find("{"), text.rfind("}")
    if start != -1 and end > start:
        candidates.append(text[start:end + 1])

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            return parsed

    raise InvalidModelOutput("No JSON object found in model output")


# ---------------------------------------------------------------------------
# Reduction + Summary
# ---------------------------------------------------------------------------


def cv_match_rate(scores: CvScores) -> float:
    weighted = (
        scores.technical_skills * 0.4
        + scores.experience_level * 0.25
        + scores.relevant_achievements * 0.2
        + scores.cultural_fit * 0.15
    )
    return round(max(0.0, min(5.0, weighted)) / 5.0, 2)


def project_score(scores: ProjectScores) -> float:
    weighted = (
        scores.correctness * 0.3
        + scores.code_quality * 0.25
        + scores.resilience * 0.2
        + scores.documentation * 0.15
        + scores.creativity * 0.1
    )
    return round(max(1.0, min(5.0, weighted)), 2)


def compose_summary(
    match_rate: float,
    score: float,
    cv_feedback: str,
    project_feedback: str,
) -> str:
    """
    Pick a qualitative band from the combined score and append short
    excerpts of both feedback texts.

    combined = 0.6 · match_rate + 0.4 · (score − 1) / 4
    """
    combined = round(match_rate * 0.6 + ((score - 1) / 4) * 0.4, 2)

    if combined >= 0.8 and score >= 4:
        band = "Strong candidate fit. Good technical match and project quality."
    elif combined >= 0.6:
        band = (
            "Good candidate fit with some areas to improve; consider for "
            "interview with targeted questions."
        )
    elif combined >= 0.45:
        band = (
            "Potential fit but needs improvement on either background or "
            "project robustness."
        )
    else:
        band = "Weak match to the role based on current CV and project report."

    cv_sentences = [s.strip() for s in cv_feedback.split(".") if s.strip()][:2]
    cv_note = ". ".join(cv_sentences)
    project_note = project_feedback[:120].strip()

    return f"{band} CV note: {cv_note}. Project note: {project_note}."


# ---------------------------------------------------------------------------
# Scoring Generator
# ---------------------------------------------------------------------------


class ScoringGenerator:
    """
    Scores both artifacts through the provider, falling back to the keyword
    heuristic per artifact.

    Usage:
        generator = ScoringGenerator(settings, get_llm_provider(settings))
        result = generator.evaluate(cv_input, project_input, "Backend Engineer")
    """

    def __init__(self, settings: Settings, provider: LLMProvider) -> None:
        self.provider = provider
        self.max_output_tokens = settings.llm_max_output_tokens
        self.project_prompt_chars = settings.project_prompt_chars

    def evaluate(
        self,
        cv_input: dict,
        project_input: dict,
        job_title: str,
    ) -> EvaluationResult:
        """
        Args:
            cv_input: {"raw_text": str, "top_hits": list}
            project_input: {"raw_text": str, "top_hits": list}
            job_title: Role the candidate is evaluated against

        Returns:
            EvaluationResult; never raises for provider or output problems.
        """
        cv_prompt = build_cv_prompt(cv_input, job_title)
        project_prompt = build_project_prompt(
            project_input, job_title, max_chars=self.project_prompt_chars,
        )

        with ThreadPoolExecutor(max_workers=2) as pool:
            cv_future = pool.submit(
                self._score,
                cv_prompt,
                CvScores,
                lambda: heuristics.score_cv(cv_input.get("raw_text") or ""),
                "cv_feedback",
            )
            project_future = pool.submit(
                self._score,
                project_prompt,
                ProjectScores,
                lambda: heuristics.score_project(project_input.get("raw_text") or ""),
                "project_feedback",
            )
            cv_scores = cv_future.result()
            project_scores = project_future.result()

        match_rate = cv_match_rate(cv_scores)
        score = project_score(project_scores)

        return EvaluationResult(
            cv_match_rate=match_rate,
            cv_feedback=cv_scores.cv_feedback,
            project_score=score,
            project_feedback=project_scores.project_feedback,
            overall_summary=compose_summary(
                match_rate,
                score,
                cv_scores.cv_feedback,
                project_scores.project_feedback,
            ),
        )

    def _score(
        self,
        prompt: str,
        schema: type[ScoreBlock],
        fallback: Callable[[], ScoreBlock],
        feedback_field: str,
    ) -> ScoreBlock:
        try:
            response = self.provider.generate_text(
                prompt,
                system=SYSTEM_PROMPT,
                max_output_tokens=self.max_output_tokens,
            )
        except ProviderError as e:
            logger.warning("%s: provider failed, using heuristic: %s", schema.__name__, e)
            return _annotate(fallback(), feedback_field, PROVIDER_ERROR_NOTE)

        try:
            return schema.model_validate(parse_json_object(response.content))
        except (InvalidModelOutput, ValidationError) as e:
            logger.warning(
                "%s: model output rejected, using heuristic: %s",
                schema.__name__, str(e).splitlines()[0],
            )
            return _annotate(fallback(), feedback_field, INVALID_OUTPUT_NOTE)


def _annotate(scores: BaseModel, feedback_field: str, note: str) -> BaseModel:
    feedback = getattr(scores, feedback_field)
    annotated = f"{feedback} {note}".strip()
    return scores.model_copy(update={feedback_field: annotated})
