# =============================================================================
# Scoring Prompts
# =============================================================================
# One system prompt shared by both scoring calls, plus a builder per artifact.
# The model is asked for a bare JSON object; anything else is rejected by
# validation and replaced by the heuristic score block.
# =============================================================================

import json

SYSTEM_PROMPT = (
    "You are an objective senior backend engineering evaluator. When asked, "
    "produce JSON only as instructed by the user prompts. Be concise, factual, "
    "and do not invent facts."
)


def build_cv_prompt(cv_input: dict, job_title: str) -> str:
    """
    CV prompt: job title plus the structured CV input serialised as JSON.

    cv_input carries `raw_text` (truncated CV text) and `top_hits`
    (retrieved context, possibly empty).
    """
    return (
        f"Evaluate the candidate's CV for job title: {job_title}. "
        f"Input CV JSON:\n{json.dumps(cv_input, ensure_ascii=False, default=str)}\n\n"
        "Return a JSON object with integer scores 1-5 for: technical_skills, "
        "experience_level, relevant_achievements, cultural_fit. "
        "Also include cv_feedback (1-3 sentences)."
    )


def build_project_prompt(project_input: dict, job_title: str, max_chars: int = 4000) -> str:
    """Project prompt: job title plus the leading slice of the report text."""
    text = (project_input.get("raw_text") or "")[:max_chars]
    return (
        f"Evaluate the project report for job title: {job_title}. "
        f"Input project text (truncated):\n{text}\n\n"
        "Return a JSON object with integer scores 1-5 for: correctness, "
        "code_quality, resilience, documentation, creativity. "
        "Also include project_feedback (2-4 sentences)."
    )
