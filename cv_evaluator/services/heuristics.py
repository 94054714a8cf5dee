# =============================================================================
# Heuristic Scorer — Deterministic Keyword Fallback
# =============================================================================
#
# Scores a CV or project report without any external call. Used whenever the
# generative backend fails or returns output that does not validate.
#
# ALGORITHM:
# 1. Count keyword occurrences per category (case-insensitive, whole words
#    or phrases only)
# 2. Map each count to 1–5 through ascending, category-specific thresholds
# 3. For the CV experience rating, sum every "N years" / "N yrs" mention
#    and map the total to 1–5
# 4. Assemble feedback from templated clauses for the bands that were hit
#
# Same input text → same scores and feedback, every run.
# =============================================================================

from __future__ import annotations

import re
from functools import lru_cache

from cv_evaluator.models.scores import CvScores, ProjectScores

# ---------------------------------------------------------------------------
# Keyword Lists
# ---------------------------------------------------------------------------

BACKEND_KEYWORDS = (
    "node", "express", "fastify", "rust", "actix", "go", "golang", "python",
    "django", "flask", "fastapi", "java", "spring", "postgres", "postgresql",
    "mysql", "mongodb", "redis", "kafka", "grpc", "rest", "graphql", "aws",
    "gcp", "azure", "docker", "kubernetes", "lambda", "s3",
)
ACHIEVEMENT_KEYWORDS = (
    "%", "increase", "increased", "decrease", "decreased", "reduced",
    "improved", "scaled", "performance", "latency", "throughput", "million",
    "billion", "users", "kpi", "metric", "saved", "cost",
)
CULTURE_KEYWORDS = (
    "team", "collaborate", "collaborated", "collaboration", "agile", "scrum",
    "peer", "communication", "communicate", "ownership", "initiative",
    "mentor", "mentored", "diversity", "inclusive",
)

CORRECTNESS_KEYWORDS = (
    "correct", "passed", "test", "tests", "testing", "unit test",
    "unit tests", "integration test", "integration tests", "verified",
    "validated", "assert",
)
CODE_QUALITY_KEYWORDS = (
    "clean", "readable", "well-structured", "modular", "refactor",
    "refactored", "lint", "type", "types", "static analysis",
)
RESILIENCE_KEYWORDS = (
    "retry", "retries", "backoff", "idempotent", "rate limit",
    "circuit breaker", "timeout", "failover", "monitoring", "observability",
)
DOCUMENTATION_KEYWORDS = (
    "readme", "documentation", "how to", "usage", "setup", "architecture",
    "diagram", "design",
)
CREATIVITY_KEYWORDS = (
    "novel", "innovative", "creative", "unique", "heuristic", "uncommon",
    "first",
)

# Minimum counts for scores 2, 3, 4 and 5; below the first → 1
TECH_THRESHOLDS = (1, 3, 5, 8)
ACHIEVEMENT_THRESHOLDS = (1, 2, 4, 6)
CULTURE_THRESHOLDS = (1, 2, 3, 5)
CORRECTNESS_THRESHOLDS = (1, 2, 3, 5)
CODE_QUALITY_THRESHOLDS = (1, 2, 3, 5)
RESILIENCE_THRESHOLDS = (1, 2, 3, 4)
DOCUMENTATION_THRESHOLDS = (1, 1, 2, 4)
CREATIVITY_THRESHOLDS = (1, 1, 2, 3)

# Minimum total years for experience scores 2, 3, 4 and 5
EXPERIENCE_YEAR_THRESHOLDS = (1, 3, 5, 8)

_YEARS_PATTERN = re.compile(r"\b(\d{1,2})\s+(?:years|yrs|year)\b", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Counting Helpers
# ---------------------------------------------------------------------------


@lru_cache(maxsize=None)
def _keyword_pattern(keyword: str) -> re.Pattern[str]:
    # \b only makes sense next to a word character ("%" has none)
    start = r"\b" if keyword[0].isalnum() else ""
    end = r"\b" if keyword[-1].isalnum() else ""
    return re.compile(start + re.escape(keyword) + end, re.IGNORECASE)


def count_keywords(text: str, keywords: tuple[str, ...]) -> int:
    """Total whole-word occurrences of every keyword in text."""
    if not text:
        return 0
    return sum(len(_keyword_pattern(k).findall(text)) for k in keywords)


def count_to_score(count: int, thresholds: tuple[int, int, int, int]) -> int:
    """Map a count onto 1–5 using ascending minimums for scores 2..5."""
    score = 1
    for minimum in thresholds:
        if count >= minimum:
            score += 1
    return score


def parse_years(text: str) -> int:
    """Sum of every "N years|yrs|year" figure in the text."""
    if not text:
        return 0
    return sum(int(m.group(1)) for m in _YEARS_PATTERN.finditer(text))


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def score_cv(cv_text: str) -> CvScores:
    """Heuristic CV score block."""
    technical = count_to_score(count_keywords(cv_text, BACKEND_KEYWORDS), TECH_THRESHOLDS)

    years = parse_years(cv_text)
    experience = count_to_score(years, EXPERIENCE_YEAR_THRESHOLDS)

    achievements = count_to_score(
        count_keywords(cv_text, ACHIEVEMENT_KEYWORDS), ACHIEVEMENT_THRESHOLDS,
    )
    culture = count_to_score(
        count_keywords(cv_text, CULTURE_KEYWORDS), CULTURE_THRESHOLDS,
    )

    parts: list[str] = []
    if technical >= 4:
        parts.append("Strong backend tech footprint")
    elif technical == 3:
        parts.append("Moderate backend skills")
    else:
        parts.append("Limited explicit backend keywords")

    if years > 0:
        parts.append(f"{years} years experience detected")
    if achievements >= 3:
        parts.append("Has measurable achievements")
    if culture >= 3:
        parts.append("Mentions collaboration/culture keywords")

    return CvScores(
        technical_skills=technical,
        experience_level=experience,
        relevant_achievements=achievements,
        cultural_fit=culture,
        cv_feedback=". ".join(parts) + ".",
    )


def score_project(project_text: str) -> ProjectScores:
    """Heuristic project score block."""
    correctness_hits = count_keywords(project_text, CORRECTNESS_KEYWORDS)
    quality_hits = count_keywords(project_text, CODE_QUALITY_KEYWORDS)
    resilience_hits = count_keywords(project_text, RESILIENCE_KEYWORDS)
    documentation_hits = count_keywords(project_text, DOCUMENTATION_KEYWORDS)
    creativity_hits = count_keywords(project_text, CREATIVITY_KEYWORDS)

    parts: list[str] = []
    if correctness_hits:
        parts.append("Includes testing or validation mentions")
    if quality_hits:
        parts.append("Mentions code quality practices")
    if resilience_hits:
        parts.append("Addresses resilience or retries")
    if documentation_hits:
        parts.append("Contains documentation cues")
    if creativity_hits:
        parts.append("Shows creative elements")

    feedback = ". ".join(parts) + "." if parts else "No strong signals detected."

    return ProjectScores(
        correctness=count_to_score(correctness_hits, CORRECTNESS_THRESHOLDS),
        code_quality=count_to_score(quality_hits, CODE_QUALITY_THRESHOLDS),
        resilience=count_to_score(resilience_hits, RESILIENCE_THRESHOLDS),
        documentation=count_to_score(documentation_hits, DOCUMENTATION_THRESHOLDS),
        creativity=count_to_score(creativity_hits, CREATIVITY_THRESHOLDS),
        project_feedback=feedback,
    )
