# =============================================================================
# Celery Application Configuration
# =============================================================================
#
# Celery runs the evaluation pipeline out of the request path:
#   POST /evaluate → job row (queued) → evaluate_job task → completed | failed
#
# ARCHITECTURE:
# ┌──────────┐     ┌────────┐     ┌───────────────┐     ┌──────────────┐
# │ FastAPI  │────▶│ Redis  │────▶│ Celery Worker │────▶│ PostgreSQL   │
# │(producer)│     │(broker)│     │  (consumer)   │     │ (job record) │
# └──────────┘     └────────┘     └───────────────┘     └──────────────┘
#                                        ▲
#                     Celery beat ───────┘ sweep_stale_jobs (periodic)
#
# The job row, not the Celery result, is the source of truth for status.
# Results in Redis db 1 only hold the task's own summary.
# =============================================================================

from celery import Celery

from cv_evaluator.config import get_settings

settings = get_settings()

celery_app = Celery(
    "cv_evaluator.workers",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

celery_app.conf.update(
    # --- Serialization ---
    # JSON only; pickle can execute code on deserialization.
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",

    # --- Reliability ---
    # Ack after the task finishes so a crashed worker's job is redelivered.
    # A redelivered job that is no longer queued is skipped by the claim.
    task_acks_late=True,
    task_reject_on_worker_lost=True,

    # One job at a time per worker process; evaluations are long-running.
    worker_prefetch_multiplier=1,

    # --- Timeouts ---
    task_soft_time_limit=300,
    task_time_limit=600,

    # --- Results ---
    result_expires=3600,

    # --- Periodic Tasks ---
    # Fails jobs left in "processing" by a worker that died mid-run.
    beat_schedule={
        "sweep-stale-jobs": {
            "task": "sweep_stale_jobs",
            "schedule": float(settings.stale_sweep_interval_seconds),
        },
    },

    # --- Task Discovery ---
    include=["cv_evaluator.workers.tasks"],
)
