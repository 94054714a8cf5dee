# =============================================================================
# Workers Package — Celery Background Tasks
# =============================================================================
# Runs evaluations outside the request path:
#   - celery_app.py: Celery application configuration (+ beat schedule)
#   - tasks.py: evaluate_job, sweep_stale_jobs, submit_evaluation
#
# An evaluation extracts, embeds, indexes and scores two documents, with
# several network round trips to the model provider. Running that inside an
# HTTP request would tie up the API, so the API only records the job and
# returns its id for polling.
# =============================================================================
