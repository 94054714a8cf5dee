# =============================================================================
# API Package — FastAPI Routers
# =============================================================================
# evaluate.py: POST /upload, POST /evaluate, GET /result/{id}
# The health check lives on the application itself (cv_evaluator/main.py).
# =============================================================================
