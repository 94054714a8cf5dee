# =============================================================================
# Services Package — Business Logic
# =============================================================================
# Contains the core business logic, separated from API handlers:
#   - parser.py: text extraction (Docling for PDFs, UTF-8/Latin-1 otherwise)
#   - chunker.py: overlapping character windows + chunk/point ids
#   - embedder.py: embedding client and response-shape matching
#   - vectorstore.py: pluggable vector index (Qdrant REST, ChromaDB)
#   - llm.py: provider abstraction (Gemini REST, OpenAI-compatible, demo)
#   - prompts.py / heuristics.py / scoring.py: scoring with fallback
#   - evaluation.py: the end-to-end job orchestrator
# =============================================================================
