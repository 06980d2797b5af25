# =============================================================================
# API Package — FastAPI Route Handlers
# =============================================================================
#   - query.py: POST /query and GET /health
#   - deps.py:  collaborator dependencies (overridable in tests)
# =============================================================================
