# =============================================================================
# Models Package — Pydantic V2 Schemas
# =============================================================================
#   - requests.py:  POST /query body (query, filters, chat history)
#   - responses.py: response envelope and source summaries
#   - documents.py: DocumentHit, the validated shape of an index result
# =============================================================================
