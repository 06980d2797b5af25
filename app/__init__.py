# =============================================================================
# Knowledge Base Query Service
# =============================================================================
# Answers natural-language questions over company documents stored in a
# search index: plan → fan-out hybrid search → merge → fact extraction →
# grounded answer generation, with graceful degradation at every external
# dependency.
#
# Package structure:
#   app/
#   ├── api/          → FastAPI route handlers and collaborator dependencies
#   ├── agents/       → LangGraph query pipeline (planner, search, merger,
#   │                    facts, analyst, orchestrator)
#   ├── models/       → Pydantic V2 request/response/document schemas
#   └── services/     → External collaborators (document index, embeddings,
#                        LLM providers)
# =============================================================================
