# =============================================================================
# Services Package — External Collaborators
# =============================================================================
#   - document_index.py: Elasticsearch hybrid/lexical search over REST (httpx)
#   - embedder.py:       OpenAI-compatible query embeddings (zero-vector fallback)
#   - llm.py:            Multi-provider LLM abstraction (Anthropic, OpenAI-compatible)
# =============================================================================
