# =============================================================================
# Agents Package — LangGraph Query Pipeline
# =============================================================================
#   - planner.py:      metrics/years → search strings (rule-based)
#   - search.py:       concurrent fan-out with hybrid → lexical fallback
#   - merger.py:       deterministic dedupe + bound
#   - facts.py:        heuristic metric/year extraction
#   - analyst.py:      bounded prompt assembly + guarded answer generation
#   - orchestrator.py: graph wiring, health check, overall deadline
# =============================================================================
