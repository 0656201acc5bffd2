"""ctxengine - budgeted, usage-aware context assembly for LLM coding workflows."""

__version__ = "0.1.0"
