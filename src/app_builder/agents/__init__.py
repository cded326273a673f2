"""LLM agents used by the workflow."""
