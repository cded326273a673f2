"""Code-agent orchestration graph."""
