"""AI app builder: durable orchestration of a sandboxed coding agent."""
