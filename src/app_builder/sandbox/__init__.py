"""Remote execution service adapters."""

from app_builder.sandbox.base import CommandResult, SandboxCommandError, SandboxService
from app_builder.sandbox.e2b import E2BSandboxService

__all__ = [
    "CommandResult",
    "E2BSandboxService",
    "SandboxCommandError",
    "SandboxService",
]
