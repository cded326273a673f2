"""Remote execution service contract."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Protocol


class SandboxCommandError(RuntimeError):
    """Raised when a sandbox command finishes with a non-zero exit code."""

    def __init__(self, exit_code: int, stderr: str = "") -> None:
        super().__init__(f"exit code {exit_code}: {stderr.strip()[:400]}")
        self.exit_code = exit_code
        self.stderr = stderr


@dataclass(frozen=True)
class CommandResult:
    stdout: str
    stderr: str
    exit_code: int


class SandboxService(Protocol):
    def create(self, template: str, *, timeout_ms: int) -> str: ...

    def run_command(
        self,
        sandbox_id: str,
        command: str,
        *,
        on_stdout: Callable[[str], None] | None = None,
        on_stderr: Callable[[str], None] | None = None,
    ) -> CommandResult: ...

    def read_file(self, sandbox_id: str, path: str) -> str: ...

    def write_file(self, sandbox_id: str, path: str, content: str) -> None: ...

    def get_host(self, sandbox_id: str, port: int) -> str: ...

    def kill(self, sandbox_id: str) -> None: ...
