"""E2B-backed remote execution service."""

from __future__ import annotations

import logging
from typing import Any, Callable

from app_builder.sandbox.base import CommandResult, SandboxCommandError

logger = logging.getLogger(__name__)


class E2BSandboxService:
    """Provision and drive E2B sandboxes by id.

    Every call reconnects by sandbox id so that a replayed workflow step can pick
    up a sandbox created by an earlier process.
    """

    def __init__(self, *, api_key: str = "", command_timeout_s: float = 0) -> None:
        self.api_key = api_key
        self.command_timeout_s = command_timeout_s
        self._sandbox_cls, self._command_exit_error = self._load_e2b()

    def create(self, template: str, *, timeout_ms: int) -> str:
        sandbox = self._sandbox_cls.create(template=template, **self._auth())
        sandbox.set_timeout(max(1, timeout_ms // 1000))
        logger.info("sandbox event=created sandbox_id=%s template=%s", sandbox.sandbox_id, template)
        return sandbox.sandbox_id

    def run_command(
        self,
        sandbox_id: str,
        command: str,
        *,
        on_stdout: Callable[[str], None] | None = None,
        on_stderr: Callable[[str], None] | None = None,
    ) -> CommandResult:
        sandbox = self._connect(sandbox_id)
        kwargs: dict[str, Any] = {"on_stdout": on_stdout, "on_stderr": on_stderr}
        if self.command_timeout_s > 0:
            kwargs["timeout"] = self.command_timeout_s
        try:
            result = sandbox.commands.run(command, **kwargs)
        except self._command_exit_error as exc:
            raise SandboxCommandError(exc.exit_code, getattr(exc, "stderr", "")) from exc
        return CommandResult(
            stdout=result.stdout,
            stderr=result.stderr,
            exit_code=result.exit_code,
        )

    def read_file(self, sandbox_id: str, path: str) -> str:
        return self._connect(sandbox_id).files.read(path)

    def write_file(self, sandbox_id: str, path: str, content: str) -> None:
        self._connect(sandbox_id).files.write(path, content)

    def get_host(self, sandbox_id: str, port: int) -> str:
        return self._connect(sandbox_id).get_host(port)

    def kill(self, sandbox_id: str) -> None:
        self._connect(sandbox_id).kill()
        logger.info("sandbox event=killed sandbox_id=%s", sandbox_id)

    def _connect(self, sandbox_id: str):
        return self._sandbox_cls.connect(sandbox_id, **self._auth())

    def _auth(self) -> dict[str, str]:
        return {"api_key": self.api_key} if self.api_key else {}

    @staticmethod
    def _load_e2b() -> tuple[Any, type[Exception]]:
        try:
            from e2b import CommandExitException
            from e2b_code_interpreter import Sandbox
        except ImportError as exc:  # pragma: no cover
            raise RuntimeError(
                "E2B sandboxes require the e2b SDK. "
                'Install with: python -m pip install "e2b-code-interpreter>=2.0"'
            ) from exc
        return Sandbox, CommandExitException
