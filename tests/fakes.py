"""Test doubles for the sandbox service and the chat model."""

from __future__ import annotations

import json
from typing import Any, Callable

from app_builder.sandbox.base import CommandResult, SandboxCommandError


class FakeSandboxService:
    """In-process stand-in for the remote execution service."""

    def __init__(self) -> None:
        self.created: list[str] = []
        self.timeouts: dict[str, int] = {}
        self.files: dict[str, dict[str, str]] = {}
        self.commands: list[str] = []
        self.killed: list[str] = []
        self.fail_create: Exception | None = None
        self.fail_write_on: set[str] = set()
        self.fail_kill: Exception | None = None
        self.command_results: dict[str, CommandResult] = {}

    def create(self, template: str, *, timeout_ms: int) -> str:
        if self.fail_create is not None:
            raise self.fail_create
        sandbox_id = f"sbx-{len(self.created) + 1}"
        self.created.append(sandbox_id)
        self.timeouts[sandbox_id] = timeout_ms
        self.files[sandbox_id] = {}
        return sandbox_id

    def run_command(self, sandbox_id, command, *, on_stdout=None, on_stderr=None):
        self.commands.append(command)
        result = self.command_results.get(command, CommandResult(f"ran {command}\n", "", 0))
        if on_stdout and result.stdout:
            on_stdout(result.stdout)
        if on_stderr and result.stderr:
            on_stderr(result.stderr)
        if result.exit_code != 0:
            raise SandboxCommandError(result.exit_code, result.stderr)
        return result

    def read_file(self, sandbox_id: str, path: str) -> str:
        relative = path.removeprefix("/home/user/")
        return self.files[sandbox_id][relative]

    def write_file(self, sandbox_id: str, path: str, content: str) -> None:
        if path in self.fail_write_on:
            raise OSError(f"disk full while writing {path}")
        self.files[sandbox_id][path] = content

    def get_host(self, sandbox_id: str, port: int) -> str:
        return f"{port}-{sandbox_id}.e2b.app"

    def kill(self, sandbox_id: str) -> None:
        if self.fail_kill is not None:
            raise self.fail_kill
        self.killed.append(sandbox_id)


def tool_call(name: str, arguments: dict[str, Any], call_id: str = "call_1") -> dict[str, Any]:
    return {
        "id": call_id,
        "type": "function",
        "function": {"name": name, "arguments": json.dumps(arguments)},
    }


def assistant(content: Any = None, *calls: dict[str, Any]) -> dict[str, Any]:
    message: dict[str, Any] = {"role": "assistant", "content": content}
    if calls:
        message["tool_calls"] = list(calls)
    return message


class ScriptedChatModel:
    """Chat model double: coding turns come from a script, text agents from fixed replies."""

    def __init__(
        self,
        coding_turns: list[dict[str, Any]] | Callable[[int], dict[str, Any]],
        *,
        title: dict[str, Any] | None = None,
        response: dict[str, Any] | None = None,
    ) -> None:
        self.coding_turns = coding_turns
        self.title = title or assistant("Counter App")
        self.response = response or assistant("I built a counter for you.")
        self.calls: list[dict[str, Any]] = []
        self.coding_calls = 0
        self.fail_models: dict[str, Exception] = {}

    def complete(self, *, model, messages, tools=None, temperature=None):
        self.calls.append({"model": model, "messages": messages, "tools": tools})
        if model in self.fail_models:
            raise self.fail_models[model]
        if model == "title-model":
            return self.title
        if model == "response-model":
            return self.response
        index = self.coding_calls
        self.coding_calls += 1
        if callable(self.coding_turns):
            return self.coding_turns(index)
        if index < len(self.coding_turns):
            return self.coding_turns[index]
        return assistant("still working")
