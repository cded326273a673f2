from __future__ import annotations

import json

import pytest

from app_builder.graph.state import AgentState
from app_builder.graph.steps import StepRunner
from app_builder.sandbox.base import CommandResult
from app_builder.storage.memory import InMemoryStorage
from app_builder.tools import ToolAccessError, ToolContext, ToolExecutor, build_registry
from app_builder.tools.context import ToolOutcome
from app_builder.tools.registry import ToolSpec, list_tools, tool_definitions
from app_builder.tools.schemas import TerminalInput
from fakes import FakeSandboxService


def _context(sandbox: FakeSandboxService, state: AgentState | None = None) -> ToolContext:
    sandbox_id = sandbox.create("template", timeout_ms=1000)
    return ToolContext(
        sandbox_id=sandbox_id,
        sandbox=sandbox,
        steps=StepRunner(run_id="run-1", storage=InMemoryStorage()),
        state=state or AgentState(),
        round=1,
    )


def test_registry_exposes_the_three_sandbox_tools() -> None:
    assert list_tools() == ["createOrUpdateFiles", "readFiles", "terminal"]
    definitions = {item["function"]["name"]: item for item in tool_definitions(build_registry())}
    params = definitions["createOrUpdateFiles"]["function"]["parameters"]
    assert params["required"] == ["files"]


def test_terminal_returns_stdout_on_success() -> None:
    sandbox = FakeSandboxService()
    context = _context(sandbox)
    sandbox.command_results["ls"] = CommandResult("app\npackage.json\n", "", 0)

    output = ToolExecutor().execute("terminal", json.dumps({"command": "ls"}), context)

    assert output == "app\npackage.json\n"
    assert context.events[0]["tool"] == "terminal"
    assert context.events[0]["status"] == "ok"


def test_terminal_reports_non_zero_exit_with_both_streams() -> None:
    sandbox = FakeSandboxService()
    context = _context(sandbox)
    sandbox.command_results["npm install nope"] = CommandResult(
        "resolving\n", "404 Not Found\n", 1
    )

    output = ToolExecutor().execute("terminal", {"command": "npm install nope"}, context)

    assert output.startswith("Command failed: ")
    assert "stdout: resolving\n" in output
    assert output.endswith("stderr: 404 Not Found\n")
    assert context.events[0]["status"] == "failed"


def test_create_or_update_files_merges_into_state() -> None:
    sandbox = FakeSandboxService()
    state = AgentState(files={"a.tsx": "old", "b.tsx": "keep"})
    context = _context(sandbox, state)

    output = ToolExecutor().execute(
        "createOrUpdateFiles",
        {"files": [{"path": "a.tsx", "content": "new"}, {"path": "c.tsx", "content": "added"}]},
        context,
    )

    assert output == "Updated files: a.tsx, c.tsx"
    assert state.files == {"a.tsx": "new", "b.tsx": "keep", "c.tsx": "added"}
    assert sandbox.files[context.sandbox_id] == {"a.tsx": "new", "c.tsx": "added"}


def test_file_step_records_only_the_written_batch_and_replays_it() -> None:
    sandbox = FakeSandboxService()
    state = AgentState(files={"big.tsx": "x" * 1000})
    context = _context(sandbox, state)
    args = {"files": [{"path": "a.tsx", "content": "a"}]}

    ToolExecutor().execute("createOrUpdateFiles", args, context)

    (step,) = context.steps.storage.list_steps("run-1")
    assert step.result == {"a.tsx": "a"}

    replay_state = AgentState(files={"big.tsx": "x" * 1000})
    replay = ToolContext(
        sandbox_id=context.sandbox_id,
        sandbox=sandbox,
        steps=StepRunner(run_id="run-1", storage=context.steps.storage),
        state=replay_state,
    )
    sandbox.fail_write_on.add("a.tsx")

    output = ToolExecutor().execute("createOrUpdateFiles", args, replay)

    assert output == "Updated files: a.tsx"
    assert replay_state.files == {"big.tsx": "x" * 1000, "a.tsx": "a"}


def test_failed_write_returns_error_text_and_keeps_state() -> None:
    sandbox = FakeSandboxService()
    sandbox.fail_write_on.add("b.tsx")
    state = AgentState(files={"x.tsx": "x"})
    context = _context(sandbox, state)

    output = ToolExecutor().execute(
        "createOrUpdateFiles",
        {"files": [{"path": "a.tsx", "content": "a"}, {"path": "b.tsx", "content": "b"}]},
        context,
    )

    assert output == "Error:disk full while writing b.tsx"
    assert state.files == {"x.tsx": "x"}
    assert context.events[0]["status"] == "failed"


def test_read_files_returns_json_array() -> None:
    sandbox = FakeSandboxService()
    context = _context(sandbox)
    sandbox.files[context.sandbox_id]["app/page.tsx"] = "export default 1"

    output = ToolExecutor().execute(
        "readFiles", {"files": ["/home/user/app/page.tsx"]}, context
    )

    assert json.loads(output) == [
        {"path": "/home/user/app/page.tsx", "content": "export default 1"}
    ]


def test_read_files_reports_missing_file_as_error_text() -> None:
    sandbox = FakeSandboxService()
    context = _context(sandbox)

    output = ToolExecutor().execute("readFiles", {"files": ["missing.tsx"]}, context)

    assert output.startswith("Error:")


def test_unknown_tool_and_bad_arguments_are_rejected_not_raised() -> None:
    sandbox = FakeSandboxService()
    context = _context(sandbox)
    executor = ToolExecutor()

    unknown = executor.execute("deleteEverything", {}, context)
    bad_json = executor.execute("terminal", "{not json", context)
    bad_shape = executor.execute("terminal", {"cmd": "ls"}, context)

    assert unknown == "Error:Unknown tool: deleteEverything"
    assert bad_json.startswith("Error:Invalid arguments:")
    assert bad_shape.startswith("Error:Invalid arguments:")
    assert [event["status"] for event in context.events] == ["rejected"] * 3
    assert sandbox.commands == []


def test_undeclared_state_write_raises_access_error() -> None:
    def sneaky(payload: TerminalInput, context: ToolContext) -> ToolOutcome:
        return ToolOutcome(output="ok", updates={"files": {"evil.ts": ""}})

    registry = {
        "terminal": ToolSpec(input_model=TerminalInput, fn=sneaky, description="terminal")
    }
    sandbox = FakeSandboxService()
    state = AgentState()
    context = _context(sandbox, state)

    with pytest.raises(ToolAccessError):
        ToolExecutor(registry=registry).execute("terminal", {"command": "ls"}, context)
    assert state.files == {}


def test_repeated_tool_calls_get_distinct_step_keys() -> None:
    sandbox = FakeSandboxService()
    context = _context(sandbox)
    executor = ToolExecutor()

    executor.execute("terminal", {"command": "ls"}, context)
    executor.execute("terminal", {"command": "pwd"}, context)

    steps = context.steps.storage.list_steps("run-1")
    assert sorted(step.step_key for step in steps) == ["terminal", "terminal:1"]
