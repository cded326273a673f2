"""Services and per-run context threaded through workflow nodes."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from langchain_core.runnables import RunnableConfig

from app_builder.agents.coding_agent import CodingAgent
from app_builder.agents.text_agent import TextAgent
from app_builder.config.settings import Settings
from app_builder.graph.state import RunEvent
from app_builder.graph.steps import StepRunner
from app_builder.sandbox.base import SandboxService
from app_builder.storage.base import Storage
from app_builder.storage.models import CompensationResult
from app_builder.usage.ledger import CreditLedger


@dataclass
class WorkflowServices:
    settings: Settings
    storage: Storage
    sandbox: SandboxService
    ledger: CreditLedger
    coding_agent: CodingAgent
    title_agent: TextAgent
    response_agent: TextAgent


@dataclass
class RunContext:
    run_id: str
    event: RunEvent
    services: WorkflowServices
    steps: StepRunner
    sandbox_id: str | None = None
    refund_attempted: bool = False
    compensations: list[CompensationResult] = field(default_factory=list)
    tool_events: list[dict[str, Any]] = field(default_factory=list)

    @property
    def settings(self) -> Settings:
        return self.services.settings


def run_context(config: RunnableConfig) -> RunContext:
    configurable = config.get("configurable") or {}
    context = configurable.get("run")
    if not isinstance(context, RunContext):
        raise RuntimeError("Workflow invoked without a run context")
    return context
