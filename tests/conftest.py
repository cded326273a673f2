from __future__ import annotations

from typing import Any

import pytest
from fakes import FakeSandboxService, ScriptedChatModel

from app_builder.bootstrap import build_services
from app_builder.config.settings import Settings
from app_builder.graph.workflow import CodeAgentWorkflow
from app_builder.storage.memory import InMemoryStorage


@pytest.fixture
def settings() -> Settings:
    return Settings(
        llm_coding_model="coding-model",
        llm_title_model="title-model",
        llm_response_model="response-model",
        openrouter_api_key="test-key",
    )


@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def sandbox() -> FakeSandboxService:
    return FakeSandboxService()


@pytest.fixture
def make_workflow(settings, storage, sandbox):
    def _make(llm: ScriptedChatModel, **overrides: Any) -> CodeAgentWorkflow:
        effective = settings.model_copy(update=overrides) if overrides else settings
        services = build_services(effective, storage=storage, sandbox=sandbox, llm=llm)
        return CodeAgentWorkflow(services)

    return _make
