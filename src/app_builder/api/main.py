"""FastAPI app entrypoint for app-builder."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from uuid import uuid4

from fastapi import BackgroundTasks, FastAPI, Header, HTTPException, Request
from pydantic import BaseModel, Field

from app_builder.bootstrap import build_ledger, build_services, build_storage
from app_builder.config.settings import Settings, get_settings
from app_builder.graph.state import RunEvent
from app_builder.graph.workflow import CodeAgentWorkflow
from app_builder.llm import ChatModel
from app_builder.sandbox.base import SandboxService
from app_builder.storage.base import Storage
from app_builder.storage.models import MessageRecord, RunRecord
from app_builder.usage.ledger import CreditLedger, InsufficientCreditsError, UsageStatus

logger = logging.getLogger(__name__)


class CreateMessageRequest(BaseModel):
    value: str = Field(min_length=1, max_length=10000)


class CreateMessageResponse(BaseModel):
    run_id: str
    message: MessageRecord


def _ensure_runtime_state(
    app: FastAPI,
    *,
    settings: Settings,
    storage_override: Storage | None,
) -> None:
    if not hasattr(app.state, "storage"):
        app.state.storage = storage_override or build_storage(settings)
        app.state.storage.migrate()

    if not hasattr(app.state, "settings"):
        app.state.settings = settings

    if not hasattr(app.state, "ledger"):
        app.state.ledger = build_ledger(app.state.storage, settings)


def _get_workflow(
    app: FastAPI,
    *,
    settings: Settings,
    sandbox_override: SandboxService | None,
    llm_override: ChatModel | None,
) -> CodeAgentWorkflow:
    # Built on first use so that read-only endpoints need no LLM key or sandbox SDK.
    if not hasattr(app.state, "workflow"):
        services = build_services(
            settings,
            storage=app.state.storage,
            sandbox=sandbox_override,
            llm=llm_override,
            ledger=app.state.ledger,
        )
        app.state.workflow = CodeAgentWorkflow(services)
    return app.state.workflow


def create_app(
    *,
    storage: Storage | None = None,
    settings_override: Settings | None = None,
    sandbox: SandboxService | None = None,
    llm: ChatModel | None = None,
) -> FastAPI:
    settings = settings_override or get_settings()
    logging.getLogger("app_builder").setLevel(settings.log_level.upper())

    def _ensure(app: FastAPI) -> None:
        _ensure_runtime_state(
            app,
            settings=settings,
            storage_override=storage,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        _ensure(app)
        yield

    app_lifespan = lifespan if storage is None else None
    app = FastAPI(title=settings.app_name, lifespan=app_lifespan)

    # Keep test paths reliable when lifespan is not executed by the client.
    if storage is not None:
        _ensure(app)

    def _runtime(request: Request) -> FastAPI:
        if not hasattr(request.app.state, "ledger"):
            _ensure(request.app)
        return request.app

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok", "service": settings.app_name}

    @app.post("/projects/{project_id}/messages", response_model=CreateMessageResponse)
    def create_message(
        project_id: str,
        payload: CreateMessageRequest,
        request: Request,
        background_tasks: BackgroundTasks,
        x_user_id: str = Header(min_length=1),
        x_user_plan: str = Header(default="free"),
    ) -> CreateMessageResponse:
        runtime = _runtime(request)
        workflow = _get_workflow(
            runtime,
            settings=settings,
            sandbox_override=sandbox,
            llm_override=llm,
        )
        ledger: CreditLedger = runtime.state.ledger
        try:
            ledger.consume(
                x_user_id,
                settings.generation_cost,
                has_pro_access=_has_pro_access(x_user_plan),
            )
        except InsufficientCreditsError as exc:
            raise HTTPException(status_code=429, detail=str(exc)) from exc

        task_storage: Storage = runtime.state.storage
        run_id = str(uuid4())
        try:
            message = task_storage.create_message(
                project_id=project_id,
                content=payload.value,
                role="USER",
                type="RESULT",
            )
            task_storage.create_run(
                run_id=run_id,
                project_id=project_id,
                user_id=x_user_id,
                value=payload.value,
            )
        except Exception:
            # No run exists yet to refund the consumed credit later.
            logger.exception("api event=schedule_failed project_id=%s", project_id)
            ledger.reward(x_user_id, settings.generation_cost)
            raise
        event = RunEvent(value=payload.value, project_id=project_id, user_id=x_user_id)
        background_tasks.add_task(workflow.run, event, run_id=run_id)
        logger.info("api event=run_scheduled run_id=%s project_id=%s", run_id, project_id)
        return CreateMessageResponse(run_id=run_id, message=message)

    @app.get("/projects/{project_id}/messages", response_model=list[MessageRecord])
    def list_messages(project_id: str, request: Request) -> list[MessageRecord]:
        task_storage: Storage = _runtime(request).state.storage
        return task_storage.list_messages(project_id)

    @app.get("/runs/{run_id}", response_model=RunRecord)
    def get_run(run_id: str, request: Request) -> RunRecord:
        task_storage: Storage = _runtime(request).state.storage
        record = task_storage.get_run(run_id)
        if record is None:
            raise HTTPException(status_code=404, detail="Run not found")
        return record

    @app.get("/usage", response_model=UsageStatus)
    def usage(
        request: Request,
        x_user_id: str = Header(min_length=1),
        x_user_plan: str = Header(default="free"),
    ) -> UsageStatus:
        ledger: CreditLedger = _runtime(request).state.ledger
        return ledger.usage_status(x_user_id, has_pro_access=_has_pro_access(x_user_plan))

    return app


app = create_app()


def _has_pro_access(plan: str) -> bool:
    return plan.strip().lower() == "pro"
