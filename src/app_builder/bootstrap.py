"""Wire settings into concrete workflow services."""

from __future__ import annotations

from app_builder.agents.coding_agent import CodingAgent
from app_builder.agents.text_agent import fragment_title_agent, response_agent
from app_builder.config.settings import Settings
from app_builder.graph.context import WorkflowServices
from app_builder.llm import ChatCompletionsClient, ChatModel
from app_builder.sandbox.base import SandboxService
from app_builder.sandbox.e2b import E2BSandboxService
from app_builder.storage.base import Storage
from app_builder.storage.postgres import PostgresStorage
from app_builder.usage.ledger import CreditLedger, QuotaTier


def build_storage(settings: Settings) -> Storage:
    database_url = settings.resolved_database_url()
    if not database_url:
        raise RuntimeError(
            "Missing database URL. Set APP_BUILDER_DATABASE_URL "
            "or DATABASE_URL before starting the app."
        )
    storage = PostgresStorage(database_url)
    storage.migrate()
    return storage


def build_ledger(storage: Storage, settings: Settings) -> CreditLedger:
    return CreditLedger(
        storage,
        tier=QuotaTier(
            free_points=settings.free_points,
            pro_points=settings.pro_points,
            duration_s=settings.usage_duration_s,
        ),
    )


def build_services(
    settings: Settings,
    *,
    storage: Storage,
    sandbox: SandboxService | None = None,
    llm: ChatModel | None = None,
    ledger: CreditLedger | None = None,
) -> WorkflowServices:
    chat_model = llm or ChatCompletionsClient(
        api_key=settings.resolved_llm_api_key(),
        base_url=settings.llm_base_url,
        timeout_s=settings.llm_timeout_s,
        max_retries=settings.llm_max_retries,
        backoff_s=settings.llm_backoff_s,
        extra_headers=settings.llm_headers(),
    )
    return WorkflowServices(
        settings=settings,
        storage=storage,
        sandbox=sandbox or E2BSandboxService(api_key=settings.resolved_e2b_api_key()),
        ledger=ledger or build_ledger(storage, settings),
        coding_agent=CodingAgent(
            llm=chat_model,
            model=settings.llm_coding_model,
            temperature=settings.llm_temperature,
        ),
        title_agent=fragment_title_agent(chat_model, model=settings.llm_title_model),
        response_agent=response_agent(chat_model, model=settings.llm_response_model),
    )
