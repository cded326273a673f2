"""Application settings."""

from functools import lru_cache
import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

PROJECT_ROOT = Path(__file__).resolve().parents[3]


class Settings(BaseSettings):
    """Runtime settings loaded from environment variables."""

    app_name: str = "app-builder"
    app_env: str = "dev"
    log_level: str = "INFO"
    database_url: str = ""

    sandbox_template: str = "kindra-nextjs-test-2"
    sandbox_timeout_ms: int = Field(default=30 * 60 * 1000, ge=1000)
    sandbox_preview_port: int = 3000
    kill_sandbox_on_failure: bool = False
    e2b_api_key: str = ""

    max_agent_iterations: int = Field(default=15, ge=1)
    history_limit: int = Field(default=5, ge=0)
    error_dedup_window_s: float = Field(default=60.0, ge=0.0)

    generation_cost: int = Field(default=1, ge=1)
    free_points: int = Field(default=5, ge=0)
    pro_points: int = Field(default=75, ge=0)
    usage_duration_s: int = Field(default=30 * 24 * 60 * 60, ge=1)

    llm_base_url: str = "https://openrouter.ai/api/v1"
    llm_coding_model: str = "mistralai/devstral-2512:free"
    llm_title_model: str = "deepseek/deepseek-r1-0528:free"
    llm_response_model: str = "mistralai/mistral-7b-instruct:free"
    llm_temperature: float = Field(default=0.1, ge=0.0, le=2.0)
    llm_timeout_s: float = Field(default=120.0, ge=0.5)
    llm_max_retries: int = Field(default=1, ge=0)
    llm_backoff_s: float = Field(default=0.5, ge=0.0)
    llm_referer: str = "http://localhost:3000"
    llm_app_title: str = "Kindra Lovable Clone"
    openrouter_api_key: str = ""

    model_config = SettingsConfigDict(
        env_prefix="APP_BUILDER_",
        extra="ignore",
        env_file=(PROJECT_ROOT / ".env", PROJECT_ROOT / ".env.local"),
        env_file_encoding="utf-8",
    )

    def resolved_database_url(self) -> str:
        return self.database_url or os.getenv("DATABASE_URL", "")

    def resolved_llm_api_key(self) -> str:
        return self.openrouter_api_key or os.getenv("OPENROUTER_API_KEY", "")

    def resolved_e2b_api_key(self) -> str:
        return self.e2b_api_key or os.getenv("E2B_API_KEY", "")

    def llm_headers(self) -> dict[str, str]:
        headers: dict[str, str] = {}
        if self.llm_referer:
            headers["HTTP-Referer"] = self.llm_referer
        if self.llm_app_title:
            headers["X-Title"] = self.llm_app_title
        return headers


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
