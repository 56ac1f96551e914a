"""Application settings loaded from the environment and ``.env``."""

from __future__ import annotations

from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from mcp_chat.artifacts.store import SupabaseStorageConfig
from mcp_chat.execution.orchestrator import OrchestratorConfig
from mcp_chat.llm.base import LLMConfig
from mcp_chat.mcp.registry import RegistryConfig
from mcp_chat.observability.logging import LogConfig, LogLevel


class Settings(BaseSettings):
    """Application settings."""

    # API Settings
    api_host: str = Field(default="0.0.0.0", alias="API_HOST")
    api_port: int = Field(default=8000, alias="API_PORT")
    api_allowed_origins: List[str] = Field(default=["*"], alias="API_ALLOWED_ORIGINS")

    # Model provider
    gemini_api_key: Optional[str] = Field(default=None, alias="GEMINI_API_KEY")
    gemini_model: str = Field(default="gemini-2.0-flash-001", alias="GEMINI_MODEL")
    gemini_temperature: Optional[float] = Field(default=None, alias="GEMINI_TEMPERATURE")

    # MCP connections
    mcp_settle_delay: float = Field(default=1.0, alias="MCP_SETTLE_DELAY")
    mcp_request_timeout: float = Field(default=30.0, alias="MCP_REQUEST_TIMEOUT")
    mcp_discovery_timeout: float = Field(default=10.0, alias="MCP_DISCOVERY_TIMEOUT")

    # Orchestration
    tool_call_timeout: float = Field(default=60.0, alias="TOOL_CALL_TIMEOUT")
    max_tool_rounds: int = Field(default=10, alias="MAX_TOOL_ROUNDS")

    # Artifact storage (Supabase)
    supabase_url: Optional[str] = Field(default=None, alias="SUPABASE_URL")
    supabase_key: Optional[str] = Field(default=None, alias="SUPABASE_KEY")
    supabase_bucket: str = Field(default="chart-image", alias="SUPABASE_BUCKET")

    # Chat sessions; in memory when unset
    chat_store_path: Optional[str] = Field(default=None, alias="CHAT_STORE_PATH")

    # Logging
    log_level: LogLevel = Field(default=LogLevel.INFO, alias="LOG_LEVEL")
    log_json: bool = Field(default=False, alias="LOG_JSON")
    log_file: Optional[str] = Field(default=None, alias="LOG_FILE")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def _lowercase_level(cls, value):
        return value.lower() if isinstance(value, str) else value

    def registry_config(self) -> RegistryConfig:
        return RegistryConfig(
            settle_delay=self.mcp_settle_delay,
            request_timeout=self.mcp_request_timeout,
        )

    def orchestrator_config(self) -> OrchestratorConfig:
        return OrchestratorConfig(
            max_rounds=self.max_tool_rounds,
            tool_call_timeout=self.tool_call_timeout,
        )

    def llm_config(self) -> LLMConfig:
        return LLMConfig(
            model=self.gemini_model,
            api_key=self.gemini_api_key,
            temperature=self.gemini_temperature,
        )

    def storage_config(self) -> Optional[SupabaseStorageConfig]:
        """Supabase settings, or None when artifact upload is not configured."""
        if not self.supabase_url or not self.supabase_key:
            return None
        return SupabaseStorageConfig(
            url=self.supabase_url,
            key=self.supabase_key,
            bucket=self.supabase_bucket,
        )

    def log_config(self) -> LogConfig:
        return LogConfig(
            level=self.log_level,
            json_format=self.log_json,
            file_path=self.log_file,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
