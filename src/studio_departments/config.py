"""Configuration management for studio departments."""

from typing import Optional

from pydantic import Field, validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from models.analytics import Timeframe


class LLMConfig(BaseSettings):
    """LLM API configuration settings."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    anthropic_api_key: Optional[str] = None
    gemini_api_key: Optional[str] = None
    llm_provider: str = "claude"
    llm_model: Optional[str] = None
    max_concurrent_requests: int = 10
    request_timeout: float = 60.0
    max_retries: int = 3
    retry_delay: float = 1.0

    @validator("llm_provider")
    def validate_provider(cls, v):
        if v not in ("claude", "gemini"):
            raise ValueError("LLM_PROVIDER must be 'claude' or 'gemini'")
        return v

    @property
    def api_key(self) -> Optional[str]:
        return self.anthropic_api_key if self.llm_provider == "claude" else self.gemini_api_key


class OrchestrationSettings(BaseSettings):
    """Defaults for thresholds, retries, timeouts and concurrency."""

    model_config = SettingsConfigDict(
        env_prefix="ORCHESTRATION_", env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    default_passing_threshold: float = Field(60.0, ge=0, le=100)
    default_max_retries: int = Field(3, ge=0)
    attempt_timeout_seconds: Optional[float] = None
    max_concurrent_departments: int = 6
    max_concurrent_specialists: int = 5
    weights_file: Optional[str] = None
    registry_file: str = "config/registry.yaml"
    templates_dir: Optional[str] = None
    router: str = "keyword"

    @validator("max_concurrent_departments", "max_concurrent_specialists")
    def validate_concurrency_limits(cls, v):
        if v < 1 or v > 50:
            raise ValueError("Concurrency limits must be between 1 and 50")
        return v

    @validator("router")
    def validate_router(cls, v):
        if v not in ("keyword", "llm"):
            raise ValueError("Router must be 'keyword' or 'llm'")
        return v


class AuditConfig(BaseSettings):
    """Execution store and analytics settings."""

    model_config = SettingsConfigDict(env_prefix="AUDIT_", env_file=".env", env_file_encoding="utf-8", extra="ignore")

    store_path: str = "runs/executions.jsonl"
    max_records: int = Field(10000, ge=1, le=10000)
    default_timeframe: Timeframe = Timeframe.LAST_7D


class AppConfig(BaseSettings):
    """Application configuration settings."""

    model_config = SettingsConfigDict(env_prefix="APP_", env_file=".env", env_file_encoding="utf-8", extra="ignore")

    name: str = "studio-departments"
    version: str = "0.1.0"
    log_level: str = "INFO"
    debug: bool = False

    @validator("log_level")
    def validate_log_level(cls, v):
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {v}")
        return level


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    llm: LLMConfig = Field(default_factory=LLMConfig)
    orchestration: OrchestrationSettings = Field(default_factory=OrchestrationSettings)
    audit: AuditConfig = Field(default_factory=AuditConfig)
    app: AppConfig = Field(default_factory=AppConfig)

    @classmethod
    def load(cls) -> "Settings":
        """Load settings from environment."""
        return cls()
