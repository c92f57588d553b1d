"""Configuration settings for the Gravita AI router."""
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    # Provider credentials. A missing key marks the provider "not configured".
    google_gemini_api_key: Optional[str] = Field(default=None, alias="GOOGLE_GEMINI_API_KEY")
    deepseek_api_key: Optional[str] = Field(default=None, alias="DEEPSEEK_API_KEY")
    openai_api_key: Optional[str] = Field(default=None, alias="OPENAI_API_KEY")
    chatllm_api_key: Optional[str] = Field(default=None, alias="CHATLLM_API_KEY")
    openai_base_url: Optional[str] = Field(default=None, alias="OPENAI_BASE_URL")
    deepseek_base_url: str = Field(default="https://api.deepseek.com", alias="DEEPSEEK_BASE_URL")

    # Model configuration per tier
    llm_model_simple: str = Field(default="gemini-2.0-flash-lite", alias="LLM_MODEL_SIMPLE")
    llm_model_standard: str = Field(default="gemini-2.0-flash", alias="LLM_MODEL_STANDARD")
    llm_model_advanced: str = Field(default="deepseek-chat", alias="LLM_MODEL_ADVANCED")

    # Retry control (5 attempts bounds spend per request)
    llm_max_retries: int = Field(default=5, ge=1, le=5, alias="LLM_MAX_RETRIES")
    llm_retry_delay_ms: int = Field(default=1000, ge=0, alias="LLM_RETRY_DELAY_MS")
    llm_retry_max_delay_ms: int = Field(default=16000, ge=0, alias="LLM_RETRY_MAX_DELAY_MS")

    # Ledger and budget persistence. None keeps them in memory.
    usage_path: Optional[Path] = Field(default=None, alias="GRAVITA_USAGE_PATH")
    budget_path: Optional[Path] = Field(default=None, alias="GRAVITA_BUDGET_PATH")

    # API Server
    api_host: str = Field(default="127.0.0.1", alias="GRAVITA_API_HOST")
    api_port: int = Field(default=8000, alias="GRAVITA_API_PORT")

    @property
    def openai_key(self) -> Optional[str]:
        """OpenAI key, falling back to the ChatLLM key."""
        return self.openai_api_key or self.chatllm_api_key


settings = Settings()
