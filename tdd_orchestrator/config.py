from typing import Literal
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    # Security: Read from .env, never hardcode keys here
    OPENAI_API_KEY: str | None = None

    # Model Configuration
    OPENAI_MODEL: str = "gpt-4o"
    LLM_TEMPERATURE: float = 0.0

    # Agent Runtime
    # Attempts include the first call: 3 means "call, retry, retry".
    AGENT_MAX_ATTEMPTS: int = 3
    AGENT_RETRY_BACKOFF_SECONDS: float = 1.0
    AGENT_RETRY_MAX_WAIT_SECONDS: float = 10.0
    AGENT_LOOP_MAX_STEPS: int = 20

    # Storage Configuration
    DATABASE_URL: str = "sqlite:///./tdd_orchestrator.db"
    STORAGE_BACKEND: Literal["memory", "database"] = "database"

    LOG_LEVEL: str = "INFO"

    # Loads from a .env file in the root directory
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

# Singleton instance
settings = Settings()
