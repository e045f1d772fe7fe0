"""Configuration settings for the application."""

from pydantic_settings import (
    BaseSettings,
    SettingsConfigDict,
)


class Settings(BaseSettings):
    """Pydantic settings class for the workshop portal."""

    # Loaded from environment variables or a .env file if not provided
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000
    DEBUG: bool = False
    LOG_LEVEL: str = "info"  # Options: debug, info, warning, error, critical

    # Content
    KNOWLEDGE_BASE_PATH: str = "data/knowledge-base.json"
    WORKSHOP_DIR: str = "content/workshop"

    # Password gate
    WORKSHOP_PORTAL_PASSWORD: str | None = None
    AUTH_COOKIE_SECURE: bool = False

    # Azure OpenAI
    AZURE_OPENAI_ENDPOINT: str | None = None
    AZURE_OPENAI_API_KEY: str | None = None
    AZURE_OPENAI_API_VERSION: str | None = None
    AZURE_OPENAI_CHAT_DEPLOYMENT: str | None = None
    AZURE_OPENAI_IMAGE_DEPLOYMENT: str | None = None
    AZURE_OPENAI_TIMEOUT_SECONDS: float = 60.0
    # Bearer token from DefaultAzureCredential instead of (or when missing) the API key
    AZURE_OPENAI_USE_MANAGED_IDENTITY: bool = False

    # Reasoning deployment (falls back to the defaults above when unset)
    AZURE_OPENAI_REASONING_DEPLOYMENT: str | None = None
    AZURE_OPENAI_REASONING_ENDPOINT: str | None = None
    AZURE_OPENAI_REASONING_API_VERSION: str | None = None
    AZURE_OPENAI_REASONING_API_KEY: str | None = None
    AZURE_OPENAI_REASONING_INCLUDE_REASONING_PARAM: bool = False


settings = Settings()


def get_settings() -> Settings:
    """FastAPI dependency returning the process-wide settings."""
    return settings
