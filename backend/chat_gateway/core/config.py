from typing import Annotated, Any, Literal

from pydantic import AnyUrl, BeforeValidator, HttpUrl, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful, knowledgeable AI assistant. "
    "Answer clearly and directly."
)


def parse_list(v: Any) -> list[str] | str:
    if isinstance(v, str) and not v.startswith("["):
        return [i.strip() for i in v.split(",") if i.strip()]
    elif isinstance(v, list | str):
        return v
    raise ValueError(v)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",
    )

    PROJECT_NAME: str = "Chat Gateway"
    API_V1_STR: str = "/api"
    ENVIRONMENT: Literal["local", "staging", "production"] = "local"
    SENTRY_DSN: HttpUrl | None = None

    BACKEND_CORS_ORIGINS: Annotated[
        list[AnyUrl] | str, BeforeValidator(parse_list)
    ] = ["http://localhost:3000", "http://127.0.0.1:3000"]

    @computed_field  # type: ignore[prop-decorator]
    @property
    def all_cors_origins(self) -> list[str]:
        return [str(origin).rstrip("/") for origin in self.BACKEND_CORS_ORIGINS]

    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    # Local inference server (Ollama API)
    LOCAL_LLM_URL: str = "http://localhost:11434"
    DEFAULT_LOCAL_MODEL: str = "dolphin-llama3:8b"
    SYSTEM_PROMPT: str = DEFAULT_SYSTEM_PROMPT

    # Hosted provider (OpenRouter, OpenAI-compatible)
    OPENROUTER_API_KEY: str | None = None
    REMOTE_BASE_URL: str = "https://openrouter.ai/api/v1"
    DEFAULT_REMOTE_MODEL: str = "cognitivecomputations/dolphin-mixtral-8x7b"
    REMOTE_MAX_TOKENS: int = 2000
    REMOTE_STREAM_DELAY_SECONDS: float = 0.05
    PUBLIC_URL: str = "http://localhost:3001"
    APP_TITLE: str = "Chat Gateway"

    # Outbound connection pool, one per provider host
    PROVIDER_TIMEOUT_SECONDS: float = 30.0
    MAX_CONNECTIONS_PER_HOST: int = 10
    MAX_KEEPALIVE_CONNECTIONS: int = 5

    CACHE_TTL_SECONDS: int = 300
    CACHE_MAX_ENTRIES: int = 5000
    HISTORY_LIMIT: int = 10
    STREAM_TIMEOUT_SECONDS: int = 300

    RATE_LIMIT_PER_MINUTE: int = 60
    API_TOKENS: Annotated[list[str] | str, BeforeValidator(parse_list)] = []


settings = Settings()  # type: ignore
