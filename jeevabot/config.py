from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # Database
    database_url: str = "sqlite:///./jeevabot.db"

    # CORS: comma-separated origins, "*" = any origin
    cors_origins: str = "*"

    # Logging
    log_level: str = "INFO"

    # Gemini: API key takes precedence; otherwise Vertex AI with the project below
    gemini_api_key: str = ""
    vertex_project_id: str = ""
    vertex_location: str = "us-central1"
    vertex_credentials_path: str = ""  # path to service account JSON; empty = use ADC
    gemini_model: str = "gemini-2.5-flash"

    # Sampling for the assistant reply
    chat_temperature: float = 0.7
    chat_top_k: int = 40
    chat_top_p: float = 0.95
    chat_max_output_tokens: int = 1024

    # How often the chat endpoints check whether the client went away (seconds)
    disconnect_poll_interval_seconds: float = 0.5

    # Redis (optional cache for conversation history; empty = no Redis, DB only)
    redis_url: str = ""  # e.g. redis://localhost:6379/0

    # Chat cache TTL in seconds (1 day)
    chat_cache_ttl_seconds: int = 86400
    chat_history_max_messages: int = 100

    class Config:
        env_file = ".env"

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


@lru_cache
def get_settings() -> Settings:
    return Settings()
