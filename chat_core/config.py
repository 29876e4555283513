# chat_core/config.py
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppConfig(BaseSettings):
    PROJECT_NAME: str = "Chat Core API"
    PROJECT_VERSION: str = "1.0.0"
    PROJECT_DESCRIPTION: str = "Real-time messaging core: chats, messages, receipts and delivery"
    API_V1_STR: str = "/api/v1"
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30
    DATABASE_URL: str = "sqlite+aiosqlite:///:memory:"
    REDIS_HOST: str | None = None
    REDIS_PORT: int = 6379
    LOG_LEVEL: str = "INFO"

    MESSAGES_PAGE_SIZE: int = 50
    MESSAGES_MAX_PAGE_SIZE: int = 100
    SEARCH_MIN_QUERY_LENGTH: int = 2
    SEARCH_CHAT_LIMIT: int = 10
    SEARCH_MESSAGE_LIMIT: int = 20

    # reject chat:join for rooms the socket's user does not participate in
    WS_VERIFY_MEMBERSHIP: bool = True

    EVENTS_API_URL: str | None = None
    EVENTS_API_TIMEOUT: float = 5.0

    model_config = SettingsConfigDict(env_file=".env", extra="allow")
