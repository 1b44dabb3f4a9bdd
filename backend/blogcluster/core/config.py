from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # core
    ENV: str = "dev"
    API_PREFIX: str = "/api"
    LOG_LEVEL: str = "INFO"

    # database
    # Plain string so sqlite:// URLs (tests, local dev) are accepted as well
    DATABASE_URL: str = "sqlite:///./blogcluster.db"
    AUTO_CREATE_SCHEMA: bool = True

    # inbound webhooks from the automation engine
    INGEST_SECRET: str | None = None

    # outbound triggers to the automation engine
    AUTOMATION_KEYWORDS_URL: str | None = None
    AUTOMATION_OUTLINE_URL: str | None = None
    # Falls back to INGEST_SECRET when unset
    AUTOMATION_SECRET: str | None = None
    AUTOMATION_TIMEOUT_SECONDS: float = 20.0
    # Used for callback URLs when the request carries no forwarded headers
    PUBLIC_BASE_URL: str | None = None

    # identity / access
    USER_ID_HEADER: str = "X-User-Id"
    # Answer 404 instead of 403 for jobs owned by someone else
    HIDE_FOREIGN_JOBS: bool = True

    # read side
    PREVIEW_ARTICLE_LIMIT: int = 5

    # cors
    FRONTEND_ORIGIN: str | None = None
    CORS_ALLOW_ALL_ORIGINS: bool = False

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True)

    @property
    def outbound_secret(self) -> str:
        return (self.AUTOMATION_SECRET or self.INGEST_SECRET or "").strip()


@lru_cache
def get_settings() -> Settings:
    return Settings()
