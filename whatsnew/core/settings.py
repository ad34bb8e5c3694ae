from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = Field(default="What's New Analytics", alias="APP_NAME")
    app_env: str = Field(default="local", alias="APP_ENV")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    analytics_enabled: bool = Field(default=True, alias="ANALYTICS_ENABLED")
    analytics_provider: str = Field(default="noop", alias="ANALYTICS_PROVIDER")
    posthog_api_key: str | None = Field(default=None, alias="POSTHOG_API_KEY")
    posthog_host: str = Field(default="https://us.i.posthog.com", alias="POSTHOG_HOST")
    pii_masking_enabled: bool = Field(default=True, alias="PII_MASKING_ENABLED")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
