import os
from functools import lru_cache
from typing import Optional

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    remote_base_url: Optional[str] = Field(None, alias="LEARNSYNC_REMOTE_BASE_URL")
    remote_api_key: Optional[str] = Field(None, alias="LEARNSYNC_REMOTE_API_KEY")
    remote_timeout_seconds: float = Field(10.0, alias="LEARNSYNC_REMOTE_TIMEOUT_SECONDS", gt=0)
    local_database_url: str = Field("sqlite:///learnsync_local.db", alias="LEARNSYNC_LOCAL_DATABASE_URL")
    local_database_echo: bool = Field(False, alias="LEARNSYNC_LOCAL_DATABASE_ECHO")
    storage_namespace: str = Field("learnsync", alias="LEARNSYNC_STORAGE_NAMESPACE", min_length=1)
    broadcast_channel: str = Field("learnsync-sync", alias="LEARNSYNC_BROADCAST_CHANNEL")
    sync_interval_seconds: float = Field(120.0, alias="LEARNSYNC_SYNC_INTERVAL_SECONDS", gt=0)
    fast_sync_interval_seconds: float = Field(30.0, alias="LEARNSYNC_FAST_SYNC_INTERVAL_SECONDS", gt=0)
    debounce_seconds: float = Field(2.0, alias="LEARNSYNC_DEBOUNCE_SECONDS", ge=0)
    retry_max_attempts: int = Field(2, alias="LEARNSYNC_RETRY_MAX_ATTEMPTS", ge=1)
    retry_initial_delay: float = Field(0.5, alias="LEARNSYNC_RETRY_INITIAL_DELAY", ge=0)
    retry_backoff_factor: float = Field(1.5, alias="LEARNSYNC_RETRY_BACKOFF_FACTOR", ge=1)
    max_consecutive_errors: int = Field(3, alias="LEARNSYNC_MAX_CONSECUTIVE_ERRORS", ge=1)
    error_pause_seconds: float = Field(300.0, alias="LEARNSYNC_ERROR_PAUSE_SECONDS", ge=0)

    class Config:
        env_file = os.getenv("ENV_FILE", ".env")
        env_file_encoding = "utf-8"
        case_sensitive = True
        populate_by_name = True

    @property
    def remote_configured(self) -> bool:
        return bool(self.remote_base_url and self.remote_api_key)


@lru_cache
def get_settings() -> Settings:
    try:
        return Settings()  # type: ignore[call-arg]
    except ValidationError as exc:
        raise RuntimeError(f"Invalid learnsync configuration: {exc}") from exc
