import os
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=os.getenv("ENV_FILE", ".env"),
        env_file_encoding="utf-8",
        case_sensitive=True,
        populate_by_name=True,
        extra="ignore",
    )

    data_dir: Path = Field(Path.home() / ".learnsync", alias="LEARNSYNC_DATA_DIR")
    remote_url: Optional[str] = Field(None, alias="LEARNSYNC_REMOTE_URL")
    remote_timeout_seconds: float = Field(15.0, alias="LEARNSYNC_REMOTE_TIMEOUT", gt=0)
    remote_api_token: Optional[str] = Field(None, alias="LEARNSYNC_REMOTE_TOKEN")
    sync_debounce_seconds: float = Field(2.0, alias="LEARNSYNC_SYNC_DEBOUNCE", ge=0)
    question_bank_dir: Optional[Path] = Field(None, alias="LEARNSYNC_QUESTION_BANK_DIR")
    question_bank_url: Optional[str] = Field(None, alias="LEARNSYNC_QUESTION_BANK_URL")
    question_bank_version: int = Field(1, alias="LEARNSYNC_QUESTION_BANK_VERSION", ge=1)
    session_question_count: int = Field(20, alias="LEARNSYNC_SESSION_QUESTIONS", ge=1)
    device_identifier: Optional[str] = Field(None, alias="LEARNSYNC_DEVICE_ID")
    database_url: Optional[str] = Field(None, alias="LEARNSYNC_DATABASE_URL")
    database_pool_size: int = Field(10, alias="LEARNSYNC_DATABASE_POOL_SIZE")
    database_max_overflow: int = Field(10, alias="LEARNSYNC_DATABASE_MAX_OVERFLOW")
    database_echo: bool = Field(False, alias="LEARNSYNC_DATABASE_ECHO")
    server_api_token: Optional[str] = Field(None, alias="LEARNSYNC_SERVER_TOKEN")

    @property
    def profiles_dir(self) -> Path:
        return self.data_dir / "profiles"

    @property
    def usage_path(self) -> Path:
        return self.data_dir / "question_usage.json"

    @property
    def resolved_question_bank_dir(self) -> Path:
        return self.question_bank_dir or self.data_dir / "questions"


@lru_cache
def get_settings() -> Settings:
    try:
        return Settings()  # type: ignore[call-arg]
    except ValidationError as exc:
        raise RuntimeError(f"Invalid learnsync configuration: {exc}") from exc
