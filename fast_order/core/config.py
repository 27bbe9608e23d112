from __future__ import annotations

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from fast_order.utils.validators import normalize_environment


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    app_name: str = "fast-order"
    app_version: str = "0.1.0"

    qb_client_id: str = Field(..., alias="QB_CLIENT_ID")
    qb_client_secret: str = Field(..., alias="QB_CLIENT_SECRET")
    qb_environment: Literal["sandbox", "production"] = Field(default="sandbox", alias="QB_ENVIRONMENT")
    qb_redirect_uri: HttpUrl = Field(..., alias="QB_REDIRECT_URI")
    qb_realm_id: Optional[str] = Field(default=None, alias="QB_REALM_ID")

    port: int = Field(default=3000, alias="PORT")
    http_timeout_seconds: float = Field(default=30.0, alias="HTTP_TIMEOUT_SECONDS")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    @field_validator("qb_environment", mode="before")
    @classmethod
    def _normalize_environment(cls, value: object) -> object:
        if isinstance(value, str):
            return normalize_environment(value)
        return value

    @field_validator("qb_realm_id", mode="before")
    @classmethod
    def _blank_realm_is_unset(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
