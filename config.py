from __future__ import annotations
import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

DEFAULT_JWKS_URL = "https://www.googleapis.com/service_accounts/v1/jwk/securetoken@system.gserviceaccount.com"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    SERVICE_NAME: str = "zapp-backend"
    PORT: int = 8080
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: list[str] = ["*"]

    DATABASE_URL: str = "mongodb://localhost:27017"
    DATABASE_NAME: str = "zapp"
    ORDERS_LIMIT: int = 50
    DATABASE_TIMEOUT_MS: int = 2000

    # Identity provider
    FIREBASE_PROJECT_ID: str = ""
    GOOGLE_APPLICATION_CREDENTIALS: str = ""
    GOOGLE_CLOUD_PROJECT: str = ""
    FIREBASE_JWKS_URL: str = DEFAULT_JWKS_URL

    # Self-issued tokens
    JWT_SECRET: str = ""
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRES_DAYS: int = 7

    # name -> trusted unit price; empty means caller prices are accepted
    PRICE_CATALOG: dict[str, float] = {}

    @field_validator("LOG_LEVEL")
    @classmethod
    def known_level(cls, v: str) -> str:
        v = v.strip().upper()
        if not isinstance(logging.getLevelName(v), int):
            raise ValueError(f"unknown log level: {v}")
        return v


@lru_cache
def get_settings() -> Settings:
    return Settings()


def resolve_project_id(settings: Settings) -> Optional[str]:
    """Pick the Firebase project id once, from server configuration only.

    Order: explicit FIREBASE_PROJECT_ID, then the service-account file named by
    GOOGLE_APPLICATION_CREDENTIALS, then the ambient GOOGLE_CLOUD_PROJECT.
    """
    if settings.FIREBASE_PROJECT_ID:
        return settings.FIREBASE_PROJECT_ID

    if settings.GOOGLE_APPLICATION_CREDENTIALS:
        path = Path(settings.GOOGLE_APPLICATION_CREDENTIALS)
        try:
            data = json.loads(path.read_text())
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read service account file {path}: {e}")
        else:
            project_id = data.get("project_id") if isinstance(data, dict) else None
            if project_id:
                return str(project_id)

    return settings.GOOGLE_CLOUD_PROJECT or None
