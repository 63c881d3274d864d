import json
from pathlib import Path
from typing import Annotated

from dotenv import load_dotenv
from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

_project_root = Path(__file__).resolve().parents[1]
load_dotenv(_project_root / ".env", override=False)

_PLACEHOLDER_GOOGLE_VALUES = {"", "placeholder_client_id", "placeholder_client_secret"}


class Settings(BaseSettings):
    ENVIRONMENT: str = "development"
    API_VERSION: str = "v1"
    LOG_LEVEL: str = "INFO"

    DATABASE_URL: str
    DB_POOL_SIZE: int = 20
    DB_POOL_MAX_OVERFLOW: int = 20
    DB_POOL_TIMEOUT: int = 30

    JWT_SECRET_KEY: str
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 7
    BCRYPT_ROUNDS: int = 12

    # Google OAuth is mandatory: the service refuses to start without real credentials.
    GOOGLE_CLIENT_ID: str
    GOOGLE_CLIENT_SECRET: str
    GOOGLE_REDIRECT_URI: str = "http://localhost:5000/api/auth/google/callback"
    GOOGLE_REQUEST_TIMEOUT_SECONDS: float = 10.0

    FRONTEND_URL: str = "http://localhost:5173"
    BACKEND_CORS_ORIGINS: Annotated[list[str], NoDecode] = ["http://localhost:5173"]

    CAMPAIGN_SEND_DELAY_SECONDS: float = 2.0
    SCHEDULER_POLL_SECONDS: float = 60.0
    DEBUG_ENDPOINTS_ENABLED: bool = True

    @field_validator("BACKEND_CORS_ORIGINS", mode="before")
    @classmethod
    def split_origins(cls, value: str | list[str]) -> list[str]:
        if isinstance(value, str) and value.strip().startswith("["):
            return json.loads(value)
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value

    @field_validator("GOOGLE_CLIENT_ID", "GOOGLE_CLIENT_SECRET")
    @classmethod
    def require_google_credentials(cls, value: str) -> str:
        if value.strip() in _PLACEHOLDER_GOOGLE_VALUES:
            raise ValueError(
                "Google OAuth 2.0 is not configured; set GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET "
                "(https://console.developers.google.com/)"
            )
        return value.strip()

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def is_sqlite(self) -> bool:
        return self.DATABASE_URL.startswith("sqlite")

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()
