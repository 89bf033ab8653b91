"""Application configuration using pydantic-settings."""

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


# Find .env file: check backend dir first, then project root
_BACKEND_DIR = Path(__file__).parent.parent
_PROJECT_ROOT = _BACKEND_DIR.parent
_ENV_FILE = _BACKEND_DIR / ".env" if (_BACKEND_DIR / ".env").exists() else _PROJECT_ROOT / ".env"


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    The lab interpretation core itself is configuration-free; these settings
    only shape the HTTP surface around it.
    """

    model_config = SettingsConfigDict(
        env_file=str(_ENV_FILE),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "LabRisk"

    # Comma-separated list of allowed CORS origins
    cors_origins: str = "http://localhost:3000,http://localhost:8081"

    # Upper bound on rows accepted by a single panel interpretation request
    max_panel_rows: int = 200

    # Application
    debug: bool = False


settings = Settings()
