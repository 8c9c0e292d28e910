import os

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv(".env")


def _default_db_url() -> str:
    env_url = os.getenv("APP_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_url:
        return env_url

    user = os.getenv("POSTGRES_USER", "postgres")
    password = os.getenv("POSTGRES_PASSWORD", "postgres")
    db_name = os.getenv("POSTGRES_DB", "pustok")
    host = os.getenv("POSTGRES_HOST", "localhost")
    port = os.getenv("POSTGRES_PORT", "5432")
    return f"postgresql+psycopg://{user}:{password}@{host}:{port}/{db_name}"


class Settings(BaseSettings):
    app_name: str = "Pustok Admin API"
    version: str = "1.0.0"
    database_url: str = Field(default_factory=_default_db_url)
    media_root: str = "media"
    slider_folder: str = "uploads/sliders"
    book_folder: str = "uploads/books"
    max_image_bytes: int = Field(default=2 * 1024 * 1024, gt=0)
    allowed_image_types: list[str] = ["image/jpeg", "image/png"]
    cors_origins: str = ""
    require_https: bool = False
    strict_security: bool = False
    otel_enabled: bool = False

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def cors_origin_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


def get_settings() -> Settings:
    settings = Settings()
    if settings.strict_security:
        insecure_markers = ("postgres:postgres@", "changeme", "change-me", "replace-me", "root@")
        if settings.database_url and any(marker in settings.database_url for marker in insecure_markers):
            raise RuntimeError("Insecure database credentials detected")
        if not settings.allowed_image_types:
            raise RuntimeError("At least one image content type must be allowed")
    return settings
