from functools import lru_cache
from typing import List

from pydantic import AnyHttpUrl, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Invoicer configuration, read from ``INVOICER_*`` environment variables."""

    app_name: str = Field(default="Invoicer")
    log_level: str = Field(default="INFO")
    cors_origins: List[AnyHttpUrl] = Field(
        default_factory=lambda: [
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:8080",
        ]
    )
    # every collaborator falls back to the in-memory store when this is set
    use_mock_data: bool = Field(default=True)

    # hosted database (REST interface)
    backend_base_url: AnyHttpUrl | None = Field(default=None)
    backend_api_key: str | None = Field(default=None)
    backend_timeout: float = Field(default=10.0)

    # document extraction
    google_api_key: str | None = Field(default=None)
    extraction_model: str = Field(default="gemini-1.5-flash")
    max_upload_bytes: int = Field(default=10 * 1024 * 1024)

    # delivery and CRM
    resend_api_key: str | None = Field(default=None)
    email_sender: str = Field(default="Invoice Team <onboarding@resend.dev>")
    hubspot_access_token: str | None = Field(default=None)

    # editor defaults
    default_tax_rate_percent: float = Field(default=10.0)

    model_config = SettingsConfigDict(env_prefix="INVOICER_", case_sensitive=False)

    @field_validator("cors_origins", mode="before")
    def _split_origins(cls, value):
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value


SECRET_FIELDS = {
    "backend_api_key",
    "google_api_key",
    "resend_api_key",
    "hubspot_access_token",
}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
