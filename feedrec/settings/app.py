"""Application settings powered by Pydantic BaseSettings."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    """Centralized environment configuration."""

    model_config = SettingsConfigDict(
        env_prefix="", case_sensitive=False, env_file=".env", env_file_encoding="utf-8"
    )

    db_path: Path = Field(
        default=Path("state/feedrec.sqlite"), validation_alias="FEEDREC_DB_PATH"
    )
    config_path: Path | None = Field(
        default=None, validation_alias="FEEDREC_CONFIG_PATH"
    )
    similarity_service_url: str | None = Field(
        default=None, validation_alias="SIMILARITY_SERVICE_URL"
    )
    similarity_api_key: str | None = Field(
        default=None, validation_alias="SIMILARITY_API_KEY"
    )
    similarity_timeout_seconds: float = Field(
        default=5.0, gt=0.0, validation_alias="SIMILARITY_TIMEOUT_SECONDS"
    )

    @property
    def similarity_enabled(self) -> bool:
        """Whether a similarity backend has been configured."""
        return bool(self.similarity_service_url)


def get_settings() -> AppSettings:
    """Get a settings instance."""
    return AppSettings()
