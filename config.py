from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration settings."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore", frozen=True
    )

    HOST: str = "0.0.0.0"
    PORT: int = 10000
    NIM_API_BASE: str = "https://integrate.api.nvidia.com/v1"
    NIM_API_KEY: Optional[str] = None # Bearer credential for the NIM API; chat requests fail without it
    LOG_LEVEL: str = "INFO" # Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL, NONE)

    @property
    def api_configured(self) -> bool:
        return bool(self.NIM_API_KEY)


settings = Settings()
