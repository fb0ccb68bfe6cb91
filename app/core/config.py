"""
Keyhost Flights - Configuration Management
Centralized settings using Pydantic Settings
"""

from functools import lru_cache
from typing import List, Optional, Union

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

    # === Application Settings ===
    APP_NAME: str = "Keyhost Flights"
    APP_VERSION: str = "1.0.0"
    APP_DESCRIPTION: str = "Flight offer aggregation for the Keyhost marketplace"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"  # development, staging, production

    # === API Settings ===
    API_V1_PREFIX: str = "/api/v1"

    # === CORS Settings ===
    BACKEND_CORS_ORIGINS: List[str] = ["*"]

    @field_validator("BACKEND_CORS_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v: Union[str, List[str]]) -> Union[List[str], str]:
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip() for i in v.split(",")]
        elif isinstance(v, (list, str)):
            return v
        raise ValueError(v)

    # === Flight Search Hub ===
    # Session initiation and per-provider result endpoints live on the hub
    FLIGHT_HUB_BASE_URL: str = "http://127.0.0.1:8000/api"
    FLIGHT_HUB_API_KEY: Optional[str] = None
    SESSION_TIMEOUT_SECONDS: float = 20.0
    PROVIDER_TIMEOUT_SECONDS: float = 30.0
    ENABLED_FLIGHT_PROVIDERS: List[str] = ["amadeus", "sabre"]
    AMADEUS_MAX_PAGES: int = 5

    @field_validator("ENABLED_FLIGHT_PROVIDERS", mode="before")
    @classmethod
    def assemble_providers(cls, v: Union[str, List[str]]) -> Union[List[str], str]:
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip().lower() for i in v.split(",") if i.strip()]
        elif isinstance(v, (list, str)):
            return v
        raise ValueError(v)

    # === Search Defaults ===
    DEFAULT_CURRENCY: str = "BDT"
    DEFAULT_FARE_TYPE: str = "regular"
    MAX_PASSENGERS: int = 9
    SEARCH_SESSION_TTL_SECONDS: int = 1800  # 30 minutes per results page

    # === Logging ===
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"  # json, text

    # === Documentation ===
    SHOW_DOCS: bool = True

    @property
    def CORS_ORIGINS(self) -> List[str]:
        """Alias for BACKEND_CORS_ORIGINS"""
        return self.BACKEND_CORS_ORIGINS

    @property
    def APP_ENV(self) -> str:
        """Alias for ENVIRONMENT"""
        return self.ENVIRONMENT

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT == "development"

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


# Global settings instance
settings = get_settings()
