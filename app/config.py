"""
NotaryPro Certify - Configuration Settings

This module handles all application configuration using Pydantic Settings.
Environment variables are loaded from .env file.
"""

from functools import lru_cache
from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # ===========================================
    # APPLICATION CONFIGURATION
    # ===========================================
    app_name: str = "NotaryPro Certify"
    app_env: str = "development"
    debug: bool = False
    log_level: str = "INFO"
    api_version: str = "v1"
    base_url: str = "https://vecinoxpress.cl"  # Public validation links

    # ===========================================
    # DATABASE CONFIGURATION
    # ===========================================
    database_url_async: str = "sqlite+aiosqlite:///./notarypro.db"
    database_pool_size: int = 5
    database_max_overflow: int = 10

    # ===========================================
    # DOCUMENT NUMBERING
    # ===========================================
    document_number_prefix: str = "DOC"
    seed_document_types: bool = True

    # ===========================================
    # SIGNATURE TOKEN (FEA)
    # "software" uses an in-process token, "pkcs11" a hardware eToken
    # ===========================================
    signer_backend: str = "software"
    pin_min_length: int = 4
    pin_max_length: int = 16

    # PKCS#11 module, e.g. /usr/lib/libeTPkcs11.so (SafeNet eToken 5110)
    pkcs11_library_path: Optional[str] = None
    pkcs11_token_label: Optional[str] = None

    # Software token (development / tests only)
    software_token_pin: str = "123456"
    software_token_connected: bool = True

    # ===========================================
    # CORS SETTINGS
    # ===========================================
    cors_origins: str = "http://localhost:3000,http://localhost:5000,http://127.0.0.1:5000"

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins string into list."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def is_sqlite(self) -> bool:
        """Check if the configured database is SQLite."""
        return self.database_url_async.startswith("sqlite")

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app_env.lower() == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env.lower() == "development"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to avoid reading .env file on every call.
    """
    return Settings()


# Export settings instance
settings = get_settings()
