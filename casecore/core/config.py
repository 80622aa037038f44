"""
Application configuration settings
"""

from pydantic_settings import BaseSettings
from typing import Optional

class Settings(BaseSettings):
    """Application settings"""

    # Application
    APP_NAME: str = "Case Lifecycle Core"
    DEBUG: bool = False
    TESTING: bool = False
    VERSION: str = "1.0.0"

    # Database - Individual components for managed secret compatibility
    DB_HOST: str = "localhost"
    DB_PORT: str = "5432"
    DB_USER: str = "user"
    DB_PASSWORD: str = "password"
    DB_NAME: str = "lawfirm_db"
    DATABASE_URL_OVERRIDE: Optional[str] = None

    @property
    def DATABASE_URL(self) -> str:
        """Connection URL, built from individual components unless overridden"""
        if self.DATABASE_URL_OVERRIDE:
            return self.DATABASE_URL_OVERRIDE
        return f"postgresql+asyncpg://{self.DB_USER}:{self.DB_PASSWORD}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"

    # Identifier spaces
    CLIENT_ID_MIN: int = 1000
    CLIENT_ID_MAX: int = 9999
    CASE_ID_MIN: int = 1000000
    CASE_ID_MAX: int = 9999999
    ID_ALLOCATION_MAX_ATTEMPTS: int = 50

    # Case status
    DEFAULT_CASE_STATUS: str = "pending"  # status of a case whose event log is empty
    INITIAL_CASE_STATUS: str = "under-review"

    # Event log pagination
    DEFAULT_PAGE_SIZE: int = 20
    MAX_PAGE_SIZE: int = 100

    # Maintenance
    REPROJECT_ON_STARTUP: bool = False

    # Logging
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = True

# Create settings instance
settings = Settings()
