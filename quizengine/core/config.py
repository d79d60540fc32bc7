from typing import List
from pydantic import field_validator, ConfigDict
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    ENVIRONMENT: str = "development"
    DEBUG: bool = False

    # Security
    SECRET_KEY: str
    ACCESS_TOKEN_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    AUTHOR_ROLES: str = "admin,teacher"
    CORS_ORIGINS: str = "*"

    # Database
    DATABASE_URL: str
    DATABASE_POOL_SIZE: int = 5
    DATABASE_MAX_OVERFLOW: int = 10

    # Listings
    DEFAULT_PAGE_SIZE: int = 10
    MAX_PAGE_SIZE: int = 100

    # Monitoring
    SLOW_OPERATION_MS: float = 1000.0

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    model_config = ConfigDict(
        env_file=".env",
        extra="ignore"
    )

    @field_validator("MAX_PAGE_SIZE", "DEFAULT_PAGE_SIZE")
    @classmethod
    def check_page_size(cls, v: int) -> int:
        if v < 1:
            raise ValueError("page sizes must be positive")
        return v

    @property
    def cors_origins(self) -> List[str]:
        return [i.strip() for i in self.CORS_ORIGINS.split(",") if i.strip()]

    @property
    def author_roles(self) -> List[str]:
        return [i.strip().lower() for i in self.AUTHOR_ROLES.split(",") if i.strip()]


# Global settings instance
settings = Settings()
