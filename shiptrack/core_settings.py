from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional

class Settings(BaseSettings):
    SERVICE_NAME: str = "shiptrack"
    SERVICE_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # Full SQLAlchemy URL wins over the POSTGRES_* parts when set
    DATABASE_URL: Optional[str] = None
    POSTGRES_HOST: str = "postgres"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "shiptrack"
    POSTGRES_USER: str = "shiptrack"
    POSTGRES_PASSWORD: str = "shiptrack"
    SQL_ECHO: bool = False
    RUN_MIGRATIONS: bool = False

    JWT_SECRET: str = "change-me"
    JWT_ALG: str = "HS256"
    REFRESH_TOKEN_SECRET: str = "change-me-too"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 15
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7
    BCRYPT_ROUNDS: int = 10

    REDIS_URL: Optional[str] = None
    FRONTEND_URL: str = "http://localhost:5173"

    ENFORCE_STATUS_TRANSITIONS: bool = False

    class Config:
        env_file = ".env"

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

@lru_cache
def get_settings() -> Settings:
    return Settings()
