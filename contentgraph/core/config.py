from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    PROJECT_NAME: str = "ContentGraph"
    API_V1_STR: str = "/api/v1"
    DATABASE_URL: str = "sqlite:///./contentgraph.db"

    # Connection pool (ignored for SQLite)
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10
    DB_POOL_RECYCLE: int = 3600  # Recycle connections after 1 hour
    DB_POOL_TIMEOUT: int = 60

    # Server configuration
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    CORS_ORIGINS: str = "http://localhost:8080,http://localhost:5173"
    LOG_LEVEL: str = "INFO"

    # Denormalization of relation values into mirror fields
    ENABLE_DENORM: bool = True
    DENORM_MAX_ATTEMPTS: int = 2

    # Content rules
    UPLOAD_URL_PREFIX: str = "/uploads/"
    SLUG_MAX_LENGTH: int = 190
    MAX_RELATION_DEPTH: int = 5
    SEO_TITLE_MAX_LENGTH: int = 60
    META_DESCRIPTION_MAX_LENGTH: int = 160

    SQL_ECHO: Optional[bool] = False

    class Config:
        env_file = ".env"
        env_file_encoding = 'utf-8'

settings = Settings()
