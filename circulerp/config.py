from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    APP_NAME: str = "CirculERP"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    PORT: int = 3001

    DATABASE_URL: str = "sqlite+aiosqlite:///./data/erp.db"
    DB_POOL_SIZE: int = 5
    DB_MAX_OVERFLOW: int = 5
    DB_POOL_RECYCLE: int = 300

    UPLOADS_PATH: str = "./uploads"
    MAX_UPLOAD_SIZE: int = 10 * 1024 * 1024
    MAX_TEMPLATE_SIZE: int = 30 * 1024 * 1024

    JWT_SECRET: str = "circulerp-dev-secret-change-me"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24

    DEFAULT_ADMIN_USERNAME: str = "admin"
    DEFAULT_ADMIN_PASSWORD: str = "admin123"

    ANTHROPIC_API_KEY: Optional[str] = None
    ANTHROPIC_API_URL: str = "https://api.anthropic.com/v1/messages"
    ORDER_SCAN_MODEL: str = "claude-sonnet-4-5-20250929"
    ORDER_SCAN_MAX_TOKENS: int = 1500
    ORDER_SCAN_TIMEOUT_SECONDS: float = 60.0

    FX_API_URL: str = "https://api.frankfurter.app"

    BREVO_API_KEY: Optional[str] = None
    EMAIL_FROM_ADDRESS: str = "noreply@circulerp.example.com"
    APP_URL: str = ""
    CORS_ORIGINS: str = "http://localhost:5173"
    CORS_ORIGIN_REGEX: Optional[str] = None

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",")]

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def is_sqlite(self) -> bool:
        return self.DATABASE_URL.startswith("sqlite")

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
