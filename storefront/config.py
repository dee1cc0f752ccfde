"""Runtime configuration for the app, read from the environment."""
import os
from typing import List

from pydantic import BaseModel, Field


def _split_csv(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseModel):
    database_url: str = Field(default_factory=lambda: os.getenv("DATABASE_URL", "sqlite:///./storefront.db"))
    # pool bounds are tunables; deployments have run anywhere from 10 to 200
    pool_size: int = Field(default_factory=lambda: int(os.getenv("DB_POOL_SIZE", "10")))
    max_overflow: int = Field(default_factory=lambda: int(os.getenv("DB_MAX_OVERFLOW", "10")))
    pool_timeout: int = Field(default_factory=lambda: int(os.getenv("DB_POOL_TIMEOUT", "30")))

    jwt_secret: str = Field(default_factory=lambda: os.getenv("JWT_SECRET", "dev-secret"))
    jwt_exp_seconds: int = Field(default_factory=lambda: int(os.getenv("JWT_EXP_SECONDS", str(60 * 60 * 24))))

    cors_origins: List[str] = Field(
        default_factory=lambda: _split_csv(os.getenv("CORS_ORIGINS", "http://localhost:3000"))
    )
    max_product_images: int = Field(default_factory=lambda: int(os.getenv("MAX_PRODUCT_IMAGES", "3")))
    log_level: str = Field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))


def get_settings() -> Settings:
    return Settings()
