from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

# 300s is the canonical default; a 600s TTL is also acceptable via env.
DEFAULT_HOLD_TTL_SECONDS = 300


class Settings(BaseSettings):
    database_url: str = "sqlite:///./roombook.db"
    hold_ttl_seconds: int = DEFAULT_HOLD_TTL_SECONDS
    hold_sweep_interval_seconds: int = 60
    password_min_length: int = 8
    log_level: str = "INFO"
    seed_demo_data: bool = True
    skip_db_init: bool = False

    model_config = SettingsConfigDict(
        env_prefix="ROOMBOOK_",
        env_file=".env",
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
