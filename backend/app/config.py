# backend/app/config.py

from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parents[2]  # repository root


class Settings(BaseSettings):
    database_url: str = "sqlite:///./data/availability.db"
    redis_url: str | None = None

    # Availability engine
    availability_cache_backend: str = "memory"  # memory / redis
    availability_cache_max_size: int = 1000
    availability_cache_default_ttl: int = 300
    availability_cache_sweep_interval: int = 60
    availability_timezone: str = "UTC"
    availability_start_hour: int = 9
    availability_end_hour: int = 18

    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        extra="ignore",
    )

    @property
    def resolved_database_url(self) -> str:
        url = self.database_url
        if url.startswith("sqlite:///./"):
            # Relative sqlite path -> absolute, anchored at repository root
            relative_path = url.replace("sqlite:///./", "")
            absolute_path = BASE_DIR / relative_path
            return f"sqlite:///{absolute_path}"
        return url


settings = Settings()
