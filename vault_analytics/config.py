from pathlib import Path
from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

# Load .env from repo root for local development and scripts.
ENV_PATH = Path(__file__).resolve().parents[1] / ".env"
load_dotenv(dotenv_path=ENV_PATH)

class Settings(BaseSettings):
    model_config = SettingsConfigDict(case_sensitive=True)
    vault_decimals: int = Field(default=18, alias="VAULT_DECIMALS")
    default_time_range: str = Field(default="30D", alias="DEFAULT_TIME_RANGE")
    chart_max_points: int = Field(default=400, alias="CHART_MAX_POINTS")
    rolling_window: int = Field(default=7, alias="ROLLING_WINDOW")
    stats_lookback: int = Field(default=30, alias="STATS_LOOKBACK")
    cache_enabled: int = Field(default=1, alias="CACHE_ENABLED")
    cache_dir: str = Field(default="./.cache", alias="CACHE_DIR")
    cache_db_path: str = Field(default="./data/cache.sqlite3", alias="CACHE_DB_PATH")
    # one year: stale data is preferred over no data
    cache_ttl_seconds: int = Field(default=31_536_000, alias="CACHE_TTL_SECONDS")
    cache_stale_hours: int = Field(default=24, alias="CACHE_STALE_HOURS")
    allocations_namespace: str = Field(default="octav:allocations", alias="ALLOCATIONS_NAMESPACE")

settings = Settings()
