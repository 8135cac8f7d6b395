"""Application configuration using Pydantic settings."""

from datetime import datetime
from pathlib import Path
from functools import lru_cache
from zoneinfo import ZoneInfo

from pydantic_settings import BaseSettings, SettingsConfigDict

JST = ZoneInfo("Asia/Tokyo")


def jst_now() -> datetime:
    """Current time in Japan."""
    return datetime.now(JST)


def jst_now_naive() -> datetime:
    """Current time in Japan as naive datetime (for SQLAlchemy defaults).

    SQLite doesn't handle timezone-aware datetimes well, so we store
    Japan local time as naive datetime.
    """
    return jst_now().replace(tzinfo=None)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="MIZUHANOME_",
        extra="ignore",
    )

    # Database
    db_path: Path = Path("./data/mizuhanome.db")

    # App
    debug: bool = False
    log_level: str = "INFO"
    disable_background: bool = False

    # Data provider
    base_url: str = ""
    email: str = ""
    access_key: str = ""
    provider_timeout: float = 30.0

    # Background loops
    settlement_poll_seconds: float = 10.0
    settlement_cutoff_hour: int = 23  # force unresolved wagers to a loss after this hour
    session_refresh_minutes: int = 50
    daily_start_hour: int = 8
    daily_start_minute: int = 15

    # Staking policy (simple recovery)
    cocomo_base_stake: int = 200
    cocomo_max_count: int = 14
    win_threshold: float = 2.6

    # Staking policy (target-profit multi-candidate)
    top_n_base_stake: int = 200
    top_n_want_rate: float = 1.5
    top_n_rate_limit_count: int = 12
    top_n_max_count: int = 16

    # Staking policy (partitioned recovery)
    store2t_base_stake: int = 100
    store2t_ceiling: int = 20000

    # Staking policy (progressive doubling)
    winners_base_stake: int = 100

    @property
    def database_url(self) -> str:
        """SQLite database URL for SQLAlchemy."""
        return f"sqlite+aiosqlite:///{self.db_path}"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Export for convenience
settings = get_settings()
