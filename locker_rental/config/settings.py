from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


def find_env_file() -> str:
    env_file = ".env" if Path("/.dockerenv").exists() else ".env.local"

    current_path = Path.cwd()

    for path in [current_path] + list(current_path.parents):
        env_path = path / env_file
        if env_path.exists():
            return str(env_path)

    return env_file


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=find_env_file(),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Database: locker registry
    database_url: str = "sqlite+pysqlite:///./lockers.db"
    seed_registry: bool = True

    # External services (None disables the integration)
    lock_controller_base: Optional[str] = None
    psp_base: Optional[str] = None
    http_timeout_sec: float = 1.5

    # Circuit Breaker settings
    cb_lock_fail_max: int = 5  # Max failures for lock controller
    cb_lock_reset_timeout: int = 30  # Reset timeout in seconds
    cb_payment_fail_max: int = 3  # Max failures for payment operations
    cb_payment_reset_timeout: int = 60  # Reset timeout in seconds

    # Pricing
    price_per_hour: int = 20  # extensions and resync defaults
    overstay_per_block: int = 15
    overstay_block_min: int = 30
    min_duration_min: int = 30
    max_duration_min: int = 480  # all day
    duration_step_min: int = 30
    vat_rate: float = 0.25  # prices are VAT-inclusive

    # Client-side session store
    session_store_path: Path = Path.home() / ".locker_rental" / "sessions.json"
    session_retention_days: int = 7

    # Observability
    log_level: str = "INFO"
    metrics_port: Optional[int] = None
