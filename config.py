import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        default_currency: str,
        token_secret: str,
        token_max_age_days: int,
        default_page_size: int,
        max_page_size: int,
        pool_size: int,
        log_level: str,
    ) -> None:
        self.database_url = database_url
        self.default_currency = default_currency
        self.token_secret = token_secret
        self.token_max_age_days = token_max_age_days
        self.default_page_size = default_page_size
        self.max_page_size = max_page_size
        self.pool_size = pool_size
        self.log_level = log_level


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("EXPENSES_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    database_url = os.getenv("EXPENSES_DATABASE_URL")
    if not database_url:
        default_db = _ensure_data_dir() / "ledger.db"
        database_url = f"sqlite:///{default_db}"
    default_currency = os.getenv("EXPENSES_DEFAULT_CURRENCY", "PKR").strip().upper()
    token_secret = os.getenv(
        "EXPENSES_TOKEN_SECRET",
        "5d0c6e1f8f3a4c2b9e7d1a6b3c8f0e2d4a7b9c1e3f5a7b9d2c4e6f8a0b2d4c6e",
    )
    token_max_age_days = int(os.getenv("EXPENSES_TOKEN_MAX_AGE_DAYS", "30"))
    default_page_size = int(os.getenv("EXPENSES_DEFAULT_PAGE_SIZE", "20"))
    max_page_size = int(os.getenv("EXPENSES_MAX_PAGE_SIZE", "100"))
    pool_size = int(os.getenv("EXPENSES_POOL_SIZE", "5"))
    log_level = os.getenv("EXPENSES_LOG_LEVEL", "INFO").upper()
    return Settings(
        database_url=database_url,
        default_currency=default_currency,
        token_secret=token_secret,
        token_max_age_days=token_max_age_days,
        default_page_size=default_page_size,
        max_page_size=max_page_size,
        pool_size=pool_size,
        log_level=log_level,
    )
