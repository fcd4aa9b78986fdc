import os
import logging
from dataclasses import dataclass, field
from typing import List, Optional
from dotenv import load_dotenv

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./dashboard.db"


@dataclass
class Settings:
    database_url: str = DEFAULT_DATABASE_URL
    jwt_secret: str = "your-secret-key"
    jwt_expires_hours: int = 24
    fernet_key: Optional[str] = None
    plaid_client_id: Optional[str] = None
    plaid_secret: Optional[str] = None
    plaid_env: str = "sandbox"
    plaid_client_name: str = "Spending Dashboard"
    plaid_country_codes: List[str] = field(default_factory=lambda: ["US"])
    default_lookback_days: int = 30
    sync_fetch_mode: str = "window"
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None, override: bool = False) -> "Settings":
        """
        Build settings from the process environment and .env if present.
        Variables already set in the process win over .env unless `override`.
        """
        load_dotenv(dotenv_path, override=override)

        def split(value: str) -> List[str]:
            return [v.strip() for v in value.split(",") if v.strip()]

        return cls(
            database_url=os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL),
            jwt_secret=os.getenv("JWT_SECRET", "your-secret-key"),
            jwt_expires_hours=int(os.getenv("JWT_EXPIRES_HOURS", "24")),
            fernet_key=os.getenv("FERNET_KEY"),
            plaid_client_id=os.getenv("PLAID_CLIENT_ID"),
            plaid_secret=os.getenv("PLAID_SECRET"),
            plaid_env=os.getenv("PLAID_ENV", "sandbox"),
            plaid_client_name=os.getenv("PLAID_CLIENT_NAME", "Spending Dashboard"),
            plaid_country_codes=split(os.getenv("PLAID_COUNTRY_CODES", "US")),
            default_lookback_days=int(os.getenv("DEFAULT_LOOKBACK_DAYS", "30")),
            sync_fetch_mode=os.getenv("SYNC_FETCH_MODE", "window"),
            cors_origins=split(os.getenv("CORS_ORIGINS", "*")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )


def configure_logging(level: str = "INFO"):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
