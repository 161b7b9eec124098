# chesscal/config.py
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Same file for the API, the dashboard and the scripts.
DEFAULT_DATABASE_URL = "sqlite:///./data/calendar.db"

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    database_url: str = DEFAULT_DATABASE_URL
    backup_dir: Path = Path("backups")
    export_dir: Path = Path("data/exports")
    admin_token: Optional[str] = None
    exports_enabled: bool = True
    sql_echo: bool = False
    log_level: str = "INFO"
    backup_keep: int = 14

    @classmethod
    def from_env(cls) -> "Settings":
        """Read settings from the environment (and a .env file if present)."""
        load_dotenv()
        return cls(
            database_url=os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL),
            backup_dir=Path(os.getenv("BACKUP_DIR", "backups")),
            export_dir=Path(os.getenv("EXPORT_DIR", "data/exports")),
            admin_token=os.getenv("ADMIN_TOKEN") or None,
            exports_enabled=_env_flag("EXPORTS_ENABLED", "1"),
            sql_echo=_env_flag("SQL_ECHO", "0"),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            backup_keep=int(os.getenv("BACKUP_KEEP", "14")),
        )


def configure_logging(level: str = "INFO") -> None:
    # basicConfig is a no-op once the root logger has handlers (uvicorn, pytest)
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)
