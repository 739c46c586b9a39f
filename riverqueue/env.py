import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .errors import ConfigurationError

DATABASE_URL_DEFAULT = "sqlite:///data/river.db"
LOG_LEVEL_DEFAULT = "INFO"


def load_env() -> None:
    """Load .env from the working directory if present.
    Variables already set in the environment win.
    """
    env_path = Path.cwd() / ".env"
    if not env_path.exists():
        return
    load_dotenv(dotenv_path=env_path)


def _env_int(name: str) -> Optional[int]:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} should be an integer, got {raw!r}") from None


@dataclass
class Settings:
    database_url: str = DATABASE_URL_DEFAULT
    advisory_lock_prefix: Optional[int] = None
    log_level: str = LOG_LEVEL_DEFAULT
    log_dir: Optional[Path] = None

    @classmethod
    def from_env(cls) -> "Settings":
        log_dir = os.environ.get("RIVER_LOG_DIR", "").strip()

        return cls(
            database_url=os.environ.get("RIVER_DATABASE_URL", "").strip() or DATABASE_URL_DEFAULT,
            advisory_lock_prefix=_env_int("RIVER_ADVISORY_LOCK_PREFIX"),
            log_level=os.environ.get("RIVER_LOG_LEVEL", "").strip() or LOG_LEVEL_DEFAULT,
            log_dir=Path(log_dir) if log_dir else None,
        )
