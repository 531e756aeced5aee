# Configuration
#
# Process settings read from the environment (and an optional .env file).
# Loaded once per process through get_settings(); tests reset the cached
# instance with reset_settings().

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

DEFAULT_FREEBOX_HOST = "mafreebox.freebox.fr"
DEFAULT_APP_ID = "fr.freebox.dashboard"

_DEFAULT_CORS_ORIGINS = [
    "http://localhost:5173", "http://127.0.0.1:5173",
    "http://localhost:8000", "http://127.0.0.1:8000",
]


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str, default: List[str]) -> List[str]:
    raw = os.environ.get(name, "")
    items = [item.strip() for item in raw.split(",") if item.strip()]
    return items or list(default)


@dataclass
class Settings:
    """Runtime settings for the dashboard backend."""

    freebox_host: str = DEFAULT_FREEBOX_HOST
    freebox_app_id: str = DEFAULT_APP_ID
    freebox_app_token: Optional[str] = None
    freebox_use_https: bool = False
    freebox_timeout: float = 10.0

    host: str = "127.0.0.1"
    port: int = 8000
    log_level: str = "INFO"
    log_dir: Path = Path("./logs")
    cors_origins: List[str] = field(default_factory=lambda: list(_DEFAULT_CORS_ORIGINS))

    @property
    def freebox_base_url(self) -> str:
        scheme = "https" if self.freebox_use_https else "http"
        return f"{scheme}://{self.freebox_host}"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables.

        A ``.env`` file in the working directory is loaded first; variables
        already present in the environment take precedence over it.
        """
        load_dotenv(override=False)
        return cls(
            freebox_host=os.environ.get("FREEBOX_HOST", DEFAULT_FREEBOX_HOST),
            freebox_app_id=os.environ.get("FREEBOX_APP_ID", DEFAULT_APP_ID),
            freebox_app_token=os.environ.get("FREEBOX_APP_TOKEN") or None,
            freebox_use_https=_env_bool("FREEBOX_USE_HTTPS", False),
            freebox_timeout=float(os.environ.get("FREEBOX_TIMEOUT", "10")),
            host=os.environ.get("DASHBOARD_HOST", "127.0.0.1"),
            port=int(os.environ.get("DASHBOARD_PORT", "8000")),
            log_level=os.environ.get("DASHBOARD_LOG_LEVEL", "INFO").upper(),
            log_dir=Path(os.environ.get("DASHBOARD_LOG_DIR", "./logs")),
            cors_origins=_env_list("DASHBOARD_CORS_ORIGINS", _DEFAULT_CORS_ORIGINS),
        )


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get process settings (singleton pattern)."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def reset_settings() -> None:
    global _settings
    _settings = None
