from pydantic_settings import BaseSettings
from typing import List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
import json

from safety_net.core.errors import ConfigurationError


class Settings(BaseSettings):
    # Storage collaborator: "rest" (hosted backend-as-a-service) or "sql"
    STORAGE_BACKEND: str = "rest"
    STORAGE_URL: Optional[str] = None
    STORAGE_SERVICE_KEY: Optional[str] = None
    DATABASE_URL: Optional[str] = None

    # Mail transport (Resend)
    RESEND_API_KEY: Optional[str] = None
    RESEND_API_URL: str = "https://api.resend.com/emails"
    MAIL_FROM: str = "onboarding@resend.dev"

    # Missed-dose window, in minutes before "now"
    ALERT_TIMEZONE: str = "UTC"
    LOOKBACK_LOW_MINUTES: int = 90
    LOOKBACK_HIGH_MINUTES: int = 60

    REQUEST_TIMEOUT_SECONDS: float = 10.0
    ALERT_CLAIMS_ENABLED: bool = False
    ALERT_AUDIT_LOG: Optional[str] = None

    # Shared secret expected from the external scheduler
    CRON_SECRET: Optional[str] = None

    # Comma separated or JSON list
    ALLOWED_ORIGINS: str = ""

    class Config:
        env_file = ".env"
        extra = "ignore"

    @property
    def allowed_origins(self) -> List[str]:
        raw = (self.ALLOWED_ORIGINS or "").strip()
        if not raw:
            return []
        try:
            parsed = json.loads(raw)
            if isinstance(parsed, list):
                return [str(o) for o in parsed]
        except ValueError:
            pass
        return [s.strip() for s in raw.split(',') if s.strip()]


def missing_settings(cfg: Settings) -> List[str]:
    """Return the names of required settings that are absent or unusable."""
    missing: List[str] = []
    backend = (cfg.STORAGE_BACKEND or "").lower()
    if backend == "rest":
        if not cfg.STORAGE_URL:
            missing.append("STORAGE_URL")
        if not cfg.STORAGE_SERVICE_KEY:
            missing.append("STORAGE_SERVICE_KEY")
    elif backend == "sql":
        if not cfg.DATABASE_URL:
            missing.append("DATABASE_URL")
    else:
        missing.append(f"STORAGE_BACKEND (unsupported value {cfg.STORAGE_BACKEND!r})")
    if not cfg.RESEND_API_KEY:
        missing.append("RESEND_API_KEY")
    try:
        ZoneInfo(cfg.ALERT_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError):
        missing.append(f"ALERT_TIMEZONE (unknown zone {cfg.ALERT_TIMEZONE!r})")
    if not (cfg.LOOKBACK_LOW_MINUTES > cfg.LOOKBACK_HIGH_MINUTES >= 0):
        missing.append("LOOKBACK_LOW_MINUTES/LOOKBACK_HIGH_MINUTES (need low > high >= 0)")
    elif cfg.LOOKBACK_LOW_MINUTES - cfg.LOOKBACK_HIGH_MINUTES > 24 * 60:
        missing.append("LOOKBACK_LOW_MINUTES/LOOKBACK_HIGH_MINUTES (window wider than a day)")
    return missing


def validate_settings(cfg: Settings) -> Settings:
    """Raise ConfigurationError naming every missing item; return cfg otherwise."""
    missing = missing_settings(cfg)
    if missing:
        raise ConfigurationError(missing)
    return cfg


settings = Settings()


def get_settings() -> Settings:
    return settings
