"""Configuration for the medication reminder engine."""
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

# Load environment variables but prioritize local development
load_dotenv()

DEFAULT_DATABASE_URL = "sqlite:///./medreminder.db"


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got: {raw}")


@dataclass
class ReminderSettings:
    """Global engine settings (grace period and horizon apply to every medicine)."""
    database_url: str = DEFAULT_DATABASE_URL
    environment: str = "development"
    grace_minutes: int = 60
    horizon_days: int = 30
    intake_log_cap: int = 2000
    local_timezone: Optional[str] = None  # pytz zone name, None = host local time
    notifier_backend: str = "log"  # log, dapr
    dapr_pubsub_name: str = "reminder-pubsub"
    dapr_alert_topic: str = "medication-alerts"
    notifier_max_attempts: int = 2
    frontend_url: str = "http://localhost:3000"

    @classmethod
    def from_env(cls) -> "ReminderSettings":
        """Build settings from environment variables."""
        return cls(
            database_url=os.environ.get("DATABASE_URL", DEFAULT_DATABASE_URL),
            environment=os.environ.get("ENVIRONMENT", "development"),
            grace_minutes=_env_int("REMINDER_GRACE_MINUTES", 60),
            horizon_days=_env_int("REMINDER_HORIZON_DAYS", 30),
            intake_log_cap=_env_int("INTAKE_LOG_CAP", 2000),
            local_timezone=os.environ.get("LOCAL_TIMEZONE") or None,
            notifier_backend=os.environ.get("NOTIFIER_BACKEND", "log").lower(),
            dapr_pubsub_name=os.environ.get("DAPR_PUBSUB_NAME", "reminder-pubsub"),
            dapr_alert_topic=os.environ.get("DAPR_ALERT_TOPIC", "medication-alerts"),
            notifier_max_attempts=max(1, _env_int("NOTIFIER_MAX_ATTEMPTS", 2)),
            frontend_url=os.environ.get("FRONTEND_URL", "http://localhost:3000"),
        )


settings = ReminderSettings.from_env()
