"""
Runtime configuration for the RFID attendance service.
All values come from environment variables with demo-friendly defaults.
"""
import os
from dataclasses import dataclass
from typing import Optional

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./rfid_attendance.db")
DB_TIMEOUT_SECONDS = float(os.getenv("DB_TIMEOUT_SECONDS", "10"))

# Shared secret presented by the card readers
RFID_API_KEY = os.getenv("RFID_API_KEY", "your-hardware-api-key")

SESSION_STRATEGY = os.getenv("SESSION_STRATEGY", "explicit_or_active")
DEVICE_SESSION_CODE = os.getenv("DEVICE_SESSION_CODE") or None
REQUIRE_SESSION = os.getenv("REQUIRE_SESSION", "true").lower() in ("1", "true", "yes")
DEBOUNCE_WINDOW_MINUTES = int(os.getenv("DEBOUNCE_WINDOW_MINUTES", "5"))

REMINDER_LEAD_MINUTES = int(os.getenv("REMINDER_LEAD_MINUTES", "30"))

LOG_FILE = os.getenv("LOG_FILE", "request_performance.log")
LOG_MAX_SIZE = int(os.getenv("LOG_MAX_SIZE", str(20 * 1024 * 1024)))  # 20 MB
LOG_BACKUP_COUNT = int(os.getenv("LOG_BACKUP_COUNT", "5"))


@dataclass(frozen=True)
class ScanPolicy:
    """Settings that decide how a scan is authenticated, attributed and deduplicated."""
    api_key: str = RFID_API_KEY
    session_strategy: str = SESSION_STRATEGY
    device_session_code: Optional[str] = DEVICE_SESSION_CODE
    require_session: bool = REQUIRE_SESSION
    debounce_minutes: int = DEBOUNCE_WINDOW_MINUTES

    @classmethod
    def from_env(cls) -> "ScanPolicy":
        return cls(
            api_key=os.getenv("RFID_API_KEY", RFID_API_KEY),
            session_strategy=os.getenv("SESSION_STRATEGY", SESSION_STRATEGY),
            device_session_code=os.getenv("DEVICE_SESSION_CODE") or DEVICE_SESSION_CODE,
            require_session=os.getenv("REQUIRE_SESSION", str(REQUIRE_SESSION)).lower() in ("1", "true", "yes"),
            debounce_minutes=int(os.getenv("DEBOUNCE_WINDOW_MINUTES", str(DEBOUNCE_WINDOW_MINUTES))),
        )
