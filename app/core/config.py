import os
import logging
from pydantic import BaseModel, Field
from typing import List, Optional
from dotenv import load_dotenv

load_dotenv()

class PenaltySettings(BaseModel):
    # Fallbacks used when the settings table has no value for the key
    default_clock_in_threshold: str = Field(default=os.getenv("DEFAULT_CLOCK_IN_THRESHOLD", ""))
    max_late_days_per_month: int = Field(default=int(os.getenv("MAX_LATE_DAYS_PER_MONTH", "0")))
    penalty_category_name: str = Field(default=os.getenv("PENALTY_CATEGORY_NAME", "Casual Leave"))
    deduction_days: float = 0.5

class Config(BaseModel):
    app_name: str = "HR Leave Ledger"
    environment: str = os.getenv("APP_ENV", "development")
    api_prefix: str = "/api"

    # Database
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./database.db")
    db_timeout_seconds: int = int(os.getenv("DB_TIMEOUT_SECONDS", "15"))

    # Auth
    secret_key: str = os.getenv("SECRET_KEY", "dev-only-insecure-key-DO-NOT-USE-IN-PROD")
    access_token_expire_minutes: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(60 * 24)))  # 24 hours

    # Attendance & penalties
    penalty: PenaltySettings = PenaltySettings()
    # Wall-clock zone used to interpret timezone-aware clock-in timestamps
    local_timezone: str = os.getenv("LOCAL_TIMEZONE", "UTC")
    emp_id_refresh_seconds: int = int(os.getenv("EMP_ID_REFRESH_SECONDS", "300"))

    # First admin created at startup when the users table is empty
    bootstrap_admin_email: Optional[str] = os.getenv("BOOTSTRAP_ADMIN_EMAIL")
    bootstrap_admin_password: Optional[str] = os.getenv("BOOTSTRAP_ADMIN_PASSWORD")

    # Notifications
    smtp_host: Optional[str] = os.getenv("SMTP_HOST")
    smtp_port: int = int(os.getenv("SMTP_PORT", "25"))
    smtp_sender: str = os.getenv("SMTP_SENDER", "no-reply@hr.local")

    version: str = "1.0.0"
    request_id_header: str = "X-Request-ID"

    # CORS: comma-separated origins loaded from env.
    cors_origins: List[str] = Field(
        default_factory=lambda: [
            o.strip()
            for o in os.getenv(
                "CORS_ORIGINS",
                "http://localhost:3000,http://127.0.0.1:3000",
            ).split(",")
            if o.strip()
        ]
    )

    rate_limit_enabled: bool = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"
    rate_limit_per_minute: int = int(os.getenv("RATE_LIMIT_PER_MINUTE", "60"))

settings = Config()

# --- Startup Validation for Production ---
_logger = logging.getLogger(__name__)
if settings.environment not in ("development", "testing"):
    if "dev-only" in settings.secret_key:
        raise RuntimeError(
            "FATAL: SECRET_KEY must be set for non-development environments. "
            "Set it as an environment variable."
        )
else:
    if "dev-only" in settings.secret_key:
        _logger.warning("Using insecure default SECRET_KEY; only acceptable in development.")
