import logging
import os
from pathlib import Path

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./physio.db")

# Security - CRITICAL: No default secret key in production
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    import warnings

    warnings.warn(
        "SECRET_KEY not set! Using insecure default - DO NOT USE IN PRODUCTION", RuntimeWarning, stacklevel=2
    )
    SECRET_KEY = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only

JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", str(7 * 24 * 60)))

# Signed link lifetimes (seconds)
EMAIL_VERIFICATION_MAX_AGE = int(os.getenv("EMAIL_VERIFICATION_MAX_AGE", str(24 * 3600)))
PASSWORD_RESET_MAX_AGE = int(os.getenv("PASSWORD_RESET_MAX_AGE", "600"))

# Frontend base URL for links in emails
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")

# Resend Email Configuration
RESEND_API_KEY = os.getenv("RESEND_API_KEY")
EMAIL_FROM_ADDRESS = os.getenv("EMAIL_FROM_ADDRESS", "PhysioAtYourDoor <noreply@physioatyourdoor.com>")

# Dodo Payments Configuration (refunds only - capture happens before booking)
DODO_PAYMENTS_API_KEY = os.getenv("DODO_PAYMENTS_API_KEY")
# "test_mode" or "live_mode" - default to test for safety
DODO_PAYMENTS_ENVIRONMENT = os.getenv("DODO_PAYMENTS_ENVIRONMENT", "test_mode")

DEFAULT_PLATFORM_COMMISSION = 0.20


def get_platform_commission() -> float:
    """Platform's cut of each appointment total, always within [0, 1]"""
    raw = os.getenv("PLATFORM_COMMISSION")
    if raw is None or raw.strip() == "":
        return DEFAULT_PLATFORM_COMMISSION
    try:
        rate = float(raw)
    except ValueError:
        logger.warning(f"⚠️ Invalid PLATFORM_COMMISSION '{raw}', using {DEFAULT_PLATFORM_COMMISSION}")
        return DEFAULT_PLATFORM_COMMISSION
    if not 0 <= rate <= 1:
        logger.warning(f"⚠️ PLATFORM_COMMISSION {rate} outside [0, 1], using {DEFAULT_PLATFORM_COMMISSION}")
        return DEFAULT_PLATFORM_COMMISSION
    return rate


# Background side effects: "inline" runs after the response inside the API process,
# "arq" enqueues to Redis for the worker in physio_backend.worker
TASK_QUEUE = os.getenv("TASK_QUEUE", "inline").lower()
TASK_MAX_TRIES = int(os.getenv("TASK_MAX_TRIES", "3"))
TASK_RETRY_BACKOFF = float(os.getenv("TASK_RETRY_BACKOFF", "2"))

RATE_LIMIT_ENABLED = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"

# CORS - comma-separated origins allowed to call the API
ALLOWED_ORIGINS = [
    origin.strip() for origin in os.getenv("ALLOWED_ORIGINS", FRONTEND_URL).split(",") if origin.strip()
]

IS_PRODUCTION = os.getenv("ENVIRONMENT", "development").lower() == "production"
SECURITY_HEADERS_ENABLED = os.getenv("SECURITY_HEADERS_ENABLED", "true").lower() == "true"
