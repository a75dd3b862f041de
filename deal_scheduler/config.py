import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./deal_scheduler.db")

# Security - CRITICAL: No default secret key in production
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    import warnings

    warnings.warn(
        "SECRET_KEY not set! Using insecure default - DO NOT USE IN PRODUCTION", RuntimeWarning, stacklevel=2
    )
    SECRET_KEY = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only

JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

# Job queue (arq / Redis)
REDIS_URL = os.getenv("REDIS_URL")
DEALS_QUEUE_NAME = os.getenv("DEALS_QUEUE_NAME", "deals")

# Recurring series
DEFAULT_PAGE_SIZE = int(os.getenv("DEFAULT_PAGE_SIZE", "25"))
MAX_PAGE_SIZE = int(os.getenv("MAX_PAGE_SIZE", "100"))
DEFAULT_UPCOMING_LIMIT = int(os.getenv("DEFAULT_UPCOMING_LIMIT", "10"))
MAX_UPCOMING_LIMIT = int(os.getenv("MAX_UPCOMING_LIMIT", "100"))
DEFAULT_DUE_DATE_OFFSET = int(os.getenv("DEFAULT_DUE_DATE_OFFSET", "30"))

# Job cancellation outbox
OUTBOX_BATCH_SIZE = int(os.getenv("OUTBOX_BATCH_SIZE", "100"))
OUTBOX_MAX_ATTEMPTS = int(os.getenv("OUTBOX_MAX_ATTEMPTS", "5"))
# Kill switch - stops the cron drain without a deploy
DISABLE_OUTBOX_DRAIN = os.getenv("DISABLE_OUTBOX_DRAIN", "false").lower() == "true"
