import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./booking.db")

# Security - CRITICAL: No default secret key in production
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    import warnings

    warnings.warn(
        "SECRET_KEY not set! Using insecure default - DO NOT USE IN PRODUCTION", RuntimeWarning, stacklevel=2
    )
    SECRET_KEY = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only

# Fernet key for provider OAuth tokens (generate with: python -c "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())")
# Falls back to a key derived from SECRET_KEY when unset
PROVIDER_TOKEN_ENCRYPTION_KEY = os.getenv("PROVIDER_TOKEN_ENCRYPTION_KEY")

# Frontend base URL (CORS + public form links)
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")
ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv("ALLOWED_ORIGINS", FRONTEND_URL).split(",")
    if origin.strip()
]

# SimPro OAuth Configuration
SIMPRO_CLIENT_ID = os.getenv("SIMPRO_CLIENT_ID")
SIMPRO_CLIENT_SECRET = os.getenv("SIMPRO_CLIENT_SECRET")
SIMPRO_DEFAULT_DOMAIN = os.getenv("SIMPRO_DEFAULT_DOMAIN", "simprosuite.com")
SIMPRO_REQUEST_TIMEOUT = float(os.getenv("SIMPRO_REQUEST_TIMEOUT", "30"))
SIMPRO_MAX_RETRIES = int(os.getenv("SIMPRO_MAX_RETRIES", "3"))  # total attempts per request
SIMPRO_RETRY_BASE_DELAY = float(os.getenv("SIMPRO_RETRY_BASE_DELAY", "0.5"))  # seconds
SIMPRO_RETRY_MAX_DELAY = float(os.getenv("SIMPRO_RETRY_MAX_DELAY", "8"))  # seconds
SIMPRO_REFRESH_TOKEN_LIFETIME_DAYS = int(os.getenv("SIMPRO_REFRESH_TOKEN_LIFETIME_DAYS", "14"))
SIMPRO_TOKEN_REFRESH_WINDOW_DAYS = int(os.getenv("SIMPRO_TOKEN_REFRESH_WINDOW_DAYS", "7"))

# Form editor autosave defaults (milliseconds)
AUTOSAVE_DEBOUNCE_MS = int(os.getenv("AUTOSAVE_DEBOUNCE_MS", "2000"))
AUTOSAVE_MAX_RETRIES = int(os.getenv("AUTOSAVE_MAX_RETRIES", "3"))
AUTOSAVE_RETRY_DELAY_MS = int(os.getenv("AUTOSAVE_RETRY_DELAY_MS", "1000"))
AUTOSAVE_MAX_RETRY_DELAY_MS = int(os.getenv("AUTOSAVE_MAX_RETRY_DELAY_MS", "10000"))

# Availability
AVAILABILITY_CACHE_TTL = int(os.getenv("AVAILABILITY_CACHE_TTL", "300"))  # seconds
DEFAULT_MAX_ADVANCE_DAYS = int(os.getenv("DEFAULT_MAX_ADVANCE_DAYS", "60"))
DEFAULT_TIMEZONE = os.getenv("DEFAULT_TIMEZONE", "UTC")

# Forms - soft-deleted forms can be restored inside this window
FORM_UNDO_WINDOW_SECONDS = int(os.getenv("FORM_UNDO_WINDOW_SECONDS", "600"))

# Redis (cache + arq worker)
CACHE_ENABLED = os.getenv("CACHE_ENABLED", "true").lower() == "true"
REDIS_URL = os.getenv("REDIS_URL")
