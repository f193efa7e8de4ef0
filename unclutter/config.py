# unclutter/config.py
import os
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str, default: str) -> list[str]:
    return [item.strip() for item in os.getenv(name, default).split(",") if item.strip()]


# Database
ASYNC_DATABASE_URL = os.getenv("ASYNC_DATABASE_URL", "sqlite+aiosqlite:///./unclutter.db")
DB_ECHO = _env_bool("DB_ECHO", "false")

# Auth (token verification only; tokens are issued elsewhere)
SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")
ALGORITHM = os.getenv("ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "30"))

# Notification poller
NOTIFICATION_SCHEDULER_ENABLED = _env_bool("NOTIFICATION_SCHEDULER_ENABLED", "true")
NOTIFICATION_SCHEDULER_INTERVAL = float(os.getenv("NOTIFICATION_SCHEDULER_INTERVAL", "1"))  # minutes
NOTIFICATION_CLAIM_TTL_SECONDS = int(os.getenv("NOTIFICATION_CLAIM_TTL_SECONDS", "300"))
NOTIFICATION_DEFAULT_CHANNELS = _env_list("NOTIFICATION_DEFAULT_CHANNELS", "in_app")

# Mail (fastapi-mail). Without credentials, emails are logged instead of sent.
MAIL_USERNAME = os.getenv("MAIL_USERNAME")
MAIL_PASSWORD = os.getenv("MAIL_PASSWORD")
MAIL_FROM = os.getenv("MAIL_FROM", "noreply@unclutter.app")
MAIL_FROM_NAME = os.getenv("MAIL_FROM_NAME", "Unclutter Therapy")
MAIL_SERVER = os.getenv("MAIL_SERVER", "smtp.gmail.com")
MAIL_PORT = int(os.getenv("MAIL_PORT", "587"))
MAIL_STARTTLS = _env_bool("MAIL_STARTTLS", "true")
MAIL_SSL_TLS = _env_bool("MAIL_SSL_TLS", "false")

# HTTP
CORS_ORIGINS = _env_list("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
