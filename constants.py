import os

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 8000))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", None)

ENVIRONMENT = os.getenv("ENVIRONMENT", "production")
APP_VERSION = os.getenv("APP_VERSION", "1.0.0")

CORS_ORIGINS = [origin.strip() for origin in os.getenv("CORS_ORIGINS", "*").split(",") if origin.strip()]

MAX_MESSAGE_LENGTH = int(os.getenv("MAX_MESSAGE_LENGTH", 5000))
ROSTER_REFRESH_ON_MESSAGE = os.getenv("ROSTER_REFRESH_ON_MESSAGE", "true").lower() in ("1", "true", "yes", "on")
# 0 means unbounded
OUTBOX_MAX_SIZE = int(os.getenv("OUTBOX_MAX_SIZE", 1000))

ADMIN_USER = "admin"
