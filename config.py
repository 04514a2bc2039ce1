import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Application environment
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
DEBUG = ENVIRONMENT == "development"
TESTING = os.getenv("TESTING", "false").lower() == "true"

# Database settings
DATABASE_URL = os.getenv("DATABASE_URL")

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
APP_LOG_PATH = os.getenv("APP_LOG_PATH", "")

# Application settings
APP_NAME = "Telas Luciana API"
APP_VERSION = "1.0.0"
APP_TIMEZONE = os.getenv("APP_TIMEZONE", "America/Mexico_City")

# Auth settings
AUTH_SECRET = os.getenv("AUTH_SECRET", "")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "720"))
CRON_SECRET = os.getenv("CRON_SECRET", "")

# Redis settings (empty CACHE_REDIS_URL keeps the cache in process memory)
CACHE_REDIS_URL = os.getenv("CACHE_REDIS_URL", "")
RATE_LIMIT_REDIS_URL = os.getenv("RATE_LIMIT_REDIS_URL", "")
REDIS_SOCKET_TIMEOUT_SECONDS = float(os.getenv("REDIS_SOCKET_TIMEOUT_SECONDS", "2"))
CACHE_MEMORY_MAX_KEYS = int(os.getenv("CACHE_MEMORY_MAX_KEYS", "10000"))

# AWS S3 settings
S3_BUCKET = os.getenv("S3_BUCKET", "telas-luciana")
AWS_REGION = os.getenv("AWS_REGION", "us-west-2")
AWS_ACCESS_KEY_ID = os.getenv("AWS_ACCESS_KEY_ID")
AWS_SECRET_ACCESS_KEY = os.getenv("AWS_SECRET_ACCESS_KEY")
S3_PRESIGN_EXPIRES_SECONDS = int(os.getenv("S3_PRESIGN_EXPIRES_SECONDS", "900"))

# Cache TTLs (seconds)
_ONE_WEEK = 7 * 24 * 60 * 60

CACHE_TTL = {
    "FICHAS_TECNICAS": int(os.getenv("CACHE_TTL_FICHAS_TECNICAS", str(_ONE_WEEK))),
    "INVENTORY": int(os.getenv("CACHE_TTL_INVENTORY", str(_ONE_WEEK))),
    "ORDERS": int(os.getenv("CACHE_TTL_ORDERS", str(_ONE_WEEK))),
    "PRICE_HISTORY": int(os.getenv("CACHE_TTL_PRICE_HISTORY", str(_ONE_WEEK))),
    "SOLD_ROLLS": int(os.getenv("CACHE_TTL_SOLD_ROLLS", str(_ONE_WEEK))),
    "CLIENTES": int(os.getenv("CACHE_TTL_CLIENTES", str(_ONE_WEEK))),
    "PROVEEDORES": int(os.getenv("CACHE_TTL_PROVEEDORES", str(_ONE_WEEK))),
    "ROLLS_DATA": int(os.getenv("CACHE_TTL_ROLLS_DATA", str(_ONE_WEEK))),
    "PENDING_ORDERS": int(os.getenv("CACHE_TTL_PENDING_ORDERS", "300")),
}

# Order listings: the current year changes often, past years almost never
YEAR_CACHE_TTL = {
    "CURRENT_YEAR": 24 * 60 * 60,
    "HISTORICAL_YEAR": 30 * 24 * 60 * 60,
    "ALL_YEARS": _ONE_WEEK,
}

USER_CACHE_TTL = {
    "STATIC_DATA": 60 * 60,
    "ACTIVITY_DATA": 5 * 60,
    "COMBINED_DATA": 5 * 60,
}

# Cache warming
CACHE_WARM_BASE_URL = os.getenv("CACHE_WARM_BASE_URL", "")
CACHE_WARM_MAX_URLS = int(os.getenv("CACHE_WARM_MAX_URLS", "11"))
CACHE_WARM_TIMEOUT_SECONDS = float(os.getenv("CACHE_WARM_TIMEOUT_SECONDS", "30"))
CACHE_WARM_USER_AGENT = "System-Cache-Warming/1.0"

# Activity tracking
ACTIVITY_THROTTLE_WINDOW_SECONDS = int(os.getenv("ACTIVITY_THROTTLE_WINDOW_SECONDS", "300"))
ACTIVITY_TRACKER_MAX_USERS = int(os.getenv("ACTIVITY_TRACKER_MAX_USERS", "10000"))

# Rate limits: (requests, window seconds) per classification
RATE_LIMITS = {
    "auth": (int(os.getenv("RATE_LIMIT_AUTH_REQUESTS", "5")), 60),
    "api": (int(os.getenv("RATE_LIMIT_API_REQUESTS", "20")), 60),
    "cron": (int(os.getenv("RATE_LIMIT_CRON_REQUESTS", "3")), 60),
}
RATE_LIMIT_DEFAULT_MESSAGE = "Demasiadas solicitudes. Por favor, inténtalo de nuevo más tarde."
