import os


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///skeinsync.db")
SQLALCHEMY_TRACK_MODIFICATIONS = False

SHOPIFY_API_VERSION = os.getenv("SHOPIFY_API_VERSION", "2024-01")
SHOPIFY_WEBHOOK_SECRET = os.getenv("SHOPIFY_WEBHOOK_SECRET")

# RPC retry policy (see clients.shopify.RetryPolicy)
SHOPIFY_MAX_RETRIES = int(os.getenv("SHOPIFY_MAX_RETRIES", "3"))
SHOPIFY_INITIAL_BACKOFF = float(os.getenv("SHOPIFY_INITIAL_BACKOFF", "1.0"))
SHOPIFY_RATE_LIMIT_FALLBACK = float(os.getenv("SHOPIFY_RATE_LIMIT_FALLBACK", "2.0"))
SHOPIFY_TIMEOUT = float(os.getenv("SHOPIFY_TIMEOUT", "30"))

SHOPIFY_CATALOG_SYNC_ENABLED = _flag("SHOPIFY_CATALOG_SYNC_ENABLED")

MEDIA_BASE_URL = os.getenv("MEDIA_BASE_URL", "")

# webhook echoes of our own pushes land well inside this window
CONFLICT_GRACE_SECONDS = int(os.getenv("CONFLICT_GRACE_SECONDS", "60"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
