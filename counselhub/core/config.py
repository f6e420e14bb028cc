import os



def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_list(value: str | None, default: list[str]) -> list[str]:
    if not value:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]

APP_ENV = os.getenv("APP_ENV", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

CORS_ALLOW_ORIGINS = _get_list(os.getenv("CORS_ALLOW_ORIGINS"), ["http://localhost:8081"])

REDIS_URL = os.getenv("REDIS_URL", "redis://127.0.0.1:6379/0")
CACHE_ENABLED = _get_bool(os.getenv("CACHE_ENABLED"), default=True)
CACHE_SOCKET_TIMEOUT_SECONDS = float(os.getenv("CACHE_SOCKET_TIMEOUT_SECONDS", "0.5"))
# After a connection failure the cache is bypassed for this long.
CACHE_RETRY_AFTER_SECONDS = float(os.getenv("CACHE_RETRY_AFTER_SECONDS", "30"))

# High-churn admin lists, per-user lists and details, generated rollups.
CACHE_TTL_SHORT_SECONDS = int(os.getenv("CACHE_TTL_SHORT_SECONDS", "30"))
CACHE_TTL_DEFAULT_SECONDS = int(os.getenv("CACHE_TTL_DEFAULT_SECONDS", "60"))
CACHE_TTL_ROLLUP_SECONDS = int(os.getenv("CACHE_TTL_ROLLUP_SECONDS", "86400"))

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", "60"))

ADMIN_LIST_LIMIT = int(os.getenv("ADMIN_LIST_LIMIT", "100"))

def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
