import os


def _bool_env(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _int_env(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _float_env(name: str, default: float) -> float:
    value = os.environ.get(name)
    if value is None:
        return default
    try:
        return float(value.replace(",", "."))
    except ValueError:
        return default


_DEV_SECRET_KEY = "dev-secret-licitasis"


class Config:
    BASE_DIR = os.path.dirname(os.path.dirname(__file__))
    DATABASE_URL = os.environ.get("DATABASE_URL")
    DATABASE_DIR = None if DATABASE_URL else os.path.join(BASE_DIR, "database")
    DB_PATH = DATABASE_URL or os.path.join(DATABASE_DIR, "licitasis.db")
    DB_AUTO_INIT = _bool_env("DB_AUTO_INIT", False)

    SECRET_KEY = os.environ.get("SECRET_KEY", _DEV_SECRET_KEY)
    AUTH_ENABLED = _bool_env("AUTH_ENABLED", True)
    AUTH_TOKEN_MAX_AGE_SECONDS = _int_env("AUTH_TOKEN_MAX_AGE_SECONDS", 12 * 60 * 60)
    ADMIN_EMAIL = os.environ.get("ADMIN_EMAIL", "admin@licitasis.local")
    ADMIN_USERNAME = os.environ.get("ADMIN_USERNAME", "admin")
    ADMIN_PASSWORD = os.environ.get("ADMIN_PASSWORD", "admin123")

    DEFAULT_TAX_RATE = _float_env("DEFAULT_TAX_RATE", 6.0)
    DOC_EXPIRY_WARNING_DAYS = _int_env("DOC_EXPIRY_WARNING_DAYS", 5)
    UPLOAD_DIR = os.environ.get("UPLOAD_DIR") or os.path.join(BASE_DIR, "uploads")
    MAX_CONTENT_LENGTH = _int_env("MAX_UPLOAD_MB", 20) * 1024 * 1024

    UASG_API_BASE_URL = os.environ.get("UASG_API_BASE_URL", "https://dadosabertos.compras.gov.br")
    UASG_TIMEOUT_SECONDS = _int_env("UASG_TIMEOUT_SECONDS", 10)
    UASG_VERIFY_SSL = _bool_env("UASG_VERIFY_SSL", True)

    DOC_STATUS_SCHEDULER_ENABLED = _bool_env("DOC_STATUS_SCHEDULER_ENABLED", True)
    DOC_STATUS_SCHEDULER_INTERVAL_SECONDS = _int_env("DOC_STATUS_SCHEDULER_INTERVAL_SECONDS", 3600)
    DOC_STATUS_SCHEDULER_MIN_BACKOFF_SECONDS = _int_env("DOC_STATUS_SCHEDULER_MIN_BACKOFF_SECONDS", 60)
    DOC_STATUS_SCHEDULER_MAX_BACKOFF_SECONDS = _int_env("DOC_STATUS_SCHEDULER_MAX_BACKOFF_SECONDS", 3600)

    RATE_LIMIT_ENABLED = _bool_env("RATE_LIMIT_ENABLED", True)
    RATE_LIMIT_WINDOW_SECONDS = _int_env("RATE_LIMIT_WINDOW_SECONDS", 60)
    RATE_LIMIT_MAX_REQUESTS = _int_env("RATE_LIMIT_MAX_REQUESTS", 300)
    RATE_LIMIT_LOGIN_MAX_REQUESTS = _int_env("RATE_LIMIT_LOGIN_MAX_REQUESTS", 10)
    SECURITY_HEADERS_ENABLED = _bool_env("SECURITY_HEADERS_ENABLED", True)

    LOG_JSON = _bool_env("LOG_JSON", True)
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    def __init__(self):
        env = os.environ.get("FLASK_ENV", "development").lower()
        if env == "production" and not self.DATABASE_URL:
            raise RuntimeError("DATABASE_URL nao definida para ambiente de producao.")
        if env == "production" and self.SECRET_KEY == _DEV_SECRET_KEY:
            raise RuntimeError("SECRET_KEY insegura para producao.")
