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


class Config:
    BASE_DIR = os.path.dirname(os.path.dirname(__file__))
    DATABASE_URL = os.environ.get("DATABASE_URL")
    DATABASE_DIR = None if DATABASE_URL else os.path.join(BASE_DIR, "database")
    DB_PATH = DATABASE_URL or os.path.join(DATABASE_DIR, "rfq_engine.db")
    DB_AUTO_INIT = _bool_env("DB_AUTO_INIT", False)

    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-rfq-engine")
    LOG_JSON = _bool_env("LOG_JSON", True)
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # price,delivery,quality,baseline
    RANKING_WEIGHTS = os.environ.get("RANKING_WEIGHTS", "40,30,20,10")

    SIDE_EFFECTS_MODE = os.environ.get("SIDE_EFFECTS_MODE", "thread")
    SIDE_EFFECTS_MAX_ATTEMPTS = _int_env("SIDE_EFFECTS_MAX_ATTEMPTS", 3)
    SIDE_EFFECTS_RETRY_BACKOFF_MS = _int_env("SIDE_EFFECTS_RETRY_BACKOFF_MS", 500)
    SIDE_EFFECTS_QUEUE_SIZE = _int_env("SIDE_EFFECTS_QUEUE_SIZE", 1000)

    EMAIL_MODE = os.environ.get("EMAIL_MODE", "log")
    EMAIL_WEBHOOK_URL = os.environ.get("EMAIL_WEBHOOK_URL")
    EMAIL_API_KEY = os.environ.get("EMAIL_API_KEY")
    EMAIL_TIMEOUT_SECONDS = _int_env("EMAIL_TIMEOUT_SECONDS", 10)

    def __init__(self):
        env = os.environ.get("FLASK_ENV", "development").lower()
        if env == "production" and not self.DATABASE_URL:
            raise RuntimeError("DATABASE_URL is not set for the production environment.")
        if env == "production" and self.SECRET_KEY == "dev-secret-rfq-engine":
            raise RuntimeError("SECRET_KEY is insecure for production.")
