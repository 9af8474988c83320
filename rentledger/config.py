import os


def _env_bool(name, default):
    return os.environ.get(name, str(default)).lower() in {"1", "true", "yes", "on"}


class Config:
    # Secret key for sessions / JWT - REQUIRED outside of tests
    SECRET_KEY = os.environ.get("SECRET_KEY")

    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", "sqlite:///rentledger.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # JWT Configuration
    JWT_SECRET_KEY = os.environ.get("JWT_SECRET_KEY", SECRET_KEY)

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    API_PREFIX = "/api"
    CORS_ALLOWED_ORIGINS = os.environ.get("CORS_ALLOWED_ORIGINS", "")

    # Monthly bill scheduler
    BILL_SCHEDULER_ENABLED = _env_bool("BILL_SCHEDULER_ENABLED", True)
    BILL_SCHEDULER_INTERVAL_SECONDS = int(os.environ.get("BILL_SCHEDULER_INTERVAL_SECONDS", 3600))
    BILL_SCHEDULER_RUN_HOUR = int(os.environ.get("BILL_SCHEDULER_RUN_HOUR", 9))  # UTC

    # Due date = 1st of the billed month shifted by N months, on day D
    BILL_DUE_MONTHS_AFTER = int(os.environ.get("BILL_DUE_MONTHS_AFTER", 1))
    BILL_DUE_DAY = int(os.environ.get("BILL_DUE_DAY", 1))

    # "memory" (single process) or "database" (shared row lock)
    BILL_RUN_FLAG_BACKEND = os.environ.get("BILL_RUN_FLAG_BACKEND", "memory")


class DevelopmentConfig(Config):
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret")
    JWT_SECRET_KEY = os.environ.get("JWT_SECRET_KEY", SECRET_KEY)
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "DEBUG")


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = "test-secret"
    JWT_SECRET_KEY = "test-jwt-secret-with-enough-length-for-hs256"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    BILL_SCHEDULER_ENABLED = False
    BILL_RUN_FLAG_BACKEND = "memory"
    LOG_LEVEL = "WARNING"
