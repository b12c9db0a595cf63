import os


def _flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./taskboard.db")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Run each cascade inside one transaction and roll back on failure.
CASCADE_ATOMIC = _flag("CASCADE_ATOMIC")

SEED_ADMIN = _flag("SEED_ADMIN")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "admin123")
