"""Application settings and validation."""

import logging
import os
from pathlib import Path

BASE = Path(__file__).resolve().parent.parent


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


class Settings:
    ENV: str
    DATABASE_URL: str
    DB_ECHO: bool
    JWT_SECRET: str
    JWT_ALGORITHM: str
    SESSION_EXPIRE_HOURS: int
    PERSISTENT_SESSION_EXPIRE_DAYS: int
    RESET_TOKEN_EXPIRE_HOURS: int
    REQUIRE_CONFIRMED_EMAIL: bool
    LOCKOUT_MAX_FAILED_ATTEMPTS: int
    LOCKOUT_MINUTES: int
    PASSWORD_MIN_LENGTH: int
    SEED_DATA_DIR: Path
    LOG_LEVEL: str

    def __init__(self):
        self.ENV = os.getenv("ENV", "dev").lower()
        self.DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite+aiosqlite:///{BASE / 'garagebuddy.db'}")
        self.DB_ECHO = _env_bool("DB_ECHO", "false")
        self.JWT_SECRET = os.getenv("JWT_SECRET", "change_me_for_prod")
        self.JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
        self.SESSION_EXPIRE_HOURS = int(os.getenv("SESSION_EXPIRE_HOURS", "24"))
        self.PERSISTENT_SESSION_EXPIRE_DAYS = int(os.getenv("PERSISTENT_SESSION_EXPIRE_DAYS", "14"))
        self.RESET_TOKEN_EXPIRE_HOURS = int(os.getenv("RESET_TOKEN_EXPIRE_HOURS", "24"))
        self.REQUIRE_CONFIRMED_EMAIL = _env_bool("REQUIRE_CONFIRMED_EMAIL", "false")
        self.LOCKOUT_MAX_FAILED_ATTEMPTS = int(os.getenv("LOCKOUT_MAX_FAILED_ATTEMPTS", "5"))
        self.LOCKOUT_MINUTES = int(os.getenv("LOCKOUT_MINUTES", "5"))
        self.PASSWORD_MIN_LENGTH = int(os.getenv("PASSWORD_MIN_LENGTH", "6"))
        self.SEED_DATA_DIR = Path(os.getenv("SEED_DATA_DIR", str(Path(__file__).resolve().parent / "seed_data")))
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
        self._validate()

    def _validate(self):
        if self.ENV != "dev" and self.JWT_SECRET == "change_me_for_prod":
            raise RuntimeError("JWT_SECRET must be set to a non-default value in non-dev environments")
        if self.LOCKOUT_MAX_FAILED_ATTEMPTS < 1:
            raise RuntimeError("LOCKOUT_MAX_FAILED_ATTEMPTS must be >= 1")
        if self.PASSWORD_MIN_LENGTH < 1:
            raise RuntimeError("PASSWORD_MIN_LENGTH must be >= 1")


def configure_logging(level: str = None):
    """Install a basic root handler unless the host application already did."""
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=level or settings.LOG_LEVEL)


settings = Settings()
