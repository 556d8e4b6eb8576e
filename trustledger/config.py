"""
Briq Trust Ledger — Configuration

All settings load from environment variables with safe defaults for development.
In production, set BRIQ_ENV=production to enforce required values.
"""
import os
from functools import lru_cache

from dotenv import load_dotenv

load_dotenv()


_TRUTHY = {"1", "true", "yes", "on"}

STORAGE_BACKENDS = ("memory", "file", "redis")


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in _TRUTHY


class Settings:
    def __init__(self):
        self.ENVIRONMENT = os.getenv("BRIQ_ENV", "development")

        # === Storage ===
        self.STORAGE_BACKEND = os.getenv("BRIQ_STORAGE_BACKEND", "memory").strip().lower()
        if self.STORAGE_BACKEND not in STORAGE_BACKENDS:
            raise RuntimeError(
                f"BRIQ_STORAGE_BACKEND must be one of {', '.join(STORAGE_BACKENDS)}, "
                f"got {self.STORAGE_BACKEND!r}"
            )
        self.STORAGE_PATH = os.getenv("BRIQ_STORAGE_PATH", "data/trust")
        self.REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")

        if self.is_production and self.STORAGE_BACKEND == "memory":
            raise RuntimeError("BRIQ_STORAGE_BACKEND=memory is not allowed in production. Add it to .env")

        # === Ledger ===
        self.PLATFORM_NAME = os.getenv("BRIQ_PLATFORM_NAME", "Briq")
        self.CURRENCY_UNIT = os.getenv("BRIQ_CURRENCY_UNIT", "HBAR")

        # Last-write-wins unless explicitly hardened
        self.OPTIMISTIC_WRITES = _env_flag("BRIQ_OPTIMISTIC_WRITES")
        self.WRITE_RETRIES = int(os.getenv("BRIQ_WRITE_RETRIES", "3"))

        # === Application ===
        self.LOG_JSON = _env_flag("BRIQ_LOG_JSON", "true" if self.is_production else "false")
        self.HOST = os.getenv("BRIQ_HOST", "0.0.0.0")
        self.PORT = int(os.getenv("BRIQ_PORT", "8000"))

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
