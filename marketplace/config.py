import os
from pathlib import Path

from dotenv import load_dotenv

env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)


class Settings:
    @staticmethod
    def _get_int(name: str, default: int) -> int:
        return int(os.getenv(name, str(default)))

    @staticmethod
    def _get_bool(name: str, default: bool) -> bool:
        raw = os.getenv(name)
        if raw is None:
            return default
        return raw.strip().lower() in {"1", "true", "yes", "on"}

    @property
    def BASE_URL(self) -> str:
        return os.getenv("BASE_URL", "http://localhost:8000")

    @property
    def SITE_PUBLIC_BASE_URL(self) -> str:
        return os.getenv("SITE_PUBLIC_BASE_URL", "http://localhost:3000").rstrip("/")

    @property
    def DATABASE_URL(self) -> str:
        database_url = os.getenv("DATABASE_URL", "").strip()
        if not database_url:
            raise ValueError("DATABASE_URL is required")
        return database_url

    @property
    def DB_CONNECT_RETRIES(self) -> int:
        return self._get_int("DB_CONNECT_RETRIES", 5)

    @property
    def DB_CONNECT_RETRY_DELAY_SECONDS(self) -> int:
        return self._get_int("DB_CONNECT_RETRY_DELAY_SECONDS", 2)

    @property
    def JWT_SECRET(self) -> str:
        return os.getenv("JWT_SECRET", "change-me-in-production")

    @property
    def JWT_ALGORITHM(self) -> str:
        return os.getenv("JWT_ALGORITHM", "HS256")

    @property
    def REVOLUT_MODE(self) -> str:
        return os.getenv("REVOLUT_MODE", "sandbox").strip().lower()

    @property
    def REVOLUT_API_URL_SANDBOX(self) -> str:
        return os.getenv("REVOLUT_API_URL_SANDBOX", "https://sandbox-merchant.revolut.com/api")

    @property
    def REVOLUT_API_URL_PRODUCTION(self) -> str:
        return os.getenv("REVOLUT_API_URL_PRODUCTION", "https://merchant.revolut.com/api")

    @property
    def REVOLUT_API_VERSION(self) -> str:
        return os.getenv("REVOLUT_API_VERSION", "2024-09-01")

    @property
    def REVOLUT_SECRET_KEY(self) -> str:
        return os.getenv("REVOLUT_SECRET_KEY", "")

    @property
    def REVOLUT_LOCATION_ID(self) -> str | None:
        return os.getenv("REVOLUT_LOCATION_ID") or None

    @property
    def REVOLUT_TIMEOUT_SECONDS(self) -> int:
        return self._get_int("REVOLUT_TIMEOUT_SECONDS", 15)

    @property
    def DEFAULT_CURRENCY(self) -> str:
        return os.getenv("DEFAULT_CURRENCY", "EUR").upper()

    @property
    def SMTP_HOST(self) -> str:
        return os.getenv("SMTP_HOST", "")

    @property
    def SMTP_PORT(self) -> int:
        return self._get_int("SMTP_PORT", 587)

    @property
    def SMTP_USER(self) -> str:
        return os.getenv("SMTP_USER", "")

    @property
    def SMTP_PASSWORD(self) -> str:
        return os.getenv("SMTP_PASSWORD", "")

    @property
    def SMTP_USE_TLS(self) -> bool:
        return self._get_bool("SMTP_USE_TLS", True)

    @property
    def SMTP_FROM_EMAIL(self) -> str:
        return os.getenv("SMTP_FROM_EMAIL", "")

    @property
    def SMTP_FROM_NAME(self) -> str:
        return os.getenv("SMTP_FROM_NAME", "Marketplace")

    @property
    def CORS_ORIGINS(self) -> str:
        return os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:3001")


settings = Settings()

# Validate critical settings
if settings.JWT_SECRET == "change-me-in-production":
    import warnings
    warnings.warn("JWT_SECRET is using default value. Change it in production!", UserWarning)
