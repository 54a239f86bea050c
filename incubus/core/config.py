from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

_PROJECT_ROOT = Path(__file__).resolve().parents[2]
_ROOT_ENV_FILE = _PROJECT_ROOT / ".env"


class IncubusSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=(str(_ROOT_ENV_FILE), ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # FastAPI app
    INCUBUS_APP_NAME: str = "Incubus Marketplace API"
    INCUBUS_APP_VERSION: str = "0.1.0"
    INCUBUS_API_PREFIX: str = "/api/v1"
    INCUBUS_HOST: str = "0.0.0.0"
    INCUBUS_PORT: int = 8000
    INCUBUS_ENV: str = "development"
    INCUBUS_LOG_LEVEL: str = "INFO"
    INCUBUS_LOG_FORMAT: str = "text"
    INCUBUS_ENABLE_ACCESS_LOG: bool = True
    INCUBUS_ENABLE_METRICS: bool = True
    INCUBUS_AUDIT_ENABLED: bool = True
    INCUBUS_CORS_ENABLED: bool = True
    INCUBUS_CORS_ALLOW_ORIGINS: str = "http://127.0.0.1:3000,http://localhost:3000"
    INCUBUS_CORS_ALLOW_CREDENTIALS: bool = True
    INCUBUS_CORS_ALLOW_METHODS: str = "GET,POST,PUT,PATCH,DELETE,OPTIONS"
    INCUBUS_CORS_ALLOW_HEADERS: str = (
        "Authorization,Content-Type,Accept,Origin,X-Requested-With,X-CSRF-Token"
    )
    INCUBUS_CORS_EXPOSE_HEADERS: str = "X-Request-ID,X-User-Roles"
    INCUBUS_CORS_MAX_AGE_SECONDS: int = 600

    # Database
    INCUBUS_DATABASE_URL: str = ""
    INCUBUS_DATABASE_ECHO: bool = False
    INCUBUS_DATABASE_POOL_SIZE: int = 10
    INCUBUS_DATABASE_MAX_OVERFLOW: int = 20
    INCUBUS_AUTO_CREATE_TABLES: bool = True
    INCUBUS_BOOTSTRAP_BLOCKING: bool = False
    INCUBUS_BOOTSTRAP_RETRY_ATTEMPTS: int = 3
    INCUBUS_BOOTSTRAP_RETRY_DELAY_SECONDS: int = 2

    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "postgres"
    POSTGRES_DB: str = "incubus"

    # Redis / cache
    REDIS_URL: str = "redis://localhost:6379/0"
    INCUBUS_REDIS_PREFIX: str = "incubus"
    INCUBUS_CACHE_ENABLED: bool = True
    INCUBUS_CACHE_PREFIX: str = "incubus:cache"
    INCUBUS_CACHE_PUBLIC_TTL_SECONDS: int = 60
    INCUBUS_CACHE_AUTH_LIST_TTL_SECONDS: int = 30
    INCUBUS_CACHE_NOTIFICATIONS_TTL_SECONDS: int = 15

    # Auth
    JWT_SECRET: str = ""
    JWT_ALGORITHM: str = "HS256"
    JWT_EXP_MINUTES: int = 180
    JWT_LEEWAY_SECONDS: int = 30
    INCUBUS_AUTH_STATE_TTL_SECONDS: int = 600
    INCUBUS_AUTH_IMPERSONATION_MINUTES: int = 60
    INCUBUS_AUTH_FRONTEND_SUCCESS_URL: str = ""
    INCUBUS_AUTH_FRONTEND_FAILURE_URL: str = ""
    INCUBUS_AUTH_COOKIE_NAME: str = "incubus_session"
    INCUBUS_AUTH_COOKIE_PATH: str = "/"
    INCUBUS_AUTH_COOKIE_DOMAIN: str = ""
    INCUBUS_AUTH_COOKIE_SAMESITE: str = "lax"
    INCUBUS_AUTH_COOKIE_SECURE: bool = False
    INCUBUS_AUTH_COOKIE_MAX_AGE_SECONDS: int = 0

    GOOGLE_CLIENT_ID: str = ""
    GOOGLE_CLIENT_SECRET: str = ""
    GOOGLE_REDIRECT_URI: str = "http://localhost:3000/api/auth/callback/google"
    GOOGLE_AUTHORIZE_URL: str = "https://accounts.google.com/o/oauth2/v2/auth"
    GOOGLE_TOKEN_URL: str = "https://oauth2.googleapis.com/token"
    GOOGLE_USERINFO_URL: str = "https://openidconnect.googleapis.com/v1/userinfo"
    GOOGLE_OAUTH_SCOPES: str = "openid email profile"

    # Marketplace / organizations / wallets
    INCUBUS_MARKETPLACE_FEE_BPS: int = 500
    INCUBUS_LISTING_DEFAULT_EXPIRY_DAYS: int = 0
    INCUBUS_INVITATION_TTL_DAYS: int = 7
    INCUBUS_WALLET_SYNC_COOLDOWN_SECONDS: int = 3600
    INCUBUS_RPC_TIMEOUT_SECONDS: float = 10.0
    INCUBUS_SESSION_RETENTION_DAYS: int = 7

    # Celery
    CELERY_BROKER_URL: str = "redis://localhost:6379/1"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/2"

    # Reliability / rate limiting
    INCUBUS_RATE_LIMIT_ENABLED: bool = True
    INCUBUS_RATE_LIMIT_WINDOW_SECONDS: int = 60
    INCUBUS_RATE_LIMIT_MAX_REQUESTS: int = 180
    INCUBUS_RATE_LIMIT_PRIVILEGED_MAX_REQUESTS: int = 45
    INCUBUS_RATE_LIMIT_AUTH_MAX_REQUESTS: int = 30
    INCUBUS_ANOMALY_WINDOW_SECONDS: int = 300
    INCUBUS_ANOMALY_THRESHOLD: int = 12

    # Seed configuration
    INCUBUS_ADMIN_EMAILS: str = ""
    INCUBUS_SEED_BLOCKCHAINS: bool = True

    @property
    def database_url(self) -> str:
        if self.INCUBUS_DATABASE_URL:
            return self.INCUBUS_DATABASE_URL
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def admin_emails(self) -> set[str]:
        return {email.lower() for email in self._split_csv(self.INCUBUS_ADMIN_EMAILS)}

    @property
    def google_oauth_scopes(self) -> str:
        return " ".join(
            scope.strip() for scope in self.GOOGLE_OAUTH_SCOPES.split() if scope.strip()
        )

    @property
    def auth_cookie_domain(self) -> str | None:
        cleaned = self.INCUBUS_AUTH_COOKIE_DOMAIN.strip()
        return cleaned or None

    @property
    def auth_cookie_max_age_seconds(self) -> int:
        if self.INCUBUS_AUTH_COOKIE_MAX_AGE_SECONDS > 0:
            return self.INCUBUS_AUTH_COOKIE_MAX_AGE_SECONDS
        return self.JWT_EXP_MINUTES * 60

    @property
    def auth_cookie_samesite(self) -> str:
        normalized = self.INCUBUS_AUTH_COOKIE_SAMESITE.strip().lower()
        if normalized not in {"lax", "strict", "none"}:
            return "lax"
        if normalized == "none" and not self.INCUBUS_AUTH_COOKIE_SECURE:
            return "lax"
        return normalized

    @property
    def cors_allow_origins(self) -> list[str]:
        return self._split_csv(self.INCUBUS_CORS_ALLOW_ORIGINS)

    @property
    def cors_allow_methods(self) -> list[str]:
        return self._split_csv(self.INCUBUS_CORS_ALLOW_METHODS)

    @property
    def cors_allow_headers(self) -> list[str]:
        return self._split_csv(self.INCUBUS_CORS_ALLOW_HEADERS)

    @property
    def cors_expose_headers(self) -> list[str]:
        return self._split_csv(self.INCUBUS_CORS_EXPOSE_HEADERS)

    @staticmethod
    def _split_csv(raw: str) -> list[str]:
        return [item.strip() for item in raw.split(",") if item.strip()]

    @property
    def is_development_environment(self) -> bool:
        return self.INCUBUS_ENV.strip().lower() in {"dev", "development", "local", "test"}


@lru_cache
def get_settings() -> IncubusSettings:
    return IncubusSettings()
