# marketplace/app/core/config.py
"""
Production-ready configuration using pydantic-settings.

Security considerations:
- No hardcoded secrets in production (JWT_SECRET / SESSION_SECRET must be set via env)
- CORS_ORIGINS parsed from comma-separated env var, never defaults to "*"
- Database URLs normalized for async drivers automatically
- Debug/echo modes disabled in production by default
"""
from functools import lru_cache
from typing import List

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Strictly typed application settings.

    Priority for loading:
    1. Environment variables (highest priority)
    2. .env file (via pydantic-settings)
    3. Default values (lowest priority, dev-safe only)
    """

    # ─────────────────────────────────────────────────────────────
    # Application metadata
    # ─────────────────────────────────────────────────────────────
    PROJECT_NAME: str = "Marketplace"
    PROJECT_VERSION: str = "1.0.0"
    API_PREFIX: str = "/api"

    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    HOST: str = "0.0.0.0"
    PORT: int = 3001
    # Seconds to wait for in-flight requests before the server is stopped hard
    SHUTDOWN_TIMEOUT: int = 30

    # ─────────────────────────────────────────────────────────────
    # Security: JWT + password hashing
    # JWT_SECRET MUST be set in production via environment variable
    # ─────────────────────────────────────────────────────────────
    JWT_SECRET: str = "INSECURE_DEV_KEY_CHANGE_IN_PRODUCTION"
    ALGORITHM: str = "HS256"
    # Tokens and their session rows share this lifetime (7 days)
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 7 * 24 * 60
    BCRYPT_ROUNDS: int = 12

    # ─────────────────────────────────────────────────────────────
    # Cookie session (only used to carry the CSRF token)
    # ─────────────────────────────────────────────────────────────
    SESSION_SECRET: str = "INSECURE_DEV_SESSION_SECRET_CHANGE_IN_PRODUCTION"
    SESSION_MAX_AGE: int = 24 * 60 * 60
    CSRF_PROTECTION: bool = False

    # New accounts start unverified only when verification mail is in use
    REQUIRE_EMAIL_VERIFICATION: bool = False

    # ─────────────────────────────────────────────────────────────
    # Database Configuration
    # Priority: DATABASE_URL env var → SQLite fallback for local dev
    # ─────────────────────────────────────────────────────────────
    DATABASE_URL: str = "sqlite+aiosqlite:///./marketplace.db"

    @field_validator("DATABASE_URL", mode="before")
    @classmethod
    def normalize_database_url(cls, v: str) -> str:
        """
        Normalize database URLs for async SQLAlchemy compatibility.

        Conversions:
        - mysql://        → mysql+aiomysql://
        - postgres://     → postgresql+asyncpg://
        - postgresql://   → postgresql+asyncpg://
        - sqlite:///      → sqlite+aiosqlite:///
        """
        if v is None:
            return "sqlite+aiosqlite:///./marketplace.db"

        url = v.strip()

        if url.startswith("mysql://"):
            return url.replace("mysql://", "mysql+aiomysql://", 1)

        if url.startswith("postgres://"):
            return url.replace("postgres://", "postgresql+asyncpg://", 1)

        if url.startswith("postgresql://") and "+asyncpg" not in url:
            return url.replace("postgresql://", "postgresql+asyncpg://", 1)

        if url.startswith("sqlite:///") and "+aiosqlite" not in url:
            return url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)

        return url

    # MUST be False in production to prevent SQL query exposure
    DATABASE_ECHO: bool = False
    DB_POOL_SIZE: int = 10
    DB_CONNECT_TIMEOUT: int = 10

    # ─────────────────────────────────────────────────────────────
    # CORS Configuration
    # Parsed from comma-separated CORS_ORIGINS env var
    # Empty string → empty list (NOT "*" for security)
    # ─────────────────────────────────────────────────────────────
    CORS_ORIGINS: str = "http://localhost:3000"

    @property
    def BACKEND_CORS_ORIGINS(self) -> List[str]:
        """
        Parse CORS_ORIGINS string into a list of allowed origins.

        Empty string returns empty list, NOT wildcard "*".
        """
        if not self.CORS_ORIGINS or not self.CORS_ORIGINS.strip():
            return []

        return [
            origin.strip()
            for origin in self.CORS_ORIGINS.split(",")
            if origin.strip()
        ]

    # ─────────────────────────────────────────────────────────────
    # Rate limiting
    # ─────────────────────────────────────────────────────────────
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_WINDOW_MS: int = 15 * 60 * 1000
    RATE_LIMIT_MAX_REQUESTS: int = 100
    # Register/login: failed requests only
    AUTH_RATE_LIMIT_MAX: int = 5
    AUTH_RATE_LIMIT_WINDOW_SECONDS: int = 15 * 60
    API_RATE_LIMIT_MAX: int = 60
    API_RATE_LIMIT_WINDOW_SECONDS: int = 60

    # ─────────────────────────────────────────────────────────────
    # Login throttling (database backed)
    # ─────────────────────────────────────────────────────────────
    MAX_LOGIN_ATTEMPTS: int = 5
    LOGIN_ATTEMPT_WINDOW_MINUTES: int = 15
    LOGIN_ATTEMPT_RETENTION_DAYS: int = 30

    SESSION_CLEANUP_ENABLED: bool = True
    SESSION_CLEANUP_INTERVAL_MINUTES: int = 60

    # ─────────────────────────────────────────────────────────────
    # File uploads
    # ─────────────────────────────────────────────────────────────
    UPLOAD_DIR: str = "./uploads"
    MAX_FILE_SIZE: int = 5 * 1024 * 1024
    MAX_FILES_PER_UPLOAD: int = 10
    ALLOWED_FILE_TYPES: str = "image/jpeg,image/jpg,image/png,image/gif,image/webp"

    @property
    def allowed_file_types(self) -> List[str]:
        return [t.strip() for t in self.ALLOWED_FILE_TYPES.split(",") if t.strip()]

    # ─────────────────────────────────────────────────────────────
    # Pydantic Settings Configuration
    # ─────────────────────────────────────────────────────────────
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        # Extra fields in .env are ignored (prevents config injection)
        extra="ignore",
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.ENVIRONMENT.lower() == "production"

    @property
    def is_sqlite(self) -> bool:
        """Check if using SQLite database (local development)."""
        return "sqlite" in self.DATABASE_URL.lower()

    @property
    def is_mysql(self) -> bool:
        return "mysql" in self.DATABASE_URL.lower()


@lru_cache()
def get_settings() -> Settings:
    """
    Cached settings instance.

    Using lru_cache ensures settings are only loaded once,
    providing consistent configuration across the application.
    """
    return Settings()


settings = get_settings()
