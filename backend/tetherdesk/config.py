import json
import re
from pathlib import Path
from typing import Annotated, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

DEFAULT_PRICE_FEED_URL = (
    "https://api.coingecko.com/api/v3/simple/price"
    "?ids=tether,bitcoin,ethereum,binancecoin,solana&vs_currencies=inr&include_24hr_change=true"
)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    app_name: str = Field(default="TetherDesk API", validation_alias="PROJECT_NAME")
    environment: str = Field(default="dev", validation_alias="ENVIRONMENT")
    build_version: Optional[str] = Field(default=None, validation_alias="BUILD_VERSION")
    database_url: str = Field(
        default="sqlite+pysqlite:///./dev.db",
        validation_alias="DATABASE_URL",
        validate_default=True,
    )
    # Router prefix, e.g. "/api".
    api_prefix: str = Field(default="", validation_alias="API_V1_STR")
    enable_docs: Optional[bool] = Field(
        default=None, validation_alias="ENABLE_DOCS", validate_default=True
    )
    secret_key: str = Field(default="change-me", validation_alias="SECRET_KEY")
    access_token_expire_minutes: int = Field(
        default=60, validation_alias="ACCESS_TOKEN_EXPIRE_MINUTES"
    )
    algorithm: str = Field(default="HS256", validation_alias="ALGORITHM")
    cors_origins: Annotated[List[str], NoDecode] = Field(
        default_factory=list, validation_alias="CORS_ORIGINS", validate_default=True
    )

    # Blob storage for payment proofs.
    storage_dir: str = Field(default="storage", validation_alias="STORAGE_DIR")
    public_base_url: str = Field(default="http://localhost:8000", validation_alias="PUBLIC_BASE_URL")
    max_proof_bytes: int = Field(default=5 * 1024 * 1024, validation_alias="MAX_PROOF_BYTES")

    # Order lifecycle.
    payment_window_minutes: int = Field(default=5, validation_alias="PAYMENT_WINDOW_MINUTES")
    expiry_sweep_enabled: bool = Field(default=True, validation_alias="EXPIRY_SWEEP_ENABLED")
    expiry_sweep_interval_seconds: int = Field(
        default=30, validation_alias="EXPIRY_SWEEP_INTERVAL_SECONDS"
    )

    # Market price feed.
    price_feed_url: str = Field(default=DEFAULT_PRICE_FEED_URL, validation_alias="PRICE_FEED_URL")
    price_feed_ttl_seconds: int = Field(default=60, validation_alias="PRICE_FEED_TTL_SECONDS")
    # How long a fallback snapshot is served before the feed is tried again.
    price_feed_retry_seconds: int = Field(default=15, validation_alias="PRICE_FEED_RETRY_SECONDS")
    price_feed_timeout_seconds: float = Field(
        default=10.0, validation_alias="PRICE_FEED_TIMEOUT_SECONDS"
    )

    run_migrations_on_start: bool = Field(default=False, validation_alias="RUN_MIGRATIONS_ON_START")
    # Dev-only bootstrap account, created at startup outside prod/test.
    dev_admin_email: str = Field(default="admin@tetherdesk.local", validation_alias="DEV_ADMIN_EMAIL")
    dev_admin_password: str = Field(default="admin123", validation_alias="DEV_ADMIN_PASSWORD")

    # Fallback payee when no active UPI destination is configured.
    upi_payee_vpa: str = Field(default="tetherdesk@axl", validation_alias="UPI_PAYEE_VPA")
    upi_payee_name: str = Field(default="TetherDesk", validation_alias="UPI_PAYEE_NAME")

    @field_validator("enable_docs", mode="before")
    @classmethod
    def default_enable_docs(cls, value, info):
        if value is None or value == "":
            env = str(info.data.get("environment", "dev") or "dev").lower()
            return env in {"dev", "development", "test"}
        if isinstance(value, str):
            return value.strip().lower() in {"1", "true", "yes", "y", "on"}
        return bool(value)

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_and_default_cors_origins(cls, value, info):
        env = str(info.data.get("environment", "dev") or "dev").lower()

        def _normalize_origin(o: str) -> str:
            s = str(o).strip().strip('"').strip("'")
            # Browsers send the Origin header without a trailing slash.
            if s.endswith("/"):
                s = s[:-1]
            return s

        if value is None or value == "" or value == []:
            if env in {"prod", "production"}:
                raise ValueError("CORS_ORIGINS must be explicitly set in production")
            return [
                "http://localhost:5173",
                "http://localhost:3000",
                "http://127.0.0.1:5173",
            ]

        if isinstance(value, str):
            s = value.strip()
            if (s.startswith('"') and s.endswith('"')) or (s.startswith("'") and s.endswith("'")):
                s = s[1:-1].strip()

            try:
                parsed = json.loads(s)
                if isinstance(parsed, str):
                    return [_normalize_origin(parsed)]
                if isinstance(parsed, list):
                    return [_normalize_origin(v) for v in parsed if str(v).strip()]
                return [_normalize_origin(str(parsed))]
            except json.JSONDecodeError:
                pass

            return [_normalize_origin(v) for v in s.split(",") if str(v).strip()]

        return [_normalize_origin(v) for v in value]

    @field_validator("api_prefix", mode="before")
    @classmethod
    def normalize_api_prefix(cls, v) -> str:
        if v is None:
            return ""
        s = str(v).strip().rstrip("/")
        if not s:
            return ""
        # Git Bash on Windows may hand us "C:/Program Files/Git/api"; keep the trailing "/api..." part.
        m = re.search(r"(/api(?:/[^\s]*)?)$", s.replace("\\", "/"))
        if m:
            return m.group(1)
        return s if s.startswith("/") else f"/{s}"

    @field_validator("database_url", mode="before")
    @classmethod
    def normalize_database_url(cls, v) -> str:
        """Pin Postgres URLs to psycopg3 and anchor relative SQLite paths at the backend root."""

        if v is None:
            return v

        s = str(v).strip()
        if not s:
            return s

        if s.startswith("postgres://"):
            s = "postgresql://" + s[len("postgres://") :]
        if s.startswith("postgresql://"):
            return "postgresql+psycopg://" + s[len("postgresql://") :]
        if s.startswith("postgresql+psycopg2://"):
            return "postgresql+psycopg://" + s[len("postgresql+psycopg2://") :]

        if not s.startswith("sqlite"):
            return s

        marker = ":///"
        i = s.find(marker)
        if i == -1:
            return s

        path_part = s[i + len(marker) :]
        if path_part.startswith("/") or path_part.startswith(":memory:"):
            return s
        if re.match(r"^[A-Za-z]:/", path_part):
            return s

        if path_part.startswith("./") or path_part.startswith(".\\"):
            backend_root = Path(__file__).resolve().parents[1]
            abs_path = (backend_root / path_part[2:]).resolve().as_posix()
            return f"{s[: i + len(marker)]}{abs_path}"

        return s

    @field_validator("database_url")
    @classmethod
    def validate_database_url_for_environment(cls, v: str, info) -> str:
        env = str(info.data.get("environment", "dev") or "dev").strip().lower()
        s = str(v or "").strip()

        if env in {"prod", "production"}:
            if s.startswith("sqlite"):
                raise ValueError("SQLite DATABASE_URL is not allowed in production")
            if "localhost" in s or "127.0.0.1" in s:
                raise ValueError("DATABASE_URL must not point to localhost in production")

        return s

    @field_validator("secret_key")
    @classmethod
    def validate_secret_key(cls, v: str) -> str:
        if not v or v.lower() in {"change-me", "secret", "changeme"}:
            raise ValueError("SECRET_KEY must be set to a strong value")
        return v

    @field_validator("payment_window_minutes")
    @classmethod
    def validate_payment_window(cls, v: int) -> int:
        if int(v) <= 0:
            raise ValueError("PAYMENT_WINDOW_MINUTES must be positive")
        return int(v)


settings = Settings()
