"""
Application settings

All environment-driven configuration lives here, managed by Pydantic Settings.
Values are read from the environment first, then from the ``.env`` file in the
project root, then from the defaults below.

Key points:
- BaseSettings: reads and validates environment variables
- computed_field: values derived from other fields (database URI)
- model_validator: cross-field checks run after loading
"""
import secrets
import warnings
from pathlib import Path
from typing import Literal

from pydantic import HttpUrl, PostgresDsn, computed_field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing_extensions import Self

# Catalog shipped with the package, used when BILLING_CATALOG_PATH is unset
DEFAULT_CATALOG_PATH = Path(__file__).resolve().parents[1] / "config" / "billing_catalog.json"


class Settings(BaseSettings):
    """
    Service configuration

    Sources, highest priority first:
    1. Environment variables
    2. The ``.env`` file
    3. Defaults declared on the class
    """
    model_config = SettingsConfigDict(
        # The .env file sits one level above backend/
        env_file="../.env",
        env_ignore_empty=True,  # treat empty variables as unset
        extra="ignore",
    )
    API_V1_STR: str = "/api/v1"
    PROJECT_NAME: str = "billing-reconciler"
    ENVIRONMENT: Literal["local", "staging", "production"] = "local"
    SENTRY_DSN: HttpUrl | None = None
    LOG_LEVEL: str = "INFO"

    # Read-path bearer tokens
    SECRET_KEY: str = secrets.token_urlsafe(32)
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # Snowflake node id, unique per running instance
    SNOWFLAKE_NODE_ID: int = 0

    POSTGRES_SERVER: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = ""
    POSTGRES_DB: str = ""
    # Full URL override, e.g. sqlite:///./reconciler.db for local runs
    DATABASE_URL: str | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def SQLALCHEMY_DATABASE_URI(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return str(
            PostgresDsn.build(
                scheme="postgresql+psycopg",
                username=self.POSTGRES_USER,
                password=self.POSTGRES_PASSWORD,
                host=self.POSTGRES_SERVER,
                port=self.POSTGRES_PORT,
                path=self.POSTGRES_DB,
            )
        )

    # Provider webhook
    STRIPE_WEBHOOK_SECRET: str | None = None  # required, checked at startup
    WEBHOOK_TOLERANCE_SECONDS: int = 300  # max age of the signed timestamp
    WEBHOOK_PROCESSING_TIMEOUT_SECONDS: float = 10.0  # per-request budget

    # Price/product catalog (price id -> plan, product classification)
    BILLING_CATALOG_PATH: Path = DEFAULT_CATALOG_PATH

    # Redis, used for the maintenance job lock
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: str | None = None

    # Maintenance scheduler
    ENTITLEMENT_REFRESH_INTERVAL_MINUTES: int = 15

    def _check_default_secret(self, var_name: str, value: str | None) -> None:
        """
        Reject placeholder secrets outside local development

        Args:
            var_name: setting name, used in the message
            value: the configured value

        Raises:
            ValueError: when a non-local environment uses "changethis"
        """
        if value == "changethis":
            message = (
                f'The value of {var_name} is "changethis", '
                "for security, please change it, at least for deployments."
            )
            if self.ENVIRONMENT == "local":
                warnings.warn(message, stacklevel=1)
            else:
                raise ValueError(message)

    @model_validator(mode="after")
    def _enforce_non_default_secrets(self) -> Self:
        self._check_default_secret("SECRET_KEY", self.SECRET_KEY)
        self._check_default_secret("POSTGRES_PASSWORD", self.POSTGRES_PASSWORD)
        self._check_default_secret("STRIPE_WEBHOOK_SECRET", self.STRIPE_WEBHOOK_SECRET)
        return self


settings = Settings()  # type: ignore
