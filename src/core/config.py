"""Service configuration read from the environment and ``.env``."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings for the order and refund service.

    Field names map to upper-case environment variables. Supabase settings are
    required; Stripe settings may be empty in development, in which case the
    refund endpoints fail with a gateway error and readiness reports 503.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Service
    app_name: str = Field(default="mealsub-backend", description="Service name used in logs")
    app_env: str = Field(default="development", description="development, staging or production")
    debug: bool = Field(default=False, description="Expose API docs and reload on change")
    host: str = Field(default="0.0.0.0", description="Bind address")
    port: int = Field(default=8080, description="Bind port")
    cors_origins: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        description="Comma-separated origins of the admin and vendor dashboards",
    )

    # Supabase: storage and identity
    supabase_url: str = Field(..., description="Supabase project URL")
    supabase_secret_key: str = Field(..., description="Secret key for server-side table access")
    supabase_signing_key_jwk: str = Field(..., description="Public JWK (JSON) that signs access tokens")
    jwt_audience: str = Field(default="authenticated", description="Expected 'aud' claim of access tokens")

    # Stripe: payment gateway
    stripe_secret_key: str = Field(default="", description="Stripe secret API key")
    stripe_webhook_secret: str = Field(default="", description="Signing secret of the refund webhook endpoint")
    stripe_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Upper bound for a single Stripe API call; a timeout fails the request",
    )

    # Orders
    order_write_attempts: int = Field(
        default=3,
        ge=1,
        description="Reload-and-reapply attempts for order writes that lose a version race",
    )
    default_currency: str = Field(default="inr", description="Currency assumed when a record carries none")

    @property
    def cors_origins_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def is_stripe_test_mode(self) -> bool:
        """True for ``sk_test_`` keys."""
        return self.stripe_secret_key.startswith("sk_test_")

    @property
    def missing_gateway_settings(self) -> list[str]:
        """Names of Stripe variables that are not set."""
        return [
            name
            for name, value in (
                ("STRIPE_SECRET_KEY", self.stripe_secret_key),
                ("STRIPE_WEBHOOK_SECRET", self.stripe_webhook_secret),
            )
            if not value
        ]


@lru_cache
def get_settings() -> Settings:
    """Settings singleton; call ``get_settings.cache_clear()`` to reload."""
    return Settings()
