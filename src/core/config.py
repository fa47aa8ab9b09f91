"""Application configuration management using Pydantic Settings."""

from decimal import Decimal
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be overridden via environment variables.
    Required settings will raise validation errors if not provided.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="order-lifecycle", description="Application name")
    app_env: str = Field(default="development", description="Environment (development/staging/production)")
    debug: bool = Field(default=False, description="Enable debug mode")

    # Server
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8080, description="Server port")

    # CORS
    cors_origins: str = Field(
        default="http://localhost:3000",
        description="Comma-separated list of allowed CORS origins",
    )

    # Supabase
    supabase_url: str = Field(..., description="Supabase project URL")
    supabase_secret_key: str = Field(..., description="Supabase secret key for backend operations")
    supabase_signing_key_jwk: str = Field(..., description="Supabase signing key JWK (JSON string) for JWT token verification")

    # Stripe
    stripe_secret_key: str = Field(default="", description="Stripe secret API key")

    # Catalog (artworks, partners, credit cards)
    catalog_api_url: str = Field(default="http://localhost:3001/api", description="Catalog service base URL")
    catalog_api_token: str = Field(default="", description="Catalog service app token")

    # TaxJar
    taxjar_api_key: str = Field(default="", description="TaxJar API key")
    taxjar_api_url: str = Field(default="https://api.taxjar.com", description="TaxJar API base URL")

    # Notifications
    notification_webhook_url: str = Field(default="", description="Endpoint receiving order lifecycle events")

    external_request_timeout_seconds: float = Field(default=30.0, description="Timeout for outbound HTTP calls")

    # Order business rules
    supported_currency_code: str = Field(default="usd", description="Only currency accepted for orders")
    tax_remit_country: str = Field(default="US", description="Country where the platform may have to remit tax")
    tax_nexus_states: str = Field(
        default="WA,NJ,PA",
        description="Comma-separated regions where the platform remits sales tax",
    )
    transaction_fee_rate: Decimal = Field(default=Decimal("0.029"), description="Processor percentage fee")
    transaction_fee_fixed_cents: int = Field(default=30, description="Processor fixed fee in cents")
    pending_order_expiry_hours: int = Field(default=48, description="Hours before a pending order expires")
    submitted_order_expiry_hours: int = Field(default=48, description="Hours before a submitted order expires")

    @field_validator("transaction_fee_rate")
    @classmethod
    def validate_fee_rate(cls, value: Decimal) -> Decimal:
        """Reject processor rates outside [0, 1]."""
        if value < 0 or value > 1:
            raise ValueError("transaction_fee_rate must be between 0 and 1")
        return value

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins string into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def tax_nexus_states_set(self) -> frozenset[str]:
        """Parse nexus regions into an upper-cased set."""
        return frozenset(
            state.strip().upper() for state in self.tax_nexus_states.split(",") if state.strip()
        )

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env == "production"

    @property
    def is_stripe_test_mode(self) -> bool:
        """Check if using Stripe test keys."""
        return self.stripe_secret_key.startswith("sk_test_")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton.

    Returns:
        Settings: Application settings instance.

    Note:
        Settings are cached using lru_cache for performance.
        Call get_settings.cache_clear() to reload settings.
    """
    return Settings()
