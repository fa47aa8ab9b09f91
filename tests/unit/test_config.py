"""Unit tests for configuration module."""

import os
from decimal import Decimal
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from src.core.config import Settings, get_settings

REQUIRED = {
    "SUPABASE_URL": "https://test.supabase.co",
    "SUPABASE_SECRET_KEY": "test-secret",
    "SUPABASE_SIGNING_KEY_JWK": "{}",
}


class TestSettings:
    """Tests for Settings class."""

    def test_settings_loads_from_environment(self) -> None:
        """Test that Settings loads values from environment variables."""
        env_vars = {
            **REQUIRED,
            "APP_NAME": "test-app",
            "PORT": "9000",
            "TAXJAR_API_KEY": "tj-key",
            "CATALOG_API_URL": "https://catalog.example.com/api",
            "PENDING_ORDER_EXPIRY_HOURS": "24",
        }

        with patch.dict(os.environ, env_vars, clear=False):
            settings = Settings()

            assert settings.app_name == "test-app"
            assert settings.port == 9000
            assert settings.taxjar_api_key == "tj-key"
            assert settings.catalog_api_url == "https://catalog.example.com/api"
            assert settings.pending_order_expiry_hours == 24

    def test_business_rule_defaults(self) -> None:
        """Test the reference fee schedule and tax rules."""
        with patch.dict(os.environ, REQUIRED, clear=True):
            settings = Settings(_env_file=None)

            assert settings.transaction_fee_rate == Decimal("0.029")
            assert settings.transaction_fee_fixed_cents == 30
            assert settings.supported_currency_code == "usd"
            assert settings.tax_remit_country == "US"
            assert settings.tax_nexus_states_set == frozenset({"WA", "NJ", "PA"})
            assert settings.submitted_order_expiry_hours == 48

    def test_nexus_states_are_normalized(self) -> None:
        env_vars = {**REQUIRED, "TAX_NEXUS_STATES": " wa, nj ,,PA "}

        with patch.dict(os.environ, env_vars, clear=False):
            assert Settings().tax_nexus_states_set == frozenset({"WA", "NJ", "PA"})

    def test_fee_rate_out_of_range_is_rejected(self) -> None:
        env_vars = {**REQUIRED, "TRANSACTION_FEE_RATE": "1.5"}

        with patch.dict(os.environ, env_vars, clear=False):
            with pytest.raises(ValidationError):
                Settings()

    def test_settings_cors_origins_list(self) -> None:
        """Test that CORS origins are correctly parsed into a list."""
        env_vars = {**REQUIRED, "CORS_ORIGINS": "http://localhost:3000, http://example.com , http://test.com"}

        with patch.dict(os.environ, env_vars, clear=False):
            origins = Settings().cors_origins_list

            assert origins == ["http://localhost:3000", "http://example.com", "http://test.com"]

    def test_settings_is_production_property(self) -> None:
        """Test the is_production property."""
        with patch.dict(os.environ, {**REQUIRED, "APP_ENV": "production"}, clear=False):
            assert Settings().is_production is True

    def test_stripe_test_mode(self) -> None:
        with patch.dict(os.environ, {**REQUIRED, "STRIPE_SECRET_KEY": "sk_test_abc"}, clear=False):
            assert Settings().is_stripe_test_mode is True

    def test_missing_required_settings_raise(self) -> None:
        """Test that missing Supabase settings fail validation."""
        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(ValidationError):
                Settings(_env_file=None)


class TestGetSettings:
    """Tests for get_settings function."""

    def test_get_settings_is_cached(self) -> None:
        """Test that get_settings returns the same cached instance."""
        get_settings.cache_clear()

        assert get_settings() is get_settings()

        get_settings.cache_clear()
