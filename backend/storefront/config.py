# storefront/config.py
# ============================================================================
# STOREFRONT PAYMENTS — CONFIGURATION
# ============================================================================
# Environment-driven settings. Nothing here talks to the network; validate()
# is called once from the app lifespan so a misconfigured process never
# starts serving payment routes.
# ============================================================================

import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import List, Optional

from storefront.errors import ConfigurationError

DEFAULT_CATALOG_PATH = Path(__file__).resolve().parent / "data" / "products.json"
DEFAULT_FRONTEND_URL = "http://localhost:8000"

# Local frontends allowed alongside FRONTEND_URL when CORS_ORIGINS is unset.
DEV_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:8000",
    "http://127.0.0.1:3000",
]


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


def _env_list(name: str) -> List[str]:
    return [item.strip() for item in os.getenv(name, "").split(",") if item.strip()]


@dataclass
class StorefrontConfig:
    """Runtime configuration for the payments API."""

    stripe_secret_key: Optional[str] = None
    stripe_publishable_key: str = "pk_test_placeholder"
    stripe_webhook_secret: Optional[str] = None
    stripe_connect_webhook_secret: Optional[str] = None

    platform_name: str = "Storefront Marketplace"
    platform_fee_percentage: Decimal = Decimal("10")
    platform_fixed_fee: int = 0  # minor units
    seller_account_id: Optional[str] = None
    currency: str = "usd"

    catalog_path: Path = DEFAULT_CATALOG_PATH
    max_line_quantity: int = 100

    payment_lock_ttl_seconds: float = 30.0
    payment_lock_sweep_seconds: float = 60.0
    payment_retry_window_seconds: float = 300.0

    payment_rate_limit: Optional[str] = "5/15minutes"
    require_session: bool = False

    # Empty means FRONTEND_URL plus DEV_ORIGINS.
    cors_origins: List[str] = field(default_factory=list)
    frontend_url: str = DEFAULT_FRONTEND_URL
    connect_admin_token: Optional[str] = None

    env: str = "development"
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"
    log_json: bool = False

    @classmethod
    def from_env(cls) -> "StorefrontConfig":
        try:
            fee_percentage = Decimal(os.getenv("PLATFORM_FEE_PERCENTAGE", "10"))
        except InvalidOperation:
            raise ConfigurationError("PLATFORM_FEE_PERCENTAGE must be a number")

        return cls(
            stripe_secret_key=os.getenv("STRIPE_SECRET_KEY") or None,
            stripe_publishable_key=os.getenv("STRIPE_PUBLISHABLE_KEY", "pk_test_placeholder"),
            stripe_webhook_secret=os.getenv("STRIPE_WEBHOOK_SECRET") or None,
            stripe_connect_webhook_secret=os.getenv("STRIPE_CONNECT_WEBHOOK_SECRET") or None,
            platform_name=os.getenv("PLATFORM_NAME", "Storefront Marketplace"),
            platform_fee_percentage=fee_percentage,
            platform_fixed_fee=int(os.getenv("PLATFORM_FIXED_FEE", "0")),
            seller_account_id=os.getenv("SELLER_STRIPE_ACCOUNT_ID") or None,
            currency=os.getenv("CURRENCY", "usd").lower(),
            catalog_path=Path(os.getenv("CATALOG_PATH", str(DEFAULT_CATALOG_PATH))),
            max_line_quantity=int(os.getenv("MAX_LINE_QUANTITY", "100")),
            payment_lock_ttl_seconds=float(os.getenv("PAYMENT_LOCK_TTL_SECONDS", "30")),
            payment_lock_sweep_seconds=float(os.getenv("PAYMENT_LOCK_SWEEP_SECONDS", "60")),
            payment_retry_window_seconds=float(os.getenv("PAYMENT_RETRY_WINDOW_SECONDS", "300")),
            payment_rate_limit=os.getenv("PAYMENT_RATE_LIMIT", "5/15minutes") or None,
            require_session=_env_bool("REQUIRE_SESSION"),
            cors_origins=_env_list("CORS_ORIGINS"),
            frontend_url=os.getenv("FRONTEND_URL", DEFAULT_FRONTEND_URL).rstrip("/"),
            connect_admin_token=os.getenv("CONNECT_ADMIN_TOKEN") or None,
            env=os.getenv("ENV", "development"),
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "8000")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            log_json=_env_bool("LOG_JSON"),
        )

    def __post_init__(self):
        if not self.cors_origins:
            self.cors_origins = [self.frontend_url, *DEV_ORIGINS]

    @property
    def is_development(self) -> bool:
        return self.env == "development"

    def require_seller_account(self) -> str:
        if not self.seller_account_id:
            raise ConfigurationError("Seller account not configured")
        return self.seller_account_id

    def validate(self) -> None:
        """Raise ConfigurationError for settings the payment routes cannot run without."""
        missing = []
        if not self.stripe_secret_key:
            missing.append("STRIPE_SECRET_KEY")
        if not self.stripe_webhook_secret:
            missing.append("STRIPE_WEBHOOK_SECRET")
        if missing:
            raise ConfigurationError(
                f"Missing required configuration: {', '.join(missing)}",
                {"missing": missing},
            )

        if not (Decimal("0") <= self.platform_fee_percentage <= Decimal("100")):
            raise ConfigurationError("PLATFORM_FEE_PERCENTAGE must be between 0 and 100")
        if self.platform_fixed_fee < 0:
            raise ConfigurationError("PLATFORM_FIXED_FEE must not be negative")
        if self.payment_lock_ttl_seconds <= 0 or self.payment_lock_sweep_seconds <= 0:
            raise ConfigurationError("Payment lock timings must be positive")
        if self.payment_retry_window_seconds <= 0:
            raise ConfigurationError("PAYMENT_RETRY_WINDOW_SECONDS must be positive")
        if self.max_line_quantity < 1:
            raise ConfigurationError("MAX_LINE_QUANTITY must be at least 1")
        if "*" in self.cors_origins:
            # Credentialed CORS with a wildcard would echo any origin back.
            raise ConfigurationError("CORS_ORIGINS must list explicit origins")
