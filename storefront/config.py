"""
Configuration management for the storefront API
"""
from decimal import Decimal
from typing import Any, Dict, List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="STOREFRONT_",
        extra="ignore",
    )

    secret_key: str = Field(
        default="dev-secret-key-change-in-production",
        description="Key used to sign bearer tokens"
    )

    database_url: str = Field(
        default="sqlite:///storefront.db",
        description="SQLAlchemy database URL (PostgreSQL in production)"
    )

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)"
    )

    token_max_age: int = Field(
        default=7 * 24 * 3600,
        description="Bearer token lifetime in seconds"
    )

    # Order placement policy
    order_total_policy: str = Field(
        default="verify",
        description="'verify' recomputes the total server-side, 'trust' stores the submitted total"
    )

    total_tolerance: Decimal = Field(
        default=Decimal("0.01"),
        description="Maximum accepted difference between submitted and computed totals"
    )

    shipping_fee: Decimal = Field(
        default=Decimal("0.00"),
        description="Flat shipping fee added to every order"
    )

    tax_rate: Decimal = Field(
        default=Decimal("0"),
        description="Tax rate applied to the order subtotal"
    )

    cart_clear_scope: str = Field(
        default="all",
        description="'all' clears the whole cart after an order, 'ordered' only the ordered products"
    )

    payment_methods: List[str] = Field(
        default_factory=lambda: ["card", "paypal", "cod"],
        description="Accepted payment method tags; empty accepts any non-empty tag"
    )

    low_stock_threshold: int = Field(
        default=5,
        description="Products below this stock level show up on the admin dashboard"
    )

    def to_flask_config(self) -> Dict[str, Any]:
        """Flask config mapping derived from the settings"""
        return {
            'SECRET_KEY': self.secret_key,
            'SQLALCHEMY_DATABASE_URI': self.database_url,
            'SQLALCHEMY_TRACK_MODIFICATIONS': False,
            'LOG_LEVEL': self.log_level.upper(),
            'TOKEN_MAX_AGE': self.token_max_age,
            'ORDER_TOTAL_POLICY': self.order_total_policy,
            'TOTAL_TOLERANCE': self.total_tolerance,
            'SHIPPING_FEE': self.shipping_fee,
            'TAX_RATE': self.tax_rate,
            'CART_CLEAR_SCOPE': self.cart_clear_scope,
            'PAYMENT_METHODS': list(self.payment_methods),
            'LOW_STOCK_THRESHOLD': self.low_stock_threshold,
        }


def load_settings() -> Settings:
    return Settings()
