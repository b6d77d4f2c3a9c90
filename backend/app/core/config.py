from __future__ import annotations

import re
from functools import lru_cache
from pathlib import Path
from typing import List

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from backend.app.core.errors import ConfigError

# Load .env from repo root if present
ENV_PATH = Path(__file__).resolve().parents[3] / ".env"
if ENV_PATH.exists():
    load_dotenv(dotenv_path=ENV_PATH)

BILLING_ADDRESS_MODES = ("auto", "required")
_CURRENCY_RE = re.compile(r"^[a-z]{3}$")


class Settings(BaseSettings):
    """Checkout backend settings (loaded from env).

    Stripe:
      - "stripe_secret_key" is required; startup validation refuses to run without it.
      - "stripe_api_version" pins the API version sent with every request.

    Checkout:
      - "checkout_*" values shape every hosted session (currency, redirects, niceties).
    """

    # --- service ---
    service_name: str = Field(default="checkout-backend", description="Service name")
    version: str = Field(default="0.1.0", description="Service version")
    environment: str = Field(default="dev", description="Environment name (dev/staging/prod)")
    host: str = Field(default="0.0.0.0", description="API bind host")
    port: int = Field(default=5000, description="API bind port")

    # Logging
    log_level: str = Field(default="INFO", description="Root log level")
    log_format: str = Field(default="text", description="text|json")

    # --- Stripe ---
    stripe_secret_key: str = Field(default="", description="Stripe secret key (sk_...)")
    stripe_api_version: str = Field(default="2024-06-20", description="Pinned Stripe API version")
    provider_timeout_seconds: float = Field(
        default=20.0,
        description="Upper bound for a single checkout session call to the provider",
    )

    # --- Checkout session shape ---
    checkout_currency: str = Field(default="usd", description="ISO currency code for line items")
    checkout_success_url: str = Field(
        default="http://localhost:5173/success",
        description="Where the provider redirects after payment",
    )
    checkout_cancel_url: str = Field(
        default="http://localhost:5173/cancel",
        description="Where the provider redirects when the buyer backs out",
    )
    checkout_allow_promotion_codes: bool = Field(default=True, description="Let buyers enter promo codes")
    checkout_billing_address_collection: str = Field(default="auto", description="auto|required")

    # --- CORS (the storefront dev server by default) ---
    cors_allow_origins: List[str] = Field(default_factory=lambda: ["http://localhost:5173"])
    cors_allow_methods: List[str] = Field(default_factory=lambda: ["*"])
    cors_allow_headers: List[str] = Field(default_factory=lambda: ["*"])

    # pydantic-settings v2 config
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ---- Convenience helpers ----
    @property
    def currency(self) -> str:
        """Currency code as the provider expects it (lower-case)."""
        return self.checkout_currency.strip().lower()

    @property
    def stripe_key_present(self) -> bool:
        return bool(self.stripe_secret_key.strip())


def validate_settings(cfg: Settings) -> Settings:
    """
    Startup check. Raises ConfigError instead of exiting so the host
    (uvicorn, serve(), tests) decides what a bad config means.
    """
    problems: list[str] = []
    if not cfg.stripe_key_present:
        problems.append("Missing STRIPE_SECRET_KEY")
    if not _CURRENCY_RE.match(cfg.currency):
        problems.append(f"CHECKOUT_CURRENCY must be a 3-letter code, got {cfg.checkout_currency!r}")
    if cfg.checkout_billing_address_collection not in BILLING_ADDRESS_MODES:
        problems.append(
            "CHECKOUT_BILLING_ADDRESS_COLLECTION must be one of "
            f"{', '.join(BILLING_ADDRESS_MODES)}, got {cfg.checkout_billing_address_collection!r}"
        )
    if cfg.provider_timeout_seconds <= 0:
        problems.append("PROVIDER_TIMEOUT_SECONDS must be positive")
    if problems:
        raise ConfigError("; ".join(problems))
    return cfg


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
