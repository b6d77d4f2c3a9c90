from __future__ import annotations

from fastapi import APIRouter, Depends

from backend.app.api.deps import current_settings
from backend.app.core.config import Settings

router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health")
def health(cfg: Settings = Depends(current_settings)):
    # Never calls Stripe; only reports what the app was configured with.
    return {
        "service": cfg.service_name,
        "version": cfg.version,
        "env": {
            "environment": cfg.environment,
            "stripe_key_present": cfg.stripe_key_present,
            "stripe_api_version": cfg.stripe_api_version,
        },
        "checkout": {
            "currency": cfg.currency,
            "success_url": cfg.checkout_success_url,
            "cancel_url": cfg.checkout_cancel_url,
            "allow_promotion_codes": cfg.checkout_allow_promotion_codes,
            "billing_address_collection": cfg.checkout_billing_address_collection,
            "provider_timeout_seconds": cfg.provider_timeout_seconds,
        },
        "status": "ok",
    }
