# backend/app/services/checkout_service.py
from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from backend.app.core.config import Settings, get_settings
from backend.app.core.errors import CheckoutError, ProviderFailure, ProviderTimeout
from backend.app.core.metrics import checkout_line_items, checkout_requests, provider_duration
from backend.app.integrations.stripe.client import PaymentSessionCreator
from backend.app.models.checkout import PaymentSession, SessionRequest
from backend.app.services.normalizer import normalize_cart

log = logging.getLogger(__name__)


def build_session_request(line_items, cfg: Settings) -> SessionRequest:
    return SessionRequest(
        mode="payment",
        line_items=line_items,
        success_url=cfg.checkout_success_url,
        cancel_url=cfg.checkout_cancel_url,
        allow_promotion_codes=cfg.checkout_allow_promotion_codes,
        billing_address_collection=cfg.checkout_billing_address_collection or None,
    )


async def create_checkout_session(
    products: Any,
    creator: PaymentSessionCreator,
    cfg: Optional[Settings] = None,
) -> PaymentSession:
    """
    Normalize the cart and open a hosted checkout session.

    The provider call is the only await here and is bounded by
    `provider_timeout_seconds`; on expiry the caller stops waiting and gets
    ProviderTimeout. Every outcome lands in `checkout_requests_total`.
    """
    cfg = cfg or get_settings()
    try:
        line_items = normalize_cart(products, currency=cfg.currency)
        request = build_session_request(line_items, cfg)

        stop = provider_duration.timer()
        try:
            session = await asyncio.wait_for(
                creator.create_session(request),
                timeout=cfg.provider_timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            stop({"result": "timeout"})
            log.error(
                "Payment provider timed out after %.1fs (%d items)",
                cfg.provider_timeout_seconds, len(line_items),
            )
            raise ProviderTimeout(f"no response within {cfg.provider_timeout_seconds}s") from exc
        except CheckoutError:
            stop({"result": "error"})
            raise
        except Exception as exc:
            stop({"result": "error"})
            log.exception("Payment session creator failed")
            raise ProviderFailure(f"{type(exc).__name__}: {exc}") from exc
        stop({"result": "ok"})
    except CheckoutError as exc:
        checkout_requests.inc({"outcome": exc.kind})
        raise

    checkout_requests.inc({"outcome": "ok"})
    checkout_line_items.inc(by=len(line_items))
    log.info("Checkout session %s created with %d line items", session.id, len(line_items))
    return session
