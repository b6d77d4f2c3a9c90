# backend/app/integrations/stripe/client.py
from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Protocol, runtime_checkable

import stripe
from fastapi.concurrency import run_in_threadpool

from backend.app.core.config import Settings, get_settings
from backend.app.core.errors import ProviderFailure
from backend.app.models.checkout import PaymentSession, SessionRequest

log = logging.getLogger(__name__)


@runtime_checkable
class PaymentSessionCreator(Protocol):
    """The one capability the checkout flow needs from a payment provider."""
    async def create_session(self, request: SessionRequest) -> PaymentSession: ...


def build_session_params(request: SessionRequest) -> Dict[str, Any]:
    """Map a SessionRequest onto `stripe.checkout.Session.create` params."""
    params: Dict[str, Any] = {
        "mode": request.mode,
        "line_items": [item.to_provider() for item in request.line_items],
        "success_url": request.success_url,
        "cancel_url": request.cancel_url,
    }
    if request.allow_promotion_codes:
        params["allow_promotion_codes"] = True
    if request.billing_address_collection:
        params["billing_address_collection"] = request.billing_address_collection
    return params


class StripeSessionCreator:
    """Creates hosted Checkout Sessions with inline price data. No retries."""

    def __init__(self, secret_key: str, api_version: Optional[str] = None) -> None:
        if not secret_key:
            raise ProviderFailure("Stripe secret key is empty")
        self._secret_key = secret_key
        self._api_version = api_version or None

    async def create_session(self, request: SessionRequest) -> PaymentSession:
        params = build_session_params(request)
        log.info(
            "Creating Stripe checkout session: items=%d mode=%s",
            len(params["line_items"]), request.mode,
        )
        try:
            # SDK call is blocking; keep it off the event loop
            session = await run_in_threadpool(
                stripe.checkout.Session.create,
                api_key=self._secret_key,
                stripe_version=self._api_version,
                **params,
            )
        except Exception as exc:
            log.exception("Stripe session error")
            raise ProviderFailure(f"{type(exc).__name__}: {exc}") from exc

        log.info("Stripe checkout session created: session_id=%s", session.id)
        return PaymentSession(id=session.id, url=session.url)


# Simple singleton
_creator: Optional[PaymentSessionCreator] = None


def make_session_creator(cfg: Optional[Settings] = None) -> PaymentSessionCreator:
    cfg = cfg or get_settings()
    return StripeSessionCreator(cfg.stripe_secret_key, cfg.stripe_api_version)


def get_session_creator() -> PaymentSessionCreator:
    """FastAPI dependency; tests swap it via app.dependency_overrides."""
    global _creator
    if _creator is None:
        _creator = make_session_creator()
    return _creator


def reset_session_creator(creator: Optional[PaymentSessionCreator] = None) -> None:
    global _creator
    _creator = creator
