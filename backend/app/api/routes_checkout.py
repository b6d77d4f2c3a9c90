from __future__ import annotations

import json
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request

from backend.app.api.deps import current_settings
from backend.app.core.config import Settings
from backend.app.core.errors import MalformedRequest
from backend.app.integrations.stripe.client import PaymentSessionCreator, get_session_creator
from backend.app.services.checkout_service import create_checkout_session
from backend.app.services.normalizer import NO_PRODUCTS_MESSAGE

router = APIRouter(tags=["checkout"])


async def _read_products(request: Request) -> Any:
    # Parsed by hand: a non-object or unparsable body is a malformed request (400), not a 422
    raw = await request.body()
    if not raw:
        raise MalformedRequest(NO_PRODUCTS_MESSAGE)
    try:
        body = json.loads(raw)
    except ValueError as exc:
        raise MalformedRequest(NO_PRODUCTS_MESSAGE) from exc
    if not isinstance(body, dict):
        raise MalformedRequest(NO_PRODUCTS_MESSAGE)
    return body.get("products")


@router.post("/create-checkout-session")
async def create_session(
    request: Request,
    creator: PaymentSessionCreator = Depends(get_session_creator),
    cfg: Settings = Depends(current_settings),
) -> Dict[str, Any]:
    products = await _read_products(request)
    session = await create_checkout_session(products, creator, cfg)
    return {"id": session.id, "url": session.url}
