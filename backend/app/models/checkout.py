# backend/app/models/checkout.py
from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class LineItem(BaseModel):
    """One validated cart entry, priced in minor currency units."""
    model_config = ConfigDict(frozen=True)

    currency: str = Field(min_length=3, max_length=3, description="Lower-case ISO code, e.g. 'usd'")
    name: str = Field(min_length=1, description="Display name shown on the hosted page")
    unit_amount: int = Field(ge=0, description="Price per unit in minor units (cents)")
    quantity: int = Field(ge=1)

    def to_provider(self) -> Dict[str, Any]:
        """Stripe `line_items[]` shape with inline price data (no pre-created Price)."""
        return {
            "price_data": {
                "currency": self.currency,
                "product_data": {"name": self.name},
                "unit_amount": self.unit_amount,
            },
            "quantity": self.quantity,
        }


class SessionRequest(BaseModel):
    """Everything the payment provider needs to open a hosted checkout."""
    model_config = ConfigDict(frozen=True)

    mode: Literal["payment"] = "payment"
    line_items: List[LineItem]
    success_url: str
    cancel_url: str
    allow_promotion_codes: bool = False
    billing_address_collection: Optional[Literal["auto", "required"]] = None


class PaymentSession(BaseModel):
    id: str
    url: Optional[str] = None

