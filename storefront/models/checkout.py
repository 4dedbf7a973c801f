from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field


class CheckoutItem(BaseModel):
    productId: str
    quantity: int = Field(..., ge=1)


class ShippingAddress(BaseModel):
    """Address entered at checkout. Stored on the order as a snapshot."""

    fullName: str = Field(..., min_length=2)
    email: EmailStr
    addressLine1: str = Field(..., min_length=1)
    addressLine2: Optional[str] = None
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=2)
    postalCode: str = Field(..., min_length=3)
    country: str = "US"
    phone: Optional[str] = None


class CheckoutRequest(BaseModel):
    items: List[CheckoutItem] = Field(..., min_length=1)
    shippingAddress: ShippingAddress
    couponCode: Optional[str] = None
    shippingRateId: Optional[str] = None


class CheckoutResponse(BaseModel):
    sessionId: str
    url: Optional[str] = None
    orderNumber: str


class CouponValidateRequest(BaseModel):
    code: str = Field(..., min_length=1)
    subtotalCents: int = Field(..., ge=0)


class ShippingRatesRequest(BaseModel):
    subtotalCents: int = Field(..., ge=0)


class CartLine(BaseModel):
    productId: str
    quantity: int = Field(1, ge=1)


class CartQuantityUpdate(BaseModel):
    productId: str
    # 0 or less removes the line.
    quantity: int
