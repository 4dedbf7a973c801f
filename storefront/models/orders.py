from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from storefront.models_sqlalchemy.models import DiscountType, OrderStatus


class AdminOrderUpdate(BaseModel):
    status: Optional[OrderStatus] = None
    trackingNumber: Optional[str] = None
    trackingUrl: Optional[str] = None
    shippingCarrier: Optional[str] = None
    adminNotes: Optional[str] = None
    note: Optional[str] = None


class RefundRequest(BaseModel):
    orderId: str
    # Cents. Defaults to the remaining refundable amount.
    amount: Optional[int] = None
    reason: Optional[str] = None


class CreateLabelRequest(BaseModel):
    orderId: str
    serviceType: str = "FEDEX_GROUND"
    parcels: Optional[List[Dict[str, Any]]] = None


class FedExRatesRequest(BaseModel):
    postalCode: str
    state: Optional[str] = None
    city: Optional[str] = None
    country: str = "US"
    weightOz: Optional[float] = None


class CouponCreate(BaseModel):
    code: str = Field(..., min_length=3)
    description: Optional[str] = None
    discountType: DiscountType
    discountValue: float = Field(..., gt=0)
    minOrderCents: Optional[int] = Field(None, ge=0)
    maxDiscountCents: Optional[int] = Field(None, ge=0)
    usageLimit: Optional[int] = Field(None, gt=0)
    startsAt: Optional[datetime] = None
    expiresAt: Optional[datetime] = None
    isActive: bool = True

    @model_validator(mode="after")
    def check_percentage_range(self) -> "CouponCreate":
        if self.discountType == DiscountType.percentage and self.discountValue > 100:
            raise ValueError("Percentage discount cannot exceed 100")
        return self


class CouponUpdate(BaseModel):
    code: Optional[str] = Field(None, min_length=3)
    description: Optional[str] = None
    discountType: Optional[DiscountType] = None
    discountValue: Optional[float] = Field(None, gt=0)
    minOrderCents: Optional[int] = Field(None, ge=0)
    maxDiscountCents: Optional[int] = Field(None, ge=0)
    usageLimit: Optional[int] = Field(None, gt=0)
    startsAt: Optional[datetime] = None
    expiresAt: Optional[datetime] = None
    isActive: Optional[bool] = None

    @model_validator(mode="after")
    def check_percentage_range(self) -> "CouponUpdate":
        # The stored type is checked in the service when only the value changes.
        if self.discountType == DiscountType.percentage and self.discountValue is not None and self.discountValue > 100:
            raise ValueError("Percentage discount cannot exceed 100")
        return self


class ShippingRateCreate(BaseModel):
    name: str = Field(..., min_length=2)
    description: Optional[str] = None
    carrier: Optional[str] = None
    priceCents: int = Field(..., ge=0)
    minOrderCents: int = Field(0, ge=0)
    maxOrderCents: Optional[int] = Field(None, ge=0)
    estimatedDaysMin: Optional[int] = Field(None, gt=0)
    estimatedDaysMax: Optional[int] = Field(None, gt=0)
    displayOrder: int = 0
    isActive: bool = True


class ShippingRateUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2)
    description: Optional[str] = None
    carrier: Optional[str] = None
    priceCents: Optional[int] = Field(None, ge=0)
    minOrderCents: Optional[int] = Field(None, ge=0)
    maxOrderCents: Optional[int] = Field(None, ge=0)
    estimatedDaysMin: Optional[int] = Field(None, gt=0)
    estimatedDaysMax: Optional[int] = Field(None, gt=0)
    displayOrder: Optional[int] = None
    isActive: Optional[bool] = None


class AddressIn(BaseModel):
    fullName: str = Field(..., min_length=2)
    addressLine1: str = Field(..., min_length=5)
    addressLine2: Optional[str] = None
    city: str = Field(..., min_length=2)
    state: str = Field(..., min_length=2)
    postalCode: str = Field(..., min_length=5)
    country: str = "US"
    phone: Optional[str] = None
    isDefault: bool = False
