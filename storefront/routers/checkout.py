from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from storefront.models.checkout import CheckoutRequest, CheckoutResponse, CouponValidateRequest, ShippingRatesRequest
from storefront.models_sqlalchemy import get_db
from storefront.models_sqlalchemy.models import User
from storefront.services import checkout, coupons, shipping_rates
from storefront.services.auth import get_optional_user
from storefront.services.payments import PaymentGateway, get_payment_gateway

router = APIRouter(prefix="/api", tags=["checkout"])


@router.post("/checkout", response_model=CheckoutResponse)
async def create_checkout(
    payload: CheckoutRequest,
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    current_user: Optional[User] = Depends(get_optional_user),
):
    return checkout.create_checkout(db, payload, gateway, user_id=current_user.id if current_user else None)


@router.post("/coupons/validate")
async def validate_coupon(payload: CouponValidateRequest, db: Session = Depends(get_db)):
    application = coupons.validate_coupon(db, payload.code, payload.subtotalCents)
    return {
        "valid": True,
        "coupon": coupons.serialize_coupon(application.coupon),
        "discountCents": application.discount_cents,
    }


@router.post("/shipping/rates")
async def get_shipping_rates(payload: ShippingRatesRequest, db: Session = Depends(get_db)):
    rates = shipping_rates.list_eligible(db, payload.subtotalCents)
    return {"rates": [shipping_rates.serialize_rate(r) for r in rates]}
