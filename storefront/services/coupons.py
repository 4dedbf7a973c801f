"""Coupon validation and redemption.

Validation is read-only: it never touches ``usage_count``. The counter is
bumped by :func:`redeem_coupon` once the order it was used on is paid.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import or_, update
from sqlalchemy.orm import Session

from storefront.errors import NotEligibleError, NotFoundError, ValidationError
from storefront.models_sqlalchemy.models import Coupon, DiscountType
from storefront.utils.dates import ensure_utc, utcnow
from storefront.utils.logger import logger
from storefront.utils.money import percent_of, round_half_up


@dataclass
class CouponApplication:
    coupon: Coupon
    discount_cents: int


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


def compute_discount(coupon: Coupon, subtotal_cents: int) -> int:
    """Discount in cents for ``subtotal_cents``; never more than the subtotal."""
    if coupon.discount_type == DiscountType.percentage:
        discount = percent_of(subtotal_cents, coupon.discount_value)
        if coupon.max_discount_cents is not None:
            discount = min(discount, coupon.max_discount_cents)
    else:
        discount = round_half_up(coupon.discount_value)
    return max(0, min(discount, subtotal_cents))


def check_eligibility(coupon: Coupon, subtotal_cents: int, now: Optional[datetime] = None) -> None:
    now = now or utcnow()

    if not coupon.is_active:
        raise NotEligibleError("This coupon is no longer active")

    starts_at = ensure_utc(coupon.starts_at)
    if starts_at and now < starts_at:
        raise NotEligibleError("This coupon is not yet valid")

    expires_at = ensure_utc(coupon.expires_at)
    if expires_at and now > expires_at:
        raise NotEligibleError("This coupon has expired")

    if coupon.usage_limit is not None and (coupon.usage_count or 0) >= coupon.usage_limit:
        raise NotEligibleError("This coupon has reached its usage limit")

    if coupon.min_order_cents is not None and subtotal_cents < coupon.min_order_cents:
        raise NotEligibleError(
            f"Minimum order of ${coupon.min_order_cents / 100:.2f} required for this coupon"
        )


def validate_coupon(db: Session, code: str, subtotal_cents: int, now: Optional[datetime] = None) -> CouponApplication:
    normalized = normalize_code(code)
    coupon = db.query(Coupon).filter(Coupon.code == normalized).first() if normalized else None
    if coupon is None:
        raise NotFoundError("Invalid coupon code")

    check_eligibility(coupon, subtotal_cents, now=now)
    return CouponApplication(coupon=coupon, discount_cents=compute_discount(coupon, subtotal_cents))


def redeem_coupon(db: Session, code: str) -> bool:
    """Atomically count one use of ``code``.

    Returns False when the coupon is unknown or its usage limit was hit
    in the meantime. The caller owns the transaction.
    """
    normalized = normalize_code(code)
    if not normalized:
        return False

    result = db.execute(
        update(Coupon)
        .where(Coupon.code == normalized)
        .where(or_(Coupon.usage_limit.is_(None), Coupon.usage_count < Coupon.usage_limit))
        .values(usage_count=Coupon.usage_count + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        logger.warning(f"Coupon {normalized} could not be redeemed (unknown or usage limit reached)")
        return False
    return True


def serialize_coupon(coupon: Coupon) -> dict:
    return {
        "id": coupon.id,
        "code": coupon.code,
        "description": coupon.description,
        "discountType": coupon.discount_type.value if coupon.discount_type else None,
        "discountValue": float(coupon.discount_value) if coupon.discount_value is not None else None,
        "minOrderCents": coupon.min_order_cents,
        "maxDiscountCents": coupon.max_discount_cents,
        "usageLimit": coupon.usage_limit,
        "usageCount": coupon.usage_count or 0,
        "startsAt": coupon.starts_at.isoformat() if coupon.starts_at else None,
        "expiresAt": coupon.expires_at.isoformat() if coupon.expires_at else None,
        "isActive": bool(coupon.is_active),
    }


_COUPON_FIELDS = {
    "description": "description",
    "discountType": "discount_type",
    "discountValue": "discount_value",
    "minOrderCents": "min_order_cents",
    "maxDiscountCents": "max_discount_cents",
    "usageLimit": "usage_limit",
    "startsAt": "starts_at",
    "expiresAt": "expires_at",
    "isActive": "is_active",
}


def _ensure_code_available(db: Session, code: str, exclude_id: Optional[str] = None) -> None:
    query = db.query(Coupon).filter(Coupon.code == code)
    if exclude_id:
        query = query.filter(Coupon.id != exclude_id)
    if query.first() is not None:
        raise ValidationError(f"Coupon code {code} already exists")


def create_coupon(db: Session, data: dict) -> Coupon:
    code = normalize_code(data["code"])
    _ensure_code_available(db, code)

    coupon = Coupon(code=code, usage_count=0)
    for key, attr in _COUPON_FIELDS.items():
        if key in data:
            setattr(coupon, attr, data[key])
    db.add(coupon)
    db.commit()
    db.refresh(coupon)
    logger.info(f"Coupon created: {code}")
    return coupon


def update_coupon(db: Session, coupon_id: str, data: dict) -> Coupon:
    coupon = db.query(Coupon).filter(Coupon.id == coupon_id).first()
    if coupon is None:
        raise NotFoundError("Coupon not found")

    discount_type = data.get("discountType") or coupon.discount_type
    discount_value = data.get("discountValue") if data.get("discountValue") is not None else coupon.discount_value
    if discount_type == DiscountType.percentage and discount_value > 100:
        raise ValidationError("Percentage discount cannot exceed 100")

    if data.get("code"):
        code = normalize_code(data["code"])
        _ensure_code_available(db, code, exclude_id=coupon.id)
        coupon.code = code
    for key, attr in _COUPON_FIELDS.items():
        if key in data:
            setattr(coupon, attr, data[key])
    db.commit()
    db.refresh(coupon)
    return coupon


def deactivate_coupon(db: Session, coupon_id: str) -> Coupon:
    """Coupons referenced by orders are kept; deleting only deactivates."""
    return update_coupon(db, coupon_id, {"isActive": False})
