"""Flat-rate shipping tiers keyed on the order subtotal."""
from __future__ import annotations

from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from storefront.errors import NotEligibleError, NotFoundError
from storefront.models_sqlalchemy.models import ShippingRate
from storefront.utils.logger import logger


def is_eligible(rate: ShippingRate, subtotal_cents: int) -> bool:
    if not rate.is_active:
        return False
    if subtotal_cents < (rate.min_order_cents or 0):
        return False
    if rate.max_order_cents is not None and subtotal_cents > rate.max_order_cents:
        return False
    return True


def list_eligible(db: Session, subtotal_cents: int) -> List[ShippingRate]:
    """Eligible active rates, cheapest first."""
    rows = (
        db.query(ShippingRate)
        .filter(ShippingRate.is_active.is_(True))
        .filter(ShippingRate.min_order_cents <= subtotal_cents)
        .filter(or_(ShippingRate.max_order_cents.is_(None), ShippingRate.max_order_cents >= subtotal_cents))
        .all()
    )
    return sorted(rows, key=lambda r: (r.price_cents, r.display_order or 0, r.name or ""))


def select_default(db: Session, subtotal_cents: int) -> Optional[ShippingRate]:
    rates = list_eligible(db, subtotal_cents)
    return rates[0] if rates else None


def resolve(db: Session, subtotal_cents: int, rate_id: Optional[str] = None) -> ShippingRate:
    """Rate to charge at checkout.

    An explicitly requested rate wins when it is active and eligible for
    ``subtotal_cents``; otherwise the cheapest eligible rate is used.
    """
    if rate_id:
        rate = db.query(ShippingRate).filter(ShippingRate.id == rate_id).first()
        if rate is not None and is_eligible(rate, subtotal_cents):
            return rate
        logger.info(f"Requested shipping rate {rate_id} not eligible for subtotal {subtotal_cents}; using default")

    rate = select_default(db, subtotal_cents)
    if rate is None:
        raise NotEligibleError("No shipping option is available for this order")
    return rate


def serialize_rate(rate: ShippingRate) -> dict:
    return {
        "id": rate.id,
        "name": rate.name,
        "description": rate.description,
        "carrier": rate.carrier,
        "priceCents": rate.price_cents,
        "minOrderCents": rate.min_order_cents,
        "maxOrderCents": rate.max_order_cents,
        "estimatedDaysMin": rate.estimated_days_min,
        "estimatedDaysMax": rate.estimated_days_max,
        "displayOrder": rate.display_order,
        "isActive": bool(rate.is_active),
    }


_RATE_FIELDS = {
    "name": "name",
    "description": "description",
    "carrier": "carrier",
    "priceCents": "price_cents",
    "minOrderCents": "min_order_cents",
    "maxOrderCents": "max_order_cents",
    "estimatedDaysMin": "estimated_days_min",
    "estimatedDaysMax": "estimated_days_max",
    "displayOrder": "display_order",
    "isActive": "is_active",
}


def create_rate(db: Session, data: dict) -> ShippingRate:
    rate = ShippingRate()
    for key, attr in _RATE_FIELDS.items():
        if key in data and data[key] is not None:
            setattr(rate, attr, data[key])
    db.add(rate)
    db.commit()
    db.refresh(rate)
    logger.info(f"Shipping rate created: {rate.name} ({rate.price_cents}c)")
    return rate


def update_rate(db: Session, rate_id: str, data: dict) -> ShippingRate:
    rate = db.query(ShippingRate).filter(ShippingRate.id == rate_id).first()
    if rate is None:
        raise NotFoundError("Shipping rate not found")
    for key, attr in _RATE_FIELDS.items():
        if key in data:
            setattr(rate, attr, data[key])
    db.commit()
    db.refresh(rate)
    return rate


def delete_rate(db: Session, rate_id: str) -> None:
    rate = db.query(ShippingRate).filter(ShippingRate.id == rate_id).first()
    if rate is None:
        raise NotFoundError("Shipping rate not found")
    db.delete(rate)
    db.commit()
