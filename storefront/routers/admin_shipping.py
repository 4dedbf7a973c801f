from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from storefront.models.orders import CreateLabelRequest, ShippingRateCreate, ShippingRateUpdate
from storefront.models_sqlalchemy import get_db
from storefront.models_sqlalchemy.models import ShippingRate, User
from storefront.services import orders, shipping_rates
from storefront.services.auth import admin_required
from storefront.services.shipping_provider import ShippingRateProvider, get_shipping_provider

router = APIRouter(prefix="/api/admin/shipping", tags=["admin_shipping"])


@router.get("")
async def list_rates(current_user: User = Depends(admin_required), db: Session = Depends(get_db)):
    rows = db.query(ShippingRate).order_by(ShippingRate.display_order, ShippingRate.price_cents).all()
    return {"rates": [shipping_rates.serialize_rate(r) for r in rows]}


@router.post("", status_code=201)
async def create_rate(payload: ShippingRateCreate, current_user: User = Depends(admin_required), db: Session = Depends(get_db)):
    return {"rate": shipping_rates.serialize_rate(shipping_rates.create_rate(db, payload.model_dump()))}


@router.post("/create-label")
async def create_label(
    payload: CreateLabelRequest,
    current_user: User = Depends(admin_required),
    db: Session = Depends(get_db),
    provider: ShippingRateProvider = Depends(get_shipping_provider),
):
    return await orders.create_shipping_label(
        db,
        provider,
        payload.orderId,
        service_type=payload.serviceType,
        parcels=payload.parcels,
        changed_by=current_user.id,
    )


@router.put("/{rate_id}")
async def update_rate(
    rate_id: str,
    payload: ShippingRateUpdate,
    current_user: User = Depends(admin_required),
    db: Session = Depends(get_db),
):
    rate = shipping_rates.update_rate(db, rate_id, payload.model_dump(exclude_unset=True))
    return {"rate": shipping_rates.serialize_rate(rate)}


@router.delete("/{rate_id}")
async def delete_rate(rate_id: str, current_user: User = Depends(admin_required), db: Session = Depends(get_db)):
    shipping_rates.delete_rate(db, rate_id)
    return {"success": True}
