from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from storefront.models_sqlalchemy import get_db
from storefront.models_sqlalchemy.models import User
from storefront.services import orders
from storefront.services.auth import get_current_user
from storefront.services.shipping_provider import ShippingRateProvider, get_shipping_provider

router = APIRouter(prefix="/api/orders", tags=["orders"])


@router.get("/track")
async def track_order(
    orderNumber: str = Query(..., min_length=1),
    email: str = Query(..., min_length=3),
    db: Session = Depends(get_db),
):
    return orders.track_order(db, orderNumber, email)


@router.get("/track/{tracking_number}/carrier")
async def carrier_tracking(
    tracking_number: str,
    provider: ShippingRateProvider = Depends(get_shipping_provider),
):
    info = await provider.track(tracking_number)
    return info.to_dict()


@router.get("")
async def my_orders(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    rows = orders.list_user_orders(db, current_user.id)
    return {"orders": [orders.serialize_order(o, include_items=True) for o in rows]}


@router.get("/{order_id}")
async def my_order(order_id: str, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    order = orders.get_user_order(db, current_user.id, order_id)
    return orders.serialize_order(order, include_items=True, include_history=True)
