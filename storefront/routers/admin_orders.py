from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from storefront.models.orders import AdminOrderUpdate, RefundRequest
from storefront.models_sqlalchemy import get_db
from storefront.models_sqlalchemy.models import User
from storefront.services import orders, refunds
from storefront.services.auth import admin_required
from storefront.services.payments import PaymentGateway, get_payment_gateway

router = APIRouter(prefix="/api/admin/orders", tags=["admin_orders"])


@router.get("")
async def list_orders(
    search: Optional[str] = None,
    status: Optional[str] = None,
    paymentStatus: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    current_user: User = Depends(admin_required),
    db: Session = Depends(get_db),
):
    return orders.list_orders(db, search=search, status=status, payment_status=paymentStatus, page=page, limit=limit)


@router.post("/refund")
async def refund_order(
    payload: RefundRequest,
    current_user: User = Depends(admin_required),
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    result = await refunds.refund_order(
        db,
        gateway,
        payload.orderId,
        amount_cents=payload.amount,
        reason=payload.reason,
        changed_by=current_user.id,
    )
    return result.to_dict()


@router.post("/reconcile")
async def reconcile_orders(
    ttlHours: Optional[int] = Query(None, ge=1),
    current_user: User = Depends(admin_required),
    db: Session = Depends(get_db),
):
    cancelled = orders.reconcile_stale_orders(db, ttl_hours=ttlHours)
    return {"cancelled": cancelled, "count": len(cancelled)}


@router.get("/{order_id}")
async def get_order(order_id: str, current_user: User = Depends(admin_required), db: Session = Depends(get_db)):
    order = orders.get_order(db, order_id)
    return orders.serialize_order(order, include_items=True, include_history=True, admin=True)


@router.put("/{order_id}")
async def update_order(
    order_id: str,
    payload: AdminOrderUpdate,
    current_user: User = Depends(admin_required),
    db: Session = Depends(get_db),
):
    order = await orders.update_order(db, order_id, payload.model_dump(exclude_unset=True), changed_by=current_user.id)
    return {"order": orders.serialize_order(order, include_items=True, include_history=True, admin=True)}
