"""Order lifecycle: status transitions, admin updates, payment events,
tracking lookups and reconciliation of abandoned checkouts."""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import or_, update
from sqlalchemy.orm import Session

from storefront.config import settings
from storefront.errors import InvalidTransitionError, NotFoundError, ValidationError
from storefront.models_sqlalchemy.models import Order, OrderItem, OrderStatus, OrderStatusHistory, PaymentStatus, Product
from storefront.services import coupons, notifications
from storefront.services.shipping_provider import DEFAULT_PARCEL, ShippingRateProvider, address_from_snapshot
from storefront.utils.dates import ensure_utc, utcnow
from storefront.utils.logger import logger


# Forward fulfilment chain. Admins may skip ahead but never move back.
STATUS_FLOW: List[OrderStatus] = [
    OrderStatus.pending,
    OrderStatus.confirmed,
    OrderStatus.processing,
    OrderStatus.printing,
    OrderStatus.quality_check,
    OrderStatus.ready_to_ship,
    OrderStatus.shipped,
    OrderStatus.delivered,
]

TERMINAL_STATUSES = {OrderStatus.delivered, OrderStatus.cancelled, OrderStatus.refunded}

# cancelled/refunded are reachable from any state before shipped.
_EXIT_STATUSES = {OrderStatus.cancelled, OrderStatus.refunded}
_PRE_SHIPMENT = set(STATUS_FLOW[: STATUS_FLOW.index(OrderStatus.shipped)])


def _coerce_status(value: Union[str, OrderStatus]) -> OrderStatus:
    if isinstance(value, OrderStatus):
        return value
    try:
        return OrderStatus((value or "").strip().lower())
    except ValueError:
        raise ValidationError(f"Invalid order status '{value}'")


def can_transition(current: OrderStatus, new: OrderStatus) -> bool:
    if current in TERMINAL_STATUSES:
        return False
    if new in _EXIT_STATUSES:
        return current in _PRE_SHIPMENT
    return STATUS_FLOW.index(new) > STATUS_FLOW.index(current)


def append_admin_note(order: Order, note: str) -> None:
    stamp = utcnow().strftime("%Y-%m-%d %H:%M UTC")
    line = f"[{stamp}] {note}"
    order.admin_notes = f"{order.admin_notes}\n{line}" if order.admin_notes else line


def add_history(db: Session, order: Order, status: OrderStatus, note: Optional[str] = None, changed_by: Optional[str] = None) -> OrderStatusHistory:
    entry = OrderStatusHistory(order_id=order.id, status=status, note=note, changed_by=changed_by)
    db.add(entry)
    return entry


def apply_status(
    db: Session,
    order: Order,
    new_status: Union[str, OrderStatus],
    changed_by: Optional[str] = None,
    note: Optional[str] = None,
) -> bool:
    """Validate and apply a status change. Returns True when the status moved.

    Re-applying the current status is a no-op. Does not commit.
    """
    new = _coerce_status(new_status)
    current = _coerce_status(order.status)

    if new == current:
        return False
    if not can_transition(current, new):
        raise InvalidTransitionError(f"Cannot change order status from {current.value} to {new.value}")

    order.status = new
    now = utcnow()
    if new == OrderStatus.shipped:
        order.shipped_at = now
    elif new == OrderStatus.delivered:
        order.delivered_at = now

    add_history(db, order, new, note=note or f"Status changed from {current.value} to {new.value}", changed_by=changed_by)
    logger.info(f"Order {order.order_number}: {current.value} -> {new.value} (by {changed_by or 'system'})")
    return True


def get_order(db: Session, order_id: str) -> Order:
    order = db.query(Order).filter(Order.id == order_id).first()
    if order is None:
        raise NotFoundError("Order not found")
    return order


async def update_order(db: Session, order_id: str, changes: Dict[str, Any], changed_by: Optional[str] = None) -> Order:
    """Admin order update.

    ``changes`` holds the fields present in the request (camelCase keys).
    Tracking fields are applied before the status so the shipping email
    carries them.
    """
    order = get_order(db, order_id)

    if "trackingNumber" in changes:
        order.tracking_number = changes["trackingNumber"] or None
    if "trackingUrl" in changes:
        order.tracking_url = changes["trackingUrl"] or None
    if "shippingCarrier" in changes:
        order.shipping_carrier = changes["shippingCarrier"] or None
    if "adminNotes" in changes:
        order.admin_notes = changes["adminNotes"]

    shipped_now = False
    if changes.get("status") is not None:
        moved = apply_status(db, order, changes["status"], changed_by=changed_by, note=changes.get("note"))
        shipped_now = moved and order.status == OrderStatus.shipped

    db.commit()
    db.refresh(order)

    if shipped_now:
        await notifications.send_shipping_notification_email(order)
    return order


def track_order(db: Session, order_number: str, email: str) -> Dict[str, Any]:
    """Guest-facing lookup; both the order number and email must match."""
    if not order_number or not email:
        raise ValidationError("Order number and email are required")

    order = (
        db.query(Order)
        .filter(Order.order_number == order_number.strip().upper())
        .filter(Order.email == email.strip().lower())
        .first()
    )
    if order is None:
        raise NotFoundError("Order not found")

    return {
        "orderNumber": order.order_number,
        "status": order.status.value,
        "createdAt": _iso(order.created_at),
        "shippedAt": _iso(order.shipped_at),
        "deliveredAt": _iso(order.delivered_at),
        "trackingNumber": order.tracking_number,
        "trackingUrl": order.tracking_url,
        "shippingCarrier": order.shipping_carrier,
        "items": [{"productName": item.product_name, "quantity": item.quantity} for item in order.items],
    }


def list_orders(
    db: Session,
    search: Optional[str] = None,
    status: Optional[str] = None,
    payment_status: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
) -> Dict[str, Any]:
    query = db.query(Order)
    if search:
        term = f"%{search.strip()}%"
        query = query.filter(or_(Order.order_number.ilike(term), Order.email.ilike(term)))
    if status:
        query = query.filter(Order.status == _coerce_status(status))
    if payment_status:
        try:
            query = query.filter(Order.payment_status == PaymentStatus(payment_status))
        except ValueError:
            raise ValidationError(f"Invalid payment status '{payment_status}'")

    total = query.count()
    rows = query.order_by(Order.created_at.desc()).offset((page - 1) * limit).limit(limit).all()
    return {
        "orders": [serialize_order(o) for o in rows],
        "total": total,
        "page": page,
        "limit": limit,
        "totalPages": (total + limit - 1) // limit if limit else 0,
    }


def list_user_orders(db: Session, user_id: str) -> List[Order]:
    return db.query(Order).filter(Order.user_id == user_id).order_by(Order.created_at.desc()).all()


def get_user_order(db: Session, user_id: str, order_id: str) -> Order:
    order = db.query(Order).filter(Order.id == order_id, Order.user_id == user_id).first()
    if order is None:
        raise NotFoundError("Order not found")
    return order


def _find_payment_order(db: Session, payment_intent_id: Optional[str], metadata: Optional[dict] = None) -> Optional[Order]:
    order_id = (metadata or {}).get("order_id")
    if order_id:
        order = db.query(Order).filter(Order.id == order_id).first()
        if order is not None:
            return order
    if payment_intent_id:
        return db.query(Order).filter(Order.payment_intent_id == payment_intent_id).first()
    return None


def _decrement_stock(db: Session, order: Order) -> List[str]:
    """Take stock for each tracked item. Returns names of items that could not be covered."""
    shortages = []
    for item in order.items:
        if not item.product_id:
            continue
        product = db.query(Product).filter(Product.id == item.product_id).first()
        if product is None or not product.track_inventory:
            continue
        result = db.execute(
            update(Product)
            .where(Product.id == item.product_id)
            .where(Product.stock_quantity >= item.quantity)
            .values(stock_quantity=Product.stock_quantity - item.quantity)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            shortages.append(item.product_name)
    return shortages


async def confirm_payment(db: Session, session: Dict[str, Any]) -> Optional[Order]:
    """Handle a completed hosted checkout session.

    Idempotent: a session for an order that is already paid is ignored.
    """
    metadata = session.get("metadata") or {}
    order = None
    if metadata.get("order_id"):
        order = db.query(Order).filter(Order.id == metadata["order_id"]).first()
    if order is None and session.get("id"):
        order = db.query(Order).filter(Order.stripe_session_id == session["id"]).first()
    if order is None:
        logger.warning(f"checkout.session.completed for unknown order (session={session.get('id')})")
        return None

    if order.payment_status != PaymentStatus.pending and order.payment_status != PaymentStatus.failed:
        logger.info(f"Order {order.order_number} already {order.payment_status.value}; ignoring duplicate confirmation")
        return order

    order.payment_status = PaymentStatus.paid
    order.payment_intent_id = session.get("payment_intent") or order.payment_intent_id
    order.paid_at = utcnow()
    if not order.stripe_session_id and session.get("id"):
        order.stripe_session_id = session["id"]

    if order.status == OrderStatus.pending:
        apply_status(db, order, OrderStatus.confirmed, note="Payment received")
    else:
        add_history(db, order, order.status, note="Payment received")
        append_admin_note(order, f"Payment received while order was {order.status.value}; review required")
        logger.warning(f"Payment received for order {order.order_number} in status {order.status.value}")

    shortages = _decrement_stock(db, order)
    if shortages:
        names = ", ".join(shortages)
        add_history(db, order, order.status, note=f"Stock conflict at payment: insufficient stock for {names}")
        append_admin_note(order, f"Out of stock at payment confirmation: {names}")
        logger.warning(f"Order {order.order_number} paid with insufficient stock for: {names}")

    if order.coupon_code:
        coupons.redeem_coupon(db, order.coupon_code)

    db.commit()
    db.refresh(order)

    await notifications.send_order_confirmation_email(order)
    return order


def mark_payment_failed(db: Session, payment_intent: Dict[str, Any]) -> Optional[Order]:
    order = _find_payment_order(db, payment_intent.get("id"), payment_intent.get("metadata"))
    if order is None:
        logger.info(f"payment_intent.payment_failed for unknown order (intent={payment_intent.get('id')})")
        return None
    if order.payment_status != PaymentStatus.pending:
        return order

    order.payment_status = PaymentStatus.failed
    if not order.payment_intent_id and payment_intent.get("id"):
        order.payment_intent_id = payment_intent["id"]
    db.commit()
    logger.info(f"Order {order.order_number} payment failed")
    return order


def apply_refunded_amount(db: Session, order: Order, refunded_cents: int, note: Optional[str] = None, changed_by: Optional[str] = None) -> None:
    """Set the cumulative refunded amount and derive payment/order status.

    Does not commit.
    """
    order.refunded_cents = min(refunded_cents, order.total_cents)
    full = order.refunded_cents >= order.total_cents
    order.payment_status = PaymentStatus.refunded if full else PaymentStatus.partially_refunded

    current = _coerce_status(order.status)
    if full and can_transition(current, OrderStatus.refunded):
        apply_status(db, order, OrderStatus.refunded, changed_by=changed_by, note=note)
    else:
        add_history(db, order, current, note=note, changed_by=changed_by)


def record_charge_refunded(db: Session, charge: Dict[str, Any]) -> Optional[Order]:
    """Sync refunds issued outside the admin refund endpoint (e.g. the gateway dashboard)."""
    order = _find_payment_order(db, charge.get("payment_intent"), charge.get("metadata"))
    if order is None:
        logger.info(f"charge.refunded for unknown order (intent={charge.get('payment_intent')})")
        return None

    amount_refunded = int(charge.get("amount_refunded") or 0)
    if amount_refunded <= (order.refunded_cents or 0):
        # Already recorded by the refund endpoint.
        return order

    if charge.get("amount") and amount_refunded >= int(charge["amount"]):
        amount_refunded = order.total_cents

    apply_refunded_amount(db, order, amount_refunded, note=f"Refund recorded from payment processor: {amount_refunded} cents")
    db.commit()
    return order


def reconcile_stale_orders(db: Session, now: Optional[datetime] = None, ttl_hours: Optional[int] = None) -> List[str]:
    """Cancel pending orders whose payment never completed."""
    now = now or utcnow()
    ttl = settings.PENDING_ORDER_TTL_HOURS if ttl_hours is None else ttl_hours
    cutoff = now - timedelta(hours=ttl)

    candidates = (
        db.query(Order)
        .filter(Order.status == OrderStatus.pending)
        .filter(Order.payment_status.in_([PaymentStatus.pending, PaymentStatus.failed]))
        .all()
    )
    cancelled = []
    for order in candidates:
        if ensure_utc(order.created_at) > cutoff:
            continue
        apply_status(db, order, OrderStatus.cancelled, note=f"Cancelled automatically: payment not completed within {ttl} hours")
        cancelled.append(order.order_number)

    db.commit()
    if cancelled:
        logger.info(f"Reconciliation cancelled {len(cancelled)} stale orders: {cancelled}")
    return cancelled


def _iso(value: Optional[datetime]) -> Optional[str]:
    value = ensure_utc(value)
    return value.isoformat() if value else None


def serialize_item(item: OrderItem) -> Dict[str, Any]:
    return {
        "id": item.id,
        "productId": item.product_id,
        "productName": item.product_name,
        "productImage": item.product_image,
        "productSku": item.product_sku,
        "quantity": item.quantity,
        "priceCents": item.price_cents,
        "totalCents": item.total_cents,
    }


def serialize_order(order: Order, include_items: bool = False, include_history: bool = False, admin: bool = False) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "id": order.id,
        "orderNumber": order.order_number,
        "email": order.email,
        "status": order.status.value,
        "paymentStatus": order.payment_status.value,
        "subtotalCents": order.subtotal_cents,
        "discountCents": order.discount_cents,
        "shippingCents": order.shipping_cents,
        "taxCents": order.tax_cents,
        "totalCents": order.total_cents,
        "refundedCents": order.refunded_cents or 0,
        "shippingAddress": order.shipping_address,
        "shippingRateName": order.shipping_rate_name,
        "couponCode": order.coupon_code,
        "trackingNumber": order.tracking_number,
        "trackingUrl": order.tracking_url,
        "shippingCarrier": order.shipping_carrier,
        "shippedAt": _iso(order.shipped_at),
        "deliveredAt": _iso(order.delivered_at),
        "createdAt": _iso(order.created_at),
        "updatedAt": _iso(order.updated_at),
    }
    if admin:
        data["userId"] = order.user_id
        data["adminNotes"] = order.admin_notes
        data["stripeSessionId"] = order.stripe_session_id
        data["paymentIntentId"] = order.payment_intent_id
    if include_items:
        data["items"] = [serialize_item(i) for i in order.items]
    if include_history:
        data["statusHistory"] = [
            {
                "id": h.id,
                "status": h.status.value,
                "note": h.note,
                "changedBy": h.changed_by,
                "createdAt": _iso(h.created_at),
            }
            for h in order.status_history
        ]
    return data


async def create_shipping_label(
    db: Session,
    provider: ShippingRateProvider,
    order_id: str,
    service_type: str = "FEDEX_GROUND",
    parcels: Optional[List[Dict[str, Any]]] = None,
    changed_by: Optional[str] = None,
) -> Dict[str, Any]:
    """Buy a carrier label and move the order to ``ready_to_ship``.

    All checks run before the carrier is called; the purchase itself is
    never retried.
    """
    order = get_order(db, order_id)
    if order.tracking_number:
        raise ValidationError("Shipping label already created for this order")
    if order.payment_status not in (PaymentStatus.paid, PaymentStatus.partially_refunded):
        raise ValidationError("Order has not been paid")

    current = _coerce_status(order.status)
    if current != OrderStatus.ready_to_ship and not can_transition(current, OrderStatus.ready_to_ship):
        raise InvalidTransitionError(f"Cannot create a label for an order in status {current.value}")

    destination = address_from_snapshot(order.shipping_address or {}, email=order.email)
    label = await provider.create_label(destination, parcels or [dict(DEFAULT_PARCEL)], service_type)

    order.tracking_number = label.tracking_number
    order.tracking_url = label.tracking_url
    order.shipping_carrier = label.carrier
    note = f"{label.carrier} shipping label created. Tracking: {label.tracking_number}"
    if not apply_status(db, order, OrderStatus.ready_to_ship, changed_by=changed_by, note=note):
        add_history(db, order, current, note=note, changed_by=changed_by)
    db.commit()

    return {
        "success": True,
        "trackingNumber": label.tracking_number,
        "trackingUrl": label.tracking_url,
        "carrier": label.carrier,
        "labelData": label.label_data,
    }
