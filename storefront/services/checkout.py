"""Checkout pricing and order creation.

Prices, stock, coupon and shipping are always recomputed from the
database; the client only sends product ids and quantities. The order is
written before the hosted payment session is created, so a gateway
failure leaves a ``pending``/``pending`` order behind (see
``orders.reconcile_stale_orders``).
"""
from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field
import secrets
import threading
import time
from typing import Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.config import settings
from storefront.errors import (
    ExternalServiceError,
    NotEligibleError,
    NotFoundError,
    OutOfStockError,
    ProductsUnavailableError,
    StorefrontError,
)
from storefront.models.checkout import CheckoutRequest
from storefront.models_sqlalchemy.models import Order, OrderItem, OrderStatus, PaymentStatus, Product, ShippingRate
from storefront.services import coupons, shipping_rates
from storefront.services.orders import append_admin_note
from storefront.services.payments import CheckoutSessionRequest, LineItem, PaymentGateway
from storefront.utils.logger import logger
from storefront.utils.money import apply_rate


_BASE36 = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"

_order_number_lock = threading.Lock()
_last_ms: Optional[int] = None
_suffixes_this_ms: set = set()


def to_base36(value: int) -> str:
    if value < 0:
        raise ValueError("value must be non-negative")
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_order_number(now_ms: Optional[int] = None) -> str:
    """Return ``<prefix>-<base36 ms timestamp>-<4 random base36>``.

    Suffixes are tracked per millisecond so that numbers generated in the
    same process within one millisecond never repeat. Uniqueness across
    processes is enforced by the unique column.
    """
    global _last_ms, _suffixes_this_ms

    ms = int(time.time() * 1000) if now_ms is None else now_ms
    with _order_number_lock:
        if ms != _last_ms:
            _last_ms = ms
            _suffixes_this_ms = set()
        while True:
            suffix = "".join(secrets.choice(_BASE36) for _ in range(4))
            if suffix not in _suffixes_this_ms:
                _suffixes_this_ms.add(suffix)
                break
    return f"{settings.ORDER_NUMBER_PREFIX}-{to_base36(ms)}-{suffix}"


@dataclass
class QuotedLine:
    product: Product
    quantity: int

    @property
    def unit_price_cents(self) -> int:
        return self.product.price_cents

    @property
    def total_cents(self) -> int:
        return self.product.price_cents * self.quantity


@dataclass
class CheckoutQuote:
    lines: List[QuotedLine]
    subtotal_cents: int
    discount_cents: int
    shipping_rate: ShippingRate
    shipping_cents: int
    tax_cents: int
    total_cents: int
    coupon_code: Optional[str] = None
    notes: List[str] = field(default_factory=list)


def merge_items(items) -> "OrderedDict[str, int]":
    """Collapse duplicate product lines, summing their quantities."""
    merged: "OrderedDict[str, int]" = OrderedDict()
    for item in items:
        merged[item.productId] = merged.get(item.productId, 0) + item.quantity
    return merged


def quote_checkout(
    db: Session,
    items,
    coupon_code: Optional[str] = None,
    shipping_rate_id: Optional[str] = None,
) -> CheckoutQuote:
    """Price a cart without writing anything."""
    quantities = merge_items(items)
    if not quantities:
        raise ProductsUnavailableError("Cart is empty")

    products = (
        db.query(Product)
        .filter(Product.id.in_(list(quantities.keys())))
        .filter(Product.is_active.is_(True))
        .all()
    )
    by_id: Dict[str, Product] = {p.id: p for p in products}
    if len(by_id) != len(quantities):
        missing = [pid for pid in quantities if pid not in by_id]
        logger.info(f"Checkout rejected, unavailable products: {missing}")
        raise ProductsUnavailableError(product_ids=missing)

    lines = [QuotedLine(product=by_id[pid], quantity=qty) for pid, qty in quantities.items()]

    for line in lines:
        product = line.product
        if product.track_inventory and (product.stock_quantity or 0) < line.quantity:
            raise OutOfStockError(product.name, product_id=product.id)

    subtotal = sum(line.total_cents for line in lines)

    discount = 0
    applied_code = None
    if coupon_code and coupon_code.strip():
        try:
            application = coupons.validate_coupon(db, coupon_code, subtotal)
        except (NotFoundError, NotEligibleError) as exc:
            # Checkout proceeds at full price rather than failing.
            logger.info(f"Coupon {coupon_code!r} ignored at checkout: {exc.message}")
        else:
            discount = application.discount_cents
            applied_code = application.coupon.code

    # Shipping tiers are keyed on the pre-discount subtotal.
    rate = shipping_rates.resolve(db, subtotal, shipping_rate_id)
    shipping = rate.price_cents

    tax = apply_rate(subtotal - discount, settings.TAX_RATE)
    total = subtotal - discount + shipping + tax

    return CheckoutQuote(
        lines=lines,
        subtotal_cents=subtotal,
        discount_cents=discount,
        shipping_rate=rate,
        shipping_cents=shipping,
        tax_cents=tax,
        total_cents=total,
        coupon_code=applied_code,
    )


def _persist_order(db: Session, quote: CheckoutQuote, request: CheckoutRequest, user_id: Optional[str]) -> Order:
    address = request.shippingAddress.model_dump()
    email = request.shippingAddress.email.lower()
    address["email"] = email

    for attempt in range(1, settings.ORDER_NUMBER_MAX_ATTEMPTS + 1):
        order = Order(
            order_number=generate_order_number(),
            user_id=user_id,
            email=email,
            status=OrderStatus.pending,
            payment_status=PaymentStatus.pending,
            subtotal_cents=quote.subtotal_cents,
            discount_cents=quote.discount_cents,
            shipping_cents=quote.shipping_cents,
            tax_cents=quote.tax_cents,
            total_cents=quote.total_cents,
            refunded_cents=0,
            shipping_address=address,
            shipping_rate_name=quote.shipping_rate.name,
            coupon_code=quote.coupon_code,
        )
        db.add(order)
        try:
            db.flush()
        except IntegrityError:
            db.rollback()
            logger.warning(f"Order number collision on attempt {attempt}, retrying")
            continue

        for line in quote.lines:
            product = line.product
            db.add(
                OrderItem(
                    order_id=order.id,
                    product_id=product.id,
                    product_name=product.name,
                    product_image=product.primary_image_url,
                    product_sku=product.sku,
                    quantity=line.quantity,
                    price_cents=line.unit_price_cents,
                    total_cents=line.total_cents,
                )
            )
        db.commit()
        db.refresh(order)
        return order

    raise StorefrontError("Could not allocate an order number")


def _session_line_items(order: Order, quote: CheckoutQuote) -> List[LineItem]:
    line_items = [
        LineItem(
            name=item.product_name,
            unit_amount_cents=item.price_cents,
            quantity=item.quantity,
            image_url=item.product_image,
        )
        for item in order.items
    ]
    if order.shipping_cents > 0:
        line_items.append(
            LineItem(name="Shipping", unit_amount_cents=order.shipping_cents, quantity=1, description=quote.shipping_rate.name)
        )
    if order.tax_cents > 0:
        line_items.append(LineItem(name="Sales Tax", unit_amount_cents=order.tax_cents, quantity=1))
    return line_items


def create_checkout(
    db: Session,
    request: CheckoutRequest,
    gateway: PaymentGateway,
    user_id: Optional[str] = None,
) -> dict:
    quote = quote_checkout(db, request.items, request.couponCode, request.shippingRateId)
    order = _persist_order(db, quote, request, user_id)
    logger.info(
        f"Order {order.order_number} created: subtotal={order.subtotal_cents} discount={order.discount_cents} "
        f"shipping={order.shipping_cents} tax={order.tax_cents} total={order.total_cents}"
    )

    session_request = CheckoutSessionRequest(
        order_id=order.id,
        order_number=order.order_number,
        customer_email=order.email,
        line_items=_session_line_items(order, quote),
        discount_cents=order.discount_cents,
    )
    try:
        session = gateway.create_checkout_session(session_request)
    except Exception as exc:
        detail = getattr(exc, "detail", None) or str(exc)
        logger.error(f"Payment session creation failed for order {order.order_number}: {detail}", exc_info=True)
        append_admin_note(order, f"Payment session creation failed: {detail}")
        db.commit()
        provider = exc.provider if isinstance(exc, ExternalServiceError) else "stripe"
        raise ExternalServiceError("Payment session could not be created", provider=provider, detail=detail) from exc

    order.stripe_session_id = session.id
    db.commit()

    return {"sessionId": session.id, "url": session.url, "orderNumber": order.order_number}
