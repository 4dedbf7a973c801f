from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from storefront.errors import ValidationError
from storefront.models_sqlalchemy.models import PaymentStatus
from storefront.services import notifications
from storefront.services.orders import apply_refunded_amount, get_order
from storefront.services.payments import PaymentGateway, map_refund_reason
from storefront.utils.logger import logger
from storefront.utils.money import format_price


REFUNDABLE_PAYMENT_STATUSES = {PaymentStatus.paid, PaymentStatus.partially_refunded}


@dataclass
class RefundResult:
    refund_id: str
    amount_cents: int
    gateway_status: str
    order_status: str
    payment_status: str
    refunded_cents: int

    def to_dict(self) -> dict:
        return {
            "success": True,
            "refund": {"id": self.refund_id, "amount": self.amount_cents, "status": self.gateway_status},
            "order": {
                "status": self.order_status,
                "paymentStatus": self.payment_status,
                "refundedCents": self.refunded_cents,
            },
        }


async def refund_order(
    db: Session,
    gateway: PaymentGateway,
    order_id: str,
    amount_cents: Optional[int] = None,
    reason: Optional[str] = None,
    changed_by: Optional[str] = None,
) -> RefundResult:
    """Refund all or part of a paid order.

    ``amount_cents`` defaults to what is left to refund. Every check runs
    before the gateway is called; the gateway call itself is not retried.
    """
    order = get_order(db, order_id)

    if order.payment_status not in REFUNDABLE_PAYMENT_STATUSES:
        raise ValidationError("Order has not been paid")
    if not order.payment_intent_id:
        raise ValidationError("No payment found for this order")

    remaining = order.refundable_cents
    amount = remaining if amount_cents is None else amount_cents
    if amount <= 0 or amount > remaining:
        raise ValidationError(f"Refund amount must be between 1 and {remaining} cents")

    gateway_reason = map_refund_reason(reason)
    refund = gateway.create_refund(order.payment_intent_id, amount, gateway_reason)

    new_total = (order.refunded_cents or 0) + amount
    apply_refunded_amount(
        db,
        order,
        new_total,
        note=f"Refund of {format_price(amount)} processed. Refund ID: {refund.id}",
        changed_by=changed_by,
    )
    db.commit()
    db.refresh(order)
    logger.info(f"Order {order.order_number} refunded {amount} cents (total refunded {order.refunded_cents})")

    is_full = order.payment_status == PaymentStatus.refunded
    await notifications.send_refund_notification_email(order, amount, is_full, gateway_reason)

    return RefundResult(
        refund_id=refund.id,
        amount_cents=amount,
        gateway_status=refund.status,
        order_status=order.status.value,
        payment_status=order.payment_status.value,
        refunded_cents=order.refunded_cents,
    )
