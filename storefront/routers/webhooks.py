from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from storefront.models_sqlalchemy import get_db
from storefront.services import orders
from storefront.services.payments import PaymentGateway, get_payment_gateway
from storefront.utils.logger import logger

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    payload = await request.body()
    event = gateway.construct_event(payload, request.headers.get("stripe-signature"))

    event_type = event.get("type")
    obj = (event.get("data") or {}).get("object") or {}
    logger.info(f"Stripe webhook received: {event_type} ({event.get('id')})")

    if event_type == "checkout.session.completed":
        await orders.confirm_payment(db, obj)
    elif event_type == "payment_intent.payment_failed":
        orders.mark_payment_failed(db, obj)
    elif event_type == "charge.refunded":
        orders.record_charge_refunded(db, obj)
    else:
        logger.debug(f"Ignoring Stripe event {event_type}")

    return {"received": True}
