from __future__ import annotations

from dataclasses import dataclass, field
import json
from typing import Any, Dict, List, Optional

import stripe

from storefront.config import settings
from storefront.errors import ExternalServiceError, ServiceNotConfiguredError, ValidationError
from storefront.utils.logger import integration_logger, logger


REFUND_REASONS = {"duplicate", "fraudulent", "requested_by_customer"}


def map_refund_reason(reason: Optional[str]) -> str:
    """Map a free-form admin reason onto the gateway's refund reasons."""
    value = (reason or "").strip().lower()
    return value if value in REFUND_REASONS else "requested_by_customer"


@dataclass
class LineItem:
    name: str
    unit_amount_cents: int
    quantity: int
    image_url: Optional[str] = None
    description: Optional[str] = None


@dataclass
class CheckoutSessionRequest:
    order_id: str
    order_number: str
    customer_email: str
    line_items: List[LineItem]
    discount_cents: int = 0
    metadata: Dict[str, str] = field(default_factory=dict)


@dataclass
class CheckoutSession:
    id: str
    url: Optional[str]


@dataclass
class GatewayRefund:
    id: str
    amount_cents: int
    status: str


class PaymentGateway:
    """Abstract interface for the hosted payment processor.

    None of these calls are retried automatically; session creation is made
    idempotent per order through ``idempotency_key``.
    """

    def create_checkout_session(self, request: CheckoutSessionRequest) -> CheckoutSession:  # pragma: no cover - interface
        raise NotImplementedError

    def create_refund(self, payment_intent_id: str, amount_cents: int, reason: str) -> GatewayRefund:  # pragma: no cover - interface
        raise NotImplementedError

    def construct_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:  # pragma: no cover - interface
        raise NotImplementedError


class StripePaymentGateway(PaymentGateway):
    """Stripe Checkout, one-time coupons and refunds."""

    def __init__(self, api_key: str, webhook_secret: Optional[str] = None, timeout: float = 20):
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        stripe.api_key = api_key
        stripe.max_network_retries = 0
        stripe.default_http_client = stripe.RequestsClient(timeout=timeout)

    def _build_line_items(self, request: CheckoutSessionRequest) -> List[Dict[str, Any]]:
        line_items = []
        for item in request.line_items:
            product_data: Dict[str, Any] = {"name": item.name}
            if item.image_url:
                product_data["images"] = [item.image_url]
            if item.description:
                product_data["description"] = item.description
            line_items.append(
                {
                    "price_data": {
                        "currency": settings.CURRENCY,
                        "product_data": product_data,
                        "unit_amount": item.unit_amount_cents,
                    },
                    "quantity": item.quantity,
                }
            )
        return line_items

    def create_checkout_session(self, request: CheckoutSessionRequest) -> CheckoutSession:
        metadata = {"order_id": request.order_id, "order_number": request.order_number, **request.metadata}
        params: Dict[str, Any] = {
            "mode": "payment",
            "payment_method_types": ["card"],
            "line_items": self._build_line_items(request),
            "success_url": f"{settings.APP_URL}/checkout/success?session_id={{CHECKOUT_SESSION_ID}}",
            "cancel_url": f"{settings.APP_URL}/cart",
            "customer_email": request.customer_email,
            "metadata": metadata,
            # payment_intent.* events only carry the intent's own metadata.
            "payment_intent_data": {"metadata": dict(metadata)},
        }

        try:
            if request.discount_cents > 0:
                coupon = stripe.Coupon.create(
                    amount_off=request.discount_cents,
                    currency=settings.CURRENCY,
                    duration="once",
                    max_redemptions=1,
                    name=f"Order {request.order_number} discount",
                    idempotency_key=f"checkout-coupon-{request.order_id}",
                )
                params["discounts"] = [{"coupon": coupon.id}]

            session = stripe.checkout.Session.create(
                idempotency_key=f"checkout-{request.order_id}",
                **params,
            )
        except stripe.StripeError as exc:
            integration_logger.log_event(
                "stripe",
                f"Checkout session creation failed for order {request.order_number}",
                request_data={"order_id": request.order_id, "discount_cents": request.discount_cents},
                status="error",
                error=str(exc),
            )
            raise ExternalServiceError(
                "Payment session could not be created",
                provider="stripe",
                detail=getattr(exc, "user_message", None) or str(exc),
            ) from exc

        integration_logger.log_event(
            "stripe",
            f"Checkout session created for order {request.order_number}",
            request_data={"order_id": request.order_id, "line_items": len(params["line_items"])},
            response_data={"session_id": session.id},
            status="success",
        )
        return CheckoutSession(id=session.id, url=session.url)

    def create_refund(self, payment_intent_id: str, amount_cents: int, reason: str) -> GatewayRefund:
        try:
            refund = stripe.Refund.create(
                payment_intent=payment_intent_id,
                amount=amount_cents,
                reason=map_refund_reason(reason),
            )
        except stripe.StripeError as exc:
            message = getattr(exc, "user_message", None) or str(exc)
            integration_logger.log_event(
                "stripe",
                f"Refund failed for {payment_intent_id}",
                request_data={"payment_intent": payment_intent_id, "amount": amount_cents},
                status="error",
                error=message,
            )
            # Refunds are an admin surface, so the gateway text is the message.
            raise ExternalServiceError(message, provider="stripe", detail=message) from exc

        integration_logger.log_event(
            "stripe",
            f"Refund {refund.id} created for {payment_intent_id}",
            request_data={"payment_intent": payment_intent_id, "amount": amount_cents},
            response_data={"refund_id": refund.id, "status": refund.status},
            status="success",
        )
        return GatewayRefund(id=refund.id, amount_cents=refund.amount, status=refund.status)

    def construct_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        if not self.webhook_secret:
            raise ServiceNotConfiguredError("Stripe webhook")
        if not signature:
            raise ValidationError("Missing stripe-signature header")

        try:
            stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except stripe.SignatureVerificationError as exc:
            logger.warning(f"Stripe webhook signature verification failed: {exc}")
            raise ValidationError("Invalid signature") from exc
        except ValueError as exc:
            raise ValidationError("Invalid payload") from exc

        # Verified; work with plain dicts from here on.
        return json.loads(payload)


def get_payment_gateway() -> PaymentGateway:
    """FastAPI dependency returning the configured gateway."""
    if not settings.stripe_configured:
        raise ServiceNotConfiguredError("Stripe")
    return StripePaymentGateway(
        api_key=settings.STRIPE_SECRET_KEY,
        webhook_secret=settings.STRIPE_WEBHOOK_SECRET,
        timeout=settings.STRIPE_TIMEOUT_SECONDS,
    )
