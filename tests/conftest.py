import json
import os

# Must be set before storefront.config is imported.
os.environ["DATABASE_URL"] = "sqlite://"

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import List, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from storefront.main import app
from storefront.models_sqlalchemy import Base, get_db
from storefront.models_sqlalchemy.models import (
    Category,
    Coupon,
    DiscountType,
    Order,
    OrderItem,
    OrderStatus,
    PaymentStatus,
    Product,
    ShippingRate,
    User,
)
from storefront.services import notifications
from storefront.services.auth import admin_required, get_current_user, get_optional_user
from storefront.services.checkout import generate_order_number
from storefront.services.payments import (
    CheckoutSession,
    CheckoutSessionRequest,
    GatewayRefund,
    PaymentGateway,
    get_payment_gateway,
)


engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


class FakePaymentGateway(PaymentGateway):
    """Records every call instead of talking to the processor."""

    def __init__(self, fail_with: Optional[Exception] = None):
        self.fail_with = fail_with
        self.sessions: List[CheckoutSessionRequest] = []
        self.refunds: List[dict] = []

    def create_checkout_session(self, request: CheckoutSessionRequest) -> CheckoutSession:
        self.sessions.append(request)
        if self.fail_with is not None:
            raise self.fail_with
        n = len(self.sessions)
        return CheckoutSession(id=f"cs_test_{n}", url=f"https://checkout.example/cs_test_{n}")

    def create_refund(self, payment_intent_id: str, amount_cents: int, reason: str) -> GatewayRefund:
        self.refunds.append({"payment_intent": payment_intent_id, "amount": amount_cents, "reason": reason})
        if self.fail_with is not None:
            raise self.fail_with
        return GatewayRefund(id=f"re_test_{len(self.refunds)}", amount_cents=amount_cents, status="succeeded")

    def construct_event(self, payload: bytes, signature: Optional[str]) -> dict:
        return json.loads(payload)


@pytest.fixture
def gateway():
    return FakePaymentGateway()


@pytest.fixture
def outbox(monkeypatch):
    """Capture outgoing email instead of calling SendGrid."""
    sent = []

    async def fake_send_email(to, subject, html, text=None):
        sent.append({"to": to, "subject": subject, "html": html})
        return True

    monkeypatch.setattr(notifications, "send_email", fake_send_email)
    return sent


@pytest.fixture
def client(db, gateway, outbox):
    from fastapi.testclient import TestClient

    def _get_db():
        yield db

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def login_as(user: User) -> None:
    app.dependency_overrides[get_current_user] = lambda: user
    app.dependency_overrides[get_optional_user] = lambda: user
    if user.is_admin:
        app.dependency_overrides[admin_required] = lambda: user


# --- seed helpers ---------------------------------------------------------


def make_user(db, email="buyer@example.com", is_admin=False) -> User:
    user = User(email=email, full_name="Test User", hashed_password="x", is_admin=is_admin, is_active=True)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def make_category(db, name="Planters", slug="planters") -> Category:
    category = Category(name=name, slug=slug)
    db.add(category)
    db.commit()
    db.refresh(category)
    return category


def make_product(db, name="Geo Planter", price_cents=2000, stock=10, slug=None, **kwargs) -> Product:
    product = Product(
        name=name,
        slug=slug or name.lower().replace(" ", "-"),
        price_cents=price_cents,
        stock_quantity=stock,
        track_inventory=kwargs.pop("track_inventory", True),
        is_active=kwargs.pop("is_active", True),
        images=kwargs.pop("images", [{"url": f"https://cdn.example/{name}.jpg", "is_primary": True}]),
        sku=kwargs.pop("sku", f"SKU-{name[:3].upper()}"),
        **kwargs,
    )
    db.add(product)
    db.commit()
    db.refresh(product)
    return product


def make_rates(db):
    """Standard $5.99 below $50, free shipping from $50."""
    standard = ShippingRate(name="Standard", price_cents=599, min_order_cents=0, max_order_cents=4999, display_order=1)
    free = ShippingRate(name="Free Shipping", price_cents=0, min_order_cents=5000, max_order_cents=None, display_order=0)
    db.add_all([standard, free])
    db.commit()
    return standard, free


def make_coupon(db, code="SAVE10", discount_type=DiscountType.percentage, value="10", **kwargs) -> Coupon:
    coupon = Coupon(
        code=code,
        discount_type=discount_type,
        discount_value=Decimal(value),
        usage_count=kwargs.pop("usage_count", 0),
        is_active=kwargs.pop("is_active", True),
        **kwargs,
    )
    db.add(coupon)
    db.commit()
    db.refresh(coupon)
    return coupon


def shipping_address(email="buyer@example.com") -> dict:
    return {
        "fullName": "Ada Lovelace",
        "email": email,
        "addressLine1": "1 Analytical Way",
        "city": "Austin",
        "state": "TX",
        "postalCode": "78701",
        "country": "US",
    }


def days_ago(days: float) -> datetime:
    return datetime.now(timezone.utc) - timedelta(days=days)


def make_order(
    db,
    products=None,
    status=OrderStatus.pending,
    payment_status=PaymentStatus.pending,
    email="buyer@example.com",
    coupon_code=None,
    payment_intent_id=None,
    shipping_cents=599,
    created_at=None,
    user_id=None,
) -> Order:
    """Order with one line per ``(product, quantity)`` pair; tax is left at zero."""
    lines = products or []
    subtotal = sum(p.price_cents * q for p, q in lines)
    order = Order(
        order_number=generate_order_number(),
        email=email,
        user_id=user_id,
        status=status,
        payment_status=payment_status,
        subtotal_cents=subtotal,
        discount_cents=0,
        shipping_cents=shipping_cents,
        tax_cents=0,
        total_cents=subtotal + shipping_cents,
        refunded_cents=0,
        shipping_address={**shipping_address(email), "phone": "5125550000"},
        shipping_rate_name="Standard",
        coupon_code=coupon_code,
        payment_intent_id=payment_intent_id,
    )
    if created_at is not None:
        order.created_at = created_at
    db.add(order)
    db.flush()
    for product, quantity in lines:
        db.add(
            OrderItem(
                order_id=order.id,
                product_id=product.id,
                product_name=product.name,
                product_sku=product.sku,
                quantity=quantity,
                price_cents=product.price_cents,
                total_cents=product.price_cents * quantity,
            )
        )
    db.commit()
    db.refresh(order)
    return order
