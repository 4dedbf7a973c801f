from conftest import (
    FakePaymentGateway,
    days_ago,
    login_as,
    make_coupon,
    make_order,
    make_product,
    make_rates,
    make_user,
    shipping_address,
)
from storefront.config import settings
from storefront.errors import ExternalServiceError
from storefront.exception_handlers import GENERIC_PROVIDER_MESSAGE
from storefront.main import app
from storefront.models_sqlalchemy.models import Order, OrderStatus, PaymentStatus
from storefront.services.payments import get_payment_gateway


def test_healthz(client):
    resp = client.get("/healthz")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}
    assert "X-Request-ID" in resp.headers


def test_register_login_and_me(client, monkeypatch):
    monkeypatch.setattr(settings, "ADMIN_EMAIL_ALLOWLIST", "owner@3tekdesign.com")

    resp = client.post("/api/auth/register", json={"email": "Owner@3tekdesign.com", "password": "correct-horse"})
    assert resp.status_code == 201
    assert resp.json()["user"]["isAdmin"] is True

    resp = client.post("/api/auth/login", json={"email": "owner@3tekdesign.com", "password": "wrong-password"})
    assert resp.status_code == 401
    assert resp.json() == {"error": "Incorrect email or password"}

    resp = client.post("/api/auth/login", json={"email": "owner@3tekdesign.com", "password": "correct-horse"})
    token = resp.json()["access_token"]
    resp = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 200
    assert resp.json()["email"] == "owner@3tekdesign.com"


def test_catalog_endpoints(client, db):
    make_product(db, name="Geo Planter")
    make_product(db, name="Retired", is_active=False)

    resp = client.get("/api/products")
    assert resp.status_code == 200
    assert [p["name"] for p in resp.json()["products"]] == ["Geo Planter"]

    assert client.get("/api/products/geo-planter").json()["name"] == "Geo Planter"

    resp = client.get("/api/products/retired")
    assert resp.status_code == 404
    assert resp.json() == {"error": "Product not found"}


def test_checkout_endpoint(client, db, gateway):
    product = make_product(db, price_cents=2000)
    make_rates(db)

    resp = client.post(
        "/api/checkout",
        json={"items": [{"productId": product.id, "quantity": 1}], "shippingAddress": shipping_address()},
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["sessionId"] == "cs_test_1"
    assert body["orderNumber"].startswith("3T-")
    assert db.query(Order).one().user_id is None


def test_checkout_rejects_empty_cart(client):
    resp = client.post("/api/checkout", json={"items": [], "shippingAddress": shipping_address()})
    assert resp.status_code == 400
    assert "error" in resp.json()


def test_checkout_out_of_stock_is_conflict(client, db):
    product = make_product(db, name="Scarce", stock=0)
    make_rates(db)

    resp = client.post(
        "/api/checkout",
        json={"items": [{"productId": product.id, "quantity": 1}], "shippingAddress": shipping_address()},
    )
    assert resp.status_code == 409
    assert resp.json() == {"error": "Scarce is out of stock"}


def test_checkout_gateway_error_is_generic_for_customers(client, db):
    product = make_product(db)
    make_rates(db)
    failing = FakePaymentGateway(fail_with=ExternalServiceError("boom", provider="stripe", detail="No such api key"))
    app.dependency_overrides[get_payment_gateway] = lambda: failing

    resp = client.post(
        "/api/checkout",
        json={"items": [{"productId": product.id, "quantity": 1}], "shippingAddress": shipping_address()},
    )

    assert resp.status_code == 502
    assert resp.json() == {"error": GENERIC_PROVIDER_MESSAGE}


def test_checkout_without_stripe_configured(client, db, monkeypatch):
    app.dependency_overrides.pop(get_payment_gateway)
    monkeypatch.setattr(settings, "STRIPE_SECRET_KEY", None)

    resp = client.post(
        "/api/checkout",
        json={"items": [{"productId": "p", "quantity": 1}], "shippingAddress": shipping_address()},
    )
    assert resp.status_code == 503
    assert resp.json() == {"error": "Stripe integration not configured"}


def test_validate_coupon_endpoint(client, db):
    make_coupon(db, code="SAVE10", value="10")

    resp = client.post("/api/coupons/validate", json={"code": "save10", "subtotalCents": 2500})
    assert resp.status_code == 200
    assert resp.json()["valid"] is True
    assert resp.json()["discountCents"] == 250

    resp = client.post("/api/coupons/validate", json={"code": "NOPE", "subtotalCents": 2500})
    assert resp.status_code == 404
    assert resp.json() == {"error": "Invalid coupon code"}


def test_shipping_rates_endpoint(client, db):
    make_rates(db)
    resp = client.post("/api/shipping/rates", json={"subtotalCents": 5000})
    assert [r["name"] for r in resp.json()["rates"]] == ["Free Shipping"]


def test_track_order_endpoint(client, db):
    order = make_order(db, products=[(make_product(db), 1)])

    resp = client.get("/api/orders/track", params={"orderNumber": order.order_number, "email": "buyer@example.com"})
    assert resp.status_code == 200
    assert resp.json()["status"] == "pending"

    resp = client.get("/api/orders/track", params={"orderNumber": order.order_number, "email": "x@example.com"})
    assert resp.status_code == 404


def test_my_orders_are_scoped_to_user(client, db):
    user = make_user(db)
    other = make_user(db, email="other@example.com")
    mine = make_order(db, products=[(make_product(db), 1)], user_id=user.id)
    theirs = make_order(db, user_id=other.id)
    login_as(user)

    resp = client.get("/api/orders")
    assert [o["id"] for o in resp.json()["orders"]] == [mine.id]
    assert client.get(f"/api/orders/{theirs.id}").status_code == 404


def test_admin_routes_require_admin(client, db):
    login_as(make_user(db))

    resp = client.get("/api/admin/orders")
    assert resp.status_code == 403
    assert resp.json() == {"error": "Admin access required"}


def test_admin_routes_require_login(client):
    resp = client.get("/api/admin/orders")
    assert resp.status_code in (401, 403)
    assert "error" in resp.json()


def test_admin_order_update_and_refund(client, db, gateway, outbox):
    admin = make_user(db, email="admin@3tekdesign.com", is_admin=True)
    login_as(admin)
    order = make_order(
        db,
        products=[(make_product(db, price_cents=2000), 1)],
        status=OrderStatus.ready_to_ship,
        payment_status=PaymentStatus.paid,
        payment_intent_id="pi_admin",
    )

    resp = client.put(f"/api/admin/orders/{order.id}", json={"status": "shipped", "trackingNumber": "7946"})
    assert resp.status_code == 200
    assert resp.json()["order"]["status"] == "shipped"
    assert resp.json()["order"]["statusHistory"][0]["changedBy"] == admin.id
    assert len(outbox) == 1

    resp = client.put(f"/api/admin/orders/{order.id}", json={"status": "processing"})
    assert resp.status_code == 400
    assert resp.json() == {"error": "Cannot change order status from shipped to processing"}

    resp = client.post("/api/admin/orders/refund", json={"orderId": order.id, "amount": 99999})
    assert resp.status_code == 400
    assert gateway.refunds == []

    resp = client.post("/api/admin/orders/refund", json={"orderId": order.id, "amount": 500, "reason": "duplicate"})
    assert resp.status_code == 200
    assert resp.json()["order"] == {"status": "shipped", "paymentStatus": "partially_refunded", "refundedCents": 500}


def test_admin_sees_provider_detail(client, db):
    admin = make_user(db, email="admin@3tekdesign.com", is_admin=True)
    login_as(admin)
    order = make_order(
        db,
        products=[(make_product(db), 1)],
        status=OrderStatus.confirmed,
        payment_status=PaymentStatus.paid,
        payment_intent_id="pi_admin",
    )
    failing = FakePaymentGateway(
        fail_with=ExternalServiceError("Charge ch_1 has already been refunded.", provider="stripe", detail="Charge ch_1 has already been refunded.")
    )
    app.dependency_overrides[get_payment_gateway] = lambda: failing

    resp = client.post("/api/admin/orders/refund", json={"orderId": order.id})
    assert resp.status_code == 502
    assert resp.json() == {"error": "Charge ch_1 has already been refunded."}


def test_admin_reconcile_endpoint(client, db):
    login_as(make_user(db, email="admin@3tekdesign.com", is_admin=True))
    stale = make_order(db, products=[(make_product(db), 1)], created_at=days_ago(2))

    resp = client.post("/api/admin/orders/reconcile")
    assert resp.status_code == 200
    assert resp.json() == {"cancelled": [stale.order_number], "count": 1}
