import pytest

from conftest import FakePaymentGateway, make_coupon, make_product, make_rates, make_user, shipping_address
from storefront.config import settings
from storefront.errors import ExternalServiceError, NotEligibleError, OutOfStockError, ProductsUnavailableError
from storefront.models.checkout import CheckoutRequest
from storefront.models_sqlalchemy.models import DiscountType, Order, OrderItem, OrderStatus, PaymentStatus, ShippingRate
from storefront.services import checkout


@pytest.fixture(autouse=True)
def fixed_tax_rate(monkeypatch):
    monkeypatch.setattr(settings, "TAX_RATE", 0.0825)


def _request(items, **extra) -> CheckoutRequest:
    return CheckoutRequest(items=items, shippingAddress=shipping_address(), **extra)


def _line(product, quantity=1):
    return {"productId": product.id, "quantity": quantity}


def test_quote_totals_with_percentage_coupon(db):
    product = make_product(db, price_cents=2000)
    make_rates(db)
    make_coupon(db, code="SAVE10", value="10")

    quote = checkout.quote_checkout(db, _request([_line(product, 2)]).items, coupon_code="save10")

    assert quote.subtotal_cents == 4000
    assert quote.discount_cents == 400
    assert quote.shipping_cents == 599
    # 8.25% of 3600
    assert quote.tax_cents == 297
    assert quote.total_cents == 4000 - 400 + 599 + 297
    assert quote.coupon_code == "SAVE10"


def test_shipping_tier_uses_pre_discount_subtotal(db):
    product = make_product(db, price_cents=2500)
    make_rates(db)
    make_coupon(db, code="SAVE10", value="10")

    quote = checkout.quote_checkout(db, _request([_line(product, 2)]).items, coupon_code="SAVE10")

    assert quote.subtotal_cents == 5000
    assert quote.discount_cents == 500
    assert quote.shipping_cents == 0
    # 8.25% of 4500 is 371.25
    assert quote.tax_cents == 371
    assert quote.total_cents == 4871


def test_tax_rounds_half_up(db):
    product = make_product(db, price_cents=200)
    make_rates(db)
    # 200 * 0.0825 = 16.5
    quote = checkout.quote_checkout(db, _request([_line(product)]).items)
    assert quote.tax_cents == 17


def test_ineligible_coupon_is_ignored_not_fatal(db):
    product = make_product(db, price_cents=2000)
    make_rates(db)
    make_coupon(db, code="BIGSPEND", value="20", min_order_cents=10000)

    quote = checkout.quote_checkout(db, _request([_line(product)]).items, coupon_code="BIGSPEND")
    assert quote.discount_cents == 0
    assert quote.coupon_code is None

    quote = checkout.quote_checkout(db, _request([_line(product)]).items, coupon_code="UNKNOWN")
    assert quote.discount_cents == 0


def test_fixed_coupon_larger_than_subtotal_is_capped(db):
    product = make_product(db, price_cents=300)
    make_rates(db)
    make_coupon(db, code="TENOFF", discount_type=DiscountType.fixed_amount, value="1000")

    quote = checkout.quote_checkout(db, _request([_line(product)]).items, coupon_code="TENOFF")
    assert quote.discount_cents == 300
    assert quote.tax_cents == 0
    assert quote.total_cents == 599


def test_duplicate_lines_are_merged(db, gateway):
    product = make_product(db, price_cents=1000)
    make_rates(db)

    checkout.create_checkout(db, _request([_line(product, 1), _line(product, 2)]), gateway)

    items = db.query(OrderItem).all()
    assert len(items) == 1
    assert items[0].quantity == 3
    assert items[0].total_cents == 3000


def test_unavailable_products_write_nothing(db, gateway):
    active = make_product(db, name="Active")
    inactive = make_product(db, name="Retired", is_active=False)
    make_rates(db)

    with pytest.raises(ProductsUnavailableError) as excinfo:
        checkout.create_checkout(db, _request([_line(active), _line(inactive)]), gateway)
    assert excinfo.value.product_ids == [inactive.id]

    with pytest.raises(ProductsUnavailableError):
        checkout.create_checkout(db, _request([{"productId": "missing", "quantity": 1}]), gateway)

    assert db.query(Order).count() == 0
    assert gateway.sessions == []


def test_out_of_stock_rejects_whole_order(db, gateway):
    plenty = make_product(db, name="Plenty", stock=10)
    scarce = make_product(db, name="Scarce", stock=1)
    make_rates(db)

    with pytest.raises(OutOfStockError) as excinfo:
        checkout.create_checkout(db, _request([_line(plenty, 2), _line(scarce, 2)]), gateway)
    assert excinfo.value.product_name == "Scarce"

    assert db.query(Order).count() == 0
    db.refresh(plenty)
    assert plenty.stock_quantity == 10


def test_no_eligible_shipping_rate_writes_nothing(db, gateway):
    product = make_product(db, price_cents=2000)
    db.add(ShippingRate(name="Free Shipping", price_cents=0, min_order_cents=5000, max_order_cents=None))
    db.commit()

    with pytest.raises(NotEligibleError):
        checkout.create_checkout(db, _request([_line(product)]), gateway)

    assert db.query(Order).count() == 0
    assert db.query(OrderItem).count() == 0
    assert gateway.sessions == []


def test_untracked_inventory_ignores_stock(db, gateway):
    made_to_order = make_product(db, name="Custom Print", stock=0, track_inventory=False)
    make_rates(db)

    result = checkout.create_checkout(db, _request([_line(made_to_order, 5)]), gateway)
    assert result["orderNumber"].startswith("3T-")


def test_create_checkout_persists_pending_order_and_snapshots(db, gateway):
    product = make_product(db, name="Geo Planter", price_cents=2000)
    make_rates(db)

    result = checkout.create_checkout(
        db,
        CheckoutRequest(
            items=[_line(product, 2)],
            shippingAddress=shipping_address(email="Buyer@Example.COM"),
        ),
        gateway,
    )

    order = db.query(Order).one()
    assert result == {"sessionId": "cs_test_1", "url": "https://checkout.example/cs_test_1", "orderNumber": order.order_number}
    assert order.status == OrderStatus.pending
    assert order.payment_status == PaymentStatus.pending
    assert order.email == "buyer@example.com"
    assert order.stripe_session_id == "cs_test_1"
    assert order.shipping_address["city"] == "Austin"
    assert order.total_cents == order.subtotal_cents - order.discount_cents + order.shipping_cents + order.tax_cents

    # Later catalog edits must not leak into the order.
    product.price_cents = 9999
    product.name = "Renamed"
    db.commit()
    db.refresh(order)
    item = order.items[0]
    assert item.product_name == "Geo Planter"
    assert item.price_cents == 2000
    assert item.total_cents == 4000
    assert item.product_image == "https://cdn.example/Geo Planter.jpg"


def test_session_line_items_include_shipping_tax_and_discount(db, gateway):
    product = make_product(db, price_cents=2000)
    make_rates(db)
    make_coupon(db, code="SAVE10", value="10")

    checkout.create_checkout(db, _request([_line(product)], couponCode="SAVE10"), gateway)

    order = db.query(Order).one()
    sent = gateway.sessions[0]
    assert sent.order_id == order.id
    assert sent.discount_cents == 200
    assert [li.name for li in sent.line_items] == ["Geo Planter", "Shipping", "Sales Tax"]
    charged = sum(li.unit_amount_cents * li.quantity for li in sent.line_items) - sent.discount_cents
    assert charged == order.total_cents


def test_gateway_failure_leaves_pending_order_with_note(db):
    product = make_product(db)
    make_rates(db)
    failing = FakePaymentGateway(
        fail_with=ExternalServiceError("Payment session could not be created", provider="stripe", detail="card_declined")
    )

    with pytest.raises(ExternalServiceError) as excinfo:
        checkout.create_checkout(db, _request([_line(product)]), failing)
    assert excinfo.value.detail == "card_declined"

    order = db.query(Order).one()
    assert order.status == OrderStatus.pending
    assert order.payment_status == PaymentStatus.pending
    assert order.stripe_session_id is None
    assert "Payment session creation failed: card_declined" in order.admin_notes


def test_guest_and_signed_in_orders(db, gateway):
    user = make_user(db)
    product = make_product(db)
    make_rates(db)

    checkout.create_checkout(db, _request([_line(product)]), gateway)
    checkout.create_checkout(db, _request([_line(product)]), gateway, user_id=user.id)

    owners = sorted((o.user_id or "") for o in db.query(Order).all())
    assert owners == ["", user.id]
