import pytest

from conftest import days_ago, make_order, make_product
from storefront.errors import InvalidTransitionError, ValidationError
from storefront.models_sqlalchemy.models import OrderStatus, PaymentStatus
from storefront.services import orders
from storefront.services.shipping_provider import FakeShippingRateProvider, LabelDetails


def test_stale_unpaid_orders_are_cancelled(db):
    product = make_product(db)
    stale = make_order(db, products=[(product, 1)], created_at=days_ago(2))
    failed = make_order(db, products=[(product, 1)], payment_status=PaymentStatus.failed, created_at=days_ago(3))
    fresh = make_order(db, products=[(product, 1)], created_at=days_ago(0.1))
    paid = make_order(
        db,
        products=[(product, 1)],
        status=OrderStatus.confirmed,
        payment_status=PaymentStatus.paid,
        created_at=days_ago(5),
    )

    cancelled = orders.reconcile_stale_orders(db, ttl_hours=24)

    assert sorted(cancelled) == sorted([stale.order_number, failed.order_number])
    db.expire_all()
    assert stale.status == OrderStatus.cancelled
    assert failed.status == OrderStatus.cancelled
    assert fresh.status == OrderStatus.pending
    assert paid.status == OrderStatus.confirmed
    assert "Cancelled automatically" in stale.status_history[0].note

    # Running again finds nothing new.
    assert orders.reconcile_stale_orders(db, ttl_hours=24) == []


class RecordingProvider(FakeShippingRateProvider):
    def __init__(self):
        self.calls = []

    async def create_label(self, to_address, parcels, service_type="FEDEX_GROUND"):
        self.calls.append({"to": to_address, "parcels": parcels, "service": service_type})
        return LabelDetails(
            tracking_number="794612345678",
            carrier="FedEx",
            service_name="FedEx Ground",
            tracking_url="https://www.fedex.com/fedextrack/?trknbr=794612345678",
            label_data="JVBERi0xLjQK",
        )


@pytest.mark.asyncio
async def test_create_label_moves_order_to_ready_to_ship(db):
    order = make_order(
        db,
        products=[(make_product(db), 1)],
        status=OrderStatus.quality_check,
        payment_status=PaymentStatus.paid,
    )
    provider = RecordingProvider()

    result = await orders.create_shipping_label(db, provider, order.id, changed_by="admin-1")

    assert result == {
        "success": True,
        "trackingNumber": "794612345678",
        "trackingUrl": "https://www.fedex.com/fedextrack/?trknbr=794612345678",
        "carrier": "FedEx",
        "labelData": "JVBERi0xLjQK",
    }
    db.expire_all()
    assert order.status == OrderStatus.ready_to_ship
    assert order.tracking_number == "794612345678"
    assert provider.calls[0]["to"]["city"] == "Austin"
    assert provider.calls[0]["to"]["contact"]["personName"] == "Ada Lovelace"

    with pytest.raises(ValidationError):
        await orders.create_shipping_label(db, provider, order.id)
    assert len(provider.calls) == 1


@pytest.mark.asyncio
async def test_create_label_requires_paid_order(db):
    order = make_order(db, products=[(make_product(db), 1)])
    provider = RecordingProvider()

    with pytest.raises(ValidationError):
        await orders.create_shipping_label(db, provider, order.id)
    assert provider.calls == []


@pytest.mark.asyncio
async def test_create_label_rejected_after_shipping(db):
    order = make_order(
        db,
        products=[(make_product(db), 1)],
        status=OrderStatus.delivered,
        payment_status=PaymentStatus.paid,
    )
    provider = RecordingProvider()

    with pytest.raises(InvalidTransitionError):
        await orders.create_shipping_label(db, provider, order.id)
    assert provider.calls == []
