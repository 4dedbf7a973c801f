import pytest

from conftest import make_order, make_product
from storefront.errors import InvalidTransitionError, NotFoundError, ValidationError
from storefront.models_sqlalchemy.models import OrderStatus, OrderStatusHistory, PaymentStatus
from storefront.services import orders


S = OrderStatus


@pytest.mark.parametrize(
    "current, new, allowed",
    [
        (S.pending, S.confirmed, True),
        (S.confirmed, S.printing, True),
        (S.processing, S.shipped, True),
        (S.shipped, S.delivered, True),
        (S.printing, S.processing, False),
        (S.shipped, S.confirmed, False),
        (S.pending, S.cancelled, True),
        (S.quality_check, S.refunded, True),
        (S.ready_to_ship, S.cancelled, True),
        (S.shipped, S.cancelled, False),
        (S.shipped, S.refunded, False),
        (S.delivered, S.refunded, False),
        (S.cancelled, S.confirmed, False),
        (S.refunded, S.cancelled, False),
    ],
)
def test_can_transition(current, new, allowed):
    assert orders.can_transition(current, new) is allowed


def test_apply_status_appends_one_history_row(db):
    order = make_order(db, status=S.confirmed)

    assert orders.apply_status(db, order, "printing", changed_by="admin-1") is True
    db.commit()

    history = db.query(OrderStatusHistory).filter(OrderStatusHistory.order_id == order.id).all()
    assert len(history) == 1
    assert history[0].status == S.printing
    assert history[0].changed_by == "admin-1"


def test_same_status_is_a_noop(db):
    order = make_order(db, status=S.processing)
    assert orders.apply_status(db, order, S.processing) is False
    db.commit()
    assert db.query(OrderStatusHistory).count() == 0


def test_invalid_transition_leaves_order_unchanged(db):
    order = make_order(db, status=S.shipped)
    with pytest.raises(InvalidTransitionError):
        orders.apply_status(db, order, S.processing)
    assert order.status == S.shipped
    assert db.query(OrderStatusHistory).count() == 0


def test_unknown_status_is_rejected(db):
    order = make_order(db)
    with pytest.raises(ValidationError):
        orders.apply_status(db, order, "teleported")


def test_shipped_and_delivered_timestamps(db):
    order = make_order(db, status=S.ready_to_ship)
    assert order.shipped_at is None

    orders.apply_status(db, order, S.shipped)
    assert order.shipped_at is not None
    assert order.delivered_at is None

    orders.apply_status(db, order, S.delivered)
    assert order.delivered_at is not None


@pytest.mark.asyncio
async def test_update_order_to_shipped_sends_one_email(db, outbox):
    order = make_order(db, products=[(make_product(db), 1)], status=S.ready_to_ship, payment_status=PaymentStatus.paid)

    updated = await orders.update_order(
        db,
        order.id,
        {"status": "shipped", "trackingNumber": "794600000000", "shippingCarrier": "FedEx"},
        changed_by="admin-1",
    )

    assert updated.status == S.shipped
    assert updated.shipped_at is not None
    assert updated.tracking_number == "794600000000"
    assert len(updated.status_history) == 1
    assert len(outbox) == 1
    assert outbox[0]["to"] == "buyer@example.com"
    assert "794600000000" in outbox[0]["html"]

    # Re-saving the same status sends nothing and records nothing.
    await orders.update_order(db, order.id, {"status": "shipped"})
    db.refresh(updated)
    assert len(updated.status_history) == 1
    assert len(outbox) == 1


@pytest.mark.asyncio
async def test_update_order_notes_only(db, outbox):
    order = make_order(db, status=S.confirmed)
    updated = await orders.update_order(db, order.id, {"adminNotes": "Customer asked for gift wrap"})
    assert updated.status == S.confirmed
    assert updated.admin_notes == "Customer asked for gift wrap"
    assert outbox == []


def test_append_admin_note_is_timestamped(db):
    order = make_order(db)
    orders.append_admin_note(order, "first")
    orders.append_admin_note(order, "second")
    lines = order.admin_notes.splitlines()
    assert len(lines) == 2
    assert lines[0].startswith("[") and lines[0].endswith("] first")
    assert lines[1].endswith("] second")


def test_track_order_requires_matching_email(db):
    order = make_order(db, products=[(make_product(db), 2)])

    result = orders.track_order(db, order.order_number.lower(), "  BUYER@example.com ")
    assert result["orderNumber"] == order.order_number
    assert result["status"] == "pending"
    assert result["items"] == [{"productName": "Geo Planter", "quantity": 2}]
    assert "totalCents" not in result
    assert "shippingAddress" not in result

    with pytest.raises(NotFoundError):
        orders.track_order(db, order.order_number, "someone-else@example.com")
    with pytest.raises(ValidationError):
        orders.track_order(db, "", "buyer@example.com")
