import pytest

from conftest import login_as, make_product, make_user
from storefront.errors import NotFoundError, ValidationError
from storefront.services import cart
from storefront.services.cart import Cart, CartLine


def _line(product_id="p1", price=1000, qty=1):
    return CartLine(product_id=product_id, name=f"Product {product_id}", price_cents=price, quantity=qty)


def _saved(db, user):
    return [(line.product_id, line.quantity) for line in cart.get_saved_cart(db, user.id).lines]


def test_adding_same_product_increments_quantity():
    c = Cart()
    c.add(_line("p1", qty=1))
    c.add(_line("p1", qty=2))
    c.add(_line("p2", price=250, qty=1))

    assert len(c.lines) == 2
    assert c.lines[0].quantity == 3
    assert c.item_count == 4
    assert c.total_cents == 3 * 1000 + 250


def test_update_to_zero_removes_line():
    c = Cart()
    c.add(_line("p1", qty=2))
    c.update_quantity("p1", 0)
    assert c.lines == []

    c.add(_line("p1", qty=2))
    c.update_quantity("p1", 5)
    assert c.lines[0].quantity == 5


def test_add_rejects_non_positive_quantity():
    with pytest.raises(ValidationError):
        Cart().add(_line("p1", qty=0))


def test_checkout_items_carry_only_ids_and_quantities():
    c = Cart()
    c.add(_line("p1", qty=2))
    assert c.checkout_items() == [{"productId": "p1", "quantity": 2}]
    c.clear()
    assert c.total_cents == 0


def test_line_from_product_carries_sku_and_primary_image(db):
    product = make_product(db, name="Geo Planter", price_cents=2000, sku="3T-GP-0042")

    line = CartLine.from_product(product, 2)

    assert line.to_dict() == {
        "productId": product.id,
        "name": "Geo Planter",
        "price": 2000,
        "quantity": 2,
        "image": "https://cdn.example/Geo Planter.jpg",
        "sku": "3T-GP-0042",
    }


def test_saved_cart_merges_and_filters_inactive(db):
    user = make_user(db)
    planter = make_product(db, name="Planter")
    vase = make_product(db, name="Vase")

    cart.add_saved_item(db, user.id, planter.id, 1)
    cart.add_saved_item(db, user.id, planter.id, 2)
    cart.add_saved_item(db, user.id, vase.id, 1)

    assert _saved(db, user) == [(planter.id, 3), (vase.id, 1)]

    vase.is_active = False
    db.commit()
    assert _saved(db, user) == [(planter.id, 3)]


def test_saved_cart_uses_current_prices(db):
    user = make_user(db)
    planter = make_product(db, name="Planter", price_cents=2000)
    cart.add_saved_item(db, user.id, planter.id, 2)

    planter.price_cents = 1500
    db.commit()

    saved = cart.get_saved_cart(db, user.id)
    assert saved.total_cents == 3000
    assert saved.item_count == 2


def test_saved_cart_quantity_and_removal(db):
    user = make_user(db)
    planter = make_product(db, name="Planter")
    vase = make_product(db, name="Vase")
    cart.add_saved_item(db, user.id, planter.id, 1)
    cart.add_saved_item(db, user.id, vase.id, 1)

    cart.set_saved_quantity(db, user.id, planter.id, 4)
    assert _saved(db, user)[0] == (planter.id, 4)

    assert cart.set_saved_quantity(db, user.id, planter.id, 0) is None
    assert _saved(db, user) == [(vase.id, 1)]

    cart.remove_saved_item(db, user.id)
    assert _saved(db, user) == []

    with pytest.raises(NotFoundError):
        cart.set_saved_quantity(db, user.id, planter.id, 1)


def test_cannot_save_inactive_product(db):
    user = make_user(db)
    retired = make_product(db, is_active=False)
    with pytest.raises(NotFoundError):
        cart.add_saved_item(db, user.id, retired.id, 1)


def test_cart_endpoints_return_lines_and_totals(client, db):
    user = make_user(db)
    planter = make_product(db, name="Planter", price_cents=2000, sku="3T-PL-0001")
    login_as(user)

    resp = client.post("/api/cart", json={"productId": planter.id, "quantity": 2})
    assert resp.status_code == 200
    body = resp.json()
    assert body["totalCents"] == 4000
    assert body["itemCount"] == 2
    assert body["items"][0]["sku"] == "3T-PL-0001"

    resp = client.put("/api/cart", json={"productId": planter.id, "quantity": 0})
    assert resp.json() == {"items": [], "totalCents": 0, "itemCount": 0}
