import re

import pytest

from conftest import make_category, make_product
from storefront.errors import NotFoundError
from storefront.models_sqlalchemy.models import Product, normalize_images
from storefront.services import catalog


def test_slugify():
    assert catalog.slugify("Geo Planter (Large)") == "geo-planter-large"
    assert catalog.slugify("  Desk -- Organizer__v2 ") == "desk-organizer-v2"
    assert catalog.slugify("!!!") == ""


def test_generate_sku():
    assert re.match(r"^3T-GPL-\d{4}$", catalog.generate_sku("geo planter large"))
    assert re.match(r"^3T-VX-\d{4}$", catalog.generate_sku("Vase"))
    assert re.match(r"^3T-ABCD-\d{4}$", catalog.generate_sku("a b c d e"))


def test_normalize_images_accepts_legacy_strings_and_moves_primary_first():
    images = normalize_images(
        [
            "https://cdn.example/a.jpg",
            {"url": "https://cdn.example/b.jpg", "alt": "Side", "isPrimary": True},
            {"url": ""},
        ]
    )
    assert [img.url for img in images] == ["https://cdn.example/b.jpg", "https://cdn.example/a.jpg"]
    assert images[0].is_primary is True
    assert images[1].is_primary is False
    assert normalize_images(None) == []


def test_first_image_is_primary_when_none_flagged():
    images = normalize_images(["https://cdn.example/a.jpg", "https://cdn.example/b.jpg"])
    assert images[0].url == "https://cdn.example/a.jpg"
    assert images[0].is_primary is True


def test_create_product_generates_unique_slug_and_sku(db):
    first = catalog.create_product(db, {"name": "Geo Planter", "priceCents": 2000})
    second = catalog.create_product(
        db,
        {"name": "Geo Planter", "priceCents": 2500, "images": ["https://cdn.example/p.jpg"]},
    )

    assert first.slug == "geo-planter"
    assert second.slug == "geo-planter-2"
    assert first.sku.startswith("3T-GP-")
    assert second.images == [{"url": "https://cdn.example/p.jpg", "alt": None, "is_primary": True}]


def test_storefront_listing_hides_inactive_products(db):
    category = make_category(db)
    make_product(db, name="Visible", category_id=category.id, price_cents=1500)
    make_product(db, name="Hidden", is_active=False, category_id=category.id)
    make_product(db, name="Elsewhere", price_cents=500)

    result = catalog.list_products(db, category_slug="planters")
    assert [p["name"] for p in result["products"]] == ["Visible"]

    result = catalog.list_products(db, sort="price_asc")
    assert [p["name"] for p in result["products"]] == ["Elsewhere", "Visible"]

    admin_view = catalog.list_products(db, is_active=None)
    assert admin_view["total"] == 3

    with pytest.raises(NotFoundError):
        catalog.get_product_by_slug(db, "hidden")


def test_delete_product_only_deactivates(db):
    product = make_product(db)
    catalog.deactivate_product(db, product.id)
    assert db.query(Product).filter(Product.id == product.id).one().is_active is False


def test_delete_category_keeps_products(db):
    category = make_category(db)
    product = make_product(db, category_id=category.id)

    catalog.delete_category(db, category.id)

    db.refresh(product)
    assert product.category_id is None
    assert catalog.list_categories(db) == []


def test_serialized_product_flags(db):
    product = make_product(db, price_cents=1500, compare_at_price_cents=2000, stock=0)
    data = catalog.serialize_product(product)
    assert data["onSale"] is True
    assert data["inStock"] is False
    assert data["primaryImage"] == "https://cdn.example/Geo Planter.jpg"
