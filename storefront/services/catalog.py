"""Catalog reads and admin catalog mutations.

Products are never hard-deleted: orders keep referencing them, so admin
deletion only clears ``is_active``.
"""
from __future__ import annotations

import re
import secrets
from typing import Any, Dict, List, Optional

from sqlalchemy import asc, desc, or_
from sqlalchemy.orm import Session

from storefront.errors import NotFoundError, ValidationError
from storefront.models_sqlalchemy.models import Category, Product, normalize_images
from storefront.utils.logger import logger


PRODUCT_SORTS = {
    "newest": desc(Product.created_at),
    "price_asc": asc(Product.price_cents),
    "price_desc": desc(Product.price_cents),
    "name": asc(Product.name),
}


def slugify(text: str) -> str:
    slug = (text or "").lower()
    slug = re.sub(r"[^\w\s-]", "", slug)
    slug = re.sub(r"[\s_-]+", "-", slug)
    return slug.strip("-")


def generate_sku(name: str) -> str:
    """``3T-<up to 4 initials, padded to 2 with X>-<4 digits>``."""
    initials = "".join(word[0].upper() for word in (name or "").split() if word)[:4]
    prefix = initials.ljust(2, "X")
    return f"3T-{prefix}-{secrets.randbelow(10000):04d}"


def _unique_slug(db: Session, model, base: str, exclude_id: Optional[str] = None) -> str:
    base = slugify(base)
    if not base:
        raise ValidationError("Slug is required")
    candidate, n = base, 2
    while True:
        query = db.query(model).filter(model.slug == candidate)
        if exclude_id:
            query = query.filter(model.id != exclude_id)
        if query.first() is None:
            return candidate
        candidate = f"{base}-{n}"
        n += 1


def list_products(
    db: Session,
    category_slug: Optional[str] = None,
    search: Optional[str] = None,
    featured: Optional[bool] = None,
    sort: str = "newest",
    page: int = 1,
    limit: int = 24,
    is_active: Optional[bool] = True,
) -> Dict[str, Any]:
    """Paginated product listing. ``is_active=None`` includes inactive products."""
    query = db.query(Product)
    if is_active is not None:
        query = query.filter(Product.is_active.is_(is_active))
    if category_slug:
        query = query.join(Category, Product.category_id == Category.id).filter(Category.slug == category_slug)
    if search:
        term = f"%{search.strip()}%"
        query = query.filter(or_(Product.name.ilike(term), Product.sku.ilike(term), Product.description.ilike(term)))
    if featured is not None:
        query = query.filter(Product.is_featured.is_(featured))

    total = query.count()
    order_by = PRODUCT_SORTS.get(sort, PRODUCT_SORTS["newest"])
    rows = query.order_by(order_by).offset((page - 1) * limit).limit(limit).all()
    return {
        "products": [serialize_product(p) for p in rows],
        "total": total,
        "page": page,
        "limit": limit,
        "totalPages": (total + limit - 1) // limit if limit else 0,
    }


def get_product_by_slug(db: Session, slug: str) -> Product:
    product = db.query(Product).filter(Product.slug == slug, Product.is_active.is_(True)).first()
    if product is None:
        raise NotFoundError("Product not found")
    return product


def get_product(db: Session, product_id: str) -> Product:
    product = db.query(Product).filter(Product.id == product_id).first()
    if product is None:
        raise NotFoundError("Product not found")
    return product


def list_categories(db: Session, include_inactive: bool = False) -> List[Category]:
    query = db.query(Category)
    if not include_inactive:
        query = query.filter(Category.is_active.is_(True))
    return query.order_by(Category.display_order, Category.name).all()


_PRODUCT_FIELDS = {
    "name": "name",
    "description": "description",
    "shortDescription": "short_description",
    "categoryId": "category_id",
    "priceCents": "price_cents",
    "compareAtPriceCents": "compare_at_price_cents",
    "sku": "sku",
    "stockQuantity": "stock_quantity",
    "trackInventory": "track_inventory",
    "weightOz": "weight_oz",
    "material": "material",
    "color": "color",
    "printTimeHours": "print_time_hours",
    "isActive": "is_active",
    "isFeatured": "is_featured",
    "badge": "badge",
}


def _store_images(images) -> list:
    raw = [img if isinstance(img, dict) else img.model_dump() for img in images or []]
    return [img.to_dict() for img in normalize_images(raw)]


def create_product(db: Session, data: Dict[str, Any]) -> Product:
    product = Product()
    for key, attr in _PRODUCT_FIELDS.items():
        if key in data and data[key] is not None:
            setattr(product, attr, data[key])
    product.slug = _unique_slug(db, Product, data.get("slug") or data["name"])
    product.sku = data.get("sku") or generate_sku(data["name"])
    product.images = _store_images(data.get("images"))
    db.add(product)
    db.commit()
    db.refresh(product)
    logger.info(f"Product created: {product.name} ({product.sku})")
    return product


def update_product(db: Session, product_id: str, data: Dict[str, Any]) -> Product:
    product = get_product(db, product_id)
    for key, attr in _PRODUCT_FIELDS.items():
        if key in data:
            setattr(product, attr, data[key])
    if data.get("slug"):
        product.slug = _unique_slug(db, Product, data["slug"], exclude_id=product.id)
    if "images" in data and data["images"] is not None:
        product.images = _store_images(data["images"])
    db.commit()
    db.refresh(product)
    return product


def deactivate_product(db: Session, product_id: str) -> Product:
    product = get_product(db, product_id)
    product.is_active = False
    db.commit()
    logger.info(f"Product deactivated: {product.name}")
    return product


_CATEGORY_FIELDS = {
    "name": "name",
    "description": "description",
    "imageUrl": "image_url",
    "displayOrder": "display_order",
    "isActive": "is_active",
}


def create_category(db: Session, data: Dict[str, Any]) -> Category:
    category = Category()
    for key, attr in _CATEGORY_FIELDS.items():
        if key in data and data[key] is not None:
            setattr(category, attr, data[key])
    category.slug = _unique_slug(db, Category, data.get("slug") or data["name"])
    db.add(category)
    db.commit()
    db.refresh(category)
    return category


def update_category(db: Session, category_id: str, data: Dict[str, Any]) -> Category:
    category = db.query(Category).filter(Category.id == category_id).first()
    if category is None:
        raise NotFoundError("Category not found")
    for key, attr in _CATEGORY_FIELDS.items():
        if key in data:
            setattr(category, attr, data[key])
    if data.get("slug"):
        category.slug = _unique_slug(db, Category, data["slug"], exclude_id=category.id)
    db.commit()
    db.refresh(category)
    return category


def delete_category(db: Session, category_id: str) -> None:
    """Products in the category keep existing with no category."""
    category = db.query(Category).filter(Category.id == category_id).first()
    if category is None:
        raise NotFoundError("Category not found")
    db.query(Product).filter(Product.category_id == category.id).update({"category_id": None}, synchronize_session=False)
    db.delete(category)
    db.commit()


def serialize_product(product: Product) -> Dict[str, Any]:
    return {
        "id": product.id,
        "name": product.name,
        "slug": product.slug,
        "description": product.description,
        "shortDescription": product.short_description,
        "priceCents": product.price_cents,
        "compareAtPriceCents": product.compare_at_price_cents,
        "onSale": product.is_on_sale,
        "categoryId": product.category_id,
        "images": [img.to_dict() for img in product.normalized_images],
        "primaryImage": product.primary_image_url,
        "isActive": bool(product.is_active),
        "isFeatured": bool(product.is_featured),
        "stockQuantity": product.stock_quantity,
        "trackInventory": bool(product.track_inventory),
        "inStock": product.in_stock,
        "sku": product.sku,
        "badge": product.badge,
        "material": product.material,
        "color": product.color,
        "weightOz": product.weight_oz,
        "printTimeHours": product.print_time_hours,
    }


def serialize_category(category: Category) -> Dict[str, Any]:
    return {
        "id": category.id,
        "name": category.name,
        "slug": category.slug,
        "description": category.description,
        "imageUrl": category.image_url,
        "displayOrder": category.display_order,
        "isActive": bool(category.is_active),
    }
