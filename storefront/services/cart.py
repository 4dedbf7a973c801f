"""Shopping cart.

``Cart`` is the client-held cart as a plain value object; its prices are
display-only and checkout always re-reads them from the database. The
saved-cart functions persist a signed-in user's cart lines.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from storefront.errors import NotFoundError, ValidationError
from storefront.models_sqlalchemy.models import CartItem, Product


@dataclass
class CartLine:
    product_id: str
    name: str
    price_cents: int
    quantity: int
    image: Optional[str] = None
    sku: Optional[str] = None

    @classmethod
    def from_product(cls, product: Product, quantity: int) -> "CartLine":
        return cls(
            product_id=product.id,
            name=product.name,
            price_cents=product.price_cents,
            quantity=quantity,
            image=product.primary_image_url,
            sku=product.sku,
        )

    def to_dict(self) -> Dict[str, Any]:
        # price is in cents, like every other amount on the wire.
        return {
            "productId": self.product_id,
            "name": self.name,
            "price": self.price_cents,
            "quantity": self.quantity,
            "image": self.image,
            "sku": self.sku,
        }


@dataclass
class Cart:
    lines: List[CartLine] = field(default_factory=list)

    def _find(self, product_id: str) -> Optional[CartLine]:
        return next((line for line in self.lines if line.product_id == product_id), None)

    def add(self, line: CartLine) -> None:
        """Adding a product already in the cart increases its quantity."""
        if line.quantity < 1:
            raise ValidationError("Quantity must be at least 1")
        existing = self._find(line.product_id)
        if existing:
            existing.quantity += line.quantity
        else:
            self.lines.append(line)

    def update_quantity(self, product_id: str, quantity: int) -> None:
        if quantity <= 0:
            self.remove(product_id)
            return
        line = self._find(product_id)
        if line:
            line.quantity = quantity

    def remove(self, product_id: str) -> None:
        self.lines = [line for line in self.lines if line.product_id != product_id]

    def clear(self) -> None:
        self.lines = []

    @property
    def total_cents(self) -> int:
        return sum(line.price_cents * line.quantity for line in self.lines)

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self.lines)

    def checkout_items(self) -> List[Dict[str, Any]]:
        return [{"productId": line.product_id, "quantity": line.quantity} for line in self.lines]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "items": [line.to_dict() for line in self.lines],
            "totalCents": self.total_cents,
            "itemCount": self.item_count,
        }


def get_saved_cart(db: Session, user_id: str) -> Cart:
    """Saved lines whose product is still active, at current prices."""
    rows = (
        db.query(CartItem)
        .join(Product, CartItem.product_id == Product.id)
        .filter(CartItem.user_id == user_id)
        .filter(Product.is_active.is_(True))
        .order_by(CartItem.created_at)
        .all()
    )
    return Cart(lines=[CartLine.from_product(row.product, row.quantity) for row in rows])


def add_saved_item(db: Session, user_id: str, product_id: str, quantity: int = 1) -> CartItem:
    if quantity < 1:
        raise ValidationError("Quantity must be at least 1")
    product = db.query(Product).filter(Product.id == product_id, Product.is_active.is_(True)).first()
    if product is None:
        raise NotFoundError("Product not found")

    item = db.query(CartItem).filter(CartItem.user_id == user_id, CartItem.product_id == product_id).first()
    if item:
        item.quantity += quantity
    else:
        item = CartItem(user_id=user_id, product_id=product_id, quantity=quantity)
        db.add(item)
    db.commit()
    db.refresh(item)
    return item


def set_saved_quantity(db: Session, user_id: str, product_id: str, quantity: int) -> Optional[CartItem]:
    """Set a line's quantity; zero or less removes it."""
    item = db.query(CartItem).filter(CartItem.user_id == user_id, CartItem.product_id == product_id).first()
    if item is None:
        raise NotFoundError("Item not in cart")
    if quantity <= 0:
        db.delete(item)
        db.commit()
        return None
    item.quantity = quantity
    db.commit()
    db.refresh(item)
    return item


def remove_saved_item(db: Session, user_id: str, product_id: Optional[str] = None) -> None:
    """Remove one product, or clear the whole cart when ``product_id`` is None."""
    query = db.query(CartItem).filter(CartItem.user_id == user_id)
    if product_id:
        query = query.filter(CartItem.product_id == product_id)
    query.delete(synchronize_session=False)
    db.commit()
