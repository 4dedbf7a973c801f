from sqlalchemy import Column, Integer, String, Float, DateTime, Text, ForeignKey, Enum, Boolean, Index, Numeric, JSON, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, List, Optional
import enum
import uuid

from . import Base

# JSONB on Postgres, plain JSON elsewhere (SQLite in development/tests).
JSONType = JSON().with_variant(JSONB(), "postgresql")


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


class OrderStatus(str, enum.Enum):
    pending = "pending"
    confirmed = "confirmed"
    processing = "processing"
    printing = "printing"
    quality_check = "quality_check"
    ready_to_ship = "ready_to_ship"
    shipped = "shipped"
    delivered = "delivered"
    cancelled = "cancelled"
    refunded = "refunded"


class PaymentStatus(str, enum.Enum):
    pending = "pending"
    paid = "paid"
    failed = "failed"
    refunded = "refunded"
    partially_refunded = "partially_refunded"


class DiscountType(str, enum.Enum):
    percentage = "percentage"
    fixed_amount = "fixed_amount"


@dataclass(frozen=True)
class ProductImage:
    url: str
    alt: Optional[str] = None
    is_primary: bool = False

    def to_dict(self) -> dict:
        return {"url": self.url, "alt": self.alt, "is_primary": self.is_primary}


def normalize_images(raw: Any) -> List[ProductImage]:
    """Normalize stored images to ``ProductImage`` objects.

    Older rows store bare URL strings, newer ones ``{url, alt, is_primary}``
    objects. The primary image is moved to the front; when none is flagged
    the first image is primary.
    """
    images: List[ProductImage] = []
    for item in raw or []:
        if isinstance(item, str):
            if item:
                images.append(ProductImage(url=item))
        elif isinstance(item, dict):
            url = item.get("url")
            if url:
                images.append(
                    ProductImage(
                        url=url,
                        alt=item.get("alt"),
                        is_primary=bool(item.get("is_primary") or item.get("isPrimary")),
                    )
                )
    if not images:
        return images
    primary_idx = next((i for i, img in enumerate(images) if img.is_primary), 0)
    primary = images.pop(primary_idx)
    return [ProductImage(url=primary.url, alt=primary.alt, is_primary=True)] + [
        ProductImage(url=img.url, alt=img.alt, is_primary=False) for img in images
    ]


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_uuid)
    email = Column(String(255), unique=True, nullable=False, index=True)
    full_name = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    hashed_password = Column(String(255), nullable=False)
    is_admin = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)

    addresses = relationship("Address", back_populates="user", cascade="all, delete-orphan")


class Category(Base):
    __tablename__ = "categories"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=False, unique=True, index=True)
    description = Column(Text, nullable=True)
    image_url = Column(Text, nullable=True)
    display_order = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)

    products = relationship("Product", back_populates="category")


class Product(Base):
    __tablename__ = "products"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=False, unique=True, index=True)
    description = Column(Text, nullable=True)
    short_description = Column(Text, nullable=True)

    price_cents = Column(Integer, nullable=False)
    compare_at_price_cents = Column(Integer, nullable=True)

    category_id = Column(String(36), ForeignKey("categories.id", ondelete="SET NULL"), nullable=True, index=True)
    images = Column(JSONType, nullable=False, default=list)

    is_active = Column(Boolean, nullable=False, default=True, index=True)
    is_featured = Column(Boolean, nullable=False, default=False)
    stock_quantity = Column(Integer, nullable=False, default=0)
    track_inventory = Column(Boolean, nullable=False, default=True)
    sku = Column(String(100), nullable=True, index=True)
    badge = Column(String(100), nullable=True)

    material = Column(String(100), nullable=True)
    color = Column(String(100), nullable=True)
    weight_oz = Column(Float, nullable=True)
    print_time_hours = Column(Float, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)

    category = relationship("Category", back_populates="products")

    @property
    def normalized_images(self) -> List[ProductImage]:
        return normalize_images(self.images)

    @property
    def primary_image_url(self) -> Optional[str]:
        images = self.normalized_images
        return images[0].url if images else None

    @property
    def is_on_sale(self) -> bool:
        return bool(self.compare_at_price_cents and self.compare_at_price_cents > self.price_cents)

    @property
    def in_stock(self) -> bool:
        return not self.track_inventory or (self.stock_quantity or 0) > 0


class Coupon(Base):
    __tablename__ = "coupons"

    id = Column(String(36), primary_key=True, default=_uuid)
    code = Column(String(50), nullable=False, unique=True, index=True)
    description = Column(Text, nullable=True)

    discount_type = Column(Enum(DiscountType), nullable=False)
    # Percentage (0-100) for percentage coupons, cents for fixed_amount.
    discount_value = Column(Numeric(10, 2), nullable=False)
    min_order_cents = Column(Integer, nullable=True)
    max_discount_cents = Column(Integer, nullable=True)

    usage_limit = Column(Integer, nullable=True)
    usage_count = Column(Integer, nullable=False, default=0)

    starts_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)


class ShippingRate(Base):
    __tablename__ = "shipping_rates"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    carrier = Column(String(50), nullable=True)
    price_cents = Column(Integer, nullable=False)
    min_order_cents = Column(Integer, nullable=False, default=0)
    max_order_cents = Column(Integer, nullable=True)
    estimated_days_min = Column(Integer, nullable=True)
    estimated_days_max = Column(Integer, nullable=True)
    display_order = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)


class Order(Base):
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=_uuid)
    order_number = Column(String(40), nullable=False, unique=True, index=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    email = Column(String(255), nullable=False, index=True)

    status = Column(Enum(OrderStatus), nullable=False, default=OrderStatus.pending, index=True)
    payment_status = Column(Enum(PaymentStatus), nullable=False, default=PaymentStatus.pending, index=True)

    subtotal_cents = Column(Integer, nullable=False)
    discount_cents = Column(Integer, nullable=False, default=0)
    shipping_cents = Column(Integer, nullable=False, default=0)
    tax_cents = Column(Integer, nullable=False, default=0)
    total_cents = Column(Integer, nullable=False)
    refunded_cents = Column(Integer, nullable=False, default=0)

    # Snapshot of the address entered at checkout; never a reference to
    # the customer's saved addresses.
    shipping_address = Column(JSONType, nullable=False)
    shipping_rate_name = Column(String(255), nullable=True)
    coupon_code = Column(String(50), nullable=True)

    stripe_session_id = Column(String(255), nullable=True, index=True)
    payment_intent_id = Column(String(255), nullable=True, index=True)

    tracking_number = Column(String(100), nullable=True)
    tracking_url = Column(Text, nullable=True)
    shipping_carrier = Column(String(50), nullable=True)
    shipped_at = Column(DateTime(timezone=True), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)

    admin_notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_now, index=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)

    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan", order_by="OrderItem.created_at")
    status_history = relationship(
        "OrderStatusHistory",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderStatusHistory.created_at.desc()",
    )

    __table_args__ = (
        Index("idx_orders_status_payment", "status", "payment_status"),
    )

    @property
    def refundable_cents(self) -> int:
        return max(0, (self.total_cents or 0) - (self.refunded_cents or 0))


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(String(36), primary_key=True, default=_uuid)
    order_id = Column(String(36), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(String(36), ForeignKey("products.id", ondelete="SET NULL"), nullable=True, index=True)

    # Snapshot of the product at order time.
    product_name = Column(String(255), nullable=False)
    product_image = Column(Text, nullable=True)
    product_sku = Column(String(100), nullable=True)

    quantity = Column(Integer, nullable=False)
    price_cents = Column(Integer, nullable=False)
    total_cents = Column(Integer, nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)

    order = relationship("Order", back_populates="items")


class OrderStatusHistory(Base):
    __tablename__ = "order_status_history"

    id = Column(String(36), primary_key=True, default=_uuid)
    order_id = Column(String(36), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(Enum(OrderStatus), nullable=False)
    changed_by = Column(String(36), nullable=True)
    note = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now, index=True)

    order = relationship("Order", back_populates="status_history")


class Address(Base):
    __tablename__ = "addresses"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    full_name = Column(String(255), nullable=False)
    address_line1 = Column(String(255), nullable=False)
    address_line2 = Column(String(255), nullable=True)
    city = Column(String(100), nullable=False)
    state = Column(String(100), nullable=False)
    postal_code = Column(String(20), nullable=False)
    country = Column(String(2), nullable=False, default="US")
    phone = Column(String(50), nullable=True)
    is_default = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)

    user = relationship("User", back_populates="addresses")


class CartItem(Base):
    __tablename__ = "cart_items"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(String(36), ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)

    product = relationship("Product")

    __table_args__ = (
        UniqueConstraint("user_id", "product_id", name="uq_cart_items_user_product"),
    )
