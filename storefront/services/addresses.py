from __future__ import annotations

from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from storefront.errors import NotFoundError
from storefront.models_sqlalchemy.models import Address


_ADDRESS_FIELDS = {
    "fullName": "full_name",
    "addressLine1": "address_line1",
    "addressLine2": "address_line2",
    "city": "city",
    "state": "state",
    "postalCode": "postal_code",
    "country": "country",
    "phone": "phone",
}


def list_addresses(db: Session, user_id: str) -> List[Address]:
    return (
        db.query(Address)
        .filter(Address.user_id == user_id)
        .order_by(Address.is_default.desc(), Address.created_at)
        .all()
    )


def _get_address(db: Session, user_id: str, address_id: str) -> Address:
    address = db.query(Address).filter(Address.id == address_id, Address.user_id == user_id).first()
    if address is None:
        raise NotFoundError("Address not found")
    return address


def _clear_default(db: Session, user_id: str, keep_id: Optional[str] = None) -> None:
    query = db.query(Address).filter(Address.user_id == user_id, Address.is_default.is_(True))
    if keep_id:
        query = query.filter(Address.id != keep_id)
    query.update({"is_default": False}, synchronize_session=False)


def create_address(db: Session, user_id: str, data: Dict[str, Any]) -> Address:
    # The first address a user saves becomes their default.
    has_any = db.query(Address.id).filter(Address.user_id == user_id).first() is not None
    make_default = bool(data.get("isDefault")) or not has_any
    if make_default:
        _clear_default(db, user_id)

    address = Address(user_id=user_id, is_default=make_default)
    for key, attr in _ADDRESS_FIELDS.items():
        if key in data:
            setattr(address, attr, data[key])
    db.add(address)
    db.commit()
    db.refresh(address)
    return address


def update_address(db: Session, user_id: str, address_id: str, data: Dict[str, Any]) -> Address:
    address = _get_address(db, user_id, address_id)
    for key, attr in _ADDRESS_FIELDS.items():
        if key in data:
            setattr(address, attr, data[key])
    if data.get("isDefault"):
        _clear_default(db, user_id, keep_id=address.id)
        address.is_default = True
    db.commit()
    db.refresh(address)
    return address


def set_default_address(db: Session, user_id: str, address_id: str) -> Address:
    address = _get_address(db, user_id, address_id)
    _clear_default(db, user_id, keep_id=address.id)
    address.is_default = True
    db.commit()
    db.refresh(address)
    return address


def delete_address(db: Session, user_id: str, address_id: str) -> None:
    address = _get_address(db, user_id, address_id)
    db.delete(address)
    db.commit()


def serialize_address(address: Address) -> Dict[str, Any]:
    return {
        "id": address.id,
        "fullName": address.full_name,
        "addressLine1": address.address_line1,
        "addressLine2": address.address_line2,
        "city": address.city,
        "state": address.state,
        "postalCode": address.postal_code,
        "country": address.country,
        "phone": address.phone,
        "isDefault": bool(address.is_default),
    }
