from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from storefront.models.orders import AddressIn
from storefront.models.user import ProfileUpdate
from storefront.models_sqlalchemy import get_db
from storefront.models_sqlalchemy.models import User
from storefront.services import addresses
from storefront.services.auth import get_current_user, serialize_user

router = APIRouter(prefix="/api/account", tags=["account"])


@router.get("/profile")
async def get_profile(current_user: User = Depends(get_current_user)):
    return serialize_user(current_user)


@router.put("/profile")
async def update_profile(
    payload: ProfileUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    changes = payload.model_dump(exclude_unset=True)
    if "fullName" in changes:
        current_user.full_name = changes["fullName"]
    if "phone" in changes:
        current_user.phone = changes["phone"]
    db.commit()
    db.refresh(current_user)
    return serialize_user(current_user)


@router.get("/addresses")
async def list_addresses(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return {"addresses": [addresses.serialize_address(a) for a in addresses.list_addresses(db, current_user.id)]}


@router.post("/addresses", status_code=201)
async def create_address(payload: AddressIn, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    address = addresses.create_address(db, current_user.id, payload.model_dump())
    return addresses.serialize_address(address)


@router.put("/addresses/{address_id}")
async def update_address(
    address_id: str,
    payload: AddressIn,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    address = addresses.update_address(db, current_user.id, address_id, payload.model_dump(exclude_unset=True))
    return addresses.serialize_address(address)


@router.post("/addresses/{address_id}/default")
async def set_default_address(address_id: str, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return addresses.serialize_address(addresses.set_default_address(db, current_user.id, address_id))


@router.delete("/addresses/{address_id}")
async def delete_address(address_id: str, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    addresses.delete_address(db, current_user.id, address_id)
    return {"success": True}
