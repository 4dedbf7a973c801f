from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from storefront.models.checkout import CartLine, CartQuantityUpdate
from storefront.models_sqlalchemy import get_db
from storefront.models_sqlalchemy.models import User
from storefront.services import cart
from storefront.services.auth import get_current_user

router = APIRouter(prefix="/api/cart", tags=["cart"])


@router.get("")
async def get_cart(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return cart.get_saved_cart(db, current_user.id).to_dict()


@router.post("")
async def add_to_cart(payload: CartLine, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    cart.add_saved_item(db, current_user.id, payload.productId, payload.quantity)
    return cart.get_saved_cart(db, current_user.id).to_dict()


@router.put("")
async def update_cart(payload: CartQuantityUpdate, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    cart.set_saved_quantity(db, current_user.id, payload.productId, payload.quantity)
    return cart.get_saved_cart(db, current_user.id).to_dict()


@router.delete("")
async def clear_cart(
    productId: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    cart.remove_saved_item(db, current_user.id, productId)
    return cart.get_saved_cart(db, current_user.id).to_dict()
