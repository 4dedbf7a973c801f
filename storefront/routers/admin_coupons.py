from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from storefront.models.orders import CouponCreate, CouponUpdate
from storefront.models_sqlalchemy import get_db
from storefront.models_sqlalchemy.models import Coupon, User
from storefront.services import coupons
from storefront.services.auth import admin_required

router = APIRouter(prefix="/api/admin/coupons", tags=["admin_coupons"])


@router.get("")
async def list_coupons(current_user: User = Depends(admin_required), db: Session = Depends(get_db)):
    rows = db.query(Coupon).order_by(Coupon.created_at.desc()).all()
    return {"coupons": [coupons.serialize_coupon(c) for c in rows]}


@router.post("", status_code=201)
async def create_coupon(payload: CouponCreate, current_user: User = Depends(admin_required), db: Session = Depends(get_db)):
    return {"coupon": coupons.serialize_coupon(coupons.create_coupon(db, payload.model_dump()))}


@router.put("/{coupon_id}")
async def update_coupon(
    coupon_id: str,
    payload: CouponUpdate,
    current_user: User = Depends(admin_required),
    db: Session = Depends(get_db),
):
    coupon = coupons.update_coupon(db, coupon_id, payload.model_dump(exclude_unset=True))
    return {"coupon": coupons.serialize_coupon(coupon)}


@router.delete("/{coupon_id}")
async def delete_coupon(coupon_id: str, current_user: User = Depends(admin_required), db: Session = Depends(get_db)):
    coupons.deactivate_coupon(db, coupon_id)
    return {"success": True}
