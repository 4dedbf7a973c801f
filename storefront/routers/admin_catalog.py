from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from sqlalchemy.orm import Session

from storefront.models.catalog import CategoryCreate, CategoryUpdate, ProductCreate, ProductUpdate
from storefront.models_sqlalchemy import get_db
from storefront.models_sqlalchemy.models import User
from storefront.services import catalog, supabase_storage
from storefront.services.auth import admin_required

router = APIRouter(prefix="/api/admin", tags=["admin_catalog"])


@router.get("/products")
async def list_products(
    search: Optional[str] = None,
    status: Optional[str] = Query(None, pattern="^(active|inactive)$"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    current_user: User = Depends(admin_required),
    db: Session = Depends(get_db),
):
    is_active = {"active": True, "inactive": False}.get(status)
    return catalog.list_products(db, search=search, page=page, limit=limit, is_active=is_active)


@router.post("/products", status_code=201)
async def create_product(payload: ProductCreate, current_user: User = Depends(admin_required), db: Session = Depends(get_db)):
    product = catalog.create_product(db, payload.model_dump())
    return {"product": catalog.serialize_product(product)}


@router.get("/products/{product_id}")
async def get_product(product_id: str, current_user: User = Depends(admin_required), db: Session = Depends(get_db)):
    return {"product": catalog.serialize_product(catalog.get_product(db, product_id))}


@router.put("/products/{product_id}")
async def update_product(
    product_id: str,
    payload: ProductUpdate,
    current_user: User = Depends(admin_required),
    db: Session = Depends(get_db),
):
    product = catalog.update_product(db, product_id, payload.model_dump(exclude_unset=True))
    return {"product": catalog.serialize_product(product)}


@router.delete("/products/{product_id}")
async def delete_product(product_id: str, current_user: User = Depends(admin_required), db: Session = Depends(get_db)):
    catalog.deactivate_product(db, product_id)
    return {"success": True}


@router.get("/categories")
async def list_categories(current_user: User = Depends(admin_required), db: Session = Depends(get_db)):
    return {"categories": [catalog.serialize_category(c) for c in catalog.list_categories(db, include_inactive=True)]}


@router.post("/categories", status_code=201)
async def create_category(payload: CategoryCreate, current_user: User = Depends(admin_required), db: Session = Depends(get_db)):
    return {"category": catalog.serialize_category(catalog.create_category(db, payload.model_dump()))}


@router.put("/categories/{category_id}")
async def update_category(
    category_id: str,
    payload: CategoryUpdate,
    current_user: User = Depends(admin_required),
    db: Session = Depends(get_db),
):
    category = catalog.update_category(db, category_id, payload.model_dump(exclude_unset=True))
    return {"category": catalog.serialize_category(category)}


@router.delete("/categories/{category_id}")
async def delete_category(category_id: str, current_user: User = Depends(admin_required), db: Session = Depends(get_db)):
    catalog.delete_category(db, category_id)
    return {"success": True}


@router.post("/upload")
async def upload_image(
    file: UploadFile = File(...),
    folder: str = Form("products"),
    current_user: User = Depends(admin_required),
):
    data = await file.read()
    return supabase_storage.upload_image(data, file.content_type, folder=folder)
