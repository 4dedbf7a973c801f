from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from storefront.models_sqlalchemy import get_db
from storefront.services import catalog

router = APIRouter(prefix="/api", tags=["catalog"])


@router.get("/products")
async def list_products(
    category: Optional[str] = Query(None, description="Category slug"),
    search: Optional[str] = None,
    featured: Optional[bool] = None,
    sort: str = Query("newest", pattern="^(newest|price_asc|price_desc|name)$"),
    page: int = Query(1, ge=1),
    limit: int = Query(24, ge=1, le=100),
    db: Session = Depends(get_db),
):
    return catalog.list_products(db, category_slug=category, search=search, featured=featured, sort=sort, page=page, limit=limit)


@router.get("/products/{slug}")
async def get_product(slug: str, db: Session = Depends(get_db)):
    return catalog.serialize_product(catalog.get_product_by_slug(db, slug))


@router.get("/categories")
async def list_categories(db: Session = Depends(get_db)):
    return {"categories": [catalog.serialize_category(c) for c in catalog.list_categories(db)]}
