from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field


class ProductImageIn(BaseModel):
    url: str
    alt: Optional[str] = None
    isPrimary: bool = False


class ProductCreate(BaseModel):
    name: str = Field(..., min_length=2)
    slug: Optional[str] = None
    description: Optional[str] = None
    shortDescription: Optional[str] = None
    categoryId: Optional[str] = None
    priceCents: int = Field(..., ge=0)
    compareAtPriceCents: Optional[int] = Field(None, ge=0)
    sku: Optional[str] = None
    stockQuantity: int = Field(0, ge=0)
    trackInventory: bool = True
    weightOz: Optional[float] = None
    material: Optional[str] = None
    color: Optional[str] = None
    printTimeHours: Optional[float] = None
    images: List[ProductImageIn] = Field(default_factory=list)
    isActive: bool = True
    isFeatured: bool = False
    badge: Optional[str] = None


class ProductUpdate(BaseModel):
    """Partial update; only fields present in the request are applied."""

    name: Optional[str] = Field(None, min_length=2)
    slug: Optional[str] = None
    description: Optional[str] = None
    shortDescription: Optional[str] = None
    categoryId: Optional[str] = None
    priceCents: Optional[int] = Field(None, ge=0)
    compareAtPriceCents: Optional[int] = Field(None, ge=0)
    sku: Optional[str] = None
    stockQuantity: Optional[int] = Field(None, ge=0)
    trackInventory: Optional[bool] = None
    weightOz: Optional[float] = None
    material: Optional[str] = None
    color: Optional[str] = None
    printTimeHours: Optional[float] = None
    images: Optional[List[ProductImageIn]] = None
    isActive: Optional[bool] = None
    isFeatured: Optional[bool] = None
    badge: Optional[str] = None


class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=2)
    slug: Optional[str] = None
    description: Optional[str] = None
    imageUrl: Optional[str] = None
    displayOrder: int = 0
    isActive: bool = True


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2)
    slug: Optional[str] = None
    description: Optional[str] = None
    imageUrl: Optional[str] = None
    displayOrder: Optional[int] = None
    isActive: Optional[bool] = None
