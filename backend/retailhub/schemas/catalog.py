"""商品分类与商品 Schema"""

from typing import Optional, List, Dict, Any
from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel, Field


# ===== 分类 =====
class CategoryBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100, description="分类名称")
    parent_id: Optional[int] = Field(None, description="父分类ID")
    description: Optional[str] = Field(None, max_length=500)


class CategoryCreate(CategoryBase):
    pass


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    parent_id: Optional[int] = None
    description: Optional[str] = None


class CategoryResponse(CategoryBase):
    id: int
    organization_id: int
    parent_name: Optional[str] = None
    children_count: int = 0
    products_count: int = 0
    created_at: datetime


class CategoryListResponse(BaseModel):
    data: List[CategoryResponse]
    total: int
    page: int
    limit: int


# ===== 变体 =====
class VariantBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100, description="变体名称")
    sku: str = Field(..., min_length=1, max_length=100, description="变体SKU")
    barcode: Optional[str] = Field(None, max_length=100)
    price_modifier: Decimal = Field(Decimal("0"), description="相对基础售价的加价（可为负）")
    attributes: Optional[Dict[str, Any]] = None
    reorder_point: int = Field(0, ge=0)


class VariantCreate(VariantBase):
    pass


class VariantUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    sku: Optional[str] = Field(None, min_length=1, max_length=100)
    barcode: Optional[str] = None
    price_modifier: Optional[Decimal] = None
    attributes: Optional[Dict[str, Any]] = None
    reorder_point: Optional[int] = Field(None, ge=0)
    is_active: Optional[bool] = None


class VariantResponse(VariantBase):
    id: int
    product_id: int
    is_active: bool
    unit_price: Decimal = Field(..., description="售价 = 基础售价 + 加价")

    class Config:
        from_attributes = True


# ===== 商品 =====
class ProductBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=200, description="品名")
    sku: str = Field(..., min_length=1, max_length=100, description="SKU")
    barcode: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = None
    category_id: Optional[int] = None
    base_price: Decimal = Field(Decimal("0"), ge=0, description="基础售价")
    reorder_point: int = Field(0, ge=0, description="补货点")


class ProductCreate(ProductBase):
    variants: List[VariantCreate] = Field(default_factory=list)


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    sku: Optional[str] = Field(None, min_length=1, max_length=100)
    barcode: Optional[str] = None
    description: Optional[str] = None
    category_id: Optional[int] = None
    base_price: Optional[Decimal] = Field(None, ge=0)
    reorder_point: Optional[int] = Field(None, ge=0)
    is_active: Optional[bool] = None


class ProductResponse(ProductBase):
    id: int
    organization_id: int
    is_active: bool
    category_name: Optional[str] = None
    variants: List[VariantResponse] = []
    created_at: datetime


class ProductListResponse(BaseModel):
    data: List[ProductResponse]
    total: int
    page: int
    limit: int
