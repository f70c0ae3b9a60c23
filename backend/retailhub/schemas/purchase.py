"""供应商与采购单 Schema"""

from typing import Optional, List
from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel, Field, EmailStr


# ===== 供应商 =====
class SupplierBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    contact_name: Optional[str] = Field(None, max_length=100)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=50)
    address: Optional[str] = Field(None, max_length=300)
    payment_terms: Optional[str] = Field(None, max_length=100)


class SupplierCreate(SupplierBase):
    pass


class SupplierUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    contact_name: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    payment_terms: Optional[str] = None
    is_active: Optional[bool] = None


class SupplierResponse(SupplierBase):
    id: int
    organization_id: int
    email: Optional[str] = None
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


class SupplierListResponse(BaseModel):
    data: List[SupplierResponse]
    total: int
    page: int
    limit: int


# ===== 采购单 =====
class PurchaseItemCreate(BaseModel):
    product_id: int
    variant_id: Optional[int] = None
    quantity: Decimal = Field(..., gt=0, description="订购数量")
    unit_cost: Decimal = Field(..., ge=0, description="单价")


class PurchaseCreate(BaseModel):
    supplier_id: int
    location_id: int = Field(..., description="到货地点")
    expected_date: Optional[datetime] = None
    notes: Optional[str] = None
    items: List[PurchaseItemCreate] = Field(..., min_length=1)
    as_draft: bool = Field(False, description="保存为草稿，稍后再下单")


class PurchaseReceiveLine(BaseModel):
    item_id: int = Field(..., description="采购明细ID")
    quantity: Decimal = Field(..., gt=0, description="本次到货数量")
    expiry_date: Optional[datetime] = None


class PurchaseReceive(BaseModel):
    items: List[PurchaseReceiveLine] = Field(..., min_length=1)


class PurchaseItemResponse(BaseModel):
    id: int
    product_id: int
    variant_id: Optional[int] = None
    ordered_quantity: Decimal
    received_quantity: Decimal
    outstanding_quantity: Decimal
    unit_cost: Decimal
    total_cost: Decimal

    class Config:
        from_attributes = True


class PurchaseResponse(BaseModel):
    id: int
    organization_id: int
    purchase_number: str
    supplier_id: int
    supplier_name: str = ""
    member_id: int
    location_id: int
    status: str
    status_display: str
    total_amount: Decimal
    order_date: Optional[datetime] = None
    expected_date: Optional[datetime] = None
    received_date: Optional[datetime] = None
    notes: Optional[str] = None
    items: List[PurchaseItemResponse] = []


class PurchaseListResponse(BaseModel):
    data: List[PurchaseResponse]
    total: int
    page: int
    limit: int
