"""客户与销售 Schema"""

from typing import Optional, List
from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel, Field, EmailStr

from retailhub.core.constants import PaymentMethod


# ===== 客户 =====
class CustomerBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=50)
    address: Optional[str] = Field(None, max_length=300)
    notes: Optional[str] = None


class CustomerCreate(CustomerBase):
    pass


class CustomerUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    notes: Optional[str] = None
    is_active: Optional[bool] = None


class CustomerResponse(CustomerBase):
    id: int
    organization_id: int
    email: Optional[str] = None
    loyalty_points: int
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


class CustomerListResponse(BaseModel):
    data: List[CustomerResponse]
    total: int
    page: int
    limit: int


# ===== 销售 =====
class CartItem(BaseModel):
    product_id: int
    variant_id: Optional[int] = None
    quantity: Decimal = Field(..., gt=0)


class SaleCreate(BaseModel):
    location_id: int
    customer_id: Optional[int] = None
    items: List[CartItem] = Field(..., min_length=1)
    payment_method: PaymentMethod = PaymentMethod.CASH
    discount_amount: Decimal = Field(Decimal("0"), ge=0, description="整单折扣")
    tax_rate: Decimal = Field(Decimal("0"), ge=0, le=1, description="税率，如 0.16")
    notes: Optional[str] = None


class SaleItemResponse(BaseModel):
    id: int
    product_id: int
    product_name: str = ""
    variant_id: Optional[int] = None
    stock_batch_id: Optional[int] = None
    quantity: Decimal
    unit_price: Decimal
    unit_cost: Decimal
    total_cost: Decimal
    total_amount: Decimal


class SaleResponse(BaseModel):
    id: int
    organization_id: int
    sale_number: str
    customer_id: Optional[int] = None
    customer_name: Optional[str] = None
    member_id: int
    location_id: int
    total_amount: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    final_amount: Decimal
    payment_method: str
    payment_status: str
    loyalty_points_earned: int
    total_cost: Decimal
    gross_profit: Decimal
    notes: Optional[str] = None
    sale_date: datetime
    voided_at: Optional[datetime] = None
    items: List[SaleItemResponse] = []


class SaleListResponse(BaseModel):
    data: List[SaleResponse]
    total: int
    page: int
    limit: int
