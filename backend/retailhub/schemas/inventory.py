"""地点、批次、库存 Schema"""

from typing import Optional, List
from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel, Field

from retailhub.core.constants import LocationType


# ===== 地点 =====
class LocationBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    location_type: LocationType = LocationType.RETAIL_SHOP
    address: Optional[str] = Field(None, max_length=300)
    is_default: bool = False
    manager_id: Optional[int] = Field(None, description="负责经理（成员ID）")


class LocationCreate(LocationBase):
    pass


class LocationUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    location_type: Optional[LocationType] = None
    address: Optional[str] = None
    is_default: Optional[bool] = None
    is_active: Optional[bool] = None
    manager_id: Optional[int] = None


class LocationResponse(LocationBase):
    id: int
    organization_id: int
    location_type: str
    is_active: bool
    manager_name: Optional[str] = None
    created_at: datetime


# ===== 批次 =====
class StockBatchResponse(BaseModel):
    id: int
    batch_number: str
    product_id: int
    product_name: str = ""
    variant_id: Optional[int] = None
    variant_name: Optional[str] = None
    location_id: int
    location_name: str = ""
    purchase_item_id: Optional[int] = None
    initial_quantity: Decimal
    current_quantity: Decimal
    purchase_price: Decimal
    stock_value: Decimal
    expiry_date: Optional[datetime] = None
    received_date: datetime
    is_depleted: bool
    is_expired: bool
    notes: Optional[str] = None


class StockBatchListResponse(BaseModel):
    data: List[StockBatchResponse]
    total: int
    page: int
    limit: int


# ===== 库存操作 =====
class StockReceive(BaseModel):
    """直接入库（期初或无采购单的入库）"""
    product_id: int
    variant_id: Optional[int] = None
    location_id: int
    quantity: Decimal = Field(..., gt=0)
    purchase_price: Decimal = Field(Decimal("0"), ge=0)
    expiry_date: Optional[datetime] = None
    notes: Optional[str] = Field(None, max_length=300)


class StockBatchAdjust(BaseModel):
    """批次数量调整（盘点）"""
    batch_id: int
    new_quantity: Decimal = Field(..., ge=0, description="调整后数量")
    reason: str = Field(..., min_length=1, max_length=200, description="调整原因")


class StockTransfer(BaseModel):
    product_id: int
    variant_id: Optional[int] = None
    from_location_id: int
    to_location_id: int
    quantity: Decimal = Field(..., gt=0)
    notes: Optional[str] = Field(None, max_length=300)


# ===== 库存汇总 =====
class StockLevelResponse(BaseModel):
    id: int
    product_id: int
    product_name: str = ""
    product_sku: str = ""
    variant_id: Optional[int] = None
    variant_name: Optional[str] = None
    location_id: int
    location_name: str = ""
    current_stock: Decimal
    reserved_stock: Decimal
    available_stock: Decimal
    reorder_point: int
    is_low_stock: bool
    last_updated: Optional[datetime] = None


class StockLevelListResponse(BaseModel):
    data: List[StockLevelResponse]
    total: int
    page: int
    limit: int


class StockMovementResponse(BaseModel):
    id: int
    product_id: int
    variant_id: Optional[int] = None
    stock_batch_id: Optional[int] = None
    batch_number: Optional[str] = None
    quantity: Decimal
    from_location_id: Optional[int] = None
    to_location_id: Optional[int] = None
    movement_type: str
    type_display: str
    reference_type: Optional[str] = None
    reference_id: Optional[int] = None
    member_id: int
    notes: Optional[str] = None
    movement_date: datetime


class StockMovementListResponse(BaseModel):
    data: List[StockMovementResponse]
    total: int
    page: int
    limit: int
