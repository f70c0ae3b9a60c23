"""组织与成员 Schema"""

from typing import Optional, List
from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel, Field, EmailStr

from retailhub.core.constants import InventoryPolicy, MemberRole


class OrganizationCreate(BaseModel):
    """创建组织（创建人成为所有者）"""
    name: str = Field(..., min_length=1, max_length=100, description="组织名称")
    slug: Optional[str] = Field(None, max_length=100, pattern=r"^[a-z0-9]+(?:-[a-z0-9]+)*$", description="唯一标识，不传则由名称生成")
    description: Optional[str] = None
    default_currency: str = Field("KES", min_length=3, max_length=3)
    owner_name: str = Field(..., min_length=1, max_length=100, description="创建人姓名")
    owner_email: EmailStr = Field(..., description="创建人邮箱")


class OrganizationSettingsUpdate(BaseModel):
    """更新组织设置"""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    default_currency: Optional[str] = Field(None, min_length=3, max_length=3)
    inventory_policy: Optional[InventoryPolicy] = None
    allow_negative_stock: Optional[bool] = None
    expense_approval_required: Optional[bool] = None
    expense_approval_threshold: Optional[Decimal] = Field(None, ge=0)
    expense_receipt_required: Optional[bool] = None
    expense_receipt_threshold: Optional[Decimal] = Field(None, ge=0)
    active_expense_workflow_id: Optional[int] = Field(None, description="生效的费用审批流，传 null 表示不使用")

class OrganizationResponse(BaseModel):
    id: int
    name: str
    slug: str
    description: Optional[str] = None
    default_currency: str
    inventory_policy: str
    allow_negative_stock: bool
    expense_approval_required: bool
    expense_approval_threshold: Optional[Decimal] = None
    expense_receipt_required: bool
    expense_receipt_threshold: Optional[Decimal] = None
    active_expense_workflow_id: Optional[int] = None
    created_at: datetime

    class Config:
        from_attributes = True


class OrganizationCreateResponse(BaseModel):
    organization: OrganizationResponse
    owner_member_id: int


# ===== 成员 =====

class MemberCreate(BaseModel):
    """添加成员（邮箱不存在时自动创建用户）"""
    email: EmailStr
    name: str = Field(..., min_length=1, max_length=100)
    role: MemberRole = MemberRole.EMPLOYEE


class MemberUpdate(BaseModel):
    role: Optional[MemberRole] = None
    is_active: Optional[bool] = None


class MemberResponse(BaseModel):
    id: int
    organization_id: int
    user_id: int
    name: str
    email: str
    role: str
    role_display: str
    is_active: bool
    created_at: datetime


class MemberListResponse(BaseModel):
    data: List[MemberResponse]
    total: int
