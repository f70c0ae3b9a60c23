"""审批流 Schema（含步骤/条件/动作的结构校验）"""

from typing import Optional, List
from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel, Field, model_validator

from retailhub.core.constants import ApprovalActionType, ApprovalMode, ConditionType, MemberRole


class ConditionIn(BaseModel):
    condition_type: ConditionType
    min_amount: Optional[Decimal] = Field(None, ge=0)
    max_amount: Optional[Decimal] = Field(None, ge=0)
    expense_category_id: Optional[int] = None
    location_id: Optional[int] = None

    @model_validator(mode='after')
    def check_condition(self):
        if self.condition_type == ConditionType.AMOUNT_RANGE:
            if self.min_amount is None and self.max_amount is None:
                raise ValueError("金额区间条件至少需要设置下限或上限")
            if self.min_amount is not None and self.max_amount is not None and self.min_amount >= self.max_amount:
                raise ValueError("金额下限必须小于上限")
        elif self.condition_type == ConditionType.EXPENSE_CATEGORY and self.expense_category_id is None:
            raise ValueError("费用分类条件需要指定费用分类")
        elif self.condition_type == ConditionType.LOCATION and self.location_id is None:
            raise ValueError("地点条件需要指定地点")
        return self


class ActionIn(BaseModel):
    action_type: ApprovalActionType
    approver_role: Optional[MemberRole] = None
    specific_member_id: Optional[int] = None
    approval_mode: ApprovalMode = ApprovalMode.ANY_ONE

    @model_validator(mode='after')
    def check_action(self):
        if self.action_type == ApprovalActionType.ROLE and self.approver_role is None:
            raise ValueError("角色审批需要指定角色")
        if self.action_type == ApprovalActionType.SPECIFIC_MEMBER and self.specific_member_id is None:
            raise ValueError("指定成员审批需要指定成员")
        return self


class StepIn(BaseModel):
    step_number: int = Field(..., gt=0)
    name: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = None
    all_conditions_must_match: bool = True
    conditions: List[ConditionIn] = Field(..., min_length=1)
    actions: List[ActionIn] = Field(..., min_length=1)


class WorkflowStepsIn(BaseModel):
    """步骤列表（整体替换时使用）"""
    steps: List[StepIn] = Field(..., min_length=1)

    @model_validator(mode='after')
    def check_step_numbers(self):
        numbers = [s.step_number for s in self.steps]
        if len(numbers) != len(set(numbers)):
            raise ValueError("步骤序号不能重复")
        return self


class WorkflowCreate(WorkflowStepsIn):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    is_active: bool = True


class WorkflowReplace(WorkflowCreate):
    pass


class WorkflowInfoUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    is_active: Optional[bool] = None

    @model_validator(mode='after')
    def check_any_field(self):
        if self.name is None and self.description is None and self.is_active is None:
            raise ValueError("至少需要更新一个字段")
        return self


class ActiveWorkflowSet(BaseModel):
    workflow_id: Optional[int] = Field(None, description="为空表示停用审批流")


class TemplateApply(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100, description="不传则使用模板默认名称")
    location_id: Optional[int] = Field(None, description="分店模板需要指定地点")


# ===== 响应 =====
class ConditionResponse(BaseModel):
    id: int
    condition_type: str
    min_amount: Optional[Decimal] = None
    max_amount: Optional[Decimal] = None
    expense_category_id: Optional[int] = None
    location_id: Optional[int] = None

    class Config:
        from_attributes = True


class ActionResponse(BaseModel):
    id: int
    action_type: str
    approver_role: Optional[str] = None
    specific_member_id: Optional[int] = None
    approval_mode: str

    class Config:
        from_attributes = True


class StepResponse(BaseModel):
    id: int
    step_number: int
    name: Optional[str] = None
    description: Optional[str] = None
    all_conditions_must_match: bool
    conditions: List[ConditionResponse] = []
    actions: List[ActionResponse] = []

    class Config:
        from_attributes = True


class WorkflowResponse(BaseModel):
    id: int
    organization_id: int
    name: str
    description: Optional[str] = None
    is_active: bool
    is_org_active: bool = False
    steps: List[StepResponse] = []
    created_at: datetime


class WorkflowListResponse(BaseModel):
    data: List[WorkflowResponse]
    total: int


class WorkflowTemplateInfo(BaseModel):
    key: str
    name: str
    description: str
    requires_location: bool = False
