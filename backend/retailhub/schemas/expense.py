"""费用 Schema"""

from typing import Optional, List, Dict
from datetime import date, datetime
from decimal import Decimal
from pydantic import BaseModel, Field, field_validator, model_validator

from retailhub.core.constants import PaymentMethod, RecurrenceFrequency


# ===== 费用分类 =====
class ExpenseCategoryBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    code: Optional[str] = Field(None, max_length=20)
    description: Optional[str] = Field(None, max_length=500)


class ExpenseCategoryCreate(ExpenseCategoryBase):
    pass


class ExpenseCategoryUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    code: Optional[str] = None
    description: Optional[str] = None
    is_active: Optional[bool] = None


class ExpenseCategoryResponse(ExpenseCategoryBase):
    id: int
    organization_id: int
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


# ===== 费用 =====
class ExpenseCreate(BaseModel):
    description: str = Field(..., min_length=1, max_length=500)
    amount: Decimal = Field(..., gt=0)
    tax_amount: Decimal = Field(Decimal("0"), ge=0)
    expense_date: date
    category_id: int
    location_id: Optional[int] = None
    supplier_id: Optional[int] = None
    payment_method: PaymentMethod = PaymentMethod.CASH
    receipt_url: Optional[str] = Field(None, max_length=500)
    notes: Optional[str] = None
    is_reimbursable: bool = False
    is_billable: bool = False
    tags: List[str] = Field(default_factory=list)

    @field_validator('receipt_url', mode='before')
    @classmethod
    def empty_receipt_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v


class ExpenseDecision(BaseModel):
    comments: Optional[str] = Field(None, max_length=1000)


class ExpenseReject(BaseModel):
    comments: str = Field(..., min_length=1, max_length=1000, description="驳回原因")


class ExpenseApprovalResponse(BaseModel):
    id: int
    approver_id: int
    approver_name: str = ""
    status: str
    comments: Optional[str] = None
    decision_date: Optional[datetime] = None


class ExpenseResponse(BaseModel):
    id: int
    organization_id: int
    expense_number: str
    description: str
    amount: Decimal
    tax_amount: Decimal
    expense_date: date
    category_id: int
    category_name: str = ""
    location_id: Optional[int] = None
    supplier_id: Optional[int] = None
    member_id: int
    submitter_name: str = ""
    payment_method: str
    receipt_url: Optional[str] = None
    notes: Optional[str] = None
    is_reimbursable: bool
    is_billable: bool
    tags: List[str] = []
    status: str
    status_display: str
    approved_by_id: Optional[int] = None
    approval_date: Optional[datetime] = None
    paid_date: Optional[datetime] = None
    workflow_step_id: Optional[int] = None
    recurring_expense_id: Optional[int] = None
    approvals: List[ExpenseApprovalResponse] = []
    created_at: datetime


class ExpenseListResponse(BaseModel):
    data: List[ExpenseResponse]
    total: int
    page: int
    limit: int


class EligibleApprover(BaseModel):
    member_id: int
    name: str
    role: str


class ApprovalRequirementsResponse(BaseModel):
    requires_approval: bool
    message: str
    workflow_id: Optional[int] = None
    step_id: Optional[int] = None
    step_number: Optional[int] = None
    eligible_approvers: List[EligibleApprover] = []


class ExpenseSummaryResponse(BaseModel):
    count: int
    total_amount: Decimal
    by_status: Dict[str, Decimal]
    by_category: Dict[str, Decimal]


# ===== 周期性费用 =====
class RecurringExpenseBase(BaseModel):
    description: str = Field(..., min_length=1, max_length=500)
    amount: Decimal = Field(..., gt=0)
    category_id: int
    location_id: Optional[int] = None
    supplier_id: Optional[int] = None
    payment_method: PaymentMethod = PaymentMethod.BANK_TRANSFER
    is_reimbursable: bool = False
    frequency: RecurrenceFrequency
    start_date: date
    end_date: Optional[date] = None


class RecurringExpenseCreate(RecurringExpenseBase):

    @model_validator(mode='after')
    def check_dates(self):
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("结束日期不能早于开始日期")
        return self


class RecurringExpenseUpdate(BaseModel):
    description: Optional[str] = Field(None, min_length=1, max_length=500)
    amount: Optional[Decimal] = Field(None, gt=0)
    category_id: Optional[int] = None
    location_id: Optional[int] = None
    payment_method: Optional[PaymentMethod] = None
    frequency: Optional[RecurrenceFrequency] = None
    end_date: Optional[date] = None
    is_active: Optional[bool] = None


class RecurringExpenseResponse(RecurringExpenseBase):
    id: int
    organization_id: int
    payment_method: str
    frequency: str
    next_due_date: date
    last_generated_date: Optional[date] = None
    is_active: bool
    created_by_id: int
    created_at: datetime

    class Config:
        from_attributes = True


class RecurringGenerateResponse(BaseModel):
    generated: int
    expense_ids: List[int] = []
    deactivated: int = 0
