"""
费用模型
- ExpenseCategory: 费用分类
- Expense: 费用单（提交 → 审批 → 支付/报销）
- ExpenseApproval: 审批记录（每位审批人一条）
- RecurringExpense: 周期性费用模板，由定时任务按频率生成费用单
"""

from datetime import datetime
from decimal import Decimal
from sqlalchemy import Column, Integer, String, Text, Boolean, Date, DateTime, ForeignKey, DECIMAL, JSON, UniqueConstraint
from sqlalchemy.orm import relationship
from retailhub.db.base import Base
from retailhub.core.constants import EXPENSE_STATUS_DISPLAY


class ExpenseCategory(Base):
    """费用分类"""
    __tablename__ = "expense_categories"
    __table_args__ = (
        UniqueConstraint('organization_id', 'name', name='uq_expense_category_org_name'),
    )

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False, comment="名称")
    code = Column(String(20), comment="编码")
    description = Column(String(500), comment="描述")
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<ExpenseCategory {self.name}>"


class Expense(Base):
    """费用单"""
    __tablename__ = "expenses"
    __table_args__ = (
        UniqueConstraint('organization_id', 'expense_number', name='uq_expense_org_number'),
    )

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    # 格式：EXP-20250604-0001
    expense_number = Column(String(50), nullable=False, comment="费用单号")

    description = Column(String(500), nullable=False, comment="事由")
    amount = Column(DECIMAL(12, 2), nullable=False, comment="金额")
    tax_amount = Column(DECIMAL(12, 2), nullable=False, default=Decimal("0.00"), comment="税额")
    expense_date = Column(Date, nullable=False, comment="发生日期")

    category_id = Column(Integer, ForeignKey("expense_categories.id"), nullable=False, index=True)
    location_id = Column(Integer, ForeignKey("inventory_locations.id"), nullable=True, index=True)
    supplier_id = Column(Integer, ForeignKey("suppliers.id"), nullable=True)
    member_id = Column(Integer, ForeignKey("members.id"), nullable=False, index=True, comment="提交人")

    payment_method = Column(String(30), nullable=False, default="cash", comment="支付方式")
    receipt_url = Column(String(500), comment="票据地址")
    notes = Column(Text, comment="备注")
    is_reimbursable = Column(Boolean, nullable=False, default=False, comment="是否需报销给提交人")
    is_billable = Column(Boolean, nullable=False, default=False, comment="是否可向客户收取")
    tags = Column(JSON, comment="标签")

    # pending / approved / rejected / paid / reimbursed
    status = Column(String(20), nullable=False, default="pending", index=True, comment="状态")
    approved_by_id = Column(Integer, ForeignKey("members.id"), nullable=True, comment="最终审批人")
    approval_date = Column(DateTime, nullable=True, comment="审批完成时间")
    paid_date = Column(DateTime, nullable=True, comment="支付时间")

    # 触发审批的审批流步骤（便于追溯）
    workflow_step_id = Column(Integer, ForeignKey("approval_workflow_steps.id", ondelete="SET NULL"), nullable=True)
    recurring_expense_id = Column(Integer, ForeignKey("recurring_expenses.id"), nullable=True, index=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    category = relationship("ExpenseCategory", lazy="selectin")
    submitter = relationship("Member", foreign_keys=[member_id], lazy="selectin")
    approvals = relationship(
        "ExpenseApproval", back_populates="expense",
        cascade="all, delete-orphan", lazy="selectin", order_by="ExpenseApproval.id"
    )

    def __repr__(self):
        return f"<Expense {self.expense_number}: {self.amount} {self.status}>"

    @property
    def status_display(self) -> str:
        return EXPENSE_STATUS_DISPLAY.get(self.status, self.status)

    @property
    def has_receipt(self) -> bool:
        return bool(self.receipt_url)


class ExpenseApproval(Base):
    """审批记录"""
    __tablename__ = "expense_approvals"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    expense_id = Column(Integer, ForeignKey("expenses.id"), nullable=False, index=True)
    approver_id = Column(Integer, ForeignKey("members.id"), nullable=False, comment="审批人")

    # pending / approved / rejected
    status = Column(String(20), nullable=False, default="pending", comment="审批结果")
    comments = Column(Text, comment="审批意见")
    decision_date = Column(DateTime, nullable=True, comment="审批时间")

    created_at = Column(DateTime, default=datetime.utcnow)

    expense = relationship("Expense", back_populates="approvals")
    approver = relationship("Member", foreign_keys=[approver_id], lazy="selectin")

    def __repr__(self):
        return f"<ExpenseApproval expense:{self.expense_id} approver:{self.approver_id} {self.status}>"


class RecurringExpense(Base):
    """周期性费用"""
    __tablename__ = "recurring_expenses"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)

    description = Column(String(500), nullable=False, comment="事由")
    amount = Column(DECIMAL(12, 2), nullable=False, comment="金额")
    category_id = Column(Integer, ForeignKey("expense_categories.id"), nullable=False)
    location_id = Column(Integer, ForeignKey("inventory_locations.id"), nullable=True)
    supplier_id = Column(Integer, ForeignKey("suppliers.id"), nullable=True)
    payment_method = Column(String(30), nullable=False, default="bank_transfer", comment="支付方式")
    is_reimbursable = Column(Boolean, nullable=False, default=False)

    # daily / weekly / biweekly / monthly / quarterly / yearly
    frequency = Column(String(20), nullable=False, comment="频率")
    start_date = Column(Date, nullable=False, comment="开始日期")
    end_date = Column(Date, nullable=True, comment="结束日期（含）")
    next_due_date = Column(Date, nullable=False, index=True, comment="下次生成日期")
    last_generated_date = Column(Date, nullable=True, comment="上次生成日期")
    is_active = Column(Boolean, nullable=False, default=True)

    created_by_id = Column(Integer, ForeignKey("members.id"), nullable=False, comment="创建人")
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    category = relationship("ExpenseCategory", lazy="selectin")

    def __repr__(self):
        return f"<RecurringExpense {self.description} {self.frequency}>"
