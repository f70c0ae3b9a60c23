"""
费用审批流模型
一个审批流由若干有序步骤组成，每个步骤有：
- 条件（金额区间 / 费用分类 / 地点 / 是否有票据）：决定该步骤是否适用于某笔费用
- 动作（角色 / 指定成员 / 提交人经理）：决定谁可以审批
删除审批流时级联删除步骤、条件和动作
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, ForeignKey, DECIMAL, UniqueConstraint
from sqlalchemy.orm import relationship
from retailhub.db.base import Base


class ApprovalWorkflow(Base):
    """审批流"""
    __tablename__ = "approval_workflows"
    __table_args__ = (
        UniqueConstraint('organization_id', 'name', name='uq_workflow_org_name'),
    )

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False, comment="名称")
    description = Column(Text, comment="描述")
    is_active = Column(Boolean, nullable=False, default=True, comment="是否启用")

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    steps = relationship(
        "ApprovalWorkflowStep", back_populates="workflow",
        cascade="all, delete-orphan", passive_deletes=True,
        lazy="selectin", order_by="ApprovalWorkflowStep.step_number"
    )

    def __repr__(self):
        return f"<ApprovalWorkflow {self.name}>"


class ApprovalWorkflowStep(Base):
    """审批步骤"""
    __tablename__ = "approval_workflow_steps"
    __table_args__ = (
        UniqueConstraint('workflow_id', 'step_number', name='uq_step_workflow_number'),
    )

    id = Column(Integer, primary_key=True, index=True)
    workflow_id = Column(Integer, ForeignKey("approval_workflows.id", ondelete="CASCADE"), nullable=False, index=True)
    step_number = Column(Integer, nullable=False, comment="步骤序号")
    name = Column(String(100), comment="名称")
    description = Column(Text, comment="描述")
    # True: 所有条件都满足才适用  False: 任一条件满足即适用
    all_conditions_must_match = Column(Boolean, nullable=False, default=True)

    workflow = relationship("ApprovalWorkflow", back_populates="steps")
    conditions = relationship(
        "ApprovalStepCondition", back_populates="step",
        cascade="all, delete-orphan", passive_deletes=True,
        lazy="selectin", order_by="ApprovalStepCondition.id"
    )
    actions = relationship(
        "ApprovalStepAction", back_populates="step",
        cascade="all, delete-orphan", passive_deletes=True,
        lazy="selectin", order_by="ApprovalStepAction.id"
    )

    def __repr__(self):
        return f"<ApprovalWorkflowStep {self.workflow_id}#{self.step_number}>"


class ApprovalStepCondition(Base):
    """步骤条件"""
    __tablename__ = "approval_step_conditions"

    id = Column(Integer, primary_key=True, index=True)
    step_id = Column(Integer, ForeignKey("approval_workflow_steps.id", ondelete="CASCADE"), nullable=False, index=True)

    # amount_range / expense_category / location / receipt_required
    condition_type = Column(String(30), nullable=False, comment="条件类型")
    min_amount = Column(DECIMAL(12, 2), nullable=True, comment="金额下限（不含）")
    max_amount = Column(DECIMAL(12, 2), nullable=True, comment="金额上限（含）")
    expense_category_id = Column(Integer, ForeignKey("expense_categories.id"), nullable=True)
    location_id = Column(Integer, ForeignKey("inventory_locations.id"), nullable=True)

    step = relationship("ApprovalWorkflowStep", back_populates="conditions")

    def __repr__(self):
        return f"<ApprovalStepCondition {self.condition_type}>"


class ApprovalStepAction(Base):
    """步骤审批动作"""
    __tablename__ = "approval_step_actions"

    id = Column(Integer, primary_key=True, index=True)
    step_id = Column(Integer, ForeignKey("approval_workflow_steps.id", ondelete="CASCADE"), nullable=False, index=True)

    # role / specific_member / submitter_manager
    action_type = Column(String(30), nullable=False, comment="审批人类型")
    approver_role = Column(String(20), nullable=True, comment="审批角色")
    specific_member_id = Column(Integer, ForeignKey("members.id"), nullable=True, comment="指定审批人")
    # any_one / all
    approval_mode = Column(String(10), nullable=False, default="any_one", comment="审批方式")

    step = relationship("ApprovalWorkflowStep", back_populates="actions")

    def __repr__(self):
        return f"<ApprovalStepAction {self.action_type} {self.approval_mode}>"
