"""
组织与成员模型 - 多租户边界
所有业务数据都归属于一个组织，用户通过成员身份（Member）加入组织并获得角色
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, ForeignKey, DECIMAL, UniqueConstraint
from sqlalchemy.orm import relationship
from retailhub.db.base import Base
from retailhub.core.constants import ROLE_DISPLAY


class User(Base):
    """用户 - 跨组织的个人身份（认证由外部服务负责）"""
    __tablename__ = "sys_user"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False, comment="姓名")
    email = Column(String(200), unique=True, index=True, nullable=False, comment="邮箱")
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    memberships = relationship("Member", back_populates="user")

    def __repr__(self):
        return f"<User {self.email}>"


class Organization(Base):
    """组织（租户）

    费用审批规则：
    - 有生效的审批流（active_expense_workflow_id）时按审批流判断
    - 否则按 expense_approval_required / expense_approval_threshold 判断
    """
    __tablename__ = "organizations"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False, comment="组织名称")
    slug = Column(String(100), unique=True, nullable=False, index=True, comment="唯一标识")
    description = Column(Text, comment="描述")
    default_currency = Column(String(3), nullable=False, default="KES", comment="默认币种")

    # === 库存设置 ===
    # fifo: 先进先出  lifo: 后进先出  fefo: 先到期先出
    inventory_policy = Column(String(10), nullable=False, default="fefo", comment="出库策略")
    allow_negative_stock = Column(Boolean, nullable=False, default=False, comment="是否允许负库存")

    # === 费用设置 ===
    expense_approval_required = Column(Boolean, nullable=False, default=False, comment="费用是否需要审批")
    expense_approval_threshold = Column(DECIMAL(12, 2), nullable=True, comment="超过此金额需要审批（空=全部需要）")
    expense_receipt_required = Column(Boolean, nullable=False, default=False, comment="是否需要票据")
    expense_receipt_threshold = Column(DECIMAL(12, 2), nullable=True, comment="超过此金额需要票据（空=全部需要）")
    # 与审批流表互相引用；审批流删除时置空
    active_expense_workflow_id = Column(
        Integer,
        ForeignKey("approval_workflows.id", ondelete="SET NULL", use_alter=True, name="fk_org_active_workflow"),
        nullable=True, comment="当前生效的费用审批流ID")

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    members = relationship("Member", back_populates="organization", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Organization {self.slug}>"


class Member(Base):
    """组织成员 - 用户在某个组织中的角色"""
    __tablename__ = "members"
    __table_args__ = (
        UniqueConstraint('organization_id', 'user_id', name='uq_member_org_user'),
    )

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("sys_user.id"), nullable=False, index=True)

    # owner / admin / manager / employee / cashier / reporter
    role = Column(String(20), nullable=False, default="employee", comment="角色")
    is_active = Column(Boolean, nullable=False, default=True, comment="是否启用")

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    organization = relationship("Organization", back_populates="members")
    user = relationship("User", back_populates="memberships", lazy="selectin")

    def __repr__(self):
        return f"<Member {self.id} org:{self.organization_id} role:{self.role}>"

    @property
    def role_display(self) -> str:
        return ROLE_DISPLAY.get(self.role, self.role)

    @property
    def display_name(self) -> str:
        return self.user.name if self.user else f"成员{self.id}"
