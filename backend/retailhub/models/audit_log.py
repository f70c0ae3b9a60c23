"""
操作日志模型 - 记录组织内的重要操作
用于审计追踪和问题排查
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship
from retailhub.db.base import Base
from retailhub.core.constants import AUDIT_ACTION_DISPLAY


RESOURCE_TYPE_DISPLAY = {
    "organization": "组织",
    "member": "成员",
    "category": "商品分类",
    "product": "商品",
    "location": "地点",
    "stock": "库存",
    "supplier": "供应商",
    "purchase": "采购单",
    "customer": "客户",
    "sale": "销售单",
    "expense_category": "费用分类",
    "expense": "费用",
    "recurring_expense": "周期性费用",
    "approval_workflow": "审批流",
}


class AuditLog(Base):
    """操作日志"""
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)

    # 操作人（系统任务为空）
    member_id = Column(Integer, ForeignKey("members.id"), nullable=True, index=True)

    # create / update / delete / approve / reject / adjust / void
    action = Column(String(20), nullable=False, index=True, comment="操作类型")
    resource_type = Column(String(50), nullable=False, index=True, comment="资源类型")
    resource_id = Column(Integer, index=True, comment="资源ID")
    resource_name = Column(String(100), comment="资源名称")
    description = Column(String(500), comment="操作描述")

    old_value = Column(JSON, comment="修改前")
    new_value = Column(JSON, comment="修改后")

    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    member = relationship("Member", foreign_keys=[member_id], lazy="selectin")

    def __repr__(self):
        return f"<AuditLog {self.action} {self.resource_type}:{self.resource_id}>"

    @property
    def action_display(self) -> str:
        """操作类型显示名称"""
        return AUDIT_ACTION_DISPLAY.get(self.action, self.action)

    @property
    def resource_type_display(self) -> str:
        """资源类型显示名称"""
        return RESOURCE_TYPE_DISPLAY.get(self.resource_type, self.resource_type)
