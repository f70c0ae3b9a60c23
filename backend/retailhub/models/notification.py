"""站内通知模型 - 只负责持久化，实时推送不在本系统内"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship
from retailhub.db.base import Base


class Notification(Base):
    """通知"""
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    member_id = Column(Integer, ForeignKey("members.id"), nullable=False, index=True, comment="接收人")
    sender_id = Column(Integer, ForeignKey("members.id"), nullable=True, comment="发送人")

    # expense_submitted / expense_approval / expense_rejected / expense_paid / system_alert / low_stock
    notification_type = Column(String(30), nullable=False, index=True, comment="通知类型")
    title = Column(String(200), nullable=False, comment="标题")
    description = Column(Text, comment="内容")
    link = Column(String(300), comment="跳转链接")
    details = Column(JSON, comment="附加数据")
    read = Column(Boolean, nullable=False, default=False, index=True, comment="是否已读")

    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    sender = relationship("Member", foreign_keys=[sender_id], lazy="selectin")

    def __repr__(self):
        return f"<Notification {self.notification_type} -> {self.member_id}>"
