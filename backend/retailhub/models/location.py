"""库存地点模型 - 门店、仓库等，可指定负责经理（用于费用审批中的"提交人经理"）"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from retailhub.db.base import Base


class InventoryLocation(Base):
    """库存地点"""
    __tablename__ = "inventory_locations"
    __table_args__ = (
        UniqueConstraint('organization_id', 'name', name='uq_location_org_name'),
    )

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)

    name = Column(String(100), nullable=False, comment="名称")
    description = Column(Text, comment="描述")
    # retail_shop / warehouse / distribution / other
    location_type = Column(String(20), nullable=False, default="retail_shop", comment="地点类型")
    address = Column(String(300), comment="地址")
    is_default = Column(Boolean, nullable=False, default=False, comment="是否默认地点")
    is_active = Column(Boolean, nullable=False, default=True, comment="是否启用")

    # 负责经理
    manager_id = Column(Integer, ForeignKey("members.id"), nullable=True, comment="负责经理")

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    manager = relationship("Member", foreign_keys=[manager_id], lazy="selectin")

    def __repr__(self):
        return f"<InventoryLocation {self.name}>"
