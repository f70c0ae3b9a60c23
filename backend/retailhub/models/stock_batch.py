"""
库存批次模型 - 每次入库一个批次，独立追踪成本、到期日和来源
支持：
- 批次独立成本（每批进价不同）
- 按组织策略出库（FIFO / LIFO / FEFO）
- 来源追溯（来自哪个采购明细）
"""

from datetime import datetime
from decimal import Decimal
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, DECIMAL, CheckConstraint, UniqueConstraint
from sqlalchemy.orm import relationship
from retailhub.db.base import Base


class StockBatch(Base):
    """库存批次"""
    __tablename__ = "stock_batches"
    __table_args__ = (
        UniqueConstraint('organization_id', 'batch_number', name='uq_batch_org_number'),
        CheckConstraint('current_quantity >= 0', name='ck_batch_current_non_negative'),
        CheckConstraint('initial_quantity > 0', name='ck_batch_initial_positive'),
    )

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)

    # 批次号（自动生成，格式：B + 日期 + 序号，如 B20250604-001）
    batch_number = Column(String(50), nullable=False, index=True, comment="批次号")

    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    variant_id = Column(Integer, ForeignKey("product_variants.id"), nullable=True, index=True)
    location_id = Column(Integer, ForeignKey("inventory_locations.id"), nullable=False, index=True, comment="存放地点")

    # 关联的采购明细（可选，期初/调整/调拨入库时为空）
    purchase_item_id = Column(Integer, ForeignKey("purchase_items.id"), nullable=True, index=True)

    # === 数量 ===
    initial_quantity = Column(DECIMAL(12, 2), nullable=False, comment="初始数量")
    current_quantity = Column(DECIMAL(12, 2), nullable=False, comment="当前剩余数量")

    # === 成本 ===
    purchase_price = Column(DECIMAL(12, 2), nullable=False, default=Decimal("0.00"), comment="进价")

    # === 日期 ===
    expiry_date = Column(DateTime, nullable=True, comment="到期日")
    received_date = Column(DateTime, nullable=False, default=datetime.utcnow, comment="入库日期")

    notes = Column(Text, comment="备注")

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # 关系
    product = relationship("Product", foreign_keys=[product_id], lazy="selectin")
    variant = relationship("ProductVariant", foreign_keys=[variant_id], lazy="selectin")
    location = relationship("InventoryLocation", foreign_keys=[location_id], lazy="selectin")

    def __repr__(self):
        return f"<StockBatch {self.batch_number}: {self.current_quantity}/{self.initial_quantity}>"

    @property
    def is_depleted(self) -> bool:
        """是否已清空"""
        return self.current_quantity <= Decimal("0")

    @property
    def is_expired(self) -> bool:
        return self.expiry_date is not None and self.expiry_date < datetime.utcnow()

    @property
    def stock_value(self) -> Decimal:
        """剩余库存价值 = 当前数量 × 进价"""
        return (self.current_quantity or Decimal("0")) * (self.purchase_price or Decimal("0"))
