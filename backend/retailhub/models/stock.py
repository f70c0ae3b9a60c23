"""
库存汇总与流水模型
- ProductVariantStock: 每个地点每个商品（变体）的当前库存汇总
- StockMovement: 每次库存变动的流水记录
"""

from datetime import datetime
from decimal import Decimal
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, DECIMAL, CheckConstraint, UniqueConstraint
from sqlalchemy.orm import relationship
from retailhub.db.base import Base
from retailhub.core.constants import MOVEMENT_TYPE_DISPLAY


class ProductVariantStock(Base):
    """库存汇总 - 地点中商品的当前数量

    唯一约束 (location_id, product_id, variant_id)
    注意：SQLite 中 NULL 不参与唯一约束比较，variant_id 为空的记录由服务层保证唯一
    """
    __tablename__ = "product_variant_stocks"
    __table_args__ = (
        UniqueConstraint('location_id', 'product_id', 'variant_id', name='uq_stock_location_product_variant'),
        CheckConstraint('current_stock >= 0', name='ck_stock_current_non_negative'),
    )

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    variant_id = Column(Integer, ForeignKey("product_variants.id"), nullable=True, index=True)
    location_id = Column(Integer, ForeignKey("inventory_locations.id"), nullable=False, index=True)

    current_stock = Column(DECIMAL(12, 2), nullable=False, default=Decimal("0.00"), comment="当前库存")
    reserved_stock = Column(DECIMAL(12, 2), nullable=False, default=Decimal("0.00"), comment="预留数量")
    reorder_point = Column(Integer, nullable=False, default=0, comment="补货点")

    last_updated = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    product = relationship("Product", foreign_keys=[product_id], lazy="selectin")
    variant = relationship("ProductVariant", foreign_keys=[variant_id], lazy="selectin")
    location = relationship("InventoryLocation", foreign_keys=[location_id], lazy="selectin")

    def __repr__(self):
        return f"<ProductVariantStock {self.location_id}:{self.product_id}/{self.variant_id} = {self.current_stock}>"

    @property
    def available_stock(self) -> Decimal:
        """可用库存 = 当前库存 - 预留数量"""
        return (self.current_stock or Decimal("0")) - (self.reserved_stock or Decimal("0"))

    @property
    def is_low_stock(self) -> bool:
        """是否低于（或等于）补货点"""
        return (self.current_stock or Decimal("0")) <= Decimal(self.reorder_point or 0)


class StockMovement(Base):
    """库存流水 - 记录每次库存变动"""
    __tablename__ = "stock_movements"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)

    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    variant_id = Column(Integer, ForeignKey("product_variants.id"), nullable=True)
    stock_batch_id = Column(Integer, ForeignKey("stock_batches.id"), nullable=True, index=True)

    # 变动数量（正数表示增加，负数表示减少；调拨为正数）
    quantity = Column(DECIMAL(12, 2), nullable=False, comment="变动数量")
    from_location_id = Column(Integer, ForeignKey("inventory_locations.id"), nullable=True)
    to_location_id = Column(Integer, ForeignKey("inventory_locations.id"), nullable=True)

    # purchase_receipt / sale / adjustment_in / adjustment_out / transfer / customer_return / initial_stock
    movement_type = Column(String(30), nullable=False, index=True, comment="流水类型")

    # 关联业务单据（sale / purchase / batch ...）
    reference_type = Column(String(30), comment="关联单据类型")
    reference_id = Column(Integer, comment="关联单据ID")

    member_id = Column(Integer, ForeignKey("members.id"), nullable=False, comment="操作人")
    notes = Column(String(300), comment="备注")
    movement_date = Column(DateTime, default=datetime.utcnow, index=True)

    batch = relationship("StockBatch", foreign_keys=[stock_batch_id], lazy="selectin")

    def __repr__(self):
        return f"<StockMovement {self.movement_type} {self.quantity}>"

    @property
    def type_display(self) -> str:
        """类型显示名称"""
        return MOVEMENT_TYPE_DISPLAY.get(self.movement_type, self.movement_type)
