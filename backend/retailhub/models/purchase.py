"""
供应商与采购模型
采购单到货时，每个到货明细生成一个库存批次
"""

from datetime import datetime
from decimal import Decimal
from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, ForeignKey, DECIMAL, UniqueConstraint
from sqlalchemy.orm import relationship
from retailhub.db.base import Base
from retailhub.core.constants import PURCHASE_STATUS_DISPLAY


class Supplier(Base):
    """供应商"""
    __tablename__ = "suppliers"
    __table_args__ = (
        UniqueConstraint('organization_id', 'name', name='uq_supplier_org_name'),
    )

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    name = Column(String(200), nullable=False, comment="名称")
    contact_name = Column(String(100), comment="联系人")
    email = Column(String(200), comment="邮箱")
    phone = Column(String(50), comment="电话")
    address = Column(String(300), comment="地址")
    payment_terms = Column(String(100), comment="付款条件")
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<Supplier {self.name}>"


class Purchase(Base):
    """采购单"""
    __tablename__ = "purchases"
    __table_args__ = (
        UniqueConstraint('organization_id', 'purchase_number', name='uq_purchase_org_number'),
    )

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    purchase_number = Column(String(50), nullable=False, comment="采购单号")
    supplier_id = Column(Integer, ForeignKey("suppliers.id"), nullable=False, index=True)
    member_id = Column(Integer, ForeignKey("members.id"), nullable=False, comment="下单人")
    location_id = Column(Integer, ForeignKey("inventory_locations.id"), nullable=False, comment="到货地点")

    # draft / ordered / partially_received / received / cancelled
    status = Column(String(30), nullable=False, default="ordered", index=True, comment="状态")
    total_amount = Column(DECIMAL(12, 2), nullable=False, default=Decimal("0.00"), comment="采购总额")

    order_date = Column(DateTime, default=datetime.utcnow, comment="下单日期")
    expected_date = Column(DateTime, nullable=True, comment="预计到货日期")
    received_date = Column(DateTime, nullable=True, comment="到货完成日期")
    notes = Column(Text, comment="备注")

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    supplier = relationship("Supplier", lazy="selectin")
    items = relationship(
        "PurchaseItem", back_populates="purchase",
        cascade="all, delete-orphan", lazy="selectin", order_by="PurchaseItem.id"
    )

    def __repr__(self):
        return f"<Purchase {self.purchase_number}: {self.status}>"

    @property
    def status_display(self) -> str:
        return PURCHASE_STATUS_DISPLAY.get(self.status, self.status)


class PurchaseItem(Base):
    """采购明细"""
    __tablename__ = "purchase_items"

    id = Column(Integer, primary_key=True, index=True)
    purchase_id = Column(Integer, ForeignKey("purchases.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    variant_id = Column(Integer, ForeignKey("product_variants.id"), nullable=True)

    ordered_quantity = Column(DECIMAL(12, 2), nullable=False, comment="订购数量")
    received_quantity = Column(DECIMAL(12, 2), nullable=False, default=Decimal("0.00"), comment="已到货数量")
    unit_cost = Column(DECIMAL(12, 2), nullable=False, comment="单价")
    total_cost = Column(DECIMAL(12, 2), nullable=False, comment="小计")

    purchase = relationship("Purchase", back_populates="items")

    @property
    def outstanding_quantity(self) -> Decimal:
        """未到货数量"""
        return (self.ordered_quantity or Decimal("0")) - (self.received_quantity or Decimal("0"))
