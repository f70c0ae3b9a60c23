"""
客户与销售模型
- 销售明细记录出库批次和成本，用于毛利计算
- 批次消耗明细（SaleItemBatch）用于作废时原路退回批次
"""

from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, ForeignKey, DECIMAL, CheckConstraint, UniqueConstraint
from sqlalchemy.orm import relationship
from retailhub.db.base import Base

CENT = Decimal("0.01")


class Customer(Base):
    """客户"""
    __tablename__ = "customers"
    __table_args__ = (
        CheckConstraint('loyalty_points >= 0', name='ck_customer_points_non_negative'),
    )

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    name = Column(String(200), nullable=False, comment="姓名")
    email = Column(String(200), comment="邮箱")
    phone = Column(String(50), index=True, comment="电话")
    address = Column(String(300), comment="地址")
    notes = Column(Text, comment="备注")
    loyalty_points = Column(Integer, nullable=False, default=0, comment="积分")
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<Customer {self.name}>"


class Sale(Base):
    """销售单"""
    __tablename__ = "sales"
    __table_args__ = (
        UniqueConstraint('organization_id', 'sale_number', name='uq_sale_org_number'),
    )

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    sale_number = Column(String(50), nullable=False, comment="销售单号")
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=True, index=True)
    member_id = Column(Integer, ForeignKey("members.id"), nullable=False, comment="收银员")
    location_id = Column(Integer, ForeignKey("inventory_locations.id"), nullable=False, comment="销售地点")

    # 金额：小计 - 折扣 + 税 = 实收
    total_amount = Column(DECIMAL(12, 2), nullable=False, comment="小计")
    discount_amount = Column(DECIMAL(12, 2), nullable=False, default=Decimal("0.00"), comment="整单折扣")
    tax_amount = Column(DECIMAL(12, 2), nullable=False, default=Decimal("0.00"), comment="税额")
    final_amount = Column(DECIMAL(12, 2), nullable=False, comment="实收金额")

    payment_method = Column(String(30), nullable=False, default="cash", comment="支付方式")
    # pending / completed / voided
    payment_status = Column(String(20), nullable=False, default="completed", index=True, comment="支付状态")
    loyalty_points_earned = Column(Integer, nullable=False, default=0, comment="本单获得积分")

    notes = Column(Text, comment="备注")
    sale_date = Column(DateTime, default=datetime.utcnow, index=True)
    voided_at = Column(DateTime, nullable=True, comment="作废时间")

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    customer = relationship("Customer", lazy="selectin")
    items = relationship(
        "SaleItem", back_populates="sale",
        cascade="all, delete-orphan", lazy="selectin", order_by="SaleItem.id"
    )

    def __repr__(self):
        return f"<Sale {self.sale_number}: {self.final_amount}>"

    @property
    def total_cost(self) -> Decimal:
        """按出货批次进价累加的成本，保留两位"""
        total = sum((item.total_cost for item in self.items), Decimal("0"))
        return total.quantize(CENT, rounding=ROUND_HALF_UP)

    @property
    def gross_profit(self) -> Decimal:
        """毛利 = 实收 - 税 - 成本"""
        return ((self.final_amount - self.tax_amount) - self.total_cost).quantize(CENT, rounding=ROUND_HALF_UP)


class SaleItem(Base):
    """销售明细"""
    __tablename__ = "sale_items"

    id = Column(Integer, primary_key=True, index=True)
    sale_id = Column(Integer, ForeignKey("sales.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    variant_id = Column(Integer, ForeignKey("product_variants.id"), nullable=True)
    # 第一个出库批次（多批次出库时详见 batch_records）
    stock_batch_id = Column(Integer, ForeignKey("stock_batches.id"), nullable=True)

    quantity = Column(DECIMAL(12, 2), nullable=False, comment="数量")
    unit_price = Column(DECIMAL(12, 2), nullable=False, comment="售价")
    unit_cost = Column(DECIMAL(12, 2), nullable=False, default=Decimal("0.00"), comment="加权成本单价")
    cost_amount = Column(DECIMAL(14, 4), nullable=False, default=Decimal("0"), comment="成本合计 = Σ 出货数量 × 批次进价")
    total_amount = Column(DECIMAL(12, 2), nullable=False, comment="小计 = 售价 × 数量")

    sale = relationship("Sale", back_populates="items")
    product = relationship("Product", lazy="selectin")
    batch_records = relationship(
        "SaleItemBatch", back_populates="sale_item",
        cascade="all, delete-orphan", lazy="selectin"
    )

    @property
    def total_cost(self) -> Decimal:
        return Decimal(self.cost_amount or 0)


class SaleItemBatch(Base):
    """销售明细-批次关联 - 记录一个销售明细从哪些批次出货"""
    __tablename__ = "sale_item_batches"

    id = Column(Integer, primary_key=True, index=True)
    sale_item_id = Column(Integer, ForeignKey("sale_items.id"), nullable=False, index=True)
    batch_id = Column(Integer, ForeignKey("stock_batches.id"), nullable=False, index=True)
    quantity = Column(DECIMAL(12, 2), nullable=False, comment="出货数量")
    cost_price = Column(DECIMAL(12, 2), nullable=False, comment="出货时的批次进价")

    sale_item = relationship("SaleItem", back_populates="batch_records")

    def __repr__(self):
        return f"<SaleItemBatch item:{self.sale_item_id} batch:{self.batch_id} qty:{self.quantity}>"
