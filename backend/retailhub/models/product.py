"""
商品模型
- Product: 商品基础信息和基础售价
- ProductVariant: 商品变体（如颜色、尺码），售价 = 基础售价 + 加价
"""

from datetime import datetime
from decimal import Decimal
from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, ForeignKey, DECIMAL, JSON, UniqueConstraint
from sqlalchemy.orm import relationship
from retailhub.db.base import Base


class Product(Base):
    """商品 - SKU 在组织内唯一"""
    __tablename__ = "products"
    __table_args__ = (
        UniqueConstraint('organization_id', 'sku', name='uq_product_org_sku'),
    )

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)

    name = Column(String(200), nullable=False, index=True, comment="品名")
    sku = Column(String(100), nullable=False, comment="SKU")
    barcode = Column(String(100), nullable=True, index=True, comment="条码")
    description = Column(Text, comment="描述")
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=True, comment="分类ID")

    base_price = Column(DECIMAL(12, 2), nullable=False, default=Decimal("0.00"), comment="基础售价")
    reorder_point = Column(Integer, nullable=False, default=0, comment="补货点")
    is_active = Column(Boolean, default=True, comment="是否启用")

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # 关系
    category = relationship("Category", back_populates="products", lazy="selectin")
    variants = relationship(
        "ProductVariant", back_populates="product",
        cascade="all, delete-orphan", lazy="selectin", order_by="ProductVariant.id"
    )

    def __repr__(self):
        return f"<Product {self.sku}: {self.name}>"


class ProductVariant(Base):
    """商品变体"""
    __tablename__ = "product_variants"
    __table_args__ = (
        UniqueConstraint('organization_id', 'sku', name='uq_variant_org_sku'),
    )

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)

    name = Column(String(100), nullable=False, comment="变体名称")
    sku = Column(String(100), nullable=False, comment="变体SKU")
    barcode = Column(String(100), nullable=True, comment="条码")
    price_modifier = Column(DECIMAL(12, 2), nullable=False, default=Decimal("0.00"), comment="相对基础售价的加价")
    attributes = Column(JSON, comment="属性，如 {\"颜色\": \"红\"}")
    reorder_point = Column(Integer, nullable=False, default=0, comment="补货点")
    is_active = Column(Boolean, default=True, comment="是否启用")

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    product = relationship("Product", back_populates="variants")

    def __repr__(self):
        return f"<ProductVariant {self.sku}: {self.name}>"
