"""商品分类模型 - 支持多层级树形结构，名称在组织内唯一"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, UniqueConstraint
from sqlalchemy.orm import relationship
from retailhub.db.base import Base


class Category(Base):
    """商品分类"""
    __tablename__ = "categories"
    __table_args__ = (
        UniqueConstraint('organization_id', 'name', name='uq_category_org_name'),
    )

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False, comment="分类名称")
    description = Column(String(500), nullable=True, comment="描述")
    parent_id = Column(Integer, ForeignKey("categories.id"), nullable=True, comment="父分类ID")

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # 关系
    parent = relationship("Category", remote_side=[id], backref="children")
    products = relationship("Product", back_populates="category")

    def __repr__(self):
        return f"<Category {self.name}>"
