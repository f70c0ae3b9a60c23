"""商品API - 商品与变体管理"""

from decimal import Decimal
from typing import Any, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, func, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession

from retailhub.core.constants import AuditAction
from retailhub.core.deps import get_db, get_current_member, require_roles
from retailhub.models.category import Category
from retailhub.models.organization import Member
from retailhub.models.product import Product, ProductVariant
from retailhub.schemas.catalog import (
    ProductCreate, ProductUpdate, ProductResponse, ProductListResponse,
    VariantCreate, VariantUpdate, VariantResponse
)
from retailhub.api.api_v1.endpoints.audit_logs import create_audit_log
from retailhub.api.api_v1.endpoints.categories import CATALOG_ROLES

router = APIRouter()


def unit_price(product: Product, variant: Optional[ProductVariant] = None) -> Decimal:
    """售价 = 基础售价 + 变体加价"""
    price = product.base_price or Decimal("0")
    if variant is not None:
        price += variant.price_modifier or Decimal("0")
    return price


def build_variant_response(product: Product, v: ProductVariant) -> VariantResponse:
    return VariantResponse(
        id=v.id,
        product_id=v.product_id,
        name=v.name,
        sku=v.sku,
        barcode=v.barcode,
        price_modifier=v.price_modifier,
        attributes=v.attributes,
        reorder_point=v.reorder_point,
        is_active=v.is_active,
        unit_price=unit_price(product, v))


def build_product_response(p: Product) -> ProductResponse:
    return ProductResponse(
        id=p.id,
        organization_id=p.organization_id,
        name=p.name,
        sku=p.sku,
        barcode=p.barcode,
        description=p.description,
        category_id=p.category_id,
        category_name=p.category.name if p.category else None,
        base_price=p.base_price,
        reorder_point=p.reorder_point,
        is_active=p.is_active,
        variants=[build_variant_response(p, v) for v in p.variants],
        created_at=p.created_at)


async def load_product(db: AsyncSession, organization_id: int, product_id: int) -> Product:
    """加载组织内的商品（含分类和变体）"""
    result = await db.execute(
        select(Product)
        .where(Product.id == product_id, Product.organization_id == organization_id)
        .execution_options(populate_existing=True)
    )
    product = result.scalar_one_or_none()
    if not product:
        raise HTTPException(status_code=404, detail="商品不存在")
    return product


async def _check_sku_unique(db: AsyncSession, organization_id: int, model, sku: str, exclude_id: Optional[int] = None):
    conditions = [model.organization_id == organization_id, model.sku == sku]
    if exclude_id:
        conditions.append(model.id != exclude_id)
    existing = await db.execute(select(model.id).where(and_(*conditions)))
    if existing.first():
        raise HTTPException(status_code=409, detail=f"SKU {sku} 已存在")


async def _check_category(db: AsyncSession, organization_id: int, category_id: Optional[int]):
    if category_id is None:
        return
    cat = await db.get(Category, category_id)
    if not cat or cat.organization_id != organization_id:
        raise HTTPException(status_code=400, detail="分类不存在")


@router.get("/", response_model=ProductListResponse)
async def list_products(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(get_current_member),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    category_id: Optional[int] = Query(None),
    is_active: Optional[bool] = Query(None),
    search: Optional[str] = Query(None, description="搜索品名/SKU/条码")) -> Any:
    """获取商品列表"""
    conditions = [Product.organization_id == member.organization_id]
    if category_id is not None:
        conditions.append(Product.category_id == category_id)
    if is_active is not None:
        conditions.append(Product.is_active == is_active)
    if search:
        conditions.append(or_(
            Product.name.ilike(f"%{search}%"),
            Product.sku.ilike(f"%{search}%"),
            Product.barcode.ilike(f"%{search}%")
        ))

    total = (await db.execute(
        select(func.count(Product.id)).where(and_(*conditions))
    )).scalar() or 0

    query = (
        select(Product).where(and_(*conditions))
        .order_by(Product.name, Product.id)
        .offset((page - 1) * limit).limit(limit)
    )
    products = (await db.execute(query)).scalars().all()

    return ProductListResponse(
        data=[build_product_response(p) for p in products],
        total=total,
        page=page,
        limit=limit
    )


@router.get("/{product_id}", response_model=ProductResponse)
async def get_product(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(get_current_member),
    product_id: int) -> Any:
    """获取商品详情"""
    return build_product_response(await load_product(db, member.organization_id, product_id))


@router.post("/", response_model=ProductResponse)
async def create_product(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(require_roles(*CATALOG_ROLES)),
    product_in: ProductCreate) -> Any:
    """创建商品（可同时创建变体）"""
    org_id = member.organization_id
    await _check_category(db, org_id, product_in.category_id)
    await _check_sku_unique(db, org_id, Product, product_in.sku)

    variant_skus = [v.sku for v in product_in.variants]
    if len(variant_skus) != len(set(variant_skus)):
        raise HTTPException(status_code=400, detail="变体SKU不能重复")
    for sku in variant_skus:
        await _check_sku_unique(db, org_id, ProductVariant, sku)

    product = Product(
        organization_id=org_id,
        **product_in.model_dump(exclude={"variants"}))
    db.add(product)
    await db.flush()

    for v in product_in.variants:
        db.add(ProductVariant(organization_id=org_id, product_id=product.id, **v.model_dump()))

    await create_audit_log(
        db, org_id, member.id, AuditAction.CREATE.value, "product",
        resource_id=product.id, resource_name=product.sku, description=f"创建商品 {product.name}"
    )
    await db.commit()

    return build_product_response(await load_product(db, org_id, product.id))


@router.put("/{product_id}", response_model=ProductResponse)
async def update_product(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(require_roles(*CATALOG_ROLES)),
    product_id: int,
    product_in: ProductUpdate) -> Any:
    """更新商品"""
    org_id = member.organization_id
    product = await load_product(db, org_id, product_id)

    update_data = product_in.model_dump(exclude_unset=True)
    if update_data.get("sku") and update_data["sku"] != product.sku:
        await _check_sku_unique(db, org_id, Product, update_data["sku"], exclude_id=product_id)
    if "category_id" in update_data:
        await _check_category(db, org_id, update_data["category_id"])

    old_value = {"name": product.name, "sku": product.sku, "base_price": str(product.base_price)}
    for field, value in update_data.items():
        setattr(product, field, value)

    await create_audit_log(
        db, org_id, member.id, AuditAction.UPDATE.value, "product",
        resource_id=product.id, resource_name=product.sku, description=f"更新商品 {product.name}",
        old_value=old_value,
        new_value={"name": product.name, "sku": product.sku, "base_price": str(product.base_price)}
    )
    await db.commit()

    return build_product_response(await load_product(db, org_id, product_id))


@router.delete("/{product_id}")
async def deactivate_product(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(require_roles(*CATALOG_ROLES)),
    product_id: int) -> Any:
    """停用商品（保留历史数据，不做物理删除）"""
    product = await load_product(db, member.organization_id, product_id)
    product.is_active = False
    await create_audit_log(
        db, member.organization_id, member.id, AuditAction.DELETE.value, "product",
        resource_id=product.id, resource_name=product.sku, description=f"停用商品 {product.name}"
    )
    await db.commit()
    return {"message": "商品已停用"}


# ===== 变体 =====

@router.post("/{product_id}/variants", response_model=VariantResponse)
async def add_variant(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(require_roles(*CATALOG_ROLES)),
    product_id: int,
    variant_in: VariantCreate) -> Any:
    """添加变体"""
    org_id = member.organization_id
    product = await load_product(db, org_id, product_id)
    await _check_sku_unique(db, org_id, ProductVariant, variant_in.sku)

    variant = ProductVariant(organization_id=org_id, product_id=product.id, **variant_in.model_dump())
    db.add(variant)
    await db.flush()
    await create_audit_log(
        db, org_id, member.id, AuditAction.CREATE.value, "product",
        resource_id=product.id, resource_name=variant.sku, description=f"添加变体 {product.name} / {variant.name}"
    )
    await db.commit()
    return build_variant_response(product, variant)


async def _load_variant(db: AsyncSession, organization_id: int, product_id: int, variant_id: int):
    product = await load_product(db, organization_id, product_id)
    variant = next((v for v in product.variants if v.id == variant_id), None)
    if not variant:
        raise HTTPException(status_code=404, detail="变体不存在")
    return product, variant


@router.put("/{product_id}/variants/{variant_id}", response_model=VariantResponse)
async def update_variant(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(require_roles(*CATALOG_ROLES)),
    product_id: int,
    variant_id: int,
    variant_in: VariantUpdate) -> Any:
    """更新变体"""
    org_id = member.organization_id
    product, variant = await _load_variant(db, org_id, product_id, variant_id)

    update_data = variant_in.model_dump(exclude_unset=True)
    if update_data.get("sku") and update_data["sku"] != variant.sku:
        await _check_sku_unique(db, org_id, ProductVariant, update_data["sku"], exclude_id=variant_id)
    for field, value in update_data.items():
        setattr(variant, field, value)

    await create_audit_log(
        db, org_id, member.id, AuditAction.UPDATE.value, "product",
        resource_id=product.id, resource_name=variant.sku, description=f"更新变体 {product.name} / {variant.name}"
    )
    await db.commit()
    return build_variant_response(product, variant)


@router.delete("/{product_id}/variants/{variant_id}")
async def deactivate_variant(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(require_roles(*CATALOG_ROLES)),
    product_id: int,
    variant_id: int) -> Any:
    """停用变体"""
    product, variant = await _load_variant(db, member.organization_id, product_id, variant_id)
    variant.is_active = False
    await create_audit_log(
        db, member.organization_id, member.id, AuditAction.DELETE.value, "product",
        resource_id=product.id, resource_name=variant.sku, description=f"停用变体 {product.name} / {variant.name}"
    )
    await db.commit()
    return {"message": "变体已停用"}
