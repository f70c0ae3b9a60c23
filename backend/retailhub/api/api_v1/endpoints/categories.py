"""商品分类API"""

from typing import Any, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, func, and_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from retailhub.core.constants import AuditAction, MemberRole
from retailhub.core.deps import get_db, get_current_member, require_roles
from retailhub.models.category import Category
from retailhub.models.organization import Member
from retailhub.schemas.catalog import (
    CategoryCreate, CategoryUpdate, CategoryResponse, CategoryListResponse
)
from retailhub.api.api_v1.endpoints.audit_logs import create_audit_log

router = APIRouter()

CATALOG_ROLES = (MemberRole.OWNER.value, MemberRole.ADMIN.value, MemberRole.MANAGER.value)


def _with_relations(query):
    return query.options(
        selectinload(Category.parent),
        selectinload(Category.children),
        selectinload(Category.products))


def _build_response(cat: Category) -> CategoryResponse:
    """构建响应"""
    return CategoryResponse(
        id=cat.id,
        organization_id=cat.organization_id,
        name=cat.name,
        parent_id=cat.parent_id,
        parent_name=cat.parent.name if cat.parent else None,
        description=cat.description,
        children_count=len(cat.children) if cat.children else 0,
        products_count=len(cat.products) if cat.products else 0,
        created_at=cat.created_at)


async def _load_category(db: AsyncSession, organization_id: int, category_id: int) -> Category:
    result = await db.execute(
        _with_relations(select(Category))
        .where(Category.id == category_id, Category.organization_id == organization_id)
        .execution_options(populate_existing=True)
    )
    cat = result.scalar_one_or_none()
    if not cat:
        raise HTTPException(status_code=404, detail="分类不存在")
    return cat


async def _check_name_unique(db: AsyncSession, organization_id: int, name: str, exclude_id: Optional[int] = None):
    conditions = [Category.organization_id == organization_id, Category.name == name]
    if exclude_id:
        conditions.append(Category.id != exclude_id)
    existing = await db.execute(select(Category.id).where(and_(*conditions)))
    if existing.first():
        raise HTTPException(status_code=409, detail=f"分类名称 {name} 已存在")


@router.get("/", response_model=CategoryListResponse)
async def list_categories(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(get_current_member),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    parent_id: Optional[int] = Query(None, description="父分类ID，不传则获取所有"),
    search: Optional[str] = Query(None)) -> Any:
    """获取分类列表"""
    conditions = [Category.organization_id == member.organization_id]
    if parent_id is not None:
        conditions.append(Category.parent_id == parent_id)
    if search:
        conditions.append(Category.name.ilike(f"%{search}%"))

    total = (await db.execute(
        select(func.count(Category.id)).where(and_(*conditions))
    )).scalar() or 0

    query = (
        _with_relations(select(Category)).where(and_(*conditions))
        .order_by(Category.name, Category.id)
        .offset((page - 1) * limit).limit(limit)
    )
    categories = (await db.execute(query)).scalars().unique().all()

    return CategoryListResponse(
        data=[_build_response(c) for c in categories],
        total=total,
        page=page,
        limit=limit
    )


@router.get("/{category_id}", response_model=CategoryResponse)
async def get_category(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(get_current_member),
    category_id: int) -> Any:
    """获取分类详情"""
    return _build_response(await _load_category(db, member.organization_id, category_id))


@router.post("/", response_model=CategoryResponse)
async def create_category(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(require_roles(*CATALOG_ROLES)),
    category_in: CategoryCreate) -> Any:
    """创建分类"""
    if category_in.parent_id:
        await _load_category(db, member.organization_id, category_in.parent_id)

    await _check_name_unique(db, member.organization_id, category_in.name)

    cat = Category(
        organization_id=member.organization_id,
        name=category_in.name,
        parent_id=category_in.parent_id,
        description=category_in.description)
    db.add(cat)
    await db.flush()

    await create_audit_log(
        db, member.organization_id, member.id, AuditAction.CREATE.value, "category",
        resource_id=cat.id, resource_name=cat.name, description=f"创建分类 {cat.name}"
    )
    await db.commit()

    # 重新加载带关系的完整分类对象
    return _build_response(await _load_category(db, member.organization_id, cat.id))


@router.put("/{category_id}", response_model=CategoryResponse)
async def update_category(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(require_roles(*CATALOG_ROLES)),
    category_id: int,
    category_in: CategoryUpdate) -> Any:
    """更新分类"""
    cat = await _load_category(db, member.organization_id, category_id)

    if category_in.name and category_in.name != cat.name:
        await _check_name_unique(db, member.organization_id, category_in.name, exclude_id=category_id)

    update_data = category_in.model_dump(exclude_unset=True)
    if update_data.get("parent_id"):
        if update_data["parent_id"] == category_id:
            raise HTTPException(status_code=400, detail="不能将分类设为自己的子分类")
        await _load_category(db, member.organization_id, update_data["parent_id"])

    for field, value in update_data.items():
        setattr(cat, field, value)

    await create_audit_log(
        db, member.organization_id, member.id, AuditAction.UPDATE.value, "category",
        resource_id=cat.id, resource_name=cat.name, description=f"更新分类 {cat.name}"
    )
    await db.commit()

    return _build_response(await _load_category(db, member.organization_id, category_id))


@router.delete("/{category_id}")
async def delete_category(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(require_roles(*CATALOG_ROLES)),
    category_id: int) -> Any:
    """删除分类"""
    cat = await _load_category(db, member.organization_id, category_id)

    if cat.children:
        raise HTTPException(status_code=400, detail="该分类下有子分类，无法删除")

    if cat.products:
        raise HTTPException(status_code=400, detail="该分类下有商品，无法删除")

    await create_audit_log(
        db, member.organization_id, member.id, AuditAction.DELETE.value, "category",
        resource_id=cat.id, resource_name=cat.name, description=f"删除分类 {cat.name}"
    )
    await db.delete(cat)
    await db.commit()

    return {"message": "删除成功"}
