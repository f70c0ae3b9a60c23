"""供应商API"""

from typing import Any, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, func, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession

from retailhub.core.constants import AuditAction
from retailhub.core.deps import get_db, get_current_member, require_roles
from retailhub.models.organization import Member
from retailhub.models.expense import Expense, RecurringExpense
from retailhub.models.purchase import Supplier, Purchase
from retailhub.schemas.purchase import SupplierCreate, SupplierUpdate, SupplierResponse, SupplierListResponse
from retailhub.api.api_v1.endpoints.audit_logs import create_audit_log
from retailhub.api.api_v1.endpoints.categories import CATALOG_ROLES

router = APIRouter()


async def load_supplier(db: AsyncSession, organization_id: int, supplier_id: int) -> Supplier:
    result = await db.execute(
        select(Supplier)
        .where(Supplier.id == supplier_id, Supplier.organization_id == organization_id)
        .execution_options(populate_existing=True)
    )
    supplier = result.scalar_one_or_none()
    if not supplier:
        raise HTTPException(status_code=404, detail="供应商不存在")
    return supplier


async def _check_name_unique(db: AsyncSession, organization_id: int, name: str, exclude_id: Optional[int] = None):
    conditions = [Supplier.organization_id == organization_id, Supplier.name == name]
    if exclude_id:
        conditions.append(Supplier.id != exclude_id)
    if (await db.execute(select(Supplier.id).where(and_(*conditions)))).first():
        raise HTTPException(status_code=409, detail=f"供应商 {name} 已存在")


@router.get("/", response_model=SupplierListResponse)
async def list_suppliers(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(get_current_member),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    is_active: Optional[bool] = Query(None),
    search: Optional[str] = Query(None, description="搜索名称/联系人")) -> Any:
    """获取供应商列表"""
    conditions = [Supplier.organization_id == member.organization_id]
    if is_active is not None:
        conditions.append(Supplier.is_active == is_active)
    if search:
        conditions.append(or_(
            Supplier.name.ilike(f"%{search}%"),
            Supplier.contact_name.ilike(f"%{search}%")
        ))

    total = (await db.execute(
        select(func.count(Supplier.id)).where(and_(*conditions))
    )).scalar() or 0
    result = await db.execute(
        select(Supplier).where(and_(*conditions))
        .order_by(Supplier.name).offset((page - 1) * limit).limit(limit)
    )
    return SupplierListResponse(
        data=[SupplierResponse.model_validate(s) for s in result.scalars().all()],
        total=total,
        page=page,
        limit=limit
    )


@router.get("/{supplier_id}", response_model=SupplierResponse)
async def get_supplier(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(get_current_member),
    supplier_id: int) -> Any:
    return await load_supplier(db, member.organization_id, supplier_id)


@router.post("/", response_model=SupplierResponse)
async def create_supplier(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(require_roles(*CATALOG_ROLES)),
    supplier_in: SupplierCreate) -> Any:
    """创建供应商"""
    org_id = member.organization_id
    await _check_name_unique(db, org_id, supplier_in.name)

    supplier = Supplier(organization_id=org_id, **supplier_in.model_dump())
    db.add(supplier)
    await db.flush()

    await create_audit_log(
        db, org_id, member.id, AuditAction.CREATE.value, "supplier",
        resource_id=supplier.id, resource_name=supplier.name, description=f"创建供应商 {supplier.name}"
    )
    await db.commit()
    return await load_supplier(db, org_id, supplier.id)


@router.put("/{supplier_id}", response_model=SupplierResponse)
async def update_supplier(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(require_roles(*CATALOG_ROLES)),
    supplier_id: int,
    supplier_in: SupplierUpdate) -> Any:
    """更新供应商"""
    org_id = member.organization_id
    supplier = await load_supplier(db, org_id, supplier_id)

    update_data = supplier_in.model_dump(exclude_unset=True)
    if update_data.get("name") and update_data["name"] != supplier.name:
        await _check_name_unique(db, org_id, update_data["name"], exclude_id=supplier_id)
    for field, value in update_data.items():
        setattr(supplier, field, value)

    await create_audit_log(
        db, org_id, member.id, AuditAction.UPDATE.value, "supplier",
        resource_id=supplier.id, resource_name=supplier.name, description=f"更新供应商 {supplier.name}"
    )
    await db.commit()
    return await load_supplier(db, org_id, supplier_id)


@router.delete("/{supplier_id}")
async def delete_supplier(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(require_roles(*CATALOG_ROLES)),
    supplier_id: int) -> Any:
    """删除供应商（被采购单或费用引用时只能停用）"""
    org_id = member.organization_id
    supplier = await load_supplier(db, org_id, supplier_id)

    for model, label in ((Purchase, "采购单"), (Expense, "费用"), (RecurringExpense, "周期性费用")):
        used = (await db.execute(
            select(func.count(model.id)).where(model.supplier_id == supplier_id)
        )).scalar() or 0
        if used:
            raise HTTPException(status_code=400, detail=f"该供应商已被 {used} 条{label}引用，只能停用")

    await create_audit_log(
        db, org_id, member.id, AuditAction.DELETE.value, "supplier",
        resource_id=supplier.id, resource_name=supplier.name, description=f"删除供应商 {supplier.name}"
    )
    await db.delete(supplier)
    await db.commit()
    return {"message": "删除成功"}
