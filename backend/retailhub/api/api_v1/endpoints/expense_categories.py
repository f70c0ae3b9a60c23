"""费用分类API"""

from typing import Any, List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, func, and_
from sqlalchemy.ext.asyncio import AsyncSession

from retailhub.core.constants import ORG_ADMIN_ROLES, AuditAction
from retailhub.core.deps import get_db, get_current_member, require_roles
from retailhub.models.approval_workflow import ApprovalStepCondition
from retailhub.models.expense import ExpenseCategory, Expense, RecurringExpense
from retailhub.models.organization import Member
from retailhub.schemas.expense import ExpenseCategoryCreate, ExpenseCategoryUpdate, ExpenseCategoryResponse
from retailhub.api.api_v1.endpoints.audit_logs import create_audit_log

router = APIRouter()


async def load_expense_category(db: AsyncSession, organization_id: int, category_id: int) -> ExpenseCategory:
    result = await db.execute(
        select(ExpenseCategory)
        .where(ExpenseCategory.id == category_id, ExpenseCategory.organization_id == organization_id)
        .execution_options(populate_existing=True)
    )
    cat = result.scalar_one_or_none()
    if not cat:
        raise HTTPException(status_code=404, detail="费用分类不存在")
    return cat


async def _check_name_unique(db: AsyncSession, organization_id: int, name: str, exclude_id: Optional[int] = None):
    conditions = [ExpenseCategory.organization_id == organization_id, ExpenseCategory.name == name]
    if exclude_id:
        conditions.append(ExpenseCategory.id != exclude_id)
    if (await db.execute(select(ExpenseCategory.id).where(and_(*conditions)))).first():
        raise HTTPException(status_code=409, detail=f"费用分类 {name} 已存在")


@router.get("/", response_model=List[ExpenseCategoryResponse])
async def list_expense_categories(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(get_current_member),
    is_active: Optional[bool] = Query(None)) -> Any:
    """获取费用分类列表"""
    query = select(ExpenseCategory).where(ExpenseCategory.organization_id == member.organization_id)
    if is_active is not None:
        query = query.where(ExpenseCategory.is_active == is_active)
    result = await db.execute(query.order_by(ExpenseCategory.name))
    return result.scalars().all()


@router.post("/", response_model=ExpenseCategoryResponse)
async def create_expense_category(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(require_roles(*ORG_ADMIN_ROLES)),
    category_in: ExpenseCategoryCreate) -> Any:
    """创建费用分类"""
    org_id = member.organization_id
    await _check_name_unique(db, org_id, category_in.name)

    cat = ExpenseCategory(organization_id=org_id, **category_in.model_dump())
    db.add(cat)
    await db.flush()
    await create_audit_log(
        db, org_id, member.id, AuditAction.CREATE.value, "expense_category",
        resource_id=cat.id, resource_name=cat.name, description=f"创建费用分类 {cat.name}"
    )
    await db.commit()
    return await load_expense_category(db, org_id, cat.id)


@router.put("/{category_id}", response_model=ExpenseCategoryResponse)
async def update_expense_category(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(require_roles(*ORG_ADMIN_ROLES)),
    category_id: int,
    category_in: ExpenseCategoryUpdate) -> Any:
    """更新费用分类"""
    org_id = member.organization_id
    cat = await load_expense_category(db, org_id, category_id)

    update_data = category_in.model_dump(exclude_unset=True)
    if update_data.get("name") and update_data["name"] != cat.name:
        await _check_name_unique(db, org_id, update_data["name"], exclude_id=category_id)
    for field, value in update_data.items():
        setattr(cat, field, value)

    await create_audit_log(
        db, org_id, member.id, AuditAction.UPDATE.value, "expense_category",
        resource_id=cat.id, resource_name=cat.name, description=f"更新费用分类 {cat.name}"
    )
    await db.commit()
    return await load_expense_category(db, org_id, category_id)


@router.delete("/{category_id}")
async def delete_expense_category(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(require_roles(*ORG_ADMIN_ROLES)),
    category_id: int) -> Any:
    """删除费用分类（被费用、周期性费用或审批条件引用时只能停用）"""
    org_id = member.organization_id
    cat = await load_expense_category(db, org_id, category_id)

    references = (
        (Expense, Expense.category_id, "费用"),
        (RecurringExpense, RecurringExpense.category_id, "周期性费用"),
        (ApprovalStepCondition, ApprovalStepCondition.expense_category_id, "审批条件"),
    )
    for model, column, label in references:
        used = (await db.execute(
            select(func.count(model.id)).where(column == category_id)
        )).scalar() or 0
        if used:
            raise HTTPException(status_code=400, detail=f"该分类已被 {used} 条{label}引用，只能停用")

    await create_audit_log(
        db, org_id, member.id, AuditAction.DELETE.value, "expense_category",
        resource_id=cat.id, resource_name=cat.name, description=f"删除费用分类 {cat.name}"
    )
    await db.delete(cat)
    await db.commit()
    return {"message": "删除成功"}
