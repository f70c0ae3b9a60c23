"""周期性费用API"""

from typing import Any, List, Optional
from datetime import date
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from retailhub.core.constants import ORG_ADMIN_ROLES, AuditAction
from retailhub.core.deps import get_db, get_current_member, require_roles
from retailhub.core.logging_config import get_logger
from retailhub.models.expense import RecurringExpense, ExpenseCategory
from retailhub.models.location import InventoryLocation
from retailhub.models.organization import Member, Organization
from retailhub.models.purchase import Supplier
from retailhub.schemas.expense import (
    RecurringExpenseCreate, RecurringExpenseUpdate, RecurringExpenseResponse, RecurringGenerateResponse
)
from retailhub.services.recurrence import advance_due_date
from retailhub.api.api_v1.endpoints.audit_logs import create_audit_log
from retailhub.api.api_v1.endpoints.expenses import submit_expense

router = APIRouter()
logger = get_logger(__name__)


async def load_recurring(db: AsyncSession, organization_id: int, recurring_id: int) -> RecurringExpense:
    result = await db.execute(
        select(RecurringExpense)
        .where(RecurringExpense.id == recurring_id, RecurringExpense.organization_id == organization_id)
        .execution_options(populate_existing=True)
    )
    rec = result.scalar_one_or_none()
    if not rec:
        raise HTTPException(status_code=404, detail="周期性费用不存在")
    return rec


_REFERENCES = (
    ("category_id", ExpenseCategory, "费用分类不存在"),
    ("location_id", InventoryLocation, "地点不存在"),
    ("supplier_id", Supplier, "供应商不存在"),
)


async def _check_references(db: AsyncSession, organization_id: int, data: dict):
    """分类、地点、供应商必须属于本组织"""
    for field, model, detail in _REFERENCES:
        if data.get(field) is None:
            continue
        obj = await db.get(model, data[field])
        if not obj or obj.organization_id != organization_id:
            raise HTTPException(status_code=400, detail=detail)


@router.get("/", response_model=List[RecurringExpenseResponse])
async def list_recurring_expenses(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(get_current_member),
    is_active: Optional[bool] = Query(None)) -> Any:
    """获取周期性费用列表"""
    query = select(RecurringExpense).where(RecurringExpense.organization_id == member.organization_id)
    if is_active is not None:
        query = query.where(RecurringExpense.is_active == is_active)
    result = await db.execute(query.order_by(RecurringExpense.next_due_date, RecurringExpense.id))
    return result.scalars().all()


@router.get("/{recurring_id}", response_model=RecurringExpenseResponse)
async def get_recurring_expense(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(get_current_member),
    recurring_id: int) -> Any:
    return await load_recurring(db, member.organization_id, recurring_id)


@router.post("/", response_model=RecurringExpenseResponse)
async def create_recurring_expense(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(require_roles(*ORG_ADMIN_ROLES)),
    recurring_in: RecurringExpenseCreate) -> Any:
    """创建周期性费用，首次生成日期为开始日期"""
    org_id = member.organization_id
    data = recurring_in.model_dump()
    await _check_references(db, org_id, data)
    data["payment_method"] = recurring_in.payment_method.value
    data["frequency"] = recurring_in.frequency.value
    rec = RecurringExpense(
        organization_id=org_id,
        next_due_date=recurring_in.start_date,
        is_active=True,
        created_by_id=member.id,
        **data)
    db.add(rec)
    await db.flush()

    await create_audit_log(
        db, org_id, member.id, AuditAction.CREATE.value, "recurring_expense",
        resource_id=rec.id, resource_name=rec.description,
        description=f"创建周期性费用 {rec.description}（{rec.frequency}）"
    )
    await db.commit()
    return await load_recurring(db, org_id, rec.id)


@router.put("/{recurring_id}", response_model=RecurringExpenseResponse)
async def update_recurring_expense(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(require_roles(*ORG_ADMIN_ROLES)),
    recurring_id: int,
    recurring_in: RecurringExpenseUpdate) -> Any:
    """更新周期性费用"""
    org_id = member.organization_id
    rec = await load_recurring(db, org_id, recurring_id)

    update_data = recurring_in.model_dump(exclude_unset=True)
    await _check_references(db, org_id, update_data)
    for key in ("payment_method", "frequency"):
        if update_data.get(key) is not None:
            update_data[key] = update_data[key].value
    if update_data.get("end_date") is not None and update_data["end_date"] < rec.start_date:
        raise HTTPException(status_code=400, detail="结束日期不能早于开始日期")

    for field, value in update_data.items():
        setattr(rec, field, value)

    await create_audit_log(
        db, org_id, member.id, AuditAction.UPDATE.value, "recurring_expense",
        resource_id=rec.id, resource_name=rec.description, description=f"更新周期性费用 {rec.description}"
    )
    await db.commit()
    return await load_recurring(db, org_id, recurring_id)


@router.delete("/{recurring_id}")
async def delete_recurring_expense(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(require_roles(*ORG_ADMIN_ROLES)),
    recurring_id: int) -> Any:
    """停用周期性费用（已生成的费用保留）"""
    rec = await load_recurring(db, member.organization_id, recurring_id)
    rec.is_active = False
    await create_audit_log(
        db, member.organization_id, member.id, AuditAction.DELETE.value, "recurring_expense",
        resource_id=rec.id, resource_name=rec.description, description=f"停用周期性费用 {rec.description}"
    )
    await db.commit()
    return {"message": "周期性费用已停用"}


@router.post("/generate", response_model=RecurringGenerateResponse)
async def run_generation(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(require_roles(*ORG_ADMIN_ROLES)),
    today: Optional[date] = Query(None, description="按此日期生成，默认今天")) -> Any:
    """手动生成本组织到期的周期性费用"""
    result = await generate_due_expenses(db, today or date.today(), organization_id=member.organization_id)
    await db.commit()
    return result


# ===== 周期性费用服务函数（供定时任务调用）=====

async def generate_due_expenses(
    db: AsyncSession,
    today: date,
    organization_id: Optional[int] = None) -> RecurringGenerateResponse:
    """
    为到期的周期性费用生成费用单（不提交事务）

    - next_due_date <= today 的每一期都会补生成
    - 到期日按频率推进，按月推进时以开始日期的日号为准并按月末截断
    - 下次到期日超过结束日期时停用
    """
    query = select(RecurringExpense).where(
        RecurringExpense.is_active.is_(True),
        RecurringExpense.next_due_date <= today
    )
    if organization_id is not None:
        query = query.where(RecurringExpense.organization_id == organization_id)
    recurring = (await db.execute(query.order_by(RecurringExpense.id))).scalars().all()

    expense_ids = []
    deactivated = 0
    orgs = {}
    for rec in recurring:
        org = orgs.get(rec.organization_id)
        if org is None:
            org = await db.get(Organization, rec.organization_id)
            orgs[rec.organization_id] = org

        while rec.is_active and rec.next_due_date <= today:
            due = rec.next_due_date
            if rec.end_date is not None and due > rec.end_date:
                rec.is_active = False
                break
            expense = await submit_expense(
                db, org, rec.created_by_id,
                {
                    "description": rec.description,
                    "amount": rec.amount,
                    "expense_date": due,
                    "category_id": rec.category_id,
                    "location_id": rec.location_id,
                    "supplier_id": rec.supplier_id,
                    "payment_method": rec.payment_method,
                    "is_reimbursable": rec.is_reimbursable,
                    "notes": f"周期性费用自动生成（{due.isoformat()}）",
                    "tags": ["recurring"],
                },
                recurring_expense_id=rec.id)
            expense_ids.append(expense.id)
            rec.last_generated_date = due
            rec.next_due_date = advance_due_date(due, rec.frequency, anchor_day=rec.start_date.day)

        if rec.is_active and rec.end_date is not None and rec.next_due_date > rec.end_date:
            rec.is_active = False
        if not rec.is_active:
            deactivated += 1
            logger.info(f"周期性费用 {rec.id} 已过结束日期，停用")

    await db.flush()
    if expense_ids:
        logger.info(f"生成周期性费用 {len(expense_ids)} 笔")
    return RecurringGenerateResponse(generated=len(expense_ids), expense_ids=expense_ids, deactivated=deactivated)
