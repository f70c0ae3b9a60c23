"""客户API"""

from typing import Any, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, func, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession

from retailhub.core.constants import AuditAction
from retailhub.core.deps import get_db, get_current_member, require_roles
from retailhub.models.organization import Member
from retailhub.models.sale import Customer
from retailhub.schemas.sale import CustomerCreate, CustomerUpdate, CustomerResponse, CustomerListResponse
from retailhub.api.api_v1.endpoints.audit_logs import create_audit_log
from retailhub.api.api_v1.endpoints.categories import CATALOG_ROLES

router = APIRouter()


async def load_customer(db: AsyncSession, organization_id: int, customer_id: int) -> Customer:
    result = await db.execute(
        select(Customer)
        .where(Customer.id == customer_id, Customer.organization_id == organization_id)
        .execution_options(populate_existing=True)
    )
    customer = result.scalar_one_or_none()
    if not customer:
        raise HTTPException(status_code=404, detail="客户不存在")
    return customer


@router.get("/", response_model=CustomerListResponse)
async def list_customers(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(get_current_member),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: Optional[str] = Query(None, description="搜索姓名/电话/邮箱"),
    is_active: Optional[bool] = Query(None)) -> Any:
    """获取客户列表"""
    conditions = [Customer.organization_id == member.organization_id]
    if is_active is not None:
        conditions.append(Customer.is_active == is_active)
    if search:
        conditions.append(or_(
            Customer.name.ilike(f"%{search}%"),
            Customer.phone.ilike(f"%{search}%"),
            Customer.email.ilike(f"%{search}%")
        ))

    total = (await db.execute(
        select(func.count(Customer.id)).where(and_(*conditions))
    )).scalar() or 0
    result = await db.execute(
        select(Customer).where(and_(*conditions))
        .order_by(Customer.name, Customer.id).offset((page - 1) * limit).limit(limit)
    )
    return CustomerListResponse(
        data=[CustomerResponse.model_validate(c) for c in result.scalars().all()],
        total=total,
        page=page,
        limit=limit
    )


@router.get("/{customer_id}", response_model=CustomerResponse)
async def get_customer(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(get_current_member),
    customer_id: int) -> Any:
    return await load_customer(db, member.organization_id, customer_id)


@router.post("/", response_model=CustomerResponse)
async def create_customer(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(get_current_member),
    customer_in: CustomerCreate) -> Any:
    """创建客户（收银员即可建档）"""
    org_id = member.organization_id
    customer = Customer(organization_id=org_id, loyalty_points=0, **customer_in.model_dump())
    db.add(customer)
    await db.flush()

    await create_audit_log(
        db, org_id, member.id, AuditAction.CREATE.value, "customer",
        resource_id=customer.id, resource_name=customer.name, description=f"创建客户 {customer.name}"
    )
    await db.commit()
    return await load_customer(db, org_id, customer.id)


@router.put("/{customer_id}", response_model=CustomerResponse)
async def update_customer(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(get_current_member),
    customer_id: int,
    customer_in: CustomerUpdate) -> Any:
    """更新客户"""
    org_id = member.organization_id
    customer = await load_customer(db, org_id, customer_id)
    for field, value in customer_in.model_dump(exclude_unset=True).items():
        setattr(customer, field, value)

    await create_audit_log(
        db, org_id, member.id, AuditAction.UPDATE.value, "customer",
        resource_id=customer.id, resource_name=customer.name, description=f"更新客户 {customer.name}"
    )
    await db.commit()
    return await load_customer(db, org_id, customer_id)


@router.delete("/{customer_id}")
async def deactivate_customer(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(require_roles(*CATALOG_ROLES)),
    customer_id: int) -> Any:
    """停用客户（历史销售单仍引用该客户）"""
    org_id = member.organization_id
    customer = await load_customer(db, org_id, customer_id)
    customer.is_active = False
    await create_audit_log(
        db, org_id, member.id, AuditAction.DELETE.value, "customer",
        resource_id=customer.id, resource_name=customer.name, description=f"停用客户 {customer.name}"
    )
    await db.commit()
    return {"message": "客户已停用"}
