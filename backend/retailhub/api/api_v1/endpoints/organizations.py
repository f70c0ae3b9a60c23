"""组织API - 创建组织、查看和修改组织设置"""

import re
from typing import Any
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from retailhub.core.constants import ORG_ADMIN_ROLES, MemberRole, AuditAction
from retailhub.core.deps import get_db, get_current_member, require_roles
from retailhub.core.logging_config import get_logger
from retailhub.models.approval_workflow import ApprovalWorkflow
from retailhub.models.organization import Organization, Member, User
from retailhub.schemas.organization import (
    OrganizationCreate, OrganizationSettingsUpdate, OrganizationResponse, OrganizationCreateResponse
)
from retailhub.api.api_v1.endpoints.audit_logs import create_audit_log

router = APIRouter()
logger = get_logger(__name__)


def slugify(name: str) -> str:
    """由名称生成标识（非字母数字字符替换为 -）"""
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return slug or "org"


def _settings_snapshot(org: Organization) -> dict:
    return {
        "inventory_policy": org.inventory_policy,
        "allow_negative_stock": org.allow_negative_stock,
        "expense_approval_required": org.expense_approval_required,
        "expense_approval_threshold": str(org.expense_approval_threshold) if org.expense_approval_threshold is not None else None,
        "expense_receipt_required": org.expense_receipt_required,
        "expense_receipt_threshold": str(org.expense_receipt_threshold) if org.expense_receipt_threshold is not None else None,
        "active_expense_workflow_id": org.active_expense_workflow_id,
    }


async def get_or_create_user(db: AsyncSession, email: str, name: str) -> User:
    """按邮箱查找用户，不存在则创建"""
    email = email.lower()
    result = await db.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()
    if not user:
        user = User(email=email, name=name)
        db.add(user)
        await db.flush()
    return user


@router.post("/", response_model=OrganizationCreateResponse)
async def create_organization(
    *,
    db: AsyncSession = Depends(get_db),
    org_in: OrganizationCreate) -> Any:
    """创建组织，创建人成为所有者"""
    slug = org_in.slug or slugify(org_in.name)

    existing = await db.execute(select(Organization).where(Organization.slug == slug))
    if existing.scalar_one_or_none():
        raise HTTPException(status_code=409, detail=f"组织标识 {slug} 已被使用")

    user = await get_or_create_user(db, org_in.owner_email, org_in.owner_name)

    org = Organization(
        name=org_in.name,
        slug=slug,
        description=org_in.description,
        default_currency=org_in.default_currency.upper())
    db.add(org)
    await db.flush()

    owner = Member(organization_id=org.id, user_id=user.id, role=MemberRole.OWNER.value, is_active=True)
    db.add(owner)
    await db.flush()

    await create_audit_log(
        db, org.id, owner.id, AuditAction.CREATE.value, "organization",
        resource_id=org.id, resource_name=org.name,
        description=f"创建组织 {org.name}"
    )
    await db.commit()
    logger.info(f"创建组织 {org.slug}，所有者 {user.email}")

    return OrganizationCreateResponse(
        organization=OrganizationResponse.model_validate(org),
        owner_member_id=owner.id
    )


@router.get("/current", response_model=OrganizationResponse)
async def get_organization(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(get_current_member)) -> Any:
    """获取当前组织"""
    org = await db.get(Organization, member.organization_id)
    if not org:
        raise HTTPException(status_code=404, detail="组织不存在")
    return OrganizationResponse.model_validate(org)


@router.put("/current/settings", response_model=OrganizationResponse)
async def update_organization_settings(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(require_roles(*ORG_ADMIN_ROLES)),
    settings_in: OrganizationSettingsUpdate) -> Any:
    """更新组织设置（库存策略、费用审批规则等）"""
    org = await db.get(Organization, member.organization_id)
    if not org:
        raise HTTPException(status_code=404, detail="组织不存在")

    old_value = _settings_snapshot(org)
    update_data = settings_in.model_dump(exclude_unset=True)
    if "inventory_policy" in update_data and update_data["inventory_policy"] is not None:
        update_data["inventory_policy"] = update_data["inventory_policy"].value
    if update_data.get("default_currency"):
        update_data["default_currency"] = update_data["default_currency"].upper()
    if update_data.get("active_expense_workflow_id") is not None:
        wf = await db.get(ApprovalWorkflow, update_data["active_expense_workflow_id"])
        if not wf or wf.organization_id != org.id:
            raise HTTPException(status_code=400, detail="审批流不存在")
        if not wf.is_active:
            raise HTTPException(status_code=400, detail=f"审批流 {wf.name} 已停用，不能设为生效")
    for field, value in update_data.items():
        if value is None and field not in (
                "expense_approval_threshold", "expense_receipt_threshold", "description", "active_expense_workflow_id"):
            continue
        setattr(org, field, value)

    await create_audit_log(
        db, org.id, member.id, AuditAction.UPDATE.value, "organization",
        resource_id=org.id, resource_name=org.name,
        description="更新组织设置",
        old_value=old_value, new_value=_settings_snapshot(org)
    )
    await db.commit()

    return OrganizationResponse.model_validate(org)
