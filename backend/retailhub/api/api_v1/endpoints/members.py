"""成员API - 组织成员与角色管理"""

from typing import Any, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from retailhub.core.constants import ORG_ADMIN_ROLES, MemberRole, AuditAction
from retailhub.core.deps import get_db, get_current_member, require_roles
from retailhub.models.organization import Member
from retailhub.schemas.organization import MemberCreate, MemberUpdate, MemberResponse, MemberListResponse
from retailhub.api.api_v1.endpoints.audit_logs import create_audit_log
from retailhub.api.api_v1.endpoints.organizations import get_or_create_user

router = APIRouter()


def build_member_response(m: Member) -> MemberResponse:
    return MemberResponse(
        id=m.id,
        organization_id=m.organization_id,
        user_id=m.user_id,
        name=m.user.name if m.user else "",
        email=m.user.email if m.user else "",
        role=m.role,
        role_display=m.role_display,
        is_active=m.is_active,
        created_at=m.created_at)


async def _reload(db: AsyncSession, member_id: int) -> Member:
    result = await db.execute(
        select(Member).where(Member.id == member_id).execution_options(populate_existing=True)
    )
    return result.scalar_one()


@router.get("/", response_model=MemberListResponse)
async def list_members(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(get_current_member),
    role: Optional[MemberRole] = Query(None),
    is_active: Optional[bool] = Query(None)) -> Any:
    """获取组织成员"""
    query = select(Member).where(Member.organization_id == member.organization_id)
    if role:
        query = query.where(Member.role == role.value)
    if is_active is not None:
        query = query.where(Member.is_active == is_active)
    result = await db.execute(query.order_by(Member.id))
    members = result.scalars().all()
    return MemberListResponse(data=[build_member_response(m) for m in members], total=len(members))


@router.post("/", response_model=MemberResponse)
async def add_member(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(require_roles(*ORG_ADMIN_ROLES)),
    member_in: MemberCreate) -> Any:
    """添加成员"""
    if member_in.role == MemberRole.OWNER and member.role != MemberRole.OWNER.value:
        raise HTTPException(status_code=403, detail="只有所有者可以添加所有者")

    user = await get_or_create_user(db, member_in.email, member_in.name)

    existing = await db.execute(
        select(Member).where(
            Member.organization_id == member.organization_id,
            Member.user_id == user.id
        )
    )
    if existing.scalar_one_or_none():
        raise HTTPException(status_code=409, detail="该用户已是组织成员")

    new_member = Member(
        organization_id=member.organization_id,
        user_id=user.id,
        role=member_in.role.value,
        is_active=True)
    db.add(new_member)
    await db.flush()

    await create_audit_log(
        db, member.organization_id, member.id, AuditAction.CREATE.value, "member",
        resource_id=new_member.id, resource_name=user.email,
        description=f"添加成员 {user.name}（{new_member.role_display}）"
    )
    await db.commit()
    return build_member_response(await _reload(db, new_member.id))


async def _active_owner_count(db: AsyncSession, organization_id: int) -> int:
    result = await db.execute(
        select(func.count(Member.id)).where(
            Member.organization_id == organization_id,
            Member.role == MemberRole.OWNER.value,
            Member.is_active.is_(True)
        )
    )
    return result.scalar() or 0


@router.put("/{member_id}", response_model=MemberResponse)
async def update_member(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(require_roles(*ORG_ADMIN_ROLES)),
    member_id: int,
    member_in: MemberUpdate) -> Any:
    """修改成员角色或启用状态"""
    result = await db.execute(
        select(Member).where(
            Member.id == member_id,
            Member.organization_id == member.organization_id
        )
    )
    target = result.scalar_one_or_none()
    if not target:
        raise HTTPException(status_code=404, detail="成员不存在")

    new_role = member_in.role.value if member_in.role else target.role
    new_active = member_in.is_active if member_in.is_active is not None else target.is_active

    touches_owner = target.role == MemberRole.OWNER.value or new_role == MemberRole.OWNER.value
    if touches_owner and member.role != MemberRole.OWNER.value:
        raise HTTPException(status_code=403, detail="只有所有者可以变更所有者")

    # 最后一个在职所有者不能被降级或停用
    if target.role == MemberRole.OWNER.value and target.is_active:
        if new_role != MemberRole.OWNER.value or not new_active:
            if await _active_owner_count(db, member.organization_id) <= 1:
                raise HTTPException(status_code=400, detail="组织至少需要保留一名在职所有者")

    old_value = {"role": target.role, "is_active": target.is_active}
    target.role = new_role
    target.is_active = new_active

    await create_audit_log(
        db, member.organization_id, member.id, AuditAction.UPDATE.value, "member",
        resource_id=target.id, resource_name=target.display_name,
        description="修改成员",
        old_value=old_value, new_value={"role": new_role, "is_active": new_active}
    )
    await db.commit()
    return build_member_response(await _reload(db, target.id))
