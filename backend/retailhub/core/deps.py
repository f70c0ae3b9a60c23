"""依赖注入 - 数据库会话与当前成员（认证由外部服务负责）"""
from typing import AsyncGenerator, Optional
from fastapi import Depends, Header, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from retailhub.db.session import SessionLocal
from retailhub.models.organization import Member, Organization


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    获取数据库会话依赖
    """
    async with SessionLocal() as session:
        yield session


async def get_current_member(
    db: AsyncSession = Depends(get_db),
    x_organization_id: Optional[int] = Header(None),
    x_member_id: Optional[int] = Header(None)) -> Member:
    """
    根据请求头解析当前组织成员

    X-Organization-Id: 组织ID
    X-Member-Id: 成员ID
    """
    if x_organization_id is None or x_member_id is None:
        raise HTTPException(status_code=401, detail="缺少组织或成员标识")

    result = await db.execute(
        select(Member).where(
            Member.id == x_member_id,
            Member.organization_id == x_organization_id
        )
    )
    member = result.scalar_one_or_none()
    if not member:
        raise HTTPException(status_code=403, detail="不是该组织的成员")
    if not member.is_active:
        raise HTTPException(status_code=403, detail="成员已停用")
    return member


async def get_current_organization(
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(get_current_member)) -> Organization:
    """当前成员所属组织"""
    org = await db.get(Organization, member.organization_id)
    if not org:
        raise HTTPException(status_code=404, detail="组织不存在")
    return org


def require_roles(*roles: str):
    """限定角色的依赖，例如 Depends(require_roles("owner", "admin"))"""
    async def checker(member: Member = Depends(get_current_member)) -> Member:
        if member.role not in roles:
            raise HTTPException(status_code=403, detail="没有权限执行此操作")
        return member
    return checker
