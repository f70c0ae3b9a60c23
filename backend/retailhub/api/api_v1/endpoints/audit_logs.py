"""操作日志API"""

from typing import Any, Optional
from datetime import date, datetime, time
from fastapi import APIRouter, Depends, Query
from sqlalchemy import select, func, and_
from sqlalchemy.ext.asyncio import AsyncSession

from retailhub.core.constants import ORG_ADMIN_ROLES, MemberRole
from retailhub.core.deps import get_db, require_roles
from retailhub.models.audit_log import AuditLog
from retailhub.models.organization import Member
from retailhub.schemas.audit_log import AuditLogResponse, AuditLogListResponse

router = APIRouter()


def build_log_response(log: AuditLog) -> AuditLogResponse:
    """构建日志响应"""
    return AuditLogResponse(
        id=log.id,
        member_id=log.member_id,
        action=log.action,
        resource_type=log.resource_type,
        resource_id=log.resource_id,
        resource_name=log.resource_name,
        description=log.description,
        old_value=log.old_value,
        new_value=log.new_value,
        created_at=log.created_at,
        action_display=log.action_display,
        resource_type_display=log.resource_type_display,
        member_name=log.member.display_name if log.member else "系统"
    )


@router.get("/", response_model=AuditLogListResponse)
async def list_logs(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(require_roles(*ORG_ADMIN_ROLES, MemberRole.REPORTER.value)),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    action: Optional[str] = Query(None),
    resource_type: Optional[str] = Query(None),
    member_id: Optional[int] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None)) -> Any:
    """获取操作日志列表"""
    conditions = [AuditLog.organization_id == member.organization_id]
    if action:
        conditions.append(AuditLog.action == action)
    if resource_type:
        conditions.append(AuditLog.resource_type == resource_type)
    if member_id:
        conditions.append(AuditLog.member_id == member_id)
    if start_date:
        conditions.append(AuditLog.created_at >= datetime.combine(start_date, time.min))
    if end_date:
        conditions.append(AuditLog.created_at <= datetime.combine(end_date, time.max))

    total = (await db.execute(
        select(func.count(AuditLog.id)).where(and_(*conditions))
    )).scalar() or 0

    query = (
        select(AuditLog).where(and_(*conditions))
        .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .offset((page - 1) * limit).limit(limit)
    )
    logs = (await db.execute(query)).scalars().all()

    return AuditLogListResponse(
        data=[build_log_response(log) for log in logs],
        total=total,
        page=page,
        limit=limit
    )


# 日志记录工具函数
async def create_audit_log(
    db: AsyncSession,
    organization_id: int,
    member_id: Optional[int],
    action: str,
    resource_type: str,
    resource_id: Optional[int] = None,
    resource_name: Optional[str] = None,
    description: Optional[str] = None,
    old_value: Optional[dict] = None,
    new_value: Optional[dict] = None) -> AuditLog:
    """创建审计日志（随调用方事务一起提交）"""
    log = AuditLog(
        organization_id=organization_id,
        member_id=member_id,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        resource_name=resource_name,
        description=description,
        old_value=old_value,
        new_value=new_value
    )
    db.add(log)
    return log
