"""通知API - 当前成员的站内通知"""

from typing import Any, Dict, List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, func, and_, update
from sqlalchemy.ext.asyncio import AsyncSession

from retailhub.core.constants import ORG_ADMIN_ROLES, NotificationType
from retailhub.core.deps import get_db, get_current_member
from retailhub.core.logging_config import get_logger
from retailhub.models.notification import Notification
from retailhub.models.organization import Member
from retailhub.models.location import InventoryLocation
from retailhub.models.product import Product, ProductVariant
from retailhub.models.stock import ProductVariantStock
from retailhub.schemas.notification import NotificationResponse, NotificationListResponse

router = APIRouter()
logger = get_logger(__name__)


def build_notification_response(n: Notification) -> NotificationResponse:
    return NotificationResponse(
        id=n.id,
        member_id=n.member_id,
        sender_id=n.sender_id,
        sender_name=n.sender.display_name if n.sender else None,
        notification_type=n.notification_type,
        title=n.title,
        description=n.description,
        link=n.link,
        details=n.details,
        read=n.read,
        created_at=n.created_at)


async def _get_own_notification(db: AsyncSession, member: Member, notification_id: int) -> Notification:
    result = await db.execute(
        select(Notification).where(
            Notification.id == notification_id,
            Notification.member_id == member.id
        )
    )
    n = result.scalar_one_or_none()
    if not n:
        raise HTTPException(status_code=404, detail="通知不存在")
    return n


@router.get("/", response_model=NotificationListResponse)
async def list_notifications(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(get_current_member),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    unread_only: bool = Query(False),
    notification_type: Optional[NotificationType] = Query(None)) -> Any:
    """获取我的通知"""
    conditions = [Notification.member_id == member.id]
    if unread_only:
        conditions.append(Notification.read.is_(False))
    if notification_type:
        conditions.append(Notification.notification_type == notification_type.value)

    total = (await db.execute(
        select(func.count(Notification.id)).where(and_(*conditions))
    )).scalar() or 0
    unread = await _unread_count(db, member.id)

    result = await db.execute(
        select(Notification).where(and_(*conditions))
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .offset((page - 1) * limit).limit(limit)
    )
    return NotificationListResponse(
        data=[build_notification_response(n) for n in result.scalars().all()],
        total=total,
        unread=unread,
        page=page,
        limit=limit
    )


async def _unread_count(db: AsyncSession, member_id: int) -> int:
    result = await db.execute(
        select(func.count(Notification.id)).where(
            Notification.member_id == member_id,
            Notification.read.is_(False)
        )
    )
    return result.scalar() or 0


@router.get("/unread-count")
async def unread_count(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(get_current_member)) -> Any:
    """未读数量"""
    return {"unread": await _unread_count(db, member.id)}


@router.post("/read-all")
async def mark_all_read(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(get_current_member)) -> Any:
    """全部标记为已读"""
    result = await db.execute(
        update(Notification)
        .where(Notification.member_id == member.id, Notification.read.is_(False))
        .values(read=True)
    )
    await db.commit()
    return {"message": "已全部标记为已读", "updated": result.rowcount}


@router.post("/{notification_id}/read", response_model=NotificationResponse)
async def mark_read(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(get_current_member),
    notification_id: int) -> Any:
    """标记为已读"""
    n = await _get_own_notification(db, member, notification_id)
    n.read = True
    await db.commit()
    return build_notification_response(n)


@router.delete("/{notification_id}")
async def delete_notification(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(get_current_member),
    notification_id: int) -> Any:
    """删除通知"""
    n = await _get_own_notification(db, member, notification_id)
    await db.delete(n)
    await db.commit()
    return {"message": "删除成功"}


# ===== 通知服务函数（供业务模块调用）=====

async def notify(
    db: AsyncSession,
    organization_id: int,
    recipient_ids: List[int],
    notification_type: str,
    title: str,
    description: Optional[str] = None,
    sender_id: Optional[int] = None,
    link: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None) -> List[Notification]:
    """给一组成员发送通知（仅写库，随调用方事务提交）"""
    notifications = []
    for member_id in dict.fromkeys(recipient_ids):
        n = Notification(
            organization_id=organization_id,
            member_id=member_id,
            sender_id=sender_id,
            notification_type=notification_type,
            title=title,
            description=description,
            link=link,
            details=details,
            read=False)
        db.add(n)
        notifications.append(n)
    if notifications:
        logger.info(f"发送通知 {notification_type} → {len(notifications)} 人: {title}")
    return notifications


async def get_admin_member_ids(db: AsyncSession, organization_id: int) -> List[int]:
    """组织内在职的所有者和管理员"""
    result = await db.execute(
        select(Member.id).where(
            Member.organization_id == organization_id,
            Member.is_active.is_(True),
            Member.role.in_(ORG_ADMIN_ROLES)
        )
    )
    return list(result.scalars().all())


async def notify_low_stock(db: AsyncSession, stock: ProductVariantStock) -> None:
    """库存低于补货点时通知地点负责经理（无经理时通知所有者和管理员）"""
    location = await db.get(InventoryLocation, stock.location_id)
    manager = await db.get(Member, location.manager_id) if location and location.manager_id else None
    if manager is not None and manager.is_active:
        recipients = [manager.id]
    else:
        recipients = await get_admin_member_ids(db, stock.organization_id)

    product = await db.get(Product, stock.product_id)
    product_name = product.name if product else f"商品{stock.product_id}"
    if stock.variant_id:
        variant = await db.get(ProductVariant, stock.variant_id)
        if variant:
            product_name = f"{product_name}（{variant.name}）"
    location_name = location.name if location else ""

    await notify(
        db,
        organization_id=stock.organization_id,
        recipient_ids=recipients,
        notification_type=NotificationType.LOW_STOCK.value,
        title=f"库存不足：{product_name}",
        description=f"{location_name} 当前库存 {stock.current_stock}，补货点 {stock.reorder_point}",
        link=f"/inventory/stock?location_id={stock.location_id}",
        details={
            "product_id": stock.product_id,
            "variant_id": stock.variant_id,
            "location_id": stock.location_id,
            "current_stock": str(stock.current_stock),
            "reorder_point": stock.reorder_point,
        })
