"""系统管理API - 定时任务状态、库存汇总重算"""

from typing import Any, Dict, Tuple
from decimal import Decimal
from fastapi import APIRouter, Depends, Query
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from retailhub.core.constants import ORG_ADMIN_ROLES, AuditAction
from retailhub.core.deps import get_db, require_roles
from retailhub.core.logging_config import get_logger
from retailhub.models.organization import Member
from retailhub.models.stock import ProductVariantStock
from retailhub.models.stock_batch import StockBatch
from retailhub.services.scheduler import get_scheduler_status
from retailhub.api.api_v1.endpoints.audit_logs import create_audit_log
from retailhub.api.api_v1.endpoints.stocks import get_or_create_stock

router = APIRouter()
logger = get_logger(__name__)


@router.get("/scheduler/status")
async def scheduler_status(*, member: Member = Depends(require_roles(*ORG_ADMIN_ROLES))) -> Any:
    """定时任务调度器状态"""
    return get_scheduler_status()


@router.post("/recalculate-stock")
async def recalculate_stock(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(require_roles(*ORG_ADMIN_ROLES)),
    confirm: bool = Query(False, description="确认执行")) -> Any:
    """
    按批次剩余数量重算库存汇总
    不带 confirm 时只返回差异预览
    """
    org_id = member.organization_id
    rows = (await db.execute(
        select(
            StockBatch.product_id,
            StockBatch.variant_id,
            StockBatch.location_id,
            func.sum(StockBatch.current_quantity),
        )
        .where(StockBatch.organization_id == org_id)
        .group_by(StockBatch.product_id, StockBatch.variant_id, StockBatch.location_id)
    )).all()
    expected: Dict[Tuple, Decimal] = {
        (row[0], row[1], row[2]): Decimal(str(row[3] or 0)) for row in rows
    }

    stocks = (await db.execute(
        select(ProductVariantStock).where(ProductVariantStock.organization_id == org_id)
    )).scalars().all()
    existing = {(s.product_id, s.variant_id, s.location_id): s for s in stocks}

    differences = []
    for key in set(expected) | set(existing):
        want = expected.get(key, Decimal("0"))
        stock = existing.get(key)
        have = stock.current_stock if stock else Decimal("0")
        if want != have:
            differences.append({
                "product_id": key[0],
                "variant_id": key[1],
                "location_id": key[2],
                "current": str(have),
                "expected": str(want),
            })

    if not confirm:
        return {
            "preview": True,
            "differences": differences,
            "tip": "添加 ?confirm=true 参数确认执行"
        }

    for diff in differences:
        stock = existing.get((diff["product_id"], diff["variant_id"], diff["location_id"]))
        if stock is None:
            stock = await get_or_create_stock(db, org_id, diff["product_id"], diff["variant_id"], diff["location_id"])
        stock.current_stock = Decimal(diff["expected"])

    if differences:
        await create_audit_log(
            db, org_id, member.id, AuditAction.ADJUST.value, "stock",
            description=f"重算库存汇总，修正 {len(differences)} 条记录"
        )
    await db.commit()
    logger.info(f"组织 {org_id} 重算库存汇总，修正 {len(differences)} 条")
    return {"preview": False, "fixed": len(differences), "differences": differences}
