"""库存批次API"""

from typing import Any, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, func, and_
from sqlalchemy.ext.asyncio import AsyncSession

from retailhub.core.deps import get_db, get_current_member
from retailhub.models.organization import Member
from retailhub.models.stock_batch import StockBatch
from retailhub.schemas.inventory import StockBatchResponse, StockBatchListResponse

router = APIRouter()


def build_batch_response(batch: StockBatch) -> StockBatchResponse:
    """构建批次响应"""
    return StockBatchResponse(
        id=batch.id,
        batch_number=batch.batch_number,
        product_id=batch.product_id,
        product_name=batch.product.name if batch.product else "",
        variant_id=batch.variant_id,
        variant_name=batch.variant.name if batch.variant else None,
        location_id=batch.location_id,
        location_name=batch.location.name if batch.location else "",
        purchase_item_id=batch.purchase_item_id,
        initial_quantity=batch.initial_quantity,
        current_quantity=batch.current_quantity,
        purchase_price=batch.purchase_price,
        stock_value=batch.stock_value,
        expiry_date=batch.expiry_date,
        received_date=batch.received_date,
        is_depleted=batch.is_depleted,
        is_expired=batch.is_expired,
        notes=batch.notes)


async def load_batch(db: AsyncSession, organization_id: int, batch_id: int) -> StockBatch:
    """加载组织内的批次（含商品、变体、地点）"""
    result = await db.execute(
        select(StockBatch)
        .where(StockBatch.id == batch_id, StockBatch.organization_id == organization_id)
        .execution_options(populate_existing=True)
    )
    batch = result.scalar_one_or_none()
    if not batch:
        raise HTTPException(status_code=404, detail="批次不存在")
    return batch


@router.get("/", response_model=StockBatchListResponse)
async def list_batches(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(get_current_member),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    product_id: Optional[int] = Query(None),
    variant_id: Optional[int] = Query(None),
    location_id: Optional[int] = Query(None),
    include_depleted: bool = Query(False, description="是否包含已清空批次")) -> Any:
    """获取批次列表"""
    conditions = [StockBatch.organization_id == member.organization_id]
    if product_id:
        conditions.append(StockBatch.product_id == product_id)
    if variant_id:
        conditions.append(StockBatch.variant_id == variant_id)
    if location_id:
        conditions.append(StockBatch.location_id == location_id)
    if not include_depleted:
        conditions.append(StockBatch.current_quantity > 0)

    total = (await db.execute(
        select(func.count(StockBatch.id)).where(and_(*conditions))
    )).scalar() or 0

    query = (
        select(StockBatch).where(and_(*conditions))
        .order_by(StockBatch.received_date.desc(), StockBatch.id.desc())
        .offset((page - 1) * limit).limit(limit)
    )
    batches = (await db.execute(query)).scalars().all()

    return StockBatchListResponse(
        data=[build_batch_response(b) for b in batches],
        total=total,
        page=page,
        limit=limit
    )


@router.get("/{batch_id}", response_model=StockBatchResponse)
async def get_batch(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(get_current_member),
    batch_id: int) -> Any:
    """获取批次详情"""
    return build_batch_response(await load_batch(db, member.organization_id, batch_id))
