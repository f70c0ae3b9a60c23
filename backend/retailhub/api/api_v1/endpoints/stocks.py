"""库存管理API"""

from typing import Any, List, Optional, Tuple
from datetime import date, datetime, time
from decimal import Decimal
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, func, and_
from sqlalchemy.ext.asyncio import AsyncSession

from retailhub.core.constants import MemberRole, MovementType, AuditAction
from retailhub.core.deps import get_db, get_current_member, get_current_organization, require_roles
from retailhub.core.logging_config import get_logger
from retailhub.models.organization import Member, Organization
from retailhub.models.product import Product, ProductVariant
from retailhub.models.stock import ProductVariantStock, StockMovement
from retailhub.models.stock_batch import StockBatch
from retailhub.schemas.inventory import (
    StockReceive, StockBatchAdjust, StockTransfer, StockBatchResponse,
    StockLevelResponse, StockLevelListResponse, StockMovementResponse, StockMovementListResponse
)
from retailhub.services.batch_policy import select_batches, InsufficientStockError
from retailhub.api.api_v1.endpoints.audit_logs import create_audit_log
from retailhub.api.api_v1.endpoints.batches import build_batch_response, load_batch
from retailhub.api.api_v1.endpoints.locations import load_location
from retailhub.api.api_v1.endpoints.notifications import notify_low_stock

router = APIRouter()
logger = get_logger(__name__)

STOCK_ROLES = (MemberRole.OWNER.value, MemberRole.ADMIN.value, MemberRole.MANAGER.value)


def build_stock_response(stock: ProductVariantStock) -> StockLevelResponse:
    """构建库存响应"""
    return StockLevelResponse(
        id=stock.id,
        product_id=stock.product_id,
        product_name=stock.product.name if stock.product else "",
        product_sku=stock.product.sku if stock.product else "",
        variant_id=stock.variant_id,
        variant_name=stock.variant.name if stock.variant else None,
        location_id=stock.location_id,
        location_name=stock.location.name if stock.location else "",
        current_stock=stock.current_stock,
        reserved_stock=stock.reserved_stock,
        available_stock=stock.available_stock,
        reorder_point=stock.reorder_point,
        is_low_stock=stock.is_low_stock,
        last_updated=stock.last_updated)


def build_movement_response(m: StockMovement) -> StockMovementResponse:
    """构建库存流水响应"""
    return StockMovementResponse(
        id=m.id,
        product_id=m.product_id,
        variant_id=m.variant_id,
        stock_batch_id=m.stock_batch_id,
        batch_number=m.batch.batch_number if m.batch else None,
        quantity=m.quantity,
        from_location_id=m.from_location_id,
        to_location_id=m.to_location_id,
        movement_type=m.movement_type,
        type_display=m.type_display,
        reference_type=m.reference_type,
        reference_id=m.reference_id,
        member_id=m.member_id,
        notes=m.notes,
        movement_date=m.movement_date)


@router.get("/", response_model=StockLevelListResponse)
async def list_stock_levels(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(get_current_member),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    location_id: Optional[int] = Query(None),
    product_id: Optional[int] = Query(None),
    low_stock_only: bool = Query(False, description="仅显示低库存")) -> Any:
    """获取库存汇总"""
    conditions = [ProductVariantStock.organization_id == member.organization_id]
    if location_id:
        conditions.append(ProductVariantStock.location_id == location_id)
    if product_id:
        conditions.append(ProductVariantStock.product_id == product_id)
    if low_stock_only:
        conditions.append(ProductVariantStock.current_stock <= ProductVariantStock.reorder_point)

    total = (await db.execute(
        select(func.count(ProductVariantStock.id)).where(and_(*conditions))
    )).scalar() or 0

    query = (
        select(ProductVariantStock).where(and_(*conditions))
        .order_by(ProductVariantStock.location_id, ProductVariantStock.product_id, ProductVariantStock.id)
        .offset((page - 1) * limit).limit(limit)
    )
    stocks = (await db.execute(query)).scalars().all()

    return StockLevelListResponse(
        data=[build_stock_response(s) for s in stocks],
        total=total,
        page=page,
        limit=limit
    )


@router.get("/movements", response_model=StockMovementListResponse)
async def list_movements(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(get_current_member),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    product_id: Optional[int] = Query(None),
    location_id: Optional[int] = Query(None, description="来源或目标地点"),
    movement_type: Optional[MovementType] = Query(None),
    reference_type: Optional[str] = Query(None),
    reference_id: Optional[int] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None)) -> Any:
    """获取库存流水"""
    conditions = [StockMovement.organization_id == member.organization_id]
    if product_id:
        conditions.append(StockMovement.product_id == product_id)
    if location_id:
        conditions.append(
            (StockMovement.from_location_id == location_id) | (StockMovement.to_location_id == location_id)
        )
    if movement_type:
        conditions.append(StockMovement.movement_type == movement_type.value)
    if reference_type:
        conditions.append(StockMovement.reference_type == reference_type)
    if reference_id:
        conditions.append(StockMovement.reference_id == reference_id)
    if start_date:
        conditions.append(StockMovement.movement_date >= datetime.combine(start_date, time.min))
    if end_date:
        conditions.append(StockMovement.movement_date <= datetime.combine(end_date, time.max))

    total = (await db.execute(
        select(func.count(StockMovement.id)).where(and_(*conditions))
    )).scalar() or 0

    query = (
        select(StockMovement).where(and_(*conditions))
        .order_by(StockMovement.movement_date.desc(), StockMovement.id.desc())
        .offset((page - 1) * limit).limit(limit)
    )
    movements = (await db.execute(query)).scalars().all()

    return StockMovementListResponse(
        data=[build_movement_response(m) for m in movements],
        total=total,
        page=page,
        limit=limit
    )


@router.post("/receive", response_model=StockBatchResponse)
async def receive(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(require_roles(*STOCK_ROLES)),
    receive_in: StockReceive) -> Any:
    """直接入库（期初库存）"""
    org_id = member.organization_id
    await load_location(db, org_id, receive_in.location_id, active_only=True)
    product, variant = await get_product_variant(db, org_id, receive_in.product_id, receive_in.variant_id)

    batch = await receive_stock(
        db, org_id,
        product_id=product.id,
        variant_id=variant.id if variant else None,
        location_id=receive_in.location_id,
        quantity=receive_in.quantity,
        purchase_price=receive_in.purchase_price,
        member_id=member.id,
        expiry_date=receive_in.expiry_date,
        movement_type=MovementType.INITIAL_STOCK.value,
        notes=receive_in.notes)

    await create_audit_log(
        db, org_id, member.id, AuditAction.CREATE.value, "stock",
        resource_id=batch.id, resource_name=batch.batch_number,
        description=f"入库 {product.name} × {receive_in.quantity}"
    )
    await db.commit()
    return build_batch_response(await load_batch(db, org_id, batch.id))


@router.post("/adjust", response_model=StockBatchResponse)
async def adjust(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(require_roles(*STOCK_ROLES)),
    adjust_in: StockBatchAdjust) -> Any:
    """批次盘点调整"""
    org_id = member.organization_id
    batch = await load_batch(db, org_id, adjust_in.batch_id)
    old_quantity = batch.current_quantity

    await adjust_stock(db, batch, adjust_in.new_quantity, adjust_in.reason, member.id)

    await create_audit_log(
        db, org_id, member.id, AuditAction.ADJUST.value, "stock",
        resource_id=batch.id, resource_name=batch.batch_number,
        description=f"盘点调整：{adjust_in.reason}",
        old_value={"quantity": str(old_quantity)},
        new_value={"quantity": str(adjust_in.new_quantity)}
    )
    await db.commit()
    return build_batch_response(await load_batch(db, org_id, batch.id))


@router.post("/transfer", response_model=List[StockBatchResponse])
async def transfer(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(require_roles(*STOCK_ROLES)),
    org: Organization = Depends(get_current_organization),
    transfer_in: StockTransfer) -> Any:
    """地点间调拨，返回目标地点新建的批次"""
    if transfer_in.from_location_id == transfer_in.to_location_id:
        raise HTTPException(status_code=400, detail="调出和调入地点不能相同")
    await load_location(db, org.id, transfer_in.from_location_id, active_only=True)
    await load_location(db, org.id, transfer_in.to_location_id, active_only=True)
    product, variant = await get_product_variant(db, org.id, transfer_in.product_id, transfer_in.variant_id)

    new_batches = await transfer_stock(
        db, org,
        product_id=product.id,
        variant_id=variant.id if variant else None,
        from_location_id=transfer_in.from_location_id,
        to_location_id=transfer_in.to_location_id,
        quantity=transfer_in.quantity,
        member_id=member.id,
        notes=transfer_in.notes)

    await create_audit_log(
        db, org.id, member.id, AuditAction.UPDATE.value, "stock",
        resource_id=product.id, resource_name=product.sku,
        description=f"调拨 {product.name} × {transfer_in.quantity}"
    )
    await db.commit()
    return [build_batch_response(await load_batch(db, org.id, b.id)) for b in new_batches]


# ===== 库存服务函数（供采购、销售调用）=====

async def get_product_variant(
    db: AsyncSession,
    organization_id: int,
    product_id: int,
    variant_id: Optional[int] = None,
    active_only: bool = False) -> Tuple[Product, Optional[ProductVariant]]:
    """校验商品（及变体）属于组织"""
    product = await db.get(Product, product_id)
    if not product or product.organization_id != organization_id:
        raise HTTPException(status_code=400, detail=f"商品 {product_id} 不存在")
    if active_only and not product.is_active:
        raise HTTPException(status_code=400, detail=f"商品 {product.name} 已停用")

    variant = None
    if variant_id is not None:
        variant = await db.get(ProductVariant, variant_id)
        if not variant or variant.product_id != product.id:
            raise HTTPException(status_code=400, detail=f"商品 {product.name} 没有变体 {variant_id}")
        if active_only and not variant.is_active:
            raise HTTPException(status_code=400, detail=f"变体 {variant.name} 已停用")
    return product, variant


async def generate_batch_number(db: AsyncSession, organization_id: int) -> str:
    """生成批次号：B + 日期 + 序号"""
    prefix = f"B{datetime.utcnow().strftime('%Y%m%d')}"
    result = await db.execute(
        select(func.count(StockBatch.id)).where(
            StockBatch.organization_id == organization_id,
            StockBatch.batch_number.like(f"{prefix}%")
        )
    )
    count = result.scalar() or 0
    return f"{prefix}-{count + 1:03d}"


async def get_or_create_stock(
    db: AsyncSession,
    organization_id: int,
    product_id: int,
    variant_id: Optional[int],
    location_id: int) -> ProductVariantStock:
    """获取或创建库存汇总记录（variant_id 为空表示无变体商品）"""
    conditions = [
        ProductVariantStock.location_id == location_id,
        ProductVariantStock.product_id == product_id,
    ]
    if variant_id is not None:
        conditions.append(ProductVariantStock.variant_id == variant_id)
    else:
        conditions.append(ProductVariantStock.variant_id.is_(None))

    result = await db.execute(select(ProductVariantStock).where(and_(*conditions)))
    stock = result.scalar_one_or_none()

    if not stock:
        if variant_id is not None:
            variant = await db.get(ProductVariant, variant_id)
            reorder_point = variant.reorder_point if variant else 0
        else:
            product = await db.get(Product, product_id)
            reorder_point = product.reorder_point if product else 0
        stock = ProductVariantStock(
            organization_id=organization_id,
            product_id=product_id,
            variant_id=variant_id,
            location_id=location_id,
            current_stock=Decimal("0"),
            reserved_stock=Decimal("0"),
            reorder_point=reorder_point or 0)
        db.add(stock)
        await db.flush()

    return stock


async def receive_stock(
    db: AsyncSession,
    organization_id: int,
    product_id: int,
    variant_id: Optional[int],
    location_id: int,
    quantity: Decimal,
    purchase_price: Decimal,
    member_id: int,
    expiry_date: Optional[datetime] = None,
    received_date: Optional[datetime] = None,
    purchase_item_id: Optional[int] = None,
    movement_type: str = MovementType.PURCHASE_RECEIPT.value,
    reference_type: Optional[str] = None,
    reference_id: Optional[int] = None,
    notes: Optional[str] = None,
    record_movement: bool = True) -> StockBatch:
    """入库：新建批次、增加库存汇总、记录流水"""
    quantity = Decimal(str(quantity))
    if quantity <= 0:
        raise HTTPException(status_code=400, detail="入库数量必须大于0")

    batch = StockBatch(
        organization_id=organization_id,
        batch_number=await generate_batch_number(db, organization_id),
        product_id=product_id,
        variant_id=variant_id,
        location_id=location_id,
        purchase_item_id=purchase_item_id,
        initial_quantity=quantity,
        current_quantity=quantity,
        purchase_price=purchase_price or Decimal("0"),
        expiry_date=expiry_date,
        received_date=received_date or datetime.utcnow(),
        notes=notes)
    db.add(batch)
    await db.flush()

    stock = await get_or_create_stock(db, organization_id, product_id, variant_id, location_id)
    stock.current_stock = (stock.current_stock or Decimal("0")) + quantity

    if record_movement:
        db.add(StockMovement(
            organization_id=organization_id,
            product_id=product_id,
            variant_id=variant_id,
            stock_batch_id=batch.id,
            quantity=quantity,
            to_location_id=location_id,
            movement_type=movement_type,
            reference_type=reference_type or "batch",
            reference_id=reference_id if reference_id is not None else batch.id,
            member_id=member_id,
            notes=notes,
            movement_date=datetime.utcnow()))

    await db.flush()
    logger.info(f"入库 批次 {batch.batch_number} 商品 {product_id}/{variant_id} 数量 {quantity} @ 地点 {location_id}")
    return batch


async def _decrease_aggregate(
    db: AsyncSession,
    organization_id: int,
    product_id: int,
    variant_id: Optional[int],
    location_id: int,
    quantity: Decimal) -> None:
    """减少库存汇总，跌破补货点时发送低库存通知"""
    stock = await get_or_create_stock(db, organization_id, product_id, variant_id, location_id)
    before = stock.current_stock or Decimal("0")
    stock.current_stock = before - quantity
    if stock.is_low_stock and before > Decimal(stock.reorder_point or 0):
        await notify_low_stock(db, stock)


async def consume_stock(
    db: AsyncSession,
    org: Organization,
    product_id: int,
    variant_id: Optional[int],
    location_id: int,
    quantity: Decimal,
    member_id: int,
    movement_type: str = MovementType.SALE.value,
    reference_type: Optional[str] = None,
    reference_id: Optional[int] = None,
    notes: Optional[str] = None,
    record_movement: bool = True) -> List[Tuple[StockBatch, Decimal]]:
    """
    出库：按组织的库存策略（FIFO/LIFO/FEFO）从批次中扣减

    即使组织允许负库存，批次不足时仍然拒绝出库（没有批次就无法计算成本）

    Returns:
        [(批次, 本批出库数量), ...]
    """
    quantity = Decimal(str(quantity))
    conditions = [
        StockBatch.organization_id == org.id,
        StockBatch.product_id == product_id,
        StockBatch.location_id == location_id,
        StockBatch.current_quantity > 0,
    ]
    if variant_id is not None:
        conditions.append(StockBatch.variant_id == variant_id)
    else:
        conditions.append(StockBatch.variant_id.is_(None))
    batches = (await db.execute(select(StockBatch).where(and_(*conditions)))).scalars().all()

    try:
        allocations = select_batches(org.inventory_policy, batches, quantity)
    except InsufficientStockError as e:
        product = await db.get(Product, product_id)
        name = product.name if product else str(product_id)
        raise HTTPException(
            status_code=400,
            detail=f"{name} 库存不足：可用 {e.available}，需要 {e.requested}"
        )

    for batch, take in allocations:
        batch.current_quantity = batch.current_quantity - take
        if record_movement:
            db.add(StockMovement(
                organization_id=org.id,
                product_id=product_id,
                variant_id=variant_id,
                stock_batch_id=batch.id,
                quantity=-take,
                from_location_id=location_id,
                movement_type=movement_type,
                reference_type=reference_type,
                reference_id=reference_id,
                member_id=member_id,
                notes=notes,
                movement_date=datetime.utcnow()))

    await _decrease_aggregate(db, org.id, product_id, variant_id, location_id, quantity)
    await db.flush()
    return allocations


async def return_to_batch(
    db: AsyncSession,
    batch: StockBatch,
    quantity: Decimal,
    member_id: int,
    movement_type: str = MovementType.CUSTOMER_RETURN.value,
    reference_type: Optional[str] = None,
    reference_id: Optional[int] = None,
    notes: Optional[str] = None) -> None:
    """把数量退回原批次（销售作废时使用）"""
    quantity = Decimal(str(quantity))
    batch.current_quantity = batch.current_quantity + quantity
    stock = await get_or_create_stock(db, batch.organization_id, batch.product_id, batch.variant_id, batch.location_id)
    stock.current_stock = (stock.current_stock or Decimal("0")) + quantity
    db.add(StockMovement(
        organization_id=batch.organization_id,
        product_id=batch.product_id,
        variant_id=batch.variant_id,
        stock_batch_id=batch.id,
        quantity=quantity,
        to_location_id=batch.location_id,
        movement_type=movement_type,
        reference_type=reference_type,
        reference_id=reference_id,
        member_id=member_id,
        notes=notes,
        movement_date=datetime.utcnow()))


async def adjust_stock(
    db: AsyncSession,
    batch: StockBatch,
    new_quantity: Decimal,
    reason: str,
    member_id: int) -> StockMovement:
    """盘点调整批次数量，记录盘盈/盘亏流水"""
    new_quantity = Decimal(str(new_quantity))
    if new_quantity < 0:
        raise HTTPException(status_code=400, detail="调整后数量不能为负")
    diff = new_quantity - batch.current_quantity
    if diff == 0:
        raise HTTPException(status_code=400, detail="数量未变化")

    batch.current_quantity = new_quantity
    if diff > 0:
        stock = await get_or_create_stock(db, batch.organization_id, batch.product_id, batch.variant_id, batch.location_id)
        stock.current_stock = (stock.current_stock or Decimal("0")) + diff
    else:
        await _decrease_aggregate(db, batch.organization_id, batch.product_id, batch.variant_id, batch.location_id, -diff)

    movement = StockMovement(
        organization_id=batch.organization_id,
        product_id=batch.product_id,
        variant_id=batch.variant_id,
        stock_batch_id=batch.id,
        quantity=diff,
        from_location_id=batch.location_id if diff < 0 else None,
        to_location_id=batch.location_id if diff > 0 else None,
        movement_type=MovementType.ADJUSTMENT_IN.value if diff > 0 else MovementType.ADJUSTMENT_OUT.value,
        reference_type="batch",
        reference_id=batch.id,
        member_id=member_id,
        notes=reason,
        movement_date=datetime.utcnow())
    db.add(movement)
    await db.flush()
    logger.info(f"盘点调整 批次 {batch.batch_number}: {diff:+}（{reason}）")
    return movement


async def transfer_stock(
    db: AsyncSession,
    org: Organization,
    product_id: int,
    variant_id: Optional[int],
    from_location_id: int,
    to_location_id: int,
    quantity: Decimal,
    member_id: int,
    notes: Optional[str] = None) -> List[StockBatch]:
    """
    调拨：按库存策略从调出地点扣减，在调入地点新建批次
    新批次沿用原批次的进价、到期日和入库日期
    """
    allocations = await consume_stock(
        db, org, product_id, variant_id, from_location_id, quantity, member_id,
        movement_type=MovementType.TRANSFER.value, record_movement=False)

    new_batches = []
    for source, take in allocations:
        target = await receive_stock(
            db, org.id, product_id, variant_id, to_location_id,
            quantity=take,
            purchase_price=source.purchase_price,
            member_id=member_id,
            expiry_date=source.expiry_date,
            received_date=source.received_date,
            purchase_item_id=source.purchase_item_id,
            notes=notes or f"由批次 {source.batch_number} 调入",
            record_movement=False)
        db.add(StockMovement(
            organization_id=org.id,
            product_id=product_id,
            variant_id=variant_id,
            stock_batch_id=source.id,
            quantity=take,
            from_location_id=from_location_id,
            to_location_id=to_location_id,
            movement_type=MovementType.TRANSFER.value,
            reference_type="batch",
            reference_id=target.id,
            member_id=member_id,
            notes=notes,
            movement_date=datetime.utcnow()))
        new_batches.append(target)

    await db.flush()
    return new_batches
