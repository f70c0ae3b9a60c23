"""采购单API - 下单、到货入库、取消"""

from typing import Any, Optional
from datetime import datetime
from decimal import Decimal
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, func, and_
from sqlalchemy.ext.asyncio import AsyncSession

from retailhub.core.constants import AuditAction, MovementType, PurchaseStatus
from retailhub.core.deps import get_db, get_current_member, require_roles
from retailhub.core.logging_config import get_logger
from retailhub.models.organization import Member
from retailhub.models.purchase import Purchase, PurchaseItem
from retailhub.schemas.purchase import (
    PurchaseCreate, PurchaseReceive, PurchaseResponse, PurchaseItemResponse, PurchaseListResponse
)
from retailhub.api.api_v1.endpoints.audit_logs import create_audit_log
from retailhub.api.api_v1.endpoints.categories import CATALOG_ROLES
from retailhub.api.api_v1.endpoints.locations import load_location
from retailhub.api.api_v1.endpoints.stocks import get_product_variant, receive_stock
from retailhub.api.api_v1.endpoints.suppliers import load_supplier

router = APIRouter()
logger = get_logger(__name__)


def build_purchase_response(p: Purchase) -> PurchaseResponse:
    """构建采购单响应"""
    return PurchaseResponse(
        id=p.id,
        organization_id=p.organization_id,
        purchase_number=p.purchase_number,
        supplier_id=p.supplier_id,
        supplier_name=p.supplier.name if p.supplier else "",
        member_id=p.member_id,
        location_id=p.location_id,
        status=p.status,
        status_display=p.status_display,
        total_amount=p.total_amount,
        order_date=p.order_date,
        expected_date=p.expected_date,
        received_date=p.received_date,
        notes=p.notes,
        items=[PurchaseItemResponse.model_validate(i) for i in p.items])


async def load_purchase(db: AsyncSession, organization_id: int, purchase_id: int) -> Purchase:
    result = await db.execute(
        select(Purchase)
        .where(Purchase.id == purchase_id, Purchase.organization_id == organization_id)
        .execution_options(populate_existing=True)
    )
    purchase = result.scalar_one_or_none()
    if not purchase:
        raise HTTPException(status_code=404, detail="采购单不存在")
    return purchase


async def generate_purchase_number(db: AsyncSession, organization_id: int) -> str:
    """生成采购单号：PO + 日期 + 序号"""
    prefix = f"PO{datetime.utcnow().strftime('%Y%m%d')}"
    count = (await db.execute(
        select(func.count(Purchase.id)).where(
            Purchase.organization_id == organization_id,
            Purchase.purchase_number.like(f"{prefix}%")
        )
    )).scalar() or 0
    return f"{prefix}-{count + 1:03d}"


@router.get("/", response_model=PurchaseListResponse)
async def list_purchases(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(get_current_member),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[PurchaseStatus] = Query(None),
    supplier_id: Optional[int] = Query(None),
    location_id: Optional[int] = Query(None)) -> Any:
    """获取采购单列表"""
    conditions = [Purchase.organization_id == member.organization_id]
    if status:
        conditions.append(Purchase.status == status.value)
    if supplier_id:
        conditions.append(Purchase.supplier_id == supplier_id)
    if location_id:
        conditions.append(Purchase.location_id == location_id)

    total = (await db.execute(
        select(func.count(Purchase.id)).where(and_(*conditions))
    )).scalar() or 0
    result = await db.execute(
        select(Purchase).where(and_(*conditions))
        .order_by(Purchase.order_date.desc(), Purchase.id.desc())
        .offset((page - 1) * limit).limit(limit)
    )
    return PurchaseListResponse(
        data=[build_purchase_response(p) for p in result.scalars().all()],
        total=total,
        page=page,
        limit=limit
    )


@router.get("/{purchase_id}", response_model=PurchaseResponse)
async def get_purchase(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(get_current_member),
    purchase_id: int) -> Any:
    """获取采购单详情"""
    return build_purchase_response(await load_purchase(db, member.organization_id, purchase_id))


@router.post("/", response_model=PurchaseResponse)
async def create_purchase(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(require_roles(*CATALOG_ROLES)),
    purchase_in: PurchaseCreate) -> Any:
    """创建采购单（as_draft 为真时保存为草稿）"""
    org_id = member.organization_id
    supplier = await load_supplier(db, org_id, purchase_in.supplier_id)
    if not supplier.is_active:
        raise HTTPException(status_code=400, detail=f"供应商 {supplier.name} 已停用")
    await load_location(db, org_id, purchase_in.location_id, active_only=True)

    purchase = Purchase(
        organization_id=org_id,
        purchase_number=await generate_purchase_number(db, org_id),
        supplier_id=supplier.id,
        member_id=member.id,
        location_id=purchase_in.location_id,
        status=PurchaseStatus.DRAFT.value if purchase_in.as_draft else PurchaseStatus.ORDERED.value,
        order_date=datetime.utcnow(),
        expected_date=purchase_in.expected_date,
        notes=purchase_in.notes)
    db.add(purchase)
    await db.flush()

    total = Decimal("0")
    for line in purchase_in.items:
        product, variant = await get_product_variant(db, org_id, line.product_id, line.variant_id)
        line_total = line.quantity * line.unit_cost
        total += line_total
        db.add(PurchaseItem(
            purchase_id=purchase.id,
            product_id=product.id,
            variant_id=variant.id if variant else None,
            ordered_quantity=line.quantity,
            received_quantity=Decimal("0"),
            unit_cost=line.unit_cost,
            total_cost=line_total))
    purchase.total_amount = total

    await create_audit_log(
        db, org_id, member.id, AuditAction.CREATE.value, "purchase",
        resource_id=purchase.id, resource_name=purchase.purchase_number,
        description=f"创建采购单 {purchase.purchase_number}，供应商 {supplier.name}",
        new_value={"total_amount": str(total), "items": len(purchase_in.items)}
    )
    await db.commit()
    logger.info(f"采购单 {purchase.purchase_number} 已创建，金额 {total}")
    return build_purchase_response(await load_purchase(db, org_id, purchase.id))


@router.post("/{purchase_id}/submit", response_model=PurchaseResponse)
async def submit_purchase(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(require_roles(*CATALOG_ROLES)),
    purchase_id: int) -> Any:
    """草稿采购单下单"""
    org_id = member.organization_id
    purchase = await load_purchase(db, org_id, purchase_id)
    if purchase.status != PurchaseStatus.DRAFT.value:
        raise HTTPException(status_code=400, detail=f"采购单状态为 {purchase.status_display}，不能下单")
    supplier = await load_supplier(db, org_id, purchase.supplier_id)
    if not supplier.is_active:
        raise HTTPException(status_code=400, detail=f"供应商 {supplier.name} 已停用")

    purchase.status = PurchaseStatus.ORDERED.value
    purchase.order_date = datetime.utcnow()
    await create_audit_log(
        db, org_id, member.id, AuditAction.UPDATE.value, "purchase",
        resource_id=purchase.id, resource_name=purchase.purchase_number,
        description=f"采购单 {purchase.purchase_number} 下单",
        old_value={"status": PurchaseStatus.DRAFT.value},
        new_value={"status": purchase.status}
    )
    await db.commit()
    return build_purchase_response(await load_purchase(db, org_id, purchase_id))


@router.post("/{purchase_id}/receive", response_model=PurchaseResponse)
async def receive_purchase(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(require_roles(*CATALOG_ROLES)),
    purchase_id: int,
    receive_in: PurchaseReceive) -> Any:
    """
    采购到货：每个到货明细生成一个库存批次（进价 = 采购单价）
    全部到齐后状态变为 received，否则为 partially_received
    """
    org_id = member.organization_id
    purchase = await load_purchase(db, org_id, purchase_id)
    if purchase.status not in (PurchaseStatus.ORDERED.value, PurchaseStatus.PARTIALLY_RECEIVED.value):
        raise HTTPException(status_code=400, detail=f"采购单状态为 {purchase.status_display}，不能到货")
    await load_location(db, org_id, purchase.location_id, active_only=True)

    items_by_id = {i.id: i for i in purchase.items}
    batch_numbers = []
    for line in receive_in.items:
        item = items_by_id.get(line.item_id)
        if item is None:
            raise HTTPException(status_code=400, detail=f"采购明细 {line.item_id} 不属于该采购单")
        if line.quantity > item.outstanding_quantity:
            raise HTTPException(
                status_code=400,
                detail=f"采购明细 {item.id} 到货数量 {line.quantity} 超过未到货数量 {item.outstanding_quantity}"
            )
        batch = await receive_stock(
            db, org_id,
            product_id=item.product_id,
            variant_id=item.variant_id,
            location_id=purchase.location_id,
            quantity=line.quantity,
            purchase_price=item.unit_cost,
            member_id=member.id,
            expiry_date=line.expiry_date,
            purchase_item_id=item.id,
            movement_type=MovementType.PURCHASE_RECEIPT.value,
            reference_type="purchase",
            reference_id=purchase.id)
        item.received_quantity = (item.received_quantity or Decimal("0")) + line.quantity
        batch_numbers.append(batch.batch_number)

    old_status = purchase.status
    if all(i.outstanding_quantity <= 0 for i in purchase.items):
        purchase.status = PurchaseStatus.RECEIVED.value
        purchase.received_date = datetime.utcnow()
    else:
        purchase.status = PurchaseStatus.PARTIALLY_RECEIVED.value

    await create_audit_log(
        db, org_id, member.id, AuditAction.UPDATE.value, "purchase",
        resource_id=purchase.id, resource_name=purchase.purchase_number,
        description=f"采购单到货，生成批次 {', '.join(batch_numbers)}",
        old_value={"status": old_status},
        new_value={"status": purchase.status}
    )
    await db.commit()
    return build_purchase_response(await load_purchase(db, org_id, purchase_id))


@router.post("/{purchase_id}/cancel", response_model=PurchaseResponse)
async def cancel_purchase(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(require_roles(*CATALOG_ROLES)),
    purchase_id: int) -> Any:
    """取消采购单（只能取消尚未到货的采购单）"""
    org_id = member.organization_id
    purchase = await load_purchase(db, org_id, purchase_id)
    if purchase.status not in (PurchaseStatus.DRAFT.value, PurchaseStatus.ORDERED.value):
        raise HTTPException(status_code=400, detail="已到货或已取消的采购单不能取消")

    old_status = purchase.status
    purchase.status = PurchaseStatus.CANCELLED.value
    await create_audit_log(
        db, org_id, member.id, AuditAction.UPDATE.value, "purchase",
        resource_id=purchase.id, resource_name=purchase.purchase_number,
        description=f"取消采购单 {purchase.purchase_number}",
        old_value={"status": old_status},
        new_value={"status": purchase.status}
    )
    await db.commit()
    return build_purchase_response(await load_purchase(db, org_id, purchase_id))
