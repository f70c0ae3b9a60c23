"""
销售API - POS 收银
出库按组织的库存策略扣减批次，明细记录加权成本用于毛利计算
"""

from typing import Any, Optional
from datetime import date, datetime, time
from decimal import Decimal, ROUND_HALF_UP, ROUND_FLOOR
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, func, and_
from sqlalchemy.ext.asyncio import AsyncSession

from retailhub.core.config import settings
from retailhub.core.constants import AuditAction, MovementType, PaymentMethod, PaymentStatus
from retailhub.core.deps import get_db, get_current_member, get_current_organization, require_roles
from retailhub.core.logging_config import get_logger
from retailhub.models.organization import Member, Organization
from retailhub.models.sale import Sale, SaleItem, SaleItemBatch
from retailhub.models.stock_batch import StockBatch
from retailhub.schemas.sale import SaleCreate, SaleResponse, SaleItemResponse, SaleListResponse
from retailhub.api.api_v1.endpoints.audit_logs import create_audit_log
from retailhub.api.api_v1.endpoints.categories import CATALOG_ROLES
from retailhub.api.api_v1.endpoints.customers import load_customer
from retailhub.api.api_v1.endpoints.locations import load_location
from retailhub.api.api_v1.endpoints.products import unit_price
from retailhub.api.api_v1.endpoints.stocks import get_product_variant, consume_stock, return_to_batch

router = APIRouter()
logger = get_logger(__name__)

CENT = Decimal("0.01")


def build_sale_response(s: Sale) -> SaleResponse:
    """构建销售单响应"""
    return SaleResponse(
        id=s.id,
        organization_id=s.organization_id,
        sale_number=s.sale_number,
        customer_id=s.customer_id,
        customer_name=s.customer.name if s.customer else None,
        member_id=s.member_id,
        location_id=s.location_id,
        total_amount=s.total_amount,
        discount_amount=s.discount_amount,
        tax_amount=s.tax_amount,
        final_amount=s.final_amount,
        payment_method=s.payment_method,
        payment_status=s.payment_status,
        loyalty_points_earned=s.loyalty_points_earned or 0,
        total_cost=s.total_cost,
        gross_profit=s.gross_profit,
        notes=s.notes,
        sale_date=s.sale_date,
        voided_at=s.voided_at,
        items=[
            SaleItemResponse(
                id=i.id,
                product_id=i.product_id,
                product_name=i.product.name if i.product else "",
                variant_id=i.variant_id,
                stock_batch_id=i.stock_batch_id,
                quantity=i.quantity,
                unit_price=i.unit_price,
                unit_cost=i.unit_cost,
                total_cost=i.total_cost,
                total_amount=i.total_amount)
            for i in s.items
        ])


async def load_sale(db: AsyncSession, organization_id: int, sale_id: int) -> Sale:
    result = await db.execute(
        select(Sale)
        .where(Sale.id == sale_id, Sale.organization_id == organization_id)
        .execution_options(populate_existing=True)
    )
    sale = result.scalar_one_or_none()
    if not sale:
        raise HTTPException(status_code=404, detail="销售单不存在")
    return sale


async def generate_sale_number(db: AsyncSession, organization_id: int) -> str:
    """生成销售单号：S + 日期 + 序号"""
    prefix = f"S{datetime.utcnow().strftime('%Y%m%d')}"
    count = (await db.execute(
        select(func.count(Sale.id)).where(
            Sale.organization_id == organization_id,
            Sale.sale_number.like(f"{prefix}%")
        )
    )).scalar() or 0
    return f"{prefix}-{count + 1:04d}"


def loyalty_points_for(amount: Decimal) -> int:
    """每消费 LOYALTY_POINTS_RATE 元积 1 分，向下取整"""
    if amount <= 0:
        return 0
    return int((amount / Decimal(settings.LOYALTY_POINTS_RATE)).to_integral_value(rounding=ROUND_FLOOR))


@router.get("/", response_model=SaleListResponse)
async def list_sales(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(get_current_member),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    location_id: Optional[int] = Query(None),
    customer_id: Optional[int] = Query(None),
    payment_status: Optional[PaymentStatus] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None)) -> Any:
    """获取销售单列表"""
    conditions = [Sale.organization_id == member.organization_id]
    if location_id:
        conditions.append(Sale.location_id == location_id)
    if customer_id:
        conditions.append(Sale.customer_id == customer_id)
    if payment_status:
        conditions.append(Sale.payment_status == payment_status.value)
    if start_date:
        conditions.append(Sale.sale_date >= datetime.combine(start_date, time.min))
    if end_date:
        conditions.append(Sale.sale_date <= datetime.combine(end_date, time.max))

    total = (await db.execute(
        select(func.count(Sale.id)).where(and_(*conditions))
    )).scalar() or 0
    result = await db.execute(
        select(Sale).where(and_(*conditions))
        .order_by(Sale.sale_date.desc(), Sale.id.desc())
        .offset((page - 1) * limit).limit(limit)
    )
    return SaleListResponse(
        data=[build_sale_response(s) for s in result.scalars().all()],
        total=total,
        page=page,
        limit=limit
    )


@router.get("/{sale_id}", response_model=SaleResponse)
async def get_sale(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(get_current_member),
    sale_id: int) -> Any:
    """获取销售单详情"""
    return build_sale_response(await load_sale(db, member.organization_id, sale_id))


@router.post("/", response_model=SaleResponse)
async def process_sale(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(get_current_member),
    org: Organization = Depends(get_current_organization),
    sale_in: SaleCreate) -> Any:
    """
    收银结账

    1. 校验商品（及变体）有效，售价 = 基础售价 + 变体加价
    2. 按库存策略扣减批次，记录每个批次的出货数量和进价
    3. 小计 - 折扣 = 应税金额；税额四舍五入到分；实收 = 应税金额 + 税额
    4. 给客户累计积分
    """
    await load_location(db, org.id, sale_in.location_id, active_only=True)
    customer = None
    if sale_in.customer_id is not None:
        customer = await load_customer(db, org.id, sale_in.customer_id)
        if not customer.is_active:
            raise HTTPException(status_code=400, detail=f"客户 {customer.name} 已停用")

    # 先校验并计算价格，再扣库存
    lines = []
    subtotal = Decimal("0")
    for cart_item in sale_in.items:
        product, variant = await get_product_variant(
            db, org.id, cart_item.product_id, cart_item.variant_id, active_only=True)
        price = unit_price(product, variant)
        line_total = (price * cart_item.quantity).quantize(CENT, rounding=ROUND_HALF_UP)
        subtotal += line_total
        lines.append((product, variant, cart_item.quantity, price, line_total))

    discount = sale_in.discount_amount or Decimal("0")
    if discount > subtotal:
        raise HTTPException(status_code=400, detail=f"折扣 {discount} 不能超过小计 {subtotal}")
    taxable = subtotal - discount
    tax = (taxable * sale_in.tax_rate).quantize(CENT, rounding=ROUND_HALF_UP)
    final = taxable + tax

    payment_status = (
        PaymentStatus.PENDING.value
        if sale_in.payment_method == PaymentMethod.MOBILE_PAYMENT
        else PaymentStatus.COMPLETED.value
    )
    points = loyalty_points_for(final) if customer is not None else 0

    sale = Sale(
        organization_id=org.id,
        sale_number=await generate_sale_number(db, org.id),
        customer_id=customer.id if customer else None,
        member_id=member.id,
        location_id=sale_in.location_id,
        total_amount=subtotal,
        discount_amount=discount,
        tax_amount=tax,
        final_amount=final,
        payment_method=sale_in.payment_method.value,
        payment_status=payment_status,
        loyalty_points_earned=points,
        notes=sale_in.notes,
        sale_date=datetime.utcnow())
    db.add(sale)
    await db.flush()

    for product, variant, quantity, price, line_total in lines:
        allocations = await consume_stock(
            db, org,
            product_id=product.id,
            variant_id=variant.id if variant else None,
            location_id=sale_in.location_id,
            quantity=quantity,
            member_id=member.id,
            movement_type=MovementType.SALE.value,
            reference_type="sale",
            reference_id=sale.id)

        cost_total = sum((batch.purchase_price * take for batch, take in allocations), Decimal("0"))
        item = SaleItem(
            sale_id=sale.id,
            product_id=product.id,
            variant_id=variant.id if variant else None,
            stock_batch_id=allocations[0][0].id,
            quantity=quantity,
            unit_price=price,
            unit_cost=(cost_total / quantity).quantize(CENT, rounding=ROUND_HALF_UP),
            cost_amount=cost_total,
            total_amount=line_total)
        db.add(item)
        await db.flush()
        for batch, take in allocations:
            db.add(SaleItemBatch(
                sale_item_id=item.id,
                batch_id=batch.id,
                quantity=take,
                cost_price=batch.purchase_price))

    if customer is not None and points:
        customer.loyalty_points = (customer.loyalty_points or 0) + points

    await create_audit_log(
        db, org.id, member.id, AuditAction.CREATE.value, "sale",
        resource_id=sale.id, resource_name=sale.sale_number,
        description=f"销售 {sale.sale_number}，实收 {final}",
        new_value={
            "total_amount": str(subtotal),
            "discount_amount": str(discount),
            "tax_amount": str(tax),
            "final_amount": str(final),
            "payment_method": sale.payment_method,
        }
    )
    await db.commit()
    logger.info(f"销售 {sale.sale_number} 完成：实收 {final}，{len(lines)} 个明细")
    return build_sale_response(await load_sale(db, org.id, sale.id))


@router.post("/{sale_id}/void", response_model=SaleResponse)
async def void_sale(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(require_roles(*CATALOG_ROLES)),
    sale_id: int) -> Any:
    """作废销售单：数量原路退回批次，扣回积分（不低于0）"""
    org_id = member.organization_id
    sale = await load_sale(db, org_id, sale_id)
    if sale.payment_status == PaymentStatus.VOIDED.value:
        raise HTTPException(status_code=400, detail="销售单已作废")

    for item in sale.items:
        for record in item.batch_records:
            batch = await db.get(StockBatch, record.batch_id)
            await return_to_batch(
                db, batch, record.quantity, member.id,
                movement_type=MovementType.CUSTOMER_RETURN.value,
                reference_type="sale",
                reference_id=sale.id,
                notes=f"作废销售单 {sale.sale_number}")

    if sale.customer_id and sale.loyalty_points_earned:
        customer = await load_customer(db, org_id, sale.customer_id)
        customer.loyalty_points = max(0, (customer.loyalty_points or 0) - sale.loyalty_points_earned)

    old_status = sale.payment_status
    sale.payment_status = PaymentStatus.VOIDED.value
    sale.voided_at = datetime.utcnow()

    await create_audit_log(
        db, org_id, member.id, AuditAction.VOID.value, "sale",
        resource_id=sale.id, resource_name=sale.sale_number,
        description=f"作废销售单 {sale.sale_number}",
        old_value={"payment_status": old_status},
        new_value={"payment_status": sale.payment_status}
    )
    await db.commit()
    logger.info(f"销售单 {sale.sale_number} 已作废")
    return build_sale_response(await load_sale(db, org_id, sale_id))
