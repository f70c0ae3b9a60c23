"""报表API - 销售汇总、费用汇总、库存估值"""

from typing import Any, Optional
from datetime import date, datetime, time
from decimal import Decimal, ROUND_HALF_UP
from fastapi import APIRouter, Depends, Query
from sqlalchemy import select, func, and_
from sqlalchemy.ext.asyncio import AsyncSession

from retailhub.core.constants import MemberRole, PaymentStatus
from retailhub.core.deps import get_db, require_roles
from retailhub.models.organization import Member
from retailhub.models.product import Product
from retailhub.models.sale import Sale, SaleItem
from retailhub.models.stock_batch import StockBatch
from retailhub.schemas.report import SalesSummary, ExpenseReport, InventoryValuation, ProductValuation
from retailhub.api.api_v1.endpoints.expenses import summarize_expenses

router = APIRouter()

REPORT_ROLES = (
    MemberRole.OWNER.value, MemberRole.ADMIN.value, MemberRole.MANAGER.value, MemberRole.REPORTER.value
)


def _dec(value) -> Decimal:
    return Decimal(str(value or 0))


@router.get("/sales-summary", response_model=SalesSummary)
async def sales_summary(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(require_roles(*REPORT_ROLES)),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    location_id: Optional[int] = Query(None)) -> Any:
    """
    销售汇总（不含已作废的销售单）

    净销售额 = 实收 - 税；毛利 = 净销售额 - 成本
    """
    conditions = [
        Sale.organization_id == member.organization_id,
        Sale.payment_status != PaymentStatus.VOIDED.value,
    ]
    if start_date:
        conditions.append(Sale.sale_date >= datetime.combine(start_date, time.min))
    if end_date:
        conditions.append(Sale.sale_date <= datetime.combine(end_date, time.max))
    if location_id:
        conditions.append(Sale.location_id == location_id)

    totals = (await db.execute(
        select(
            func.count(Sale.id),
            func.sum(Sale.total_amount),
            func.sum(Sale.discount_amount),
            func.sum(Sale.tax_amount),
            func.sum(Sale.final_amount),
        ).where(and_(*conditions))
    )).one()
    by_method = (await db.execute(
        select(Sale.payment_method, func.sum(Sale.final_amount))
        .where(and_(*conditions)).group_by(Sale.payment_method)
    )).all()
    total_cost = (await db.execute(
        select(func.sum(SaleItem.cost_amount))
        .join(Sale, SaleItem.sale_id == Sale.id)
        .where(and_(*conditions))
    )).scalar()

    net_sales = _dec(totals[4]) - _dec(totals[3])
    cost = _dec(total_cost).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return SalesSummary(
        start_date=start_date,
        end_date=end_date,
        sale_count=totals[0] or 0,
        gross_sales=_dec(totals[1]),
        total_discount=_dec(totals[2]),
        total_tax=_dec(totals[3]),
        net_sales=net_sales,
        total_cost=cost,
        gross_profit=net_sales - cost,
        by_payment_method={row[0]: _dec(row[1]) for row in by_method})


@router.get("/expense-summary", response_model=ExpenseReport)
async def expense_report(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(require_roles(*REPORT_ROLES)),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None)) -> Any:
    """费用汇总（按状态、按分类）"""
    summary = await summarize_expenses(db, member.organization_id, start_date, end_date)
    return ExpenseReport(
        start_date=start_date,
        end_date=end_date,
        expense_count=summary.count,
        total_amount=summary.total_amount,
        by_status=summary.by_status,
        by_category=summary.by_category)


@router.get("/inventory-valuation", response_model=InventoryValuation)
async def inventory_valuation(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(require_roles(*REPORT_ROLES)),
    location_id: Optional[int] = Query(None)) -> Any:
    """库存估值：按批次进价计算剩余库存价值"""
    conditions = [
        StockBatch.organization_id == member.organization_id,
        StockBatch.current_quantity > 0,
    ]
    if location_id:
        conditions.append(StockBatch.location_id == location_id)

    rows = (await db.execute(
        select(
            Product.id,
            Product.name,
            Product.sku,
            func.sum(StockBatch.current_quantity),
            func.sum(StockBatch.current_quantity * StockBatch.purchase_price),
        )
        .join(Product, StockBatch.product_id == Product.id)
        .where(and_(*conditions))
        .group_by(Product.id, Product.name, Product.sku)
        .order_by(Product.name)
    )).all()

    products = [
        ProductValuation(
            product_id=row[0],
            product_name=row[1],
            sku=row[2],
            quantity=_dec(row[3]),
            value=_dec(row[4]).quantize(Decimal("0.01")))
        for row in rows
    ]
    return InventoryValuation(
        location_id=location_id,
        total_quantity=sum((p.quantity for p in products), Decimal("0")),
        total_value=sum((p.value for p in products), Decimal("0")),
        products=products)
