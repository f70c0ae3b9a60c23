"""报表 Schema"""

from typing import Optional, List, Dict
from datetime import date
from decimal import Decimal
from pydantic import BaseModel


class SalesSummary(BaseModel):
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    sale_count: int
    gross_sales: Decimal
    total_discount: Decimal
    total_tax: Decimal
    net_sales: Decimal
    total_cost: Decimal
    gross_profit: Decimal
    by_payment_method: Dict[str, Decimal]


class ExpenseReport(BaseModel):
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    expense_count: int
    total_amount: Decimal
    by_status: Dict[str, Decimal]
    by_category: Dict[str, Decimal]


class ProductValuation(BaseModel):
    product_id: int
    product_name: str
    sku: str
    quantity: Decimal
    value: Decimal


class InventoryValuation(BaseModel):
    location_id: Optional[int] = None
    total_quantity: Decimal
    total_value: Decimal
    products: List[ProductValuation]
