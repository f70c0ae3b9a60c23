"""V1 API 路由聚合 - 多组织零售管理（请求头 X-Organization-Id / X-Member-Id 标识身份）"""
from fastapi import APIRouter

from retailhub.api.api_v1.endpoints import (
    organizations, members, categories, products, locations, stocks, batches,
    suppliers, purchases, customers, sales,
    expense_categories, expenses, recurring_expenses, approval_workflows,
    notifications, audit_logs, reports, system
)

api_router = APIRouter()

# 组织与成员
api_router.include_router(organizations.router, prefix="/organizations", tags=["组织管理"])
api_router.include_router(members.router, prefix="/members", tags=["成员管理"])

# 商品与库存
api_router.include_router(categories.router, prefix="/categories", tags=["商品分类"])
api_router.include_router(products.router, prefix="/products", tags=["商品管理"])
api_router.include_router(locations.router, prefix="/locations", tags=["库存地点"])
api_router.include_router(stocks.router, prefix="/stocks", tags=["库存管理"])
api_router.include_router(batches.router, prefix="/batches", tags=["批次管理"])

# 采购与销售
api_router.include_router(suppliers.router, prefix="/suppliers", tags=["供应商"])
api_router.include_router(purchases.router, prefix="/purchases", tags=["采购管理"])
api_router.include_router(customers.router, prefix="/customers", tags=["客户管理"])
api_router.include_router(sales.router, prefix="/sales", tags=["销售收银"])

# 费用与审批
api_router.include_router(expense_categories.router, prefix="/expense-categories", tags=["费用分类"])
api_router.include_router(expenses.router, prefix="/expenses", tags=["费用管理"])
api_router.include_router(recurring_expenses.router, prefix="/recurring-expenses", tags=["周期性费用"])
api_router.include_router(approval_workflows.router, prefix="/approval-workflows", tags=["审批流"])

# 系统
api_router.include_router(notifications.router, prefix="/notifications", tags=["通知"])
api_router.include_router(audit_logs.router, prefix="/audit-logs", tags=["操作日志"])
api_router.include_router(reports.router, prefix="/reports", tags=["报表"])
api_router.include_router(system.router, prefix="/system", tags=["系统管理"])
