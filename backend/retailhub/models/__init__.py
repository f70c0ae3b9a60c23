# models包初始化文件
# 导入全部模型以注册到 Base.metadata

from retailhub.models.organization import User, Organization, Member
from retailhub.models.category import Category
from retailhub.models.product import Product, ProductVariant
from retailhub.models.location import InventoryLocation
from retailhub.models.stock_batch import StockBatch
from retailhub.models.stock import ProductVariantStock, StockMovement
from retailhub.models.purchase import Supplier, Purchase, PurchaseItem
from retailhub.models.sale import Customer, Sale, SaleItem, SaleItemBatch
from retailhub.models.expense import ExpenseCategory, Expense, ExpenseApproval, RecurringExpense
from retailhub.models.approval_workflow import (
    ApprovalWorkflow, ApprovalWorkflowStep, ApprovalStepCondition, ApprovalStepAction
)
from retailhub.models.notification import Notification
from retailhub.models.audit_log import AuditLog

__all__ = [
    "User",
    "Organization",
    "Member",
    "Category",
    "Product",
    "ProductVariant",
    "InventoryLocation",
    "StockBatch",
    "ProductVariantStock",
    "StockMovement",
    "Supplier",
    "Purchase",
    "PurchaseItem",
    "Customer",
    "Sale",
    "SaleItem",
    "SaleItemBatch",
    "ExpenseCategory",
    "Expense",
    "ExpenseApproval",
    "RecurringExpense",
    "ApprovalWorkflow",
    "ApprovalWorkflowStep",
    "ApprovalStepCondition",
    "ApprovalStepAction",
    "Notification",
    "AuditLog",
]
