"""
业务常量
各类状态/类型取值统一定义在这里，模型中以字符串存储
"""

from enum import Enum


class MemberRole(str, Enum):
    OWNER = "owner"
    ADMIN = "admin"
    MANAGER = "manager"
    EMPLOYEE = "employee"
    CASHIER = "cashier"
    REPORTER = "reporter"


# 可以管理组织设置和成员的角色
ORG_ADMIN_ROLES = (MemberRole.OWNER.value, MemberRole.ADMIN.value)

# 无审批流时的默认审批角色
DEFAULT_APPROVER_ROLES = (MemberRole.ADMIN.value, MemberRole.OWNER.value)


class InventoryPolicy(str, Enum):
    FIFO = "fifo"  # 先进先出
    LIFO = "lifo"  # 后进先出
    FEFO = "fefo"  # 先到期先出


class LocationType(str, Enum):
    RETAIL_SHOP = "retail_shop"
    WAREHOUSE = "warehouse"
    DISTRIBUTION = "distribution"
    OTHER = "other"


class MovementType(str, Enum):
    PURCHASE_RECEIPT = "purchase_receipt"
    SALE = "sale"
    ADJUSTMENT_IN = "adjustment_in"
    ADJUSTMENT_OUT = "adjustment_out"
    TRANSFER = "transfer"
    CUSTOMER_RETURN = "customer_return"
    INITIAL_STOCK = "initial_stock"


class PurchaseStatus(str, Enum):
    DRAFT = "draft"
    ORDERED = "ordered"
    PARTIALLY_RECEIVED = "partially_received"
    RECEIVED = "received"
    CANCELLED = "cancelled"


class PaymentMethod(str, Enum):
    CASH = "cash"
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    MOBILE_PAYMENT = "mobile_payment"
    BANK_TRANSFER = "bank_transfer"
    STORE_CREDIT = "store_credit"
    OTHER = "other"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    VOIDED = "voided"


class ExpenseStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    PAID = "paid"
    REIMBURSED = "reimbursed"


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class RecurrenceFrequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class ConditionType(str, Enum):
    AMOUNT_RANGE = "amount_range"
    EXPENSE_CATEGORY = "expense_category"
    LOCATION = "location"
    RECEIPT_REQUIRED = "receipt_required"


class ApprovalActionType(str, Enum):
    ROLE = "role"
    SPECIFIC_MEMBER = "specific_member"
    SUBMITTER_MANAGER = "submitter_manager"


class ApprovalMode(str, Enum):
    ANY_ONE = "any_one"  # 任一人审批即可
    ALL = "all"          # 所有匹配的人都需审批


class NotificationType(str, Enum):
    EXPENSE_SUBMITTED = "expense_submitted"
    EXPENSE_APPROVAL = "expense_approval"
    EXPENSE_REJECTED = "expense_rejected"
    EXPENSE_PAID = "expense_paid"
    SYSTEM_ALERT = "system_alert"
    LOW_STOCK = "low_stock"


class AuditAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    APPROVE = "approve"
    REJECT = "reject"
    ADJUST = "adjust"
    VOID = "void"


# ===== 显示名称 =====

ROLE_DISPLAY = {
    "owner": "所有者",
    "admin": "管理员",
    "manager": "经理",
    "employee": "员工",
    "cashier": "收银员",
    "reporter": "报表查看",
}

MOVEMENT_TYPE_DISPLAY = {
    "purchase_receipt": "采购入库",
    "sale": "销售出库",
    "adjustment_in": "盘盈",
    "adjustment_out": "盘亏",
    "transfer": "调拨",
    "customer_return": "客户退货",
    "initial_stock": "期初库存",
}

EXPENSE_STATUS_DISPLAY = {
    "pending": "待审批",
    "approved": "已批准",
    "rejected": "已驳回",
    "paid": "已支付",
    "reimbursed": "已报销",
}

PURCHASE_STATUS_DISPLAY = {
    "draft": "草稿",
    "ordered": "已下单",
    "partially_received": "部分到货",
    "received": "已到货",
    "cancelled": "已取消",
}

AUDIT_ACTION_DISPLAY = {
    "create": "创建",
    "update": "更新",
    "delete": "删除",
    "approve": "批准",
    "reject": "驳回",
    "adjust": "调整",
    "void": "作废",
}
