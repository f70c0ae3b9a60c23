"""
费用审批规则判断（纯函数，不访问数据库）

调用方负责加载：组织设置、当前生效的审批流（含步骤/条件/动作）、
组织成员、费用所在地点的负责经理ID，然后用这里的函数判断：
- 是否需要审批
- 哪些动作（审批人要求）适用
- 某成员能否审批
- 已有审批记录是否足以通过
"""

import logging
from decimal import Decimal
from typing import Any, Iterable, List, NamedTuple, Optional, Sequence

from retailhub.core.constants import (
    ApprovalActionType, ApprovalMode, ApprovalStatus, ConditionType, DEFAULT_APPROVER_ROLES
)

logger = logging.getLogger(__name__)


class RequiredAction(NamedTuple):
    """未配置审批流时使用的默认审批动作"""
    action_type: str
    approver_role: Optional[str] = None
    specific_member_id: Optional[int] = None
    approval_mode: str = ApprovalMode.ANY_ONE.value


DEFAULT_ACTIONS = [
    RequiredAction(action_type=ApprovalActionType.ROLE.value, approver_role=role)
    for role in DEFAULT_APPROVER_ROLES
]


def _decimal(value: Any) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


def _has_receipt(expense: Any) -> bool:
    return bool(getattr(expense, "receipt_url", None))


# ===== 条件与步骤 =====

def condition_matches(condition: Any, expense: Any) -> bool:
    """判断单个条件是否匹配费用

    - amount_range: 金额 > 下限（不含）且 金额 <= 上限（含），未设置的一端不限制
    - expense_category / location: 条件中设置了ID且与费用相同
    - receipt_required: 费用带有票据
    - 未知类型: 不匹配
    """
    ctype = condition.condition_type
    if ctype == ConditionType.AMOUNT_RANGE.value:
        amount = _decimal(expense.amount)
        if condition.min_amount is not None and not amount > _decimal(condition.min_amount):
            return False
        if condition.max_amount is not None and not amount <= _decimal(condition.max_amount):
            return False
        return True
    if ctype == ConditionType.EXPENSE_CATEGORY.value:
        return condition.expense_category_id is not None and condition.expense_category_id == expense.category_id
    if ctype == ConditionType.LOCATION.value:
        return condition.location_id is not None and condition.location_id == expense.location_id
    if ctype == ConditionType.RECEIPT_REQUIRED.value:
        return _has_receipt(expense)
    logger.warning(f"未知的审批条件类型: {ctype}")
    return False


def step_matches(step: Any, expense: Any) -> bool:
    """步骤是否适用；没有条件的步骤永远不适用"""
    conditions = list(step.conditions or [])
    if not conditions:
        return False
    results = (condition_matches(c, expense) for c in conditions)
    if step.all_conditions_must_match:
        return all(results)
    return any(results)


def find_applicable_step(steps: Iterable[Any], expense: Any) -> Optional[Any]:
    """按步骤序号找到第一个适用的步骤"""
    for step in sorted(steps or [], key=lambda s: s.step_number):
        if step_matches(step, expense):
            return step
    return None


# ===== 是否需要审批 =====

def receipt_required(org: Any, amount: Any) -> bool:
    """组织设置下该金额是否需要票据（未设阈值时全部需要）"""
    if not org.expense_receipt_required:
        return False
    threshold = org.expense_receipt_threshold
    return threshold is None or _decimal(amount) > _decimal(threshold)


def approval_needed(org: Any, workflow: Optional[Any], expense: Any) -> bool:
    """
    判断费用是否需要审批

    有生效审批流：存在适用步骤即需要（审批流没有任何步骤时视为需要）
    无审批流：按组织的审批开关、票据要求和金额阈值判断
    """
    if workflow is not None:
        steps = list(workflow.steps or [])
        if not steps:
            return True
        return find_applicable_step(steps, expense) is not None

    if not org.expense_approval_required:
        return False
    if receipt_required(org, expense.amount) and not _has_receipt(expense):
        return True
    threshold = org.expense_approval_threshold
    if threshold is None:
        return True
    return _decimal(expense.amount) > _decimal(threshold)


def required_actions(workflow: Optional[Any], expense: Any) -> List[Any]:
    """适用的审批动作；无审批流时默认为管理员或所有者审批"""
    if workflow is None:
        return list(DEFAULT_ACTIONS)
    step = find_applicable_step(workflow.steps or [], expense)
    if step is None:
        return []
    return list(step.actions or [])


# ===== 审批人 =====

def member_matches_action(member: Any, action: Any, expense: Any,
                          location_manager_id: Optional[int] = None) -> bool:
    """成员是否符合某个审批动作的要求

    submitter_manager 指费用所在地点的负责经理
    """
    atype = action.action_type
    if atype == ApprovalActionType.ROLE.value:
        return action.approver_role is not None and member.role == action.approver_role
    if atype == ApprovalActionType.SPECIFIC_MEMBER.value:
        return action.specific_member_id is not None and member.id == action.specific_member_id
    if atype == ApprovalActionType.SUBMITTER_MANAGER.value:
        return location_manager_id is not None and member.id == location_manager_id
    return False


def can_member_approve(member: Any, actions: Sequence[Any], needs_approval: bool, expense: Any,
                       location_manager_id: Optional[int] = None) -> bool:
    """成员能否审批该费用

    - 提交人不能审批自己的费用，停用成员不能审批
    - 有审批动作时，符合任一动作即可
    - 没有审批动作但需要审批时，只有管理员和所有者可以审批
    """
    if not member.is_active:
        return False
    if member.id == expense.member_id:
        return False
    if actions:
        return any(member_matches_action(member, a, expense, location_manager_id) for a in actions)
    return needs_approval and member.role in DEFAULT_APPROVER_ROLES


def eligible_approvers(members: Iterable[Any], actions: Sequence[Any], needs_approval: bool, expense: Any,
                       location_manager_id: Optional[int] = None) -> List[Any]:
    """所有可以审批该费用的成员"""
    return [
        m for m in members
        if can_member_approve(m, actions, needs_approval, expense, location_manager_id)
    ]


def approval_complete(actions: Sequence[Any], approvals: Iterable[Any], members: Iterable[Any], expense: Any,
                      location_manager_id: Optional[int] = None) -> bool:
    """
    已有的审批记录是否足以通过

    - any_one 动作之间互为替代：任一符合其中某个动作的成员批准即满足
    - all 动作：所有符合该动作的在职成员（提交人除外）都需批准
    - 至少要有一条批准记录
    """
    approved_ids = {
        a.approver_id for a in approvals
        if a.status == ApprovalStatus.APPROVED.value
    }
    if not approved_ids:
        return False

    candidates = [m for m in members if m.is_active and m.id != expense.member_id]
    by_id = {m.id: m for m in candidates}

    any_one = [a for a in actions if a.approval_mode != ApprovalMode.ALL.value]
    all_mode = [a for a in actions if a.approval_mode == ApprovalMode.ALL.value]

    if any_one:
        satisfied = any(
            member_matches_action(by_id[mid], a, expense, location_manager_id)
            for mid in approved_ids if mid in by_id
            for a in any_one
        )
        if not satisfied:
            return False

    for action in all_mode:
        matching = {
            m.id for m in candidates
            if member_matches_action(m, action, expense, location_manager_id)
        }
        if not matching <= approved_ids:
            return False

    if not actions:
        # 无审批动作时由默认审批人（管理员/所有者）任一批准即可
        return any(by_id[mid].role in DEFAULT_APPROVER_ROLES for mid in approved_ids if mid in by_id)

    return True
