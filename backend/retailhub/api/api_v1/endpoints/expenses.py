"""
费用API - 提交、审批、驳回、支付
是否需要审批、谁能审批由 services/approval_engine 判断
"""

from typing import Any, Dict, List, Optional, Tuple
from datetime import date, datetime
from decimal import Decimal
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, func, and_
from sqlalchemy.ext.asyncio import AsyncSession

from retailhub.core.constants import (
    ORG_ADMIN_ROLES, AuditAction, ApprovalStatus, ExpenseStatus, NotificationType
)
from retailhub.core.deps import get_db, get_current_member, get_current_organization, require_roles
from retailhub.core.logging_config import get_logger
from retailhub.models.approval_workflow import ApprovalWorkflow, ApprovalWorkflowStep
from retailhub.models.expense import Expense, ExpenseApproval, ExpenseCategory
from retailhub.models.location import InventoryLocation
from retailhub.models.organization import Member, Organization
from retailhub.models.purchase import Supplier
from retailhub.schemas.expense import (
    ExpenseCreate, ExpenseDecision, ExpenseReject, ExpenseResponse, ExpenseListResponse,
    ExpenseApprovalResponse, ApprovalRequirementsResponse, EligibleApprover, ExpenseSummaryResponse
)
from retailhub.services import approval_engine
from retailhub.api.api_v1.endpoints.audit_logs import create_audit_log
from retailhub.api.api_v1.endpoints.notifications import notify

router = APIRouter()
logger = get_logger(__name__)


def build_expense_response(e: Expense) -> ExpenseResponse:
    """构建费用响应"""
    return ExpenseResponse(
        id=e.id,
        organization_id=e.organization_id,
        expense_number=e.expense_number,
        description=e.description,
        amount=e.amount,
        tax_amount=e.tax_amount,
        expense_date=e.expense_date,
        category_id=e.category_id,
        category_name=e.category.name if e.category else "",
        location_id=e.location_id,
        supplier_id=e.supplier_id,
        member_id=e.member_id,
        submitter_name=e.submitter.display_name if e.submitter else "",
        payment_method=e.payment_method,
        receipt_url=e.receipt_url,
        notes=e.notes,
        is_reimbursable=e.is_reimbursable,
        is_billable=e.is_billable,
        tags=e.tags or [],
        status=e.status,
        status_display=e.status_display,
        approved_by_id=e.approved_by_id,
        approval_date=e.approval_date,
        paid_date=e.paid_date,
        workflow_step_id=e.workflow_step_id,
        recurring_expense_id=e.recurring_expense_id,
        approvals=[
            ExpenseApprovalResponse(
                id=a.id,
                approver_id=a.approver_id,
                approver_name=a.approver.display_name if a.approver else "",
                status=a.status,
                comments=a.comments,
                decision_date=a.decision_date)
            for a in e.approvals
        ],
        created_at=e.created_at)


async def load_expense(db: AsyncSession, organization_id: int, expense_id: int) -> Expense:
    result = await db.execute(
        select(Expense)
        .where(Expense.id == expense_id, Expense.organization_id == organization_id)
        .execution_options(populate_existing=True)
    )
    expense = result.scalar_one_or_none()
    if not expense:
        raise HTTPException(status_code=404, detail="费用不存在")
    return expense


# ===== 审批上下文 =====

async def load_active_workflow(db: AsyncSession, org: Organization) -> Optional[ApprovalWorkflow]:
    """组织当前生效的审批流（已停用的视为没有）"""
    if not org.active_expense_workflow_id:
        return None
    workflow = await db.get(ApprovalWorkflow, org.active_expense_workflow_id)
    if not workflow or workflow.organization_id != org.id or not workflow.is_active:
        return None
    return workflow


async def _location_manager_id(db: AsyncSession, expense: Any) -> Optional[int]:
    if not expense.location_id:
        return None
    loc = await db.get(InventoryLocation, expense.location_id)
    return loc.manager_id if loc else None


async def _org_members(db: AsyncSession, organization_id: int) -> List[Member]:
    result = await db.execute(
        select(Member).where(Member.organization_id == organization_id).order_by(Member.id)
    )
    return list(result.scalars().all())


async def approval_context(db: AsyncSession, org: Organization, expense: Expense) -> Tuple[bool, Optional[ApprovalWorkflowStep], List[Any]]:
    """
    返回 (是否需要审批, 适用步骤, 审批动作)

    待审批的费用沿用提交时记录的步骤，其余情况按当前配置重新判断
    """
    if expense.status == ExpenseStatus.PENDING.value:
        if expense.workflow_step_id:
            step = await db.get(ApprovalWorkflowStep, expense.workflow_step_id)
            if step is not None:
                return True, step, list(step.actions)
        return True, None, list(approval_engine.DEFAULT_ACTIONS)

    workflow = await load_active_workflow(db, org)
    needs = approval_engine.approval_needed(org, workflow, expense)
    step = approval_engine.find_applicable_step(workflow.steps, expense) if workflow else None
    return needs, step, approval_engine.required_actions(workflow, expense)


async def _validate_references(db: AsyncSession, organization_id: int, expense_in: ExpenseCreate):
    cat = await db.get(ExpenseCategory, expense_in.category_id)
    if not cat or cat.organization_id != organization_id:
        raise HTTPException(status_code=400, detail="费用分类不存在")
    if not cat.is_active:
        raise HTTPException(status_code=400, detail=f"费用分类 {cat.name} 已停用")
    if expense_in.location_id is not None:
        loc = await db.get(InventoryLocation, expense_in.location_id)
        if not loc or loc.organization_id != organization_id:
            raise HTTPException(status_code=400, detail="地点不存在")
    if expense_in.supplier_id is not None:
        supplier = await db.get(Supplier, expense_in.supplier_id)
        if not supplier or supplier.organization_id != organization_id:
            raise HTTPException(status_code=400, detail="供应商不存在")


# ===== 查询 =====

@router.get("/", response_model=ExpenseListResponse)
async def list_expenses(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(get_current_member),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[ExpenseStatus] = Query(None),
    category_id: Optional[int] = Query(None),
    member_id: Optional[int] = Query(None, description="提交人"),
    location_id: Optional[int] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None)) -> Any:
    """获取费用列表"""
    conditions = [Expense.organization_id == member.organization_id]
    if status:
        conditions.append(Expense.status == status.value)
    if category_id:
        conditions.append(Expense.category_id == category_id)
    if member_id:
        conditions.append(Expense.member_id == member_id)
    if location_id:
        conditions.append(Expense.location_id == location_id)
    if start_date:
        conditions.append(Expense.expense_date >= start_date)
    if end_date:
        conditions.append(Expense.expense_date <= end_date)

    total = (await db.execute(
        select(func.count(Expense.id)).where(and_(*conditions))
    )).scalar() or 0
    result = await db.execute(
        select(Expense).where(and_(*conditions))
        .order_by(Expense.expense_date.desc(), Expense.id.desc())
        .offset((page - 1) * limit).limit(limit)
    )
    return ExpenseListResponse(
        data=[build_expense_response(e) for e in result.scalars().all()],
        total=total,
        page=page,
        limit=limit
    )


@router.get("/summary", response_model=ExpenseSummaryResponse)
async def expense_summary(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(get_current_member),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None)) -> Any:
    """费用汇总（按状态、按分类）"""
    return await summarize_expenses(db, member.organization_id, start_date, end_date)


@router.get("/pending-approvals", response_model=List[ExpenseResponse])
async def my_pending_approvals(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(get_current_member),
    org: Organization = Depends(get_current_organization)) -> Any:
    """当前成员可以审批的待审批费用"""
    result = await db.execute(
        select(Expense).where(
            Expense.organization_id == org.id,
            Expense.status == ExpenseStatus.PENDING.value,
            Expense.member_id != member.id
        ).order_by(Expense.created_at)
    )
    approvable = []
    for expense in result.scalars().all():
        if any(a.approver_id == member.id for a in expense.approvals):
            continue
        needs, _, actions = await approval_context(db, org, expense)
        manager_id = await _location_manager_id(db, expense)
        if approval_engine.can_member_approve(member, actions, needs, expense, manager_id):
            approvable.append(build_expense_response(expense))
    return approvable


@router.get("/{expense_id}", response_model=ExpenseResponse)
async def get_expense(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(get_current_member),
    expense_id: int) -> Any:
    """获取费用详情"""
    return build_expense_response(await load_expense(db, member.organization_id, expense_id))


@router.get("/{expense_id}/approval-requirements", response_model=ApprovalRequirementsResponse)
async def get_approval_requirements(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(get_current_member),
    org: Organization = Depends(get_current_organization),
    expense_id: int) -> Any:
    """查看费用的审批要求和可审批人"""
    expense = await load_expense(db, org.id, expense_id)
    needs, step, actions = await approval_context(db, org, expense)
    if not needs:
        return ApprovalRequirementsResponse(requires_approval=False, message="该费用无需审批")

    manager_id = await _location_manager_id(db, expense)
    members = await _org_members(db, org.id)
    approvers = approval_engine.eligible_approvers(members, actions, needs, expense, manager_id)

    if step is not None:
        message = f"需按审批流步骤 {step.step_number}（{step.name or '未命名'}）审批"
    else:
        message = "需由管理员或所有者审批"
    return ApprovalRequirementsResponse(
        requires_approval=True,
        message=message,
        workflow_id=step.workflow_id if step else None,
        step_id=step.id if step else None,
        step_number=step.step_number if step else None,
        eligible_approvers=[
            EligibleApprover(member_id=m.id, name=m.display_name, role=m.role) for m in approvers
        ])


# ===== 提交与审批 =====

@router.post("/", response_model=ExpenseResponse)
async def create_expense(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(get_current_member),
    org: Organization = Depends(get_current_organization),
    expense_in: ExpenseCreate) -> Any:
    """提交费用"""
    await _validate_references(db, org.id, expense_in)
    if approval_engine.receipt_required(org, expense_in.amount) and not expense_in.receipt_url:
        raise HTTPException(status_code=400, detail=f"金额 {expense_in.amount} 的费用必须上传票据")

    data = expense_in.model_dump()
    data["payment_method"] = expense_in.payment_method.value
    expense = await submit_expense(db, org, member.id, data)

    await create_audit_log(
        db, org.id, member.id, AuditAction.CREATE.value, "expense",
        resource_id=expense.id, resource_name=expense.expense_number,
        description=f"提交费用 {expense.expense_number}：{expense.description}",
        new_value={"amount": str(expense.amount), "status": expense.status}
    )
    await db.commit()
    return build_expense_response(await load_expense(db, org.id, expense.id))


@router.post("/{expense_id}/approve", response_model=ExpenseResponse)
async def approve_expense(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(get_current_member),
    org: Organization = Depends(get_current_organization),
    expense_id: int,
    decision_in: ExpenseDecision) -> Any:
    """批准费用；满足审批动作要求后费用状态变为已批准"""
    expense = await load_expense(db, org.id, expense_id)
    if expense.status != ExpenseStatus.PENDING.value:
        raise HTTPException(status_code=400, detail=f"费用状态为 {expense.status_display}，不能审批")

    needs, step, actions = await approval_context(db, org, expense)
    manager_id = await _location_manager_id(db, expense)
    if not approval_engine.can_member_approve(member, actions, needs, expense, manager_id):
        raise HTTPException(status_code=403, detail="您不能审批该费用")
    if any(a.approver_id == member.id and a.status == ApprovalStatus.APPROVED.value for a in expense.approvals):
        raise HTTPException(status_code=400, detail="您已批准过该费用")

    now = datetime.utcnow()
    approval = ExpenseApproval(
        organization_id=org.id,
        expense_id=expense.id,
        approver_id=member.id,
        status=ApprovalStatus.APPROVED.value,
        comments=decision_in.comments,
        decision_date=now)
    db.add(approval)
    await db.flush()

    members = await _org_members(db, org.id)
    approvals = list(expense.approvals) + [approval]
    completed = approval_engine.approval_complete(actions, approvals, members, expense, manager_id)
    if completed:
        expense.status = ExpenseStatus.APPROVED.value
        expense.approved_by_id = member.id
        expense.approval_date = now
        await notify(
            db, org.id, [expense.member_id],
            NotificationType.EXPENSE_APPROVAL.value,
            title=f"费用 {expense.expense_number} 已批准",
            description=f"{member.display_name} 批准了您的费用：{expense.description}",
            sender_id=member.id,
            link=f"/expenses/{expense.id}",
            details={"expense_id": expense.id, "amount": str(expense.amount)})

    await create_audit_log(
        db, org.id, member.id, AuditAction.APPROVE.value, "expense",
        resource_id=expense.id, resource_name=expense.expense_number,
        description=f"批准费用 {expense.expense_number}" + ("" if completed else "（等待其他审批人）"),
        old_value={"status": ExpenseStatus.PENDING.value},
        new_value={"status": expense.status}
    )
    await db.commit()
    logger.info(f"费用 {expense.expense_number} 由成员 {member.id} 批准，完成={completed}")
    return build_expense_response(await load_expense(db, org.id, expense_id))


@router.post("/{expense_id}/reject", response_model=ExpenseResponse)
async def reject_expense(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(get_current_member),
    org: Organization = Depends(get_current_organization),
    expense_id: int,
    reject_in: ExpenseReject) -> Any:
    """驳回费用（必须填写原因）"""
    expense = await load_expense(db, org.id, expense_id)
    if expense.status != ExpenseStatus.PENDING.value:
        raise HTTPException(status_code=400, detail=f"费用状态为 {expense.status_display}，不能驳回")

    needs, step, actions = await approval_context(db, org, expense)
    manager_id = await _location_manager_id(db, expense)
    if not approval_engine.can_member_approve(member, actions, needs, expense, manager_id):
        raise HTTPException(status_code=403, detail="您不能审批该费用")

    now = datetime.utcnow()
    db.add(ExpenseApproval(
        organization_id=org.id,
        expense_id=expense.id,
        approver_id=member.id,
        status=ApprovalStatus.REJECTED.value,
        comments=reject_in.comments,
        decision_date=now))

    expense.status = ExpenseStatus.REJECTED.value
    rejection_note = f"REJECTED: {reject_in.comments}"
    expense.notes = f"{expense.notes}\n{rejection_note}" if expense.notes else rejection_note

    await notify(
        db, org.id, [expense.member_id],
        NotificationType.EXPENSE_REJECTED.value,
        title=f"费用 {expense.expense_number} 被驳回",
        description=f"{member.display_name} 驳回了您的费用：{reject_in.comments}",
        sender_id=member.id,
        link=f"/expenses/{expense.id}",
        details={"expense_id": expense.id, "comments": reject_in.comments})

    await create_audit_log(
        db, org.id, member.id, AuditAction.REJECT.value, "expense",
        resource_id=expense.id, resource_name=expense.expense_number,
        description=f"驳回费用 {expense.expense_number}：{reject_in.comments}",
        old_value={"status": ExpenseStatus.PENDING.value},
        new_value={"status": expense.status}
    )
    await db.commit()
    return build_expense_response(await load_expense(db, org.id, expense_id))


@router.post("/{expense_id}/pay", response_model=ExpenseResponse)
async def mark_expense_paid(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(require_roles(*ORG_ADMIN_ROLES)),
    expense_id: int) -> Any:
    """标记已支付；需报销的费用标记为已报销"""
    org_id = member.organization_id
    expense = await load_expense(db, org_id, expense_id)
    if expense.status != ExpenseStatus.APPROVED.value:
        raise HTTPException(status_code=400, detail="只有已批准的费用才能支付")

    expense.status = ExpenseStatus.REIMBURSED.value if expense.is_reimbursable else ExpenseStatus.PAID.value
    expense.paid_date = datetime.utcnow()

    await notify(
        db, org_id, [expense.member_id],
        NotificationType.EXPENSE_PAID.value,
        title=f"费用 {expense.expense_number} {expense.status_display}",
        description=f"金额 {expense.amount}",
        sender_id=member.id,
        link=f"/expenses/{expense.id}",
        details={"expense_id": expense.id, "status": expense.status})

    await create_audit_log(
        db, org_id, member.id, AuditAction.UPDATE.value, "expense",
        resource_id=expense.id, resource_name=expense.expense_number,
        description=f"费用 {expense.expense_number} {expense.status_display}",
        old_value={"status": ExpenseStatus.APPROVED.value},
        new_value={"status": expense.status}
    )
    await db.commit()
    return build_expense_response(await load_expense(db, org_id, expense_id))


# ===== 费用服务函数（供周期性费用、报表调用）=====

async def generate_expense_number(db: AsyncSession, organization_id: int) -> str:
    """生成费用单号：EXP-日期-序号"""
    prefix = f"EXP-{datetime.utcnow().strftime('%Y%m%d')}"
    count = (await db.execute(
        select(func.count(Expense.id)).where(
            Expense.organization_id == organization_id,
            Expense.expense_number.like(f"{prefix}%")
        )
    )).scalar() or 0
    return f"{prefix}-{count + 1:04d}"


async def submit_expense(
    db: AsyncSession,
    org: Organization,
    member_id: int,
    data: Dict[str, Any],
    recurring_expense_id: Optional[int] = None) -> Expense:
    """
    创建费用并走审批判断（不提交事务）

    无需审批：直接批准，审批人为提交人
    需要审批：待审批，记录适用步骤并通知可审批人
    """
    expense = Expense(
        organization_id=org.id,
        expense_number=await generate_expense_number(db, org.id),
        member_id=member_id,
        recurring_expense_id=recurring_expense_id,
        status=ExpenseStatus.PENDING.value,
        **data)

    workflow = await load_active_workflow(db, org)
    needs = approval_engine.approval_needed(org, workflow, expense)
    if not needs:
        expense.status = ExpenseStatus.APPROVED.value
        expense.approved_by_id = member_id
        expense.approval_date = datetime.utcnow()
        db.add(expense)
        await db.flush()
        logger.info(f"费用 {expense.expense_number} 无需审批，已自动批准")
        return expense

    step = approval_engine.find_applicable_step(workflow.steps, expense) if workflow else None
    expense.workflow_step_id = step.id if step else None
    db.add(expense)
    await db.flush()

    actions = list(step.actions) if step else list(approval_engine.DEFAULT_ACTIONS)
    manager_id = await _location_manager_id(db, expense)
    members = await _org_members(db, org.id)
    approvers = approval_engine.eligible_approvers(members, actions, True, expense, manager_id)
    await notify(
        db, org.id, [m.id for m in approvers],
        NotificationType.EXPENSE_SUBMITTED.value,
        title=f"待审批费用 {expense.expense_number}",
        description=f"{expense.description}，金额 {expense.amount}",
        sender_id=member_id,
        link=f"/expenses/{expense.id}",
        details={"expense_id": expense.id, "amount": str(expense.amount)})
    logger.info(f"费用 {expense.expense_number} 待审批，通知 {len(approvers)} 位审批人")
    return expense


async def summarize_expenses(
    db: AsyncSession,
    organization_id: int,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None) -> ExpenseSummaryResponse:
    """按状态和分类汇总费用"""
    conditions = [Expense.organization_id == organization_id]
    if start_date:
        conditions.append(Expense.expense_date >= start_date)
    if end_date:
        conditions.append(Expense.expense_date <= end_date)

    status_rows = (await db.execute(
        select(Expense.status, func.count(Expense.id), func.sum(Expense.amount))
        .where(and_(*conditions)).group_by(Expense.status)
    )).all()
    category_rows = (await db.execute(
        select(ExpenseCategory.name, func.sum(Expense.amount))
        .join(ExpenseCategory, Expense.category_id == ExpenseCategory.id)
        .where(and_(*conditions)).group_by(ExpenseCategory.name)
    )).all()

    by_status = {row[0]: Decimal(str(row[2] or 0)) for row in status_rows}
    return ExpenseSummaryResponse(
        count=sum(row[1] for row in status_rows),
        total_amount=sum(by_status.values(), Decimal("0")),
        by_status=by_status,
        by_category={row[0]: Decimal(str(row[1] or 0)) for row in category_rows})
