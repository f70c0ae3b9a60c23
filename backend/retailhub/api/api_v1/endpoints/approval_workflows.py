"""
费用审批流API
一个审批流由若干步骤组成，每个步骤有条件（何时适用）和动作（谁来审批）
组织同一时间只有一个生效的审批流
"""

from typing import Any, Dict, List, Optional
from decimal import Decimal
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, update, func, and_
from sqlalchemy.ext.asyncio import AsyncSession

from retailhub.core.constants import (
    ORG_ADMIN_ROLES, AuditAction, ApprovalActionType, ConditionType, MemberRole
)
from retailhub.core.deps import get_db, get_current_member, get_current_organization, require_roles
from retailhub.core.logging_config import get_logger
from retailhub.models.approval_workflow import (
    ApprovalWorkflow, ApprovalWorkflowStep, ApprovalStepCondition, ApprovalStepAction
)
from retailhub.models.expense import Expense, ExpenseCategory
from retailhub.models.location import InventoryLocation
from retailhub.models.organization import Member, Organization
from retailhub.schemas.approval_workflow import (
    StepIn, ConditionIn, ActionIn, WorkflowCreate, WorkflowReplace, WorkflowInfoUpdate,
    ActiveWorkflowSet, TemplateApply, WorkflowResponse, WorkflowListResponse, StepResponse,
    WorkflowTemplateInfo
)
from retailhub.api.api_v1.endpoints.audit_logs import create_audit_log

router = APIRouter()
logger = get_logger(__name__)


# ===== 模板 =====

WORKFLOW_TEMPLATES: Dict[str, Dict[str, Any]] = {
    "low_value": {
        "name": "小额费用审批",
        "description": "100 以内的费用由经理审批",
        "requires_location": False,
    },
    "tiered": {
        "name": "分级审批",
        "description": "100-1000 由经理审批，1000 以上由管理员审批",
        "requires_location": False,
    },
    "branch_office": {
        "name": "分店审批",
        "description": "指定地点的费用由该地点负责经理审批",
        "requires_location": True,
    },
}


def template_steps(key: str, location_id: Optional[int] = None) -> List[StepIn]:
    """生成模板的步骤定义"""
    if key == "low_value":
        return [StepIn(
            step_number=1, name="经理审批",
            conditions=[ConditionIn(condition_type=ConditionType.AMOUNT_RANGE, max_amount=Decimal("100"))],
            actions=[ActionIn(action_type=ApprovalActionType.ROLE, approver_role=MemberRole.MANAGER)])]
    if key == "tiered":
        return [
            StepIn(
                step_number=1, name="经理审批",
                conditions=[ConditionIn(condition_type=ConditionType.AMOUNT_RANGE,
                                        min_amount=Decimal("100"), max_amount=Decimal("1000"))],
                actions=[ActionIn(action_type=ApprovalActionType.ROLE, approver_role=MemberRole.MANAGER)]),
            StepIn(
                step_number=2, name="管理员审批",
                conditions=[ConditionIn(condition_type=ConditionType.AMOUNT_RANGE, min_amount=Decimal("1000"))],
                actions=[ActionIn(action_type=ApprovalActionType.ROLE, approver_role=MemberRole.ADMIN)]),
        ]
    if key == "branch_office":
        return [StepIn(
            step_number=1, name="地点经理审批",
            conditions=[ConditionIn(condition_type=ConditionType.LOCATION, location_id=location_id)],
            actions=[ActionIn(action_type=ApprovalActionType.SUBMITTER_MANAGER)])]
    raise HTTPException(status_code=404, detail=f"模板 {key} 不存在")


# ===== 辅助函数 =====

def build_workflow_response(wf: ApprovalWorkflow, org: Organization) -> WorkflowResponse:
    return WorkflowResponse(
        id=wf.id,
        organization_id=wf.organization_id,
        name=wf.name,
        description=wf.description,
        is_active=wf.is_active,
        is_org_active=org.active_expense_workflow_id == wf.id,
        steps=[StepResponse.model_validate(s) for s in sorted(wf.steps, key=lambda s: s.step_number)],
        created_at=wf.created_at)


async def load_workflow(db: AsyncSession, organization_id: int, workflow_id: int) -> ApprovalWorkflow:
    result = await db.execute(
        select(ApprovalWorkflow)
        .where(ApprovalWorkflow.id == workflow_id, ApprovalWorkflow.organization_id == organization_id)
        .execution_options(populate_existing=True)
    )
    wf = result.scalar_one_or_none()
    if not wf:
        raise HTTPException(status_code=404, detail="审批流不存在")
    return wf


async def _check_name_unique(db: AsyncSession, organization_id: int, name: str, exclude_id: Optional[int] = None):
    conditions = [ApprovalWorkflow.organization_id == organization_id, ApprovalWorkflow.name == name]
    if exclude_id:
        conditions.append(ApprovalWorkflow.id != exclude_id)
    if (await db.execute(select(ApprovalWorkflow.id).where(and_(*conditions)))).first():
        raise HTTPException(status_code=409, detail=f"审批流名称 {name} 已存在")


async def _validate_references(db: AsyncSession, organization_id: int, steps: List[StepIn]):
    """条件和动作引用的分类、地点、成员必须属于本组织"""
    for step in steps:
        for c in step.conditions:
            if c.expense_category_id is not None:
                cat = await db.get(ExpenseCategory, c.expense_category_id)
                if not cat or cat.organization_id != organization_id:
                    raise HTTPException(status_code=400, detail=f"步骤 {step.step_number}：费用分类 {c.expense_category_id} 不存在")
            if c.location_id is not None:
                loc = await db.get(InventoryLocation, c.location_id)
                if not loc or loc.organization_id != organization_id:
                    raise HTTPException(status_code=400, detail=f"步骤 {step.step_number}：地点 {c.location_id} 不存在")
        for a in step.actions:
            if a.specific_member_id is not None:
                m = await db.get(Member, a.specific_member_id)
                if not m or m.organization_id != organization_id:
                    raise HTTPException(status_code=400, detail=f"步骤 {step.step_number}：成员 {a.specific_member_id} 不是本组织成员")


def _build_steps(steps: List[StepIn]) -> List[ApprovalWorkflowStep]:
    return [
        ApprovalWorkflowStep(
            step_number=s.step_number,
            name=s.name,
            description=s.description,
            all_conditions_must_match=s.all_conditions_must_match,
            conditions=[
                ApprovalStepCondition(
                    condition_type=c.condition_type.value,
                    min_amount=c.min_amount,
                    max_amount=c.max_amount,
                    expense_category_id=c.expense_category_id,
                    location_id=c.location_id)
                for c in s.conditions
            ],
            actions=[
                ApprovalStepAction(
                    action_type=a.action_type.value,
                    approver_role=a.approver_role.value if a.approver_role else None,
                    specific_member_id=a.specific_member_id,
                    approval_mode=a.approval_mode.value)
                for a in s.actions
            ])
        for s in steps
    ]


async def _detach_expenses(db: AsyncSession, step_ids: List[int]):
    """删除步骤前，解除费用对这些步骤的引用"""
    if step_ids:
        await db.execute(
            update(Expense).where(Expense.workflow_step_id.in_(step_ids)).values(workflow_step_id=None)
        )


async def _create_workflow(db: AsyncSession, org: Organization, member: Member, name: str,
                           description: Optional[str], is_active: bool, steps: List[StepIn]) -> ApprovalWorkflow:
    await _check_name_unique(db, org.id, name)
    await _validate_references(db, org.id, steps)

    wf = ApprovalWorkflow(
        organization_id=org.id,
        name=name,
        description=description,
        is_active=is_active,
        steps=_build_steps(steps))
    db.add(wf)
    await db.flush()

    await create_audit_log(
        db, org.id, member.id, AuditAction.CREATE.value, "approval_workflow",
        resource_id=wf.id, resource_name=wf.name, description=f"创建审批流 {wf.name}（{len(steps)} 个步骤）"
    )
    return wf


# ===== 接口 =====

@router.get("/", response_model=WorkflowListResponse)
async def list_workflows(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(get_current_member),
    org: Organization = Depends(get_current_organization),
    is_active: Optional[bool] = Query(None)) -> Any:
    """获取审批流列表"""
    conditions = [ApprovalWorkflow.organization_id == org.id]
    if is_active is not None:
        conditions.append(ApprovalWorkflow.is_active == is_active)
    total = (await db.execute(
        select(func.count(ApprovalWorkflow.id)).where(and_(*conditions))
    )).scalar() or 0
    result = await db.execute(select(ApprovalWorkflow).where(and_(*conditions)).order_by(ApprovalWorkflow.name))
    return WorkflowListResponse(
        data=[build_workflow_response(wf, org) for wf in result.scalars().all()],
        total=total)


@router.get("/templates", response_model=List[WorkflowTemplateInfo])
async def list_templates(*, member: Member = Depends(get_current_member)) -> Any:
    """可用的审批流模板"""
    return [WorkflowTemplateInfo(key=key, **info) for key, info in WORKFLOW_TEMPLATES.items()]


@router.post("/templates/{template_key}", response_model=WorkflowResponse)
async def apply_template(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(require_roles(*ORG_ADMIN_ROLES)),
    org: Organization = Depends(get_current_organization),
    template_key: str,
    template_in: TemplateApply) -> Any:
    """按模板创建审批流（不会自动设为生效）"""
    info = WORKFLOW_TEMPLATES.get(template_key)
    if info is None:
        raise HTTPException(status_code=404, detail=f"模板 {template_key} 不存在")
    if info["requires_location"] and template_in.location_id is None:
        raise HTTPException(status_code=400, detail="该模板需要指定地点")

    steps = template_steps(template_key, template_in.location_id)
    wf = await _create_workflow(
        db, org, member,
        name=template_in.name or info["name"],
        description=info["description"],
        is_active=True,
        steps=steps)
    await db.commit()
    logger.info(f"组织 {org.id} 按模板 {template_key} 创建审批流 {wf.id}")
    return build_workflow_response(await load_workflow(db, org.id, wf.id), org)


@router.post("/active", response_model=Optional[WorkflowResponse])
async def set_active_workflow(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(require_roles(*ORG_ADMIN_ROLES)),
    org: Organization = Depends(get_current_organization),
    active_in: ActiveWorkflowSet) -> Any:
    """设置组织生效的审批流；workflow_id 为空表示不使用审批流"""
    old_id = org.active_expense_workflow_id
    wf = None
    if active_in.workflow_id is not None:
        wf = await load_workflow(db, org.id, active_in.workflow_id)
        if not wf.is_active:
            raise HTTPException(status_code=400, detail=f"审批流 {wf.name} 已停用，不能设为生效")

    org.active_expense_workflow_id = wf.id if wf else None
    await create_audit_log(
        db, org.id, member.id, AuditAction.UPDATE.value, "organization",
        resource_id=org.id, resource_name=org.name,
        description=f"设置生效审批流：{wf.name if wf else '无'}",
        old_value={"active_expense_workflow_id": old_id},
        new_value={"active_expense_workflow_id": org.active_expense_workflow_id}
    )
    await db.commit()
    if wf is None:
        return None
    return build_workflow_response(await load_workflow(db, org.id, wf.id), org)


@router.get("/{workflow_id}", response_model=WorkflowResponse)
async def get_workflow(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(get_current_member),
    org: Organization = Depends(get_current_organization),
    workflow_id: int) -> Any:
    """获取审批流详情（步骤按序号排列）"""
    return build_workflow_response(await load_workflow(db, org.id, workflow_id), org)


@router.post("/", response_model=WorkflowResponse)
async def create_workflow(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(require_roles(*ORG_ADMIN_ROLES)),
    org: Organization = Depends(get_current_organization),
    workflow_in: WorkflowCreate) -> Any:
    """创建审批流"""
    wf = await _create_workflow(
        db, org, member,
        name=workflow_in.name,
        description=workflow_in.description,
        is_active=workflow_in.is_active,
        steps=workflow_in.steps)
    await db.commit()
    return build_workflow_response(await load_workflow(db, org.id, wf.id), org)


@router.put("/{workflow_id}", response_model=WorkflowResponse)
async def replace_workflow(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(require_roles(*ORG_ADMIN_ROLES)),
    org: Organization = Depends(get_current_organization),
    workflow_id: int,
    workflow_in: WorkflowReplace) -> Any:
    """整体替换审批流：删除原有步骤后按新定义重建（同一事务）"""
    wf = await load_workflow(db, org.id, workflow_id)
    if workflow_in.name != wf.name:
        await _check_name_unique(db, org.id, workflow_in.name, exclude_id=workflow_id)
    await _validate_references(db, org.id, workflow_in.steps)
    if not workflow_in.is_active and org.active_expense_workflow_id == wf.id:
        raise HTTPException(status_code=400, detail="生效中的审批流不能停用，请先更换生效审批流")

    old_steps = len(wf.steps)
    await _detach_expenses(db, [s.id for s in wf.steps])
    wf.steps.clear()
    await db.flush()

    wf.name = workflow_in.name
    wf.description = workflow_in.description
    wf.is_active = workflow_in.is_active
    wf.steps.extend(_build_steps(workflow_in.steps))

    await create_audit_log(
        db, org.id, member.id, AuditAction.UPDATE.value, "approval_workflow",
        resource_id=wf.id, resource_name=wf.name,
        description=f"替换审批流 {wf.name} 的步骤",
        old_value={"steps": old_steps},
        new_value={"steps": len(workflow_in.steps)}
    )
    await db.commit()
    return build_workflow_response(await load_workflow(db, org.id, workflow_id), org)


@router.patch("/{workflow_id}", response_model=WorkflowResponse)
async def update_workflow_info(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(require_roles(*ORG_ADMIN_ROLES)),
    org: Organization = Depends(get_current_organization),
    workflow_id: int,
    info_in: WorkflowInfoUpdate) -> Any:
    """更新审批流名称、描述、启用状态"""
    wf = await load_workflow(db, org.id, workflow_id)
    update_data = info_in.model_dump(exclude_unset=True, exclude_none=True)
    if update_data.get("name") and update_data["name"] != wf.name:
        await _check_name_unique(db, org.id, update_data["name"], exclude_id=workflow_id)
    if update_data.get("is_active") is False and org.active_expense_workflow_id == wf.id:
        raise HTTPException(status_code=400, detail="生效中的审批流不能停用，请先更换生效审批流")

    for field, value in update_data.items():
        setattr(wf, field, value)

    await create_audit_log(
        db, org.id, member.id, AuditAction.UPDATE.value, "approval_workflow",
        resource_id=wf.id, resource_name=wf.name, description=f"更新审批流 {wf.name}"
    )
    await db.commit()
    return build_workflow_response(await load_workflow(db, org.id, workflow_id), org)


@router.delete("/{workflow_id}")
async def delete_workflow(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(require_roles(*ORG_ADMIN_ROLES)),
    org: Organization = Depends(get_current_organization),
    workflow_id: int) -> Any:
    """删除审批流（步骤、条件、动作级联删除；若为生效审批流则清除）"""
    wf = await load_workflow(db, org.id, workflow_id)
    if org.active_expense_workflow_id == wf.id:
        org.active_expense_workflow_id = None

    await _detach_expenses(db, [s.id for s in wf.steps])
    await create_audit_log(
        db, org.id, member.id, AuditAction.DELETE.value, "approval_workflow",
        resource_id=wf.id, resource_name=wf.name, description=f"删除审批流 {wf.name}"
    )
    await db.delete(wf)
    await db.commit()
    return {"message": "删除成功"}
