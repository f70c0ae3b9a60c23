"""库存地点API"""

from typing import Any, List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, update, and_, func
from sqlalchemy.ext.asyncio import AsyncSession

from retailhub.core.constants import ORG_ADMIN_ROLES, AuditAction
from retailhub.core.deps import get_db, get_current_member, require_roles
from retailhub.models.location import InventoryLocation
from retailhub.models.organization import Member
from retailhub.models.stock_batch import StockBatch
from retailhub.schemas.inventory import LocationCreate, LocationUpdate, LocationResponse
from retailhub.api.api_v1.endpoints.audit_logs import create_audit_log

router = APIRouter()


def build_location_response(loc: InventoryLocation) -> LocationResponse:
    return LocationResponse(
        id=loc.id,
        organization_id=loc.organization_id,
        name=loc.name,
        description=loc.description,
        location_type=loc.location_type,
        address=loc.address,
        is_default=loc.is_default,
        is_active=loc.is_active,
        manager_id=loc.manager_id,
        manager_name=loc.manager.display_name if loc.manager else None,
        created_at=loc.created_at)


async def load_location(db: AsyncSession, organization_id: int, location_id: int,
                        active_only: bool = False) -> InventoryLocation:
    """加载组织内的地点"""
    result = await db.execute(
        select(InventoryLocation)
        .where(InventoryLocation.id == location_id, InventoryLocation.organization_id == organization_id)
        .execution_options(populate_existing=True)
    )
    loc = result.scalar_one_or_none()
    if not loc:
        raise HTTPException(status_code=404, detail="地点不存在")
    if active_only and not loc.is_active:
        raise HTTPException(status_code=400, detail=f"地点 {loc.name} 已停用")
    return loc


async def _check_manager(db: AsyncSession, organization_id: int, manager_id: Optional[int]):
    if manager_id is None:
        return
    m = await db.get(Member, manager_id)
    if not m or m.organization_id != organization_id:
        raise HTTPException(status_code=400, detail="负责经理不是本组织成员")


async def _check_name_unique(db: AsyncSession, organization_id: int, name: str, exclude_id: Optional[int] = None):
    conditions = [InventoryLocation.organization_id == organization_id, InventoryLocation.name == name]
    if exclude_id:
        conditions.append(InventoryLocation.id != exclude_id)
    if (await db.execute(select(InventoryLocation.id).where(and_(*conditions)))).first():
        raise HTTPException(status_code=409, detail=f"地点名称 {name} 已存在")


async def _clear_default(db: AsyncSession, organization_id: int):
    await db.execute(
        update(InventoryLocation)
        .where(InventoryLocation.organization_id == organization_id)
        .values(is_default=False)
    )


@router.get("/", response_model=List[LocationResponse])
async def list_locations(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(get_current_member),
    is_active: Optional[bool] = Query(None)) -> Any:
    """获取地点列表"""
    query = select(InventoryLocation).where(InventoryLocation.organization_id == member.organization_id)
    if is_active is not None:
        query = query.where(InventoryLocation.is_active == is_active)
    result = await db.execute(query.order_by(InventoryLocation.is_default.desc(), InventoryLocation.name))
    return [build_location_response(loc) for loc in result.scalars().all()]


@router.get("/{location_id}", response_model=LocationResponse)
async def get_location(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(get_current_member),
    location_id: int) -> Any:
    """获取地点详情"""
    return build_location_response(await load_location(db, member.organization_id, location_id))


@router.post("/", response_model=LocationResponse)
async def create_location(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(require_roles(*ORG_ADMIN_ROLES)),
    location_in: LocationCreate) -> Any:
    """创建地点"""
    org_id = member.organization_id
    await _check_name_unique(db, org_id, location_in.name)
    await _check_manager(db, org_id, location_in.manager_id)
    if location_in.is_default:
        await _clear_default(db, org_id)

    data = location_in.model_dump()
    data["location_type"] = location_in.location_type.value
    loc = InventoryLocation(organization_id=org_id, **data)
    db.add(loc)
    await db.flush()

    await create_audit_log(
        db, org_id, member.id, AuditAction.CREATE.value, "location",
        resource_id=loc.id, resource_name=loc.name, description=f"创建地点 {loc.name}"
    )
    await db.commit()
    return build_location_response(await load_location(db, org_id, loc.id))


@router.put("/{location_id}", response_model=LocationResponse)
async def update_location(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(require_roles(*ORG_ADMIN_ROLES)),
    location_id: int,
    location_in: LocationUpdate) -> Any:
    """更新地点"""
    org_id = member.organization_id
    loc = await load_location(db, org_id, location_id)

    update_data = location_in.model_dump(exclude_unset=True)
    if update_data.get("name") and update_data["name"] != loc.name:
        await _check_name_unique(db, org_id, update_data["name"], exclude_id=location_id)
    if "manager_id" in update_data:
        await _check_manager(db, org_id, update_data["manager_id"])
    if update_data.get("location_type") is not None:
        update_data["location_type"] = update_data["location_type"].value
    if update_data.get("is_default"):
        await _clear_default(db, org_id)

    for field, value in update_data.items():
        setattr(loc, field, value)

    await create_audit_log(
        db, org_id, member.id, AuditAction.UPDATE.value, "location",
        resource_id=loc.id, resource_name=loc.name, description=f"更新地点 {loc.name}"
    )
    await db.commit()
    return build_location_response(await load_location(db, org_id, location_id))


@router.delete("/{location_id}")
async def deactivate_location(
    *,
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(require_roles(*ORG_ADMIN_ROLES)),
    location_id: int) -> Any:
    """停用地点（仍有库存的地点需先调拨清空）"""
    org_id = member.organization_id
    loc = await load_location(db, org_id, location_id)

    on_hand = (await db.execute(
        select(func.sum(StockBatch.current_quantity))
        .where(StockBatch.organization_id == org_id, StockBatch.location_id == location_id)
    )).scalar() or 0
    if on_hand > 0:
        raise HTTPException(status_code=400, detail=f"地点 {loc.name} 仍有库存 {on_hand}，请先调拨")

    loc.is_active = False
    loc.is_default = False
    await create_audit_log(
        db, org_id, member.id, AuditAction.DELETE.value, "location",
        resource_id=loc.id, resource_name=loc.name, description=f"停用地点 {loc.name}"
    )
    await db.commit()
    return {"message": "地点已停用"}
