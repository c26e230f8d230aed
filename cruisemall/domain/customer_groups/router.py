"""Customer group router - partner-scoped group management"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...database import get_db
from ..affiliate.scope import PartnerContext, require_partner_context
from .schemas import CustomerGroupCreate, CustomerGroupUpdate
from .service import CustomerGroupService

router = APIRouter(prefix="/api/partner/customer-groups", tags=["Customer Groups"])


def get_group_service(db: Session = Depends(get_db)) -> CustomerGroupService:
    return CustomerGroupService(db)


@router.get("")
async def list_groups(
    ctx: PartnerContext = Depends(require_partner_context),
    service: CustomerGroupService = Depends(get_group_service),
):
    return {"ok": True, "groups": service.list_groups(ctx)}


@router.post("", status_code=201)
async def create_group(
    data: CustomerGroupCreate,
    ctx: PartnerContext = Depends(require_partner_context),
    service: CustomerGroupService = Depends(get_group_service),
):
    return {"ok": True, "group": service.create_group(ctx, data)}


@router.get("/{group_id}")
async def get_group(
    group_id: str,
    ctx: PartnerContext = Depends(require_partner_context),
    service: CustomerGroupService = Depends(get_group_service),
):
    return {"ok": True, "group": service.get_group(ctx, group_id)}


@router.put("/{group_id}")
async def update_group(
    group_id: str,
    data: CustomerGroupUpdate,
    ctx: PartnerContext = Depends(require_partner_context),
    service: CustomerGroupService = Depends(get_group_service),
):
    return {"ok": True, "group": service.update_group(ctx, group_id, data)}


@router.delete("/{group_id}")
async def delete_group(
    group_id: str,
    ctx: PartnerContext = Depends(require_partner_context),
    service: CustomerGroupService = Depends(get_group_service),
):
    return service.delete_group(ctx, group_id)
