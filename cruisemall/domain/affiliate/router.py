"""Affiliate routers - HQ administration and partner customer endpoints"""

import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ...auth import require_admin
from ...database import get_db
from ...models import AffiliateLead, User
from ...services.google_sheets import append_sale_to_spreadsheet
from .schemas import (
    AssignRequest,
    InteractionCreate,
    InteractionResponse,
    LeadCreate,
    LeadListResponse,
    LeadResponse,
    LeadUpdate,
    LedgerEntryResponse,
    MoveGroupRequest,
    ProfileCreate,
    ProfileResponse,
    ProfileUpdate,
    RelationCreate,
    RelationResponse,
    SaleCreate,
    SaleResponse,
)
from .scope import PartnerContext, require_partner_context, resolve_ownership
from .service import AffiliateAdminService, PartnerCustomerService

logger = logging.getLogger(__name__)

admin_router = APIRouter(prefix="/api/admin/affiliate", tags=["Affiliate Admin"])
partner_router = APIRouter(prefix="/api/partner/customers", tags=["Partner Customers"])
ledger_router = APIRouter(prefix="/api/partner/ledger", tags=["Partner Ledger"])
ownership_router = APIRouter(prefix="/api/admin/customers", tags=["Affiliate Admin"])


def get_admin_service(db: Session = Depends(get_db)) -> AffiliateAdminService:
    return AffiliateAdminService(db)


def get_customer_service(db: Session = Depends(get_db)) -> PartnerCustomerService:
    return PartnerCustomerService(db)


def to_lead_response(lead: AffiliateLead) -> LeadResponse:
    response = LeadResponse.model_validate(lead)
    response.ownership = resolve_ownership(lead)
    return response


# ============================================================================
# HQ: PROFILES & RELATIONS
# ============================================================================


@admin_router.get("/profiles", response_model=list[ProfileResponse])
async def list_profiles(
    type: Optional[str] = Query(None),
    _: User = Depends(require_admin),
    service: AffiliateAdminService = Depends(get_admin_service),
):
    return service.list_profiles(type)


@admin_router.post("/profiles", response_model=ProfileResponse, status_code=201)
async def create_profile(
    data: ProfileCreate,
    _: User = Depends(require_admin),
    service: AffiliateAdminService = Depends(get_admin_service),
):
    return service.create_profile(data)


@admin_router.get("/profiles/{profile_id}", response_model=ProfileResponse)
async def get_profile(
    profile_id: int,
    _: User = Depends(require_admin),
    service: AffiliateAdminService = Depends(get_admin_service),
):
    return service.get_profile(profile_id)


@admin_router.patch("/profiles/{profile_id}", response_model=ProfileResponse)
async def update_profile(
    profile_id: int,
    data: ProfileUpdate,
    _: User = Depends(require_admin),
    service: AffiliateAdminService = Depends(get_admin_service),
):
    return service.update_profile(profile_id, data)


@admin_router.delete("/profiles/{profile_id}")
async def terminate_profile(
    profile_id: int,
    _: User = Depends(require_admin),
    service: AffiliateAdminService = Depends(get_admin_service),
):
    return service.terminate_profile(profile_id)


@admin_router.post("/relations", response_model=RelationResponse, status_code=201)
async def connect_agent(
    data: RelationCreate,
    _: User = Depends(require_admin),
    service: AffiliateAdminService = Depends(get_admin_service),
):
    return service.connect(data)


@ownership_router.get("/ownership")
async def customer_ownership(
    user_ids: str = Query(..., description="Comma separated user ids"),
    _: User = Depends(require_admin),
    service: AffiliateAdminService = Depends(get_admin_service),
):
    try:
        ids = [int(part) for part in user_ids.split(",") if part.strip()]
    except ValueError as e:
        raise HTTPException(status_code=400, detail="user_ids must be integers") from e
    return {"ok": True, "ownership": service.ownership_for_users(ids)}


# ============================================================================
# PARTNER: CUSTOMERS
# ============================================================================


@partner_router.get("", response_model=LeadListResponse)
async def list_customers(
    status: Optional[str] = Query(None),
    q: Optional[str] = Query(None),
    group_id: Optional[int] = Query(None),
    page: int = Query(1),
    limit: int = Query(20),
    ctx: PartnerContext = Depends(require_partner_context),
    service: PartnerCustomerService = Depends(get_customer_service),
):
    leads, total = service.list_customers(ctx, status, q, group_id, page, limit)
    return LeadListResponse(
        customers=[to_lead_response(lead) for lead in leads],
        total=total,
        page=max(1, page),
        limit=min(max(1, limit), 100),
    )


@partner_router.post("", status_code=201)
async def create_customer(
    data: LeadCreate,
    ctx: PartnerContext = Depends(require_partner_context),
    service: PartnerCustomerService = Depends(get_customer_service),
):
    lead = service.create_customer(ctx, data)
    return {"ok": True, "customer": to_lead_response(lead)}


@partner_router.post("/assign")
async def assign_customers(
    data: AssignRequest,
    ctx: PartnerContext = Depends(require_partner_context),
    service: PartnerCustomerService = Depends(get_customer_service),
):
    return service.assign(ctx, data)


@partner_router.get("/{lead_id}")
async def get_customer(
    lead_id: int,
    ctx: PartnerContext = Depends(require_partner_context),
    service: PartnerCustomerService = Depends(get_customer_service),
):
    lead = service.get_customer(ctx, lead_id)
    interactions = sorted(lead.interactions, key=lambda i: (i.occurred_at is None, i.occurred_at), reverse=True)
    return {
        "ok": True,
        "customer": to_lead_response(lead),
        "interactions": [InteractionResponse.model_validate(i) for i in interactions],
        "sales": [SaleResponse.model_validate(s) for s in lead.sales],
    }


@partner_router.patch("/{lead_id}")
async def update_customer(
    lead_id: int,
    data: LeadUpdate,
    ctx: PartnerContext = Depends(require_partner_context),
    service: PartnerCustomerService = Depends(get_customer_service),
):
    lead = service.update_customer(ctx, lead_id, data)
    return {"ok": True, "customer": to_lead_response(lead)}


@partner_router.delete("/{lead_id}")
async def delete_customer(
    lead_id: int,
    ctx: PartnerContext = Depends(require_partner_context),
    service: PartnerCustomerService = Depends(get_customer_service),
):
    return service.delete_customer(ctx, lead_id)


@partner_router.post("/{lead_id}/interactions", status_code=201)
async def add_interaction(
    lead_id: int,
    data: InteractionCreate,
    ctx: PartnerContext = Depends(require_partner_context),
    service: PartnerCustomerService = Depends(get_customer_service),
):
    interaction = service.add_interaction(ctx, lead_id, data)
    return {"ok": True, "interaction": InteractionResponse.model_validate(interaction)}


@partner_router.post("/{lead_id}/move-group")
async def move_group(
    lead_id: int,
    data: MoveGroupRequest,
    ctx: PartnerContext = Depends(require_partner_context),
    service: PartnerCustomerService = Depends(get_customer_service),
):
    result = service.move_group(ctx, lead_id, data.group_id)
    return {
        "ok": True,
        "customer": to_lead_response(result["lead"]),
        "scheduled": result["scheduled"],
        "funnel_error": result["funnel_error"],
    }


# ============================================================================
# PARTNER: SALES & LEDGER
# ============================================================================


@partner_router.post("/{lead_id}/sales", status_code=201)
async def record_sale(
    lead_id: int,
    data: SaleCreate,
    ctx: PartnerContext = Depends(require_partner_context),
    service: PartnerCustomerService = Depends(get_customer_service),
):
    sale = service.record_sale(ctx, lead_id, data)
    return {"ok": True, "sale": SaleResponse.model_validate(sale)}


@partner_router.post("/{lead_id}/sales/{sale_id}/confirm")
async def confirm_sale(
    lead_id: int,
    sale_id: int,
    background_tasks: BackgroundTasks,
    ctx: PartnerContext = Depends(require_partner_context),
    service: PartnerCustomerService = Depends(get_customer_service),
):
    sale = service.confirm_sale(ctx, lead_id, sale_id)
    sale_data = SaleResponse.model_validate(sale)
    background_tasks.add_task(append_sale_to_spreadsheet, sale_data.model_dump(mode="json"))
    return {"ok": True, "sale": sale_data}


@ledger_router.get("")
async def list_ledger(
    ctx: PartnerContext = Depends(require_partner_context),
    service: PartnerCustomerService = Depends(get_customer_service),
):
    result = service.ledger(ctx)
    return {
        "ok": True,
        "entries": [LedgerEntryResponse.model_validate(e) for e in result["entries"]],
        "total_amount": result["total_amount"],
        "total_withholding": result["total_withholding"],
        "total_net": result["total_net"],
    }


__all__ = ["admin_router", "partner_router", "ledger_router", "ownership_router"]
