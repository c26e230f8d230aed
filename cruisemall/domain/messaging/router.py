"""Messaging router - partner funnels, scheduled messages and SMS settings"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...database import get_db
from ..affiliate.scope import PartnerContext, require_partner_context
from .schemas import (
    FunnelMessageCreate,
    FunnelMessageResponse,
    FunnelMessageUpdate,
    ScheduledMessageCreate,
    ScheduledMessageResponse,
    ScheduledMessageUpdate,
    SmsConfigUpdate,
)
from .service import MessagingService

funnel_router = APIRouter(prefix="/api/partner/funnel-messages", tags=["Funnel Messages"])
scheduled_router = APIRouter(prefix="/api/partner/scheduled-messages", tags=["Scheduled Messages"])
sms_config_router = APIRouter(prefix="/api/partner/sms-config", tags=["SMS Settings"])


def get_messaging_service(db: Session = Depends(get_db)) -> MessagingService:
    return MessagingService(db)


# ============================================================================
# FUNNEL MESSAGES
# ============================================================================


@funnel_router.get("")
async def list_funnel_messages(
    type: Optional[str] = Query(None),
    ctx: PartnerContext = Depends(require_partner_context),
    service: MessagingService = Depends(get_messaging_service),
):
    funnels = service.list_funnels(ctx, type)
    return {"ok": True, "messages": [FunnelMessageResponse.model_validate(f) for f in funnels]}


@funnel_router.post("", status_code=201)
async def create_funnel_message(
    data: FunnelMessageCreate,
    ctx: PartnerContext = Depends(require_partner_context),
    service: MessagingService = Depends(get_messaging_service),
):
    funnel = service.create_funnel(ctx, data)
    return {"ok": True, "message": FunnelMessageResponse.model_validate(funnel)}


@funnel_router.get("/{funnel_id}")
async def get_funnel_message(
    funnel_id: int,
    ctx: PartnerContext = Depends(require_partner_context),
    service: MessagingService = Depends(get_messaging_service),
):
    return {"ok": True, "message": FunnelMessageResponse.model_validate(service.get_funnel(ctx, funnel_id))}


@funnel_router.put("/{funnel_id}")
async def update_funnel_message(
    funnel_id: int,
    data: FunnelMessageUpdate,
    ctx: PartnerContext = Depends(require_partner_context),
    service: MessagingService = Depends(get_messaging_service),
):
    funnel = service.update_funnel(ctx, funnel_id, data)
    return {"ok": True, "message": FunnelMessageResponse.model_validate(funnel)}


@funnel_router.delete("/{funnel_id}")
async def delete_funnel_message(
    funnel_id: int,
    ctx: PartnerContext = Depends(require_partner_context),
    service: MessagingService = Depends(get_messaging_service),
):
    return service.delete_funnel(ctx, funnel_id)


@funnel_router.post("/{funnel_id}/clone", status_code=201)
async def clone_funnel_message(
    funnel_id: int,
    ctx: PartnerContext = Depends(require_partner_context),
    service: MessagingService = Depends(get_messaging_service),
):
    clone = service.clone_funnel(ctx, funnel_id)
    return {"ok": True, "message": FunnelMessageResponse.model_validate(clone)}


# ============================================================================
# SCHEDULED MESSAGES
# ============================================================================


@scheduled_router.get("")
async def list_scheduled_messages(
    ctx: PartnerContext = Depends(require_partner_context),
    service: MessagingService = Depends(get_messaging_service),
):
    messages = service.list_scheduled(ctx)
    return {"ok": True, "messages": [ScheduledMessageResponse.model_validate(m) for m in messages]}


@scheduled_router.post("", status_code=201)
async def create_scheduled_message(
    data: ScheduledMessageCreate,
    ctx: PartnerContext = Depends(require_partner_context),
    service: MessagingService = Depends(get_messaging_service),
):
    message = service.create_scheduled(ctx, data)
    return {"ok": True, "message": ScheduledMessageResponse.model_validate(message)}


@scheduled_router.get("/{message_id}")
async def get_scheduled_message(
    message_id: int,
    ctx: PartnerContext = Depends(require_partner_context),
    service: MessagingService = Depends(get_messaging_service),
):
    message = service.get_scheduled(ctx, message_id)
    return {"ok": True, "message": ScheduledMessageResponse.model_validate(message)}


@scheduled_router.put("/{message_id}")
async def update_scheduled_message(
    message_id: int,
    data: ScheduledMessageUpdate,
    ctx: PartnerContext = Depends(require_partner_context),
    service: MessagingService = Depends(get_messaging_service),
):
    message = service.update_scheduled(ctx, message_id, data)
    return {"ok": True, "message": ScheduledMessageResponse.model_validate(message)}


@scheduled_router.delete("/{message_id}")
async def delete_scheduled_message(
    message_id: int,
    ctx: PartnerContext = Depends(require_partner_context),
    service: MessagingService = Depends(get_messaging_service),
):
    return service.delete_scheduled(ctx, message_id)


# ============================================================================
# SMS SETTINGS
# ============================================================================


@sms_config_router.get("")
async def get_sms_config(
    ctx: PartnerContext = Depends(require_partner_context),
    service: MessagingService = Depends(get_messaging_service),
):
    return {"ok": True, "config": service.get_sms_config(ctx)}


@sms_config_router.put("")
async def save_sms_config(
    data: SmsConfigUpdate,
    ctx: PartnerContext = Depends(require_partner_context),
    service: MessagingService = Depends(get_messaging_service),
):
    return {"ok": True, "config": service.save_sms_config(ctx, data)}
