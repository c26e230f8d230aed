"""Passport routers - link creation (admin/partner) and public submission"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import require_admin
from ...database import get_db
from ...models import User
from ..affiliate.repository import AffiliateRepository
from ..affiliate.scope import PartnerApiError, PartnerContext, require_partner_context
from .schemas import PassportLinkRequest, PassportLinkResponse, PassportSubmitRequest
from .service import PassportService

admin_router = APIRouter(prefix="/api/admin/passport-request", tags=["Passport"])
partner_router = APIRouter(prefix="/api/partner/passport-requests", tags=["Passport"])
public_router = APIRouter(prefix="/api/passport", tags=["Passport"])


def get_passport_service(db: Session = Depends(get_db)) -> PassportService:
    return PassportService(db)


@admin_router.post("/link", response_model=PassportLinkResponse, status_code=201)
async def create_passport_link(
    data: PassportLinkRequest,
    admin: User = Depends(require_admin),
    service: PassportService = Depends(get_passport_service),
):
    submission, link = service.create_link(data, admin)
    email_sent = await service.send_link_email(submission, link) if data.send_email else False
    return PassportLinkResponse(
        submission_id=submission.id,
        token=submission.token,
        link=link,
        expires_at=submission.token_expires_at,
        email_sent=email_sent,
    )


@partner_router.post("/link", response_model=PassportLinkResponse, status_code=201)
async def create_partner_passport_link(
    data: PassportLinkRequest,
    ctx: PartnerContext = Depends(require_partner_context),
    db: Session = Depends(get_db),
    service: PassportService = Depends(get_passport_service),
):
    if data.lead_id is None:
        raise PartnerApiError("lead_id is required", 400)
    lead = AffiliateRepository.get_lead(db, ctx, data.lead_id)
    if not lead:
        raise PartnerApiError("Customer not found", 404)

    submission, link = service.create_link(data.model_copy(update={"user_id": None}), ctx.user, lead=lead)
    email_sent = await service.send_link_email(submission, link) if data.send_email else False
    return PassportLinkResponse(
        submission_id=submission.id,
        token=submission.token,
        link=link,
        expires_at=submission.token_expires_at,
        email_sent=email_sent,
    )


@public_router.get("/{token}")
async def get_passport_submission(token: str, service: PassportService = Depends(get_passport_service)):
    return service.get_submission(token)


@public_router.post("/{token}/submit")
async def submit_passport(
    token: str,
    data: PassportSubmitRequest,
    service: PassportService = Depends(get_passport_service),
):
    return service.submit(token, data)
