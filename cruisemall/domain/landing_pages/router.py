"""Landing page routers - partner management and public pages"""

import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from ...bot_detection import is_bot, is_scraper_tool
from ...database import get_db
from ...rate_limiter import create_rate_limiter
from ..affiliate.scope import PartnerApiError, PartnerContext, require_partner_context
from .schemas import (
    LandingPageCreate,
    LandingPageResponse,
    LandingPageUpdate,
    LandingRegisterRequest,
    PublicLandingResponse,
)
from .service import LandingPageService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/partner/landing-pages", tags=["Landing Pages"])
public_router = APIRouter(prefix="/api/public/landing", tags=["Public Landing"])

register_rate_limiter = create_rate_limiter(limit=10, window_seconds=600, key_prefix="landing_register")


def get_landing_service(db: Session = Depends(get_db)) -> LandingPageService:
    return LandingPageService(db)


# ============================================================================
# PARTNER
# ============================================================================


@router.get("")
async def list_pages(
    ctx: PartnerContext = Depends(require_partner_context),
    service: LandingPageService = Depends(get_landing_service),
):
    return {"ok": True, "pages": [LandingPageResponse.model_validate(p) for p in service.list_pages(ctx)]}


@router.post("", status_code=201)
async def create_page(
    data: LandingPageCreate,
    ctx: PartnerContext = Depends(require_partner_context),
    service: LandingPageService = Depends(get_landing_service),
):
    return {"ok": True, "page": LandingPageResponse.model_validate(service.create_page(ctx, data))}


@router.get("/{page_id}")
async def get_page(
    page_id: int,
    ctx: PartnerContext = Depends(require_partner_context),
    service: LandingPageService = Depends(get_landing_service),
):
    return {"ok": True, "page": LandingPageResponse.model_validate(service.get_page(ctx, page_id))}


@router.put("/{page_id}")
async def update_page(
    page_id: int,
    data: LandingPageUpdate,
    ctx: PartnerContext = Depends(require_partner_context),
    service: LandingPageService = Depends(get_landing_service),
):
    return {"ok": True, "page": LandingPageResponse.model_validate(service.update_page(ctx, page_id, data))}


@router.delete("/{page_id}")
async def delete_page(
    page_id: int,
    ctx: PartnerContext = Depends(require_partner_context),
    service: LandingPageService = Depends(get_landing_service),
):
    return service.delete_page(ctx, page_id)


@router.get("/{page_id}/stats")
async def page_stats(
    page_id: int,
    ctx: PartnerContext = Depends(require_partner_context),
    service: LandingPageService = Depends(get_landing_service),
):
    return service.page_stats(ctx, page_id)


# ============================================================================
# PUBLIC
# ============================================================================


@public_router.get("/{slug}")
async def view_page(slug: str, service: LandingPageService = Depends(get_landing_service)):
    page = service.view_page(slug)
    profile = page.profile
    return {
        "ok": True,
        "page": PublicLandingResponse(
            slug=page.slug,
            title=page.title,
            html_content=page.html_content,
            partner_name=profile.display_name or profile.nickname,
        ),
    }


@public_router.post("/{slug}/register", status_code=201, dependencies=[Depends(register_rate_limiter)])
async def register(
    slug: str,
    data: LandingRegisterRequest,
    request: Request,
    service: LandingPageService = Depends(get_landing_service),
):
    user_agent = request.headers.get("user-agent")
    if is_bot(user_agent) or is_scraper_tool(user_agent):
        logger.warning(f"🤖 Rejected landing registration from bot: {(user_agent or '')[:80]}")
        raise PartnerApiError("Access denied", 403)
    return service.register(slug, data)
