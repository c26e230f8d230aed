"""Landing page service - partner pages and public registration"""

import logging
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...models import (
    AffiliateProfile,
    LandingPage,
    LandingPageRegistration,
    PartnerCustomerGroup,
)
from ...security_utils import sanitize_html
from ...services.funnel_scheduler import cancel_pending_funnel_messages, schedule_partner_funnel_messages
from ...shared.validators import mask_phone_for_log
from ..affiliate.repository import AffiliateRepository
from ..affiliate.scope import (
    PartnerApiError,
    PartnerContext,
    apply_group_scope,
    get_team_agent_ids,
    lead_owner_fields,
)
from .schemas import LandingPageCreate, LandingPageUpdate, LandingRegisterRequest

logger = logging.getLogger(__name__)


class LandingPageService:
    def __init__(self, db: Session):
        self.db = db

    def _scoped(self, ctx: PartnerContext):
        query = self.db.query(LandingPage)
        if ctx.is_hq:
            return query
        return query.filter(LandingPage.profile_id.in_([ctx.profile.id] + list(ctx.team_agent_ids)))

    def _check_group(self, ctx: PartnerContext, group_id: Optional[int]):
        if group_id is None:
            return
        exists = (
            apply_group_scope(self.db.query(PartnerCustomerGroup.id), ctx)
            .filter(PartnerCustomerGroup.id == group_id)
            .first()
        )
        if not exists:
            raise PartnerApiError("Group not found", 404)

    def _commit(self):
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise PartnerApiError("Slug already in use", 409) from e

    # ------------------------------------------------------------------ partner

    def list_pages(self, ctx: PartnerContext) -> list[LandingPage]:
        return self._scoped(ctx).order_by(LandingPage.created_at.desc(), LandingPage.id.desc()).all()

    def get_page(self, ctx: PartnerContext, page_id: int) -> LandingPage:
        page = self._scoped(ctx).filter(LandingPage.id == page_id).first()
        if not page:
            raise PartnerApiError("Landing page not found", 404)
        return page

    def create_page(self, ctx: PartnerContext, data: LandingPageCreate) -> LandingPage:
        self._check_group(ctx, data.group_id)
        if self.db.query(LandingPage.id).filter(LandingPage.slug == data.slug).first():
            raise PartnerApiError("Slug already in use", 409)

        page = LandingPage(
            profile_id=ctx.profile.id,
            slug=data.slug,
            title=data.title,
            html_content=sanitize_html(data.html_content) if data.html_content else None,
            group_id=data.group_id,
            is_active=data.is_active,
        )
        self.db.add(page)
        self._commit()
        self.db.refresh(page)
        logger.info(f"✅ Landing page '{page.slug}' created by profile {ctx.profile.id}")
        return page

    def update_page(self, ctx: PartnerContext, page_id: int, data: LandingPageUpdate) -> LandingPage:
        page = self.get_page(ctx, page_id)
        updates = data.model_dump(exclude_unset=True)
        if "group_id" in updates:
            self._check_group(ctx, updates["group_id"])
        if updates.get("html_content"):
            updates["html_content"] = sanitize_html(updates["html_content"])
        if "title" in updates and not (updates["title"] or "").strip():
            raise PartnerApiError("Title is required", 400)
        if "slug" in updates and updates["slug"] is None:
            updates.pop("slug")

        for key, value in updates.items():
            setattr(page, key, value)
        self._commit()
        self.db.refresh(page)
        return page

    def delete_page(self, ctx: PartnerContext, page_id: int) -> dict:
        page = self.get_page(ctx, page_id)
        self.db.delete(page)
        self.db.commit()
        return {"ok": True}

    def page_stats(self, ctx: PartnerContext, page_id: int) -> dict:
        page = self.get_page(ctx, page_id)
        registrations = (
            self.db.query(func.count(LandingPageRegistration.id))
            .filter(LandingPageRegistration.landing_page_id == page.id)
            .scalar()
            or 0
        )
        conversion = round(registrations / page.view_count * 100, 2) if page.view_count else 0.0
        latest = (
            self.db.query(LandingPageRegistration)
            .filter(LandingPageRegistration.landing_page_id == page.id)
            .order_by(LandingPageRegistration.created_at.desc(), LandingPageRegistration.id.desc())
            .limit(10)
            .all()
        )
        return {
            "ok": True,
            "page_id": page.id,
            "view_count": page.view_count,
            "registrations": registrations,
            "conversion_rate": conversion,
            "recent": [
                {"id": r.id, "name": r.name, "phone": mask_phone_for_log(r.phone), "created_at": r.created_at}
                for r in latest
            ],
        }

    # ------------------------------------------------------------------- public

    def _public_page(self, slug: str) -> LandingPage:
        page = (
            self.db.query(LandingPage)
            .join(AffiliateProfile, AffiliateProfile.id == LandingPage.profile_id)
            .filter(
                LandingPage.slug == slug.lower(),
                LandingPage.is_active.is_(True),
                AffiliateProfile.status == "ACTIVE",
            )
            .first()
        )
        if not page:
            raise PartnerApiError("Page not found", 404)
        return page

    def view_page(self, slug: str) -> LandingPage:
        page = self._public_page(slug)
        page.view_count = (page.view_count or 0) + 1
        self.db.commit()
        self.db.refresh(page)
        return page

    def register(self, slug: str, data: LandingRegisterRequest) -> dict:
        page = self._public_page(slug)
        profile = page.profile
        owner_ctx = PartnerContext(profile.user, profile, get_team_agent_ids(self.db, profile))
        repo = AffiliateRepository()

        lead = repo.find_lead_by_phone(self.db, owner_ctx, data.phone)
        reused = lead is not None
        if lead:
            if data.email and not lead.customer_email:
                lead.customer_email = data.email
        else:
            lead = repo.create_lead(
                self.db,
                customer_name=data.name,
                customer_phone=data.phone,
                customer_email=data.email,
                status="NEW",
                source="landing-page",
                metadata_json={"landing_page_id": page.id, "landing_slug": page.slug},
                **lead_owner_fields(self.db, profile),
            )

        registration = LandingPageRegistration(
            landing_page_id=page.id,
            lead_id=lead.id,
            name=data.name,
            phone=data.phone,
            email=data.email,
        )
        self.db.add(registration)

        scheduled = 0
        if page.group_id and lead.group_id != page.group_id:
            if reused:
                cancel_pending_funnel_messages(self.db, lead.id)
            lead.group_id = page.group_id
            result = schedule_partner_funnel_messages(self.db, lead.id, page.group_id, profile.id, profile.user_id)
            scheduled = result["scheduled"]

        self.db.commit()
        logger.info(
            f"📝 Landing registration on '{page.slug}' from {mask_phone_for_log(data.phone)} "
            f"(lead {lead.id}, reused={reused}, funnels={scheduled})"
        )
        return {"ok": True, "registration_id": registration.id, "lead_id": lead.id}

