"""Affiliate service - Business logic for partner hierarchy, customers and sales"""

import logging
import secrets
import string
from datetime import datetime
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...models import (
    LEAD_STATUSES,
    PROFILE_BRANCH_MANAGER,
    PROFILE_HQ,
    PROFILE_SALES_AGENT,
    AffiliateLead,
    AffiliateProfile,
    AffiliateRelation,
    AffiliateSale,
    PartnerCustomerGroup,
    User,
)
from ...services.commission import sync_sale_commission_ledgers
from ...services.funnel_scheduler import cancel_pending_funnel_messages, schedule_partner_funnel_messages
from ...shared.validators import mask_phone_for_log, normalize_phone
from .ownership import get_affiliate_ownership_for_users
from .repository import AffiliateRepository
from .schemas import (
    AssignRequest,
    InteractionCreate,
    LeadCreate,
    LeadUpdate,
    ProfileCreate,
    ProfileUpdate,
    RelationCreate,
    SaleCreate,
)
from .scope import (
    PartnerApiError,
    PartnerContext,
    apply_group_scope,
    get_active_manager,
    lead_owner_fields,
)

logger = logging.getLogger(__name__)

CODE_PREFIXES = {PROFILE_HQ: "HQ", PROFILE_BRANCH_MANAGER: "BM", PROFILE_SALES_AGENT: "AG"}
CODE_ALPHABET = string.ascii_uppercase + string.digits


def generate_affiliate_code(profile_type: str) -> str:
    suffix = "".join(secrets.choice(CODE_ALPHABET) for _ in range(6))
    return f"{CODE_PREFIXES.get(profile_type, 'AF')}{suffix}"


class AffiliateAdminService:
    """HQ administration of partner profiles and the manager/agent hierarchy"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = AffiliateRepository()

    def list_profiles(self, profile_type: Optional[str] = None) -> list[AffiliateProfile]:
        return self.repo.list_profiles(self.db, profile_type)

    def get_profile(self, profile_id: int) -> AffiliateProfile:
        profile = self.repo.get_profile(self.db, profile_id)
        if not profile:
            raise HTTPException(status_code=404, detail="Profile not found")
        return profile

    def create_profile(self, data: ProfileCreate) -> AffiliateProfile:
        user = self.db.query(User).filter(User.id == data.user_id).first()
        if not user:
            raise HTTPException(status_code=404, detail="User not found")
        if self.repo.get_profile_by_user(self.db, user.id):
            raise HTTPException(status_code=409, detail="User already has an affiliate profile")

        code = (data.affiliate_code or "").strip().upper()
        if code:
            if self.repo.code_exists(self.db, code):
                raise HTTPException(status_code=409, detail="Affiliate code already in use")
        else:
            code = generate_affiliate_code(data.type)
            while self.repo.code_exists(self.db, code):
                code = generate_affiliate_code(data.type)

        manager = None
        if data.manager_id is not None:
            if data.type != PROFILE_SALES_AGENT:
                raise HTTPException(status_code=400, detail="Only sales agents can be attached to a manager")
            manager = self.repo.get_profile(self.db, data.manager_id)
            if not manager or manager.type != PROFILE_BRANCH_MANAGER:
                raise HTTPException(status_code=400, detail="manager_id must reference a branch manager")

        try:
            profile = self.repo.create_profile(
                self.db,
                user_id=user.id,
                type=data.type,
                affiliate_code=code,
                display_name=data.display_name or user.name,
                nickname=data.nickname,
                branch_label=data.branch_label,
                contact_phone=data.contact_phone or normalize_phone(user.phone),
                landing_slug=data.landing_slug,
                withholding_rate=data.withholding_rate if data.withholding_rate is not None else 3.3,
                status="ACTIVE",
            )
            if manager:
                self.repo.create_relation(self.db, manager.id, profile.id)
            if user.role not in ("admin",):
                user.role = "partner"
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise HTTPException(status_code=409, detail="Landing slug or code already in use") from e

        self.db.refresh(profile)
        logger.info(f"✅ Created {profile.type} profile {profile.id} ({profile.affiliate_code}) for user {user.id}")
        return profile

    def update_profile(self, profile_id: int, data: ProfileUpdate) -> AffiliateProfile:
        profile = self.get_profile(profile_id)
        for key, value in data.model_dump(exclude_unset=True).items():
            if value is not None:
                setattr(profile, key, value)
        if data.status == "TERMINATED":
            self.repo.deactivate_agent_relations(self.db, profile.id)
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise HTTPException(status_code=409, detail="Landing slug already in use") from e
        self.db.refresh(profile)
        return profile

    def terminate_profile(self, profile_id: int) -> dict:
        """Profiles are never hard-deleted; leads and ledgers keep pointing at them"""
        profile = self.get_profile(profile_id)
        profile.status = "TERMINATED"
        self.repo.deactivate_agent_relations(self.db, profile.id)
        self.db.commit()
        return {"ok": True, "message": "Profile terminated"}

    def connect(self, data: RelationCreate) -> AffiliateRelation:
        manager = self.repo.get_profile(self.db, data.manager_id)
        agent = self.repo.get_profile(self.db, data.agent_id)
        if not manager or manager.type != PROFILE_BRANCH_MANAGER:
            raise HTTPException(status_code=400, detail="manager_id must reference a branch manager")
        if not agent or agent.type != PROFILE_SALES_AGENT:
            raise HTTPException(status_code=400, detail="agent_id must reference a sales agent")

        previous = self.repo.deactivate_agent_relations(self.db, agent.id)
        relation = self.repo.create_relation(self.db, manager.id, agent.id)
        self.db.commit()
        self.db.refresh(relation)
        logger.info(f"🔗 Agent {agent.id} connected to manager {manager.id} ({previous} previous relation(s) closed)")
        return relation

    def ownership_for_users(self, user_ids: list[int]) -> dict:
        users = self.db.query(User).filter(User.id.in_(user_ids)).all() if user_ids else []
        ownership = get_affiliate_ownership_for_users(self.db, users)
        return {str(user_id): ownership.get(user_id) for user_id in user_ids}


class PartnerCustomerService:
    """Partner-facing customer (lead) management, scoped by the partner hierarchy"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = AffiliateRepository()

    def list_customers(self, ctx: PartnerContext, status=None, q=None, group_id=None, page=1, limit=20):
        page = max(1, page)
        limit = min(max(1, limit), 100)
        return self.repo.list_leads(self.db, ctx, status, q, group_id, page, limit)

    def get_customer(self, ctx: PartnerContext, lead_id: int) -> AffiliateLead:
        lead = self.repo.get_lead(self.db, ctx, lead_id)
        if not lead:
            raise PartnerApiError("Customer not found", 404)
        return lead

    def _visible_group(self, ctx: PartnerContext, group_id: int) -> PartnerCustomerGroup:
        group = (
            apply_group_scope(self.db.query(PartnerCustomerGroup), ctx)
            .filter(PartnerCustomerGroup.id == group_id)
            .first()
        )
        if not group:
            raise PartnerApiError("Group not found", 404)
        return group

    def create_customer(self, ctx: PartnerContext, data: LeadCreate, source: str = "partner-manual") -> AffiliateLead:
        phone = normalize_phone(data.customer_phone)
        if phone and self.repo.find_lead_by_phone(self.db, ctx, phone):
            logger.warning(f"⚠️ Duplicate customer phone {mask_phone_for_log(phone)} for profile {ctx.profile.id}")
            raise PartnerApiError("A customer with this phone number already exists", 409)

        group = self._visible_group(ctx, data.group_id) if data.group_id else None
        status = data.status if data.status in LEAD_STATUSES else "NEW"

        lead = self.repo.create_lead(
            self.db,
            customer_name=data.customer_name,
            customer_phone=phone,
            customer_email=data.customer_email,
            status=status,
            source=source,
            notes=data.notes,
            group_id=group.id if group else None,
            next_action_at=data.next_action_at,
            **lead_owner_fields(self.db, ctx.profile),
        )
        if group:
            schedule_partner_funnel_messages(self.db, lead.id, group.id, ctx.profile.id, ctx.user.id)
        self.db.commit()
        self.db.refresh(lead)
        logger.info(f"✅ Lead {lead.id} created by profile {ctx.profile.id}")
        return lead

    def update_customer(self, ctx: PartnerContext, lead_id: int, data: LeadUpdate) -> AffiliateLead:
        lead = self.get_customer(ctx, lead_id)
        updates = data.model_dump(exclude_unset=True)
        if "customer_phone" in updates:
            phone = normalize_phone(updates["customer_phone"])
            if phone and phone != lead.customer_phone:
                existing = self.repo.find_lead_by_phone(self.db, ctx, phone)
                if existing and existing.id != lead.id:
                    raise PartnerApiError("A customer with this phone number already exists", 409)
            updates["customer_phone"] = phone
        for key, value in updates.items():
            if value is not None or key in ("notes", "next_action_at", "customer_email"):
                setattr(lead, key, value)
        self.db.commit()
        self.db.refresh(lead)
        return lead

    def delete_customer(self, ctx: PartnerContext, lead_id: int) -> dict:
        """Soft delete: the lead is cancelled so sales history stays intact"""
        lead = self.get_customer(ctx, lead_id)
        lead.status = "CANCELLED"
        cancel_pending_funnel_messages(self.db, lead.id)
        self.db.commit()
        return {"ok": True, "message": "Customer removed"}

    def add_interaction(self, ctx: PartnerContext, lead_id: int, data: InteractionCreate):
        lead = self.get_customer(ctx, lead_id)
        occurred_at = data.occurred_at or datetime.utcnow()
        interaction = self.repo.add_interaction(
            self.db,
            lead_id=lead.id,
            profile_id=ctx.profile.id,
            created_by_id=ctx.user.id,
            interaction_type=data.interaction_type,
            occurred_at=occurred_at,
            note=data.note,
        )
        lead.last_contacted_at = occurred_at
        if lead.status == "NEW":
            lead.status = "CONTACTED"
        self.db.commit()
        self.db.refresh(interaction)
        return interaction

    def move_group(self, ctx: PartnerContext, lead_id: int, group_id: Optional[int]) -> dict:
        lead = self.get_customer(ctx, lead_id)
        group = self._visible_group(ctx, group_id) if group_id is not None else None

        cancelled = cancel_pending_funnel_messages(self.db, lead.id)
        lead.group_id = group.id if group else None

        result = {"scheduled": 0, "error": None}
        if group:
            result = schedule_partner_funnel_messages(self.db, lead.id, group.id, ctx.profile.id, ctx.user.id)
        self.db.commit()
        self.db.refresh(lead)

        logger.info(
            f"📂 Lead {lead.id} moved to group {lead.group_id}: {result['scheduled']} funnel message(s) queued, "
            f"{cancelled} cancelled"
        )
        return {"lead": lead, "scheduled": result["scheduled"], "funnel_error": result["error"]}

    def assign(self, ctx: PartnerContext, data: AssignRequest) -> dict:
        if ctx.is_agent:
            raise PartnerApiError("Only branch managers can assign customers", 403)

        agent = self.repo.get_profile(self.db, data.agent_id)
        if not agent or agent.type != PROFILE_SALES_AGENT or agent.status != "ACTIVE":
            raise PartnerApiError("Agent not found", 404)
        if ctx.is_manager and agent.id not in ctx.team_agent_ids:
            raise PartnerApiError("Agent is not in your team", 403)

        manager_id = ctx.profile.id if ctx.is_manager else None
        if manager_id is None:
            manager = get_active_manager(self.db, agent.id)
            manager_id = manager.id if manager else None

        assigned = 0
        for lead_id in data.lead_ids:
            lead = self.repo.get_lead(self.db, ctx, lead_id)
            if not lead:
                continue
            lead.agent_id = agent.id
            lead.manager_id = manager_id
            assigned += 1
        self.db.commit()
        logger.info(f"👥 Assigned {assigned} lead(s) to agent {agent.id}")
        return {"ok": True, "assigned": assigned}

    # ------------------------------------------------------------------- sales

    def record_sale(self, ctx: PartnerContext, lead_id: int, data: SaleCreate) -> AffiliateSale:
        lead = self.get_customer(ctx, lead_id)
        sale = self.repo.create_sale(
            self.db,
            lead_id=lead.id,
            manager_id=lead.manager_id,
            agent_id=lead.agent_id,
            product_code=data.product_code,
            sale_amount=data.sale_amount,
            cost_amount=data.cost_amount,
            status="PENDING",
            sale_date=data.sale_date or datetime.utcnow(),
        )
        lead.status = "PURCHASED"
        self.db.commit()
        self.db.refresh(sale)
        logger.info(f"💰 Sale {sale.id} recorded for lead {lead.id}: {sale.sale_amount:,} KRW")
        return sale

    def confirm_sale(self, ctx: PartnerContext, lead_id: int, sale_id: int) -> AffiliateSale:
        if ctx.is_agent:
            raise PartnerApiError("Only branch managers or HQ can confirm sales", 403)
        lead = self.get_customer(ctx, lead_id)
        sale = self.repo.get_sale(self.db, lead.id, sale_id)
        if not sale:
            raise PartnerApiError("Sale not found", 404)
        if sale.status != "PENDING":
            raise PartnerApiError(f"Sale is already {sale.status}", 409)

        sale.status = "CONFIRMED"
        sale.confirmed_at = datetime.utcnow()
        self.db.flush()
        sync_sale_commission_ledgers(self.db, sale.id, regenerate=True)
        self.db.refresh(sale)
        return sale

    def ledger(self, ctx: PartnerContext) -> dict:
        entries = self.repo.list_ledger(self.db, None if ctx.is_hq else ctx.profile.id)
        total_amount = sum(e.amount for e in entries)
        total_withholding = sum(e.withholding_amount or 0 for e in entries)
        return {
            "entries": entries,
            "total_amount": total_amount,
            "total_withholding": total_withholding,
            "total_net": total_amount - total_withholding,
        }
