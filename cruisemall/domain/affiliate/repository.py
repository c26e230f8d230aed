"""Affiliate repository - Database operations for profiles, relations, leads and sales"""

from datetime import datetime
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ...models import (
    AffiliateInteraction,
    AffiliateLead,
    AffiliateProfile,
    AffiliateRelation,
    AffiliateSale,
    CommissionLedger,
)
from ...shared.validators import phone_search_variants
from .scope import PartnerContext, apply_lead_scope


class AffiliateRepository:
    """Repository for affiliate database operations"""

    # ------------------------------------------------------------------ profiles

    @staticmethod
    def list_profiles(db: Session, profile_type: Optional[str] = None) -> list[AffiliateProfile]:
        query = db.query(AffiliateProfile)
        if profile_type:
            query = query.filter(AffiliateProfile.type == profile_type)
        return query.order_by(AffiliateProfile.created_at.desc(), AffiliateProfile.id.desc()).all()

    @staticmethod
    def get_profile(db: Session, profile_id: int) -> Optional[AffiliateProfile]:
        return db.query(AffiliateProfile).filter(AffiliateProfile.id == profile_id).first()

    @staticmethod
    def get_profile_by_user(db: Session, user_id: int) -> Optional[AffiliateProfile]:
        return db.query(AffiliateProfile).filter(AffiliateProfile.user_id == user_id).first()

    @staticmethod
    def get_profile_by_code(db: Session, code: str) -> Optional[AffiliateProfile]:
        return db.query(AffiliateProfile).filter(AffiliateProfile.affiliate_code == code).first()

    @staticmethod
    def code_exists(db: Session, code: str) -> bool:
        return db.query(AffiliateProfile.id).filter(AffiliateProfile.affiliate_code == code).first() is not None

    @staticmethod
    def create_profile(db: Session, **data) -> AffiliateProfile:
        profile = AffiliateProfile(**data)
        db.add(profile)
        db.flush()
        return profile

    # ----------------------------------------------------------------- relations

    @staticmethod
    def deactivate_agent_relations(db: Session, agent_id: int) -> int:
        rows = (
            db.query(AffiliateRelation)
            .filter(AffiliateRelation.agent_id == agent_id, AffiliateRelation.status == "ACTIVE")
            .all()
        )
        for relation in rows:
            relation.status = "INACTIVE"
            relation.disconnected_at = datetime.utcnow()
        return len(rows)

    @staticmethod
    def create_relation(db: Session, manager_id: int, agent_id: int) -> AffiliateRelation:
        relation = AffiliateRelation(manager_id=manager_id, agent_id=agent_id, status="ACTIVE")
        db.add(relation)
        db.flush()
        return relation

    # --------------------------------------------------------------------- leads

    @staticmethod
    def list_leads(
        db: Session,
        ctx: PartnerContext,
        status: Optional[str] = None,
        q: Optional[str] = None,
        group_id: Optional[int] = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[AffiliateLead], int]:
        query = apply_lead_scope(db.query(AffiliateLead), ctx)

        if status:
            query = query.filter(AffiliateLead.status == status)
        if group_id is not None:
            query = query.filter(AffiliateLead.group_id == group_id)
        if q:
            q = q.strip()
            conditions = [AffiliateLead.customer_name.ilike(f"%{q}%")]
            variants = phone_search_variants(q)
            if variants:
                conditions.append(AffiliateLead.customer_phone.in_(variants))
                conditions.append(AffiliateLead.customer_phone.like(f"%{variants[0]}%"))
            query = query.filter(or_(*conditions))

        total = query.count()
        leads = (
            query.order_by(AffiliateLead.created_at.desc(), AffiliateLead.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return leads, total

    @staticmethod
    def get_lead(db: Session, ctx: PartnerContext, lead_id: int) -> Optional[AffiliateLead]:
        return apply_lead_scope(db.query(AffiliateLead), ctx).filter(AffiliateLead.id == lead_id).first()

    @staticmethod
    def find_lead_by_phone(db: Session, ctx: PartnerContext, phone: str) -> Optional[AffiliateLead]:
        return (
            apply_lead_scope(db.query(AffiliateLead), ctx)
            .filter(AffiliateLead.customer_phone == phone, AffiliateLead.status != "CANCELLED")
            .order_by(AffiliateLead.created_at.desc(), AffiliateLead.id.desc())
            .first()
        )

    @staticmethod
    def create_lead(db: Session, **data) -> AffiliateLead:
        lead = AffiliateLead(**data)
        db.add(lead)
        db.flush()
        return lead

    @staticmethod
    def add_interaction(db: Session, **data) -> AffiliateInteraction:
        interaction = AffiliateInteraction(**data)
        db.add(interaction)
        db.flush()
        return interaction

    # --------------------------------------------------------------------- sales

    @staticmethod
    def get_sale(db: Session, lead_id: int, sale_id: int) -> Optional[AffiliateSale]:
        return (
            db.query(AffiliateSale)
            .filter(AffiliateSale.id == sale_id, AffiliateSale.lead_id == lead_id)
            .first()
        )

    @staticmethod
    def create_sale(db: Session, **data) -> AffiliateSale:
        sale = AffiliateSale(**data)
        db.add(sale)
        db.flush()
        return sale

    @staticmethod
    def list_ledger(db: Session, profile_id: Optional[int]) -> list[CommissionLedger]:
        query = db.query(CommissionLedger)
        if profile_id is not None:
            query = query.filter(CommissionLedger.profile_id == profile_id)
        return query.order_by(CommissionLedger.created_at.desc(), CommissionLedger.id.desc()).all()
