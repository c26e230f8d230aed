"""Partner request context and data-visibility rules"""

import logging
from typing import Optional

from fastapi import Depends
from sqlalchemy import or_
from sqlalchemy.orm import Session

from ...auth import get_optional_user
from ...database import get_db
from ...models import (
    PROFILE_BRANCH_MANAGER,
    PROFILE_HQ,
    PROFILE_SALES_AGENT,
    AffiliateLead,
    AffiliateProfile,
    AffiliateRelation,
    PartnerCustomerGroup,
    User,
)

logger = logging.getLogger(__name__)


class PartnerApiError(Exception):
    """Rendered as {"ok": false, "error": message} with the given status"""

    def __init__(self, message: str, status: int = 400):
        super().__init__(message)
        self.message = message
        self.status = status


class PartnerContext:
    def __init__(self, user: User, profile: AffiliateProfile, team_agent_ids: list[int]):
        self.user = user
        self.profile = profile
        self.team_agent_ids = team_agent_ids

    @property
    def is_hq(self) -> bool:
        return self.profile.type == PROFILE_HQ

    @property
    def is_manager(self) -> bool:
        return self.profile.type == PROFILE_BRANCH_MANAGER

    @property
    def is_agent(self) -> bool:
        return self.profile.type == PROFILE_SALES_AGENT


def get_team_agent_ids(db: Session, profile: AffiliateProfile) -> list[int]:
    """Agent profile ids under a branch manager (ACTIVE relations only)"""
    if profile.type != PROFILE_BRANCH_MANAGER:
        return []
    rows = (
        db.query(AffiliateRelation.agent_id)
        .filter(AffiliateRelation.manager_id == profile.id, AffiliateRelation.status == "ACTIVE")
        .all()
    )
    return [r[0] for r in rows]


def get_active_manager(db: Session, agent_profile_id: int) -> Optional[AffiliateProfile]:
    relation = (
        db.query(AffiliateRelation)
        .filter(AffiliateRelation.agent_id == agent_profile_id, AffiliateRelation.status == "ACTIVE")
        .order_by(AffiliateRelation.connected_at.desc(), AffiliateRelation.id.desc())
        .first()
    )
    return relation.manager if relation else None


def build_partner_context(db: Session, user: Optional[User]) -> PartnerContext:
    if not user:
        raise PartnerApiError("Login required", 401)

    profile = (
        db.query(AffiliateProfile)
        .filter(AffiliateProfile.user_id == user.id, AffiliateProfile.status == "ACTIVE")
        .first()
    )
    if not profile:
        logger.warning(f"🚫 User {user.id} has no active affiliate profile")
        raise PartnerApiError("Active partner profile required", 403)

    return PartnerContext(user, profile, get_team_agent_ids(db, profile))


async def require_partner_context(
    user: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_db),
) -> PartnerContext:
    return build_partner_context(db, user)


def lead_scope_condition(ctx: PartnerContext):
    """Filter clause for leads visible to the partner; None means unrestricted (HQ)"""
    if ctx.is_hq:
        return None

    conditions = [AffiliateLead.manager_id == ctx.profile.id, AffiliateLead.agent_id == ctx.profile.id]
    if ctx.team_agent_ids:
        conditions.append(AffiliateLead.agent_id.in_(ctx.team_agent_ids))
    return or_(*conditions)


def group_scope_condition(ctx: PartnerContext):
    """Groups owned by the partner or, for managers, by their team agents"""
    if ctx.is_hq:
        return None

    owner_ids = [ctx.profile.id] + list(ctx.team_agent_ids)
    return PartnerCustomerGroup.profile_id.in_(owner_ids)


def apply_lead_scope(query, ctx: PartnerContext):
    condition = lead_scope_condition(ctx)
    return query if condition is None else query.filter(condition)


def apply_group_scope(query, ctx: PartnerContext):
    condition = group_scope_condition(ctx)
    return query if condition is None else query.filter(condition)


def resolve_ownership(lead: AffiliateLead) -> str:
    """AGENT when the lead belongs to an agent, MANAGER when only a manager holds it"""
    if lead.agent_id:
        return "AGENT"
    if lead.manager_id:
        return "MANAGER"
    return "UNKNOWN"


def lead_owner_fields(db: Session, profile: AffiliateProfile) -> dict:
    """manager_id/agent_id for a lead created by (or on behalf of) the given profile"""
    if profile.type == PROFILE_SALES_AGENT:
        manager = get_active_manager(db, profile.id)
        return {"agent_id": profile.id, "manager_id": manager.id if manager else None}
    if profile.type == PROFILE_BRANCH_MANAGER:
        return {"manager_id": profile.id, "agent_id": None}
    return {"manager_id": None, "agent_id": None}
