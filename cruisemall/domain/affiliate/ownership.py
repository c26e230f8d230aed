"""Batch lookup of which partner owns each customer, matched by phone number"""

import logging
from typing import Iterable, Optional

from sqlalchemy.orm import Session, joinedload

from ...models import (
    PROFILE_BRANCH_MANAGER,
    PROFILE_SALES_AGENT,
    AffiliateLead,
    AffiliateProfile,
    User,
)
from ...shared.validators import normalize_phone
from .scope import get_active_manager

logger = logging.getLogger(__name__)


def _profile_summary(profile: AffiliateProfile) -> dict:
    return {
        "id": profile.id,
        "display_name": profile.display_name,
        "nickname": profile.nickname,
        "affiliate_code": profile.affiliate_code,
        "branch_label": profile.branch_label,
        "status": profile.status,
        "contact_phone": profile.contact_phone or (profile.user.phone if profile.user else None),
        "landing_slug": profile.landing_slug,
    }


def _ownership(owner_type: str, source: str, owner: AffiliateProfile, manager: Optional[AffiliateProfile]) -> dict:
    summary = _profile_summary(owner)
    return {
        "owner_type": owner_type,
        "owner_profile_id": owner.id,
        "owner_name": summary["display_name"],
        "owner_nickname": summary["nickname"],
        "owner_affiliate_code": summary["affiliate_code"],
        "owner_branch_label": summary["branch_label"],
        "owner_status": summary["status"],
        "owner_phone": summary["contact_phone"],
        "owner_landing_slug": summary["landing_slug"],
        "source": source,
        "manager_profile": _profile_summary(manager) if manager else None,
    }


def get_affiliate_ownership_for_users(db: Session, users: Iterable[User]) -> dict[int, Optional[dict]]:
    """
    Resolve the owning partner for each user.

    The newest non-cancelled lead with the user's phone wins. A lead held by an
    agent resolves to SALES_AGENT (with the agent's active manager attached);
    a lead held only by a manager resolves to BRANCH_MANAGER. Users without a
    phone or without a matching lead map to None. Any lookup failure maps
    every user to None.
    """
    users = list(users)
    result: dict[int, Optional[dict]] = {u.id: None for u in users}
    if not users:
        return result

    try:
        phones = {u.id: normalize_phone(u.phone) for u in users}
        phone_list = sorted({p for p in phones.values() if p})
        if not phone_list:
            return result

        leads = (
            db.query(AffiliateLead)
            .options(joinedload(AffiliateLead.agent), joinedload(AffiliateLead.manager))
            .filter(AffiliateLead.customer_phone.in_(phone_list), AffiliateLead.status != "CANCELLED")
            .order_by(AffiliateLead.created_at.desc(), AffiliateLead.id.desc())
            .all()
        )

        phone_to_lead: dict[str, AffiliateLead] = {}
        for lead in leads:
            normalized = normalize_phone(lead.customer_phone)
            if normalized and normalized not in phone_to_lead:
                phone_to_lead[normalized] = lead

        for user in users:
            normalized = phones[user.id]
            lead = phone_to_lead.get(normalized) if normalized else None
            if not lead:
                continue

            if lead.agent_id and lead.agent:
                info = _ownership(
                    PROFILE_SALES_AGENT, "lead-agent", lead.agent, get_active_manager(db, lead.agent_id)
                )
            elif lead.manager_id and lead.manager:
                info = _ownership(PROFILE_BRANCH_MANAGER, "lead-manager", lead.manager, None)
            else:
                continue

            info.update(
                {
                    "lead_id": lead.id,
                    "lead_status": lead.status,
                    "lead_created_at": lead.created_at.isoformat() if lead.created_at else None,
                    "normalized_phone": normalized,
                }
            )
            result[user.id] = info

        return result

    except Exception as e:
        logger.error(f"❌ Failed to resolve affiliate ownership for {len(users)} users: {e}")
        return {u.id: None for u in users}

