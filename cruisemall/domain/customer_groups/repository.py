"""Customer group repository"""

from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ...models import AffiliateLead, LandingPage, PartnerCustomerGroup
from ...models_messaging import FunnelMessage, ScheduledMessage
from ..affiliate.scope import PartnerContext, apply_group_scope, apply_lead_scope


class CustomerGroupRepository:
    @staticmethod
    def list_groups(db: Session, ctx: PartnerContext) -> list[PartnerCustomerGroup]:
        return (
            apply_group_scope(db.query(PartnerCustomerGroup), ctx)
            .order_by(PartnerCustomerGroup.created_at.desc(), PartnerCustomerGroup.id.desc())
            .all()
        )

    @staticmethod
    def get_group(db: Session, ctx: PartnerContext, group_id: int) -> Optional[PartnerCustomerGroup]:
        return (
            apply_group_scope(db.query(PartnerCustomerGroup), ctx)
            .filter(PartnerCustomerGroup.id == group_id)
            .first()
        )

    @staticmethod
    def lead_counts(db: Session, ctx: PartnerContext, group_ids: list[int]) -> dict[int, int]:
        if not group_ids:
            return {}
        rows = (
            apply_lead_scope(db.query(AffiliateLead.group_id, func.count(AffiliateLead.id)), ctx)
            .filter(AffiliateLead.group_id.in_(group_ids))
            .group_by(AffiliateLead.group_id)
            .all()
        )
        return {group_id: count for group_id, count in rows}

    @staticmethod
    def scoped_leads_in_group(db: Session, ctx: PartnerContext, group_id: int) -> list[AffiliateLead]:
        return apply_lead_scope(db.query(AffiliateLead), ctx).filter(AffiliateLead.group_id == group_id).all()

    @staticmethod
    def detach_group_references(db: Session, group_id: int):
        """Clear every remaining foreign key to the group so it can be deleted"""
        db.query(AffiliateLead).filter(AffiliateLead.group_id == group_id).update(
            {"group_id": None}, synchronize_session=False
        )
        db.query(LandingPage).filter(LandingPage.group_id == group_id).update(
            {"group_id": None}, synchronize_session=False
        )
        db.query(FunnelMessage).filter(FunnelMessage.group_id == group_id).update(
            {"group_id": None}, synchronize_session=False
        )
        db.query(ScheduledMessage).filter(ScheduledMessage.target_group_id == group_id).update(
            {"target_group_id": None}, synchronize_session=False
        )

    @staticmethod
    def create(db: Session, **data) -> PartnerCustomerGroup:
        group = PartnerCustomerGroup(**data)
        db.add(group)
        db.flush()
        return group
