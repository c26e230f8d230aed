"""Messaging repository"""

from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session, selectinload

from ...models_messaging import FunnelMessage, PartnerSmsConfig, ScheduledMessage
from ..affiliate.scope import PartnerContext


class MessagingRepository:
    @staticmethod
    def _funnel_scope(query, ctx: PartnerContext):
        if ctx.is_hq:
            return query
        conditions = [FunnelMessage.owner_user_id == ctx.user.id]
        if ctx.team_agent_ids:
            conditions.append(FunnelMessage.profile_id.in_(ctx.team_agent_ids))
        return query.filter(or_(*conditions))

    @staticmethod
    def list_funnels(db: Session, ctx: PartnerContext, message_type: Optional[str] = None) -> list[FunnelMessage]:
        query = MessagingRepository._funnel_scope(
            db.query(FunnelMessage).options(selectinload(FunnelMessage.stages)), ctx
        )
        if message_type:
            query = query.filter(FunnelMessage.message_type == message_type)
        return query.order_by(FunnelMessage.created_at.desc(), FunnelMessage.id.desc()).all()

    @staticmethod
    def get_funnel(db: Session, ctx: PartnerContext, funnel_id: int) -> Optional[FunnelMessage]:
        return (
            MessagingRepository._funnel_scope(db.query(FunnelMessage), ctx)
            .filter(FunnelMessage.id == funnel_id)
            .first()
        )

    @staticmethod
    def list_scheduled(db: Session, user_id: int) -> list[ScheduledMessage]:
        return (
            db.query(ScheduledMessage)
            .options(selectinload(ScheduledMessage.stages))
            .filter(ScheduledMessage.owner_user_id == user_id)
            .order_by(ScheduledMessage.created_at.desc(), ScheduledMessage.id.desc())
            .all()
        )

    @staticmethod
    def get_scheduled(db: Session, user_id: int, message_id: int) -> Optional[ScheduledMessage]:
        return (
            db.query(ScheduledMessage)
            .filter(ScheduledMessage.id == message_id, ScheduledMessage.owner_user_id == user_id)
            .first()
        )

    @staticmethod
    def get_sms_config(db: Session, profile_id: int) -> Optional[PartnerSmsConfig]:
        return db.query(PartnerSmsConfig).filter(PartnerSmsConfig.profile_id == profile_id).first()
