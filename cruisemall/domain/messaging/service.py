"""Messaging service - funnel message, scheduled message and SMS settings management"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ...models import PartnerCustomerGroup
from ...models_messaging import (
    FunnelMessage,
    FunnelMessageStage,
    PartnerSmsConfig,
    ScheduledMessage,
    ScheduledMessageStage,
)
from ...security_utils import encrypt_credential
from ..affiliate.scope import PartnerApiError, PartnerContext, apply_group_scope
from .repository import MessagingRepository
from .schemas import (
    FunnelMessageCreate,
    FunnelMessageUpdate,
    FunnelStageIn,
    ScheduledMessageCreate,
    ScheduledMessageUpdate,
    ScheduledStageIn,
    SmsConfigResponse,
    SmsConfigUpdate,
)

logger = logging.getLogger(__name__)


def _funnel_stages(stages: list[FunnelStageIn]) -> list[FunnelMessageStage]:
    return [
        FunnelMessageStage(
            stage_number=s.stage_number or index + 1,
            days_after=s.days_after,
            send_time=s.send_time,
            content=s.content,
            image_url=s.image_url,
            order=index,
        )
        for index, s in enumerate(stages)
    ]


def _scheduled_stages(stages: list[ScheduledStageIn]) -> list[ScheduledMessageStage]:
    return [
        ScheduledMessageStage(
            stage_number=s.stage_number or index + 1,
            days_after=s.days_after,
            send_time=s.send_time,
            title=s.title,
            content=s.content,
            order=index,
        )
        for index, s in enumerate(stages)
    ]


class MessagingService:
    def __init__(self, db: Session):
        self.db = db
        self.repo = MessagingRepository()

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

    # ------------------------------------------------------------------ funnels

    def list_funnels(self, ctx: PartnerContext, message_type: Optional[str] = None) -> list[FunnelMessage]:
        return self.repo.list_funnels(self.db, ctx, message_type)

    def get_funnel(self, ctx: PartnerContext, funnel_id: int) -> FunnelMessage:
        funnel = self.repo.get_funnel(self.db, ctx, funnel_id)
        if not funnel:
            raise PartnerApiError("Funnel message not found", 404)
        return funnel

    def create_funnel(self, ctx: PartnerContext, data: FunnelMessageCreate) -> FunnelMessage:
        self._check_group(ctx, data.group_id)
        payload = data.model_dump(exclude={"stages"})
        funnel = FunnelMessage(owner_user_id=ctx.user.id, profile_id=ctx.profile.id, **payload)
        funnel.stages = _funnel_stages(data.stages)
        self.db.add(funnel)
        self.db.commit()
        self.db.refresh(funnel)
        logger.info(f"✅ Funnel message {funnel.id} ({funnel.message_type}) created with {len(funnel.stages)} stage(s)")
        return funnel

    def update_funnel(self, ctx: PartnerContext, funnel_id: int, data: FunnelMessageUpdate) -> FunnelMessage:
        funnel = self.get_funnel(ctx, funnel_id)
        updates = data.model_dump(exclude_unset=True, exclude={"stages"})
        if "group_id" in updates:
            self._check_group(ctx, updates["group_id"])
        for key, value in updates.items():
            setattr(funnel, key, value)
        if data.stages is not None:
            funnel.stages = _funnel_stages(data.stages)
        self.db.commit()
        self.db.refresh(funnel)
        return funnel

    def delete_funnel(self, ctx: PartnerContext, funnel_id: int) -> dict:
        funnel = self.get_funnel(ctx, funnel_id)
        if funnel.owner_user_id != ctx.user.id and not ctx.is_hq:
            raise PartnerApiError("Only the owner can delete this funnel", 403)
        self.db.delete(funnel)
        self.db.commit()
        return {"ok": True}

    def clone_funnel(self, ctx: PartnerContext, funnel_id: int) -> FunnelMessage:
        source = self.get_funnel(ctx, funnel_id)
        clone = FunnelMessage(
            owner_user_id=ctx.user.id,
            profile_id=ctx.profile.id,
            group_id=None,
            message_type=source.message_type,
            title=f"{source.title} (복사본)",
            category=source.category,
            description=source.description,
            sender_phone=source.sender_phone,
            sender_email=source.sender_email,
            send_time=source.send_time,
            opt_out_number=source.opt_out_number,
            auto_add_opt_out=source.auto_add_opt_out,
            is_active=source.is_active,
        )
        clone.stages = [
            FunnelMessageStage(
                stage_number=s.stage_number,
                days_after=s.days_after,
                send_time=s.send_time,
                content=s.content,
                image_url=s.image_url,
                order=s.order,
            )
            for s in source.stages
        ]
        self.db.add(clone)
        self.db.commit()
        self.db.refresh(clone)
        logger.info(f"📋 Funnel message {source.id} cloned as {clone.id}")
        return clone

    # --------------------------------------------------------- scheduled messages

    def list_scheduled(self, ctx: PartnerContext) -> list[ScheduledMessage]:
        return self.repo.list_scheduled(self.db, ctx.user.id)

    def get_scheduled(self, ctx: PartnerContext, message_id: int) -> ScheduledMessage:
        message = self.repo.get_scheduled(self.db, ctx.user.id, message_id)
        if not message:
            raise PartnerApiError("Scheduled message not found", 404)
        return message

    def create_scheduled(self, ctx: PartnerContext, data: ScheduledMessageCreate) -> ScheduledMessage:
        title = data.title.strip()
        if not title:
            raise PartnerApiError("Title is required", 400)
        self._check_group(ctx, data.target_group_id)

        payload = data.model_dump(exclude={"stages"})
        payload["title"] = title
        message = ScheduledMessage(owner_user_id=ctx.user.id, **payload)
        message.stages = _scheduled_stages(data.stages)
        self.db.add(message)
        self.db.commit()
        self.db.refresh(message)
        logger.info(f"✅ Scheduled message {message.id} ({message.send_method}) created")
        return message

    def update_scheduled(self, ctx: PartnerContext, message_id: int, data: ScheduledMessageUpdate) -> ScheduledMessage:
        message = self.get_scheduled(ctx, message_id)
        updates = data.model_dump(exclude_unset=True, exclude={"stages"})
        if "target_group_id" in updates:
            self._check_group(ctx, updates["target_group_id"])
        for key, value in updates.items():
            setattr(message, key, value)
        if data.stages is not None:
            message.stages = _scheduled_stages(data.stages)
        self.db.commit()
        self.db.refresh(message)
        return message

    def delete_scheduled(self, ctx: PartnerContext, message_id: int) -> dict:
        message = self.get_scheduled(ctx, message_id)
        self.db.delete(message)
        self.db.commit()
        return {"ok": True}

    # ------------------------------------------------------------- sms settings

    def get_sms_config(self, ctx: PartnerContext) -> Optional[SmsConfigResponse]:
        config = self.repo.get_sms_config(self.db, ctx.profile.id)
        if not config:
            return None
        return SmsConfigResponse(
            provider=config.provider,
            aligo_user_id=config.aligo_user_id,
            sender_phone=config.sender_phone,
            is_active=config.is_active,
            has_api_key=bool(config.api_key),
        )

    def save_sms_config(self, ctx: PartnerContext, data: SmsConfigUpdate) -> SmsConfigResponse:
        if not data.sender_phone:
            raise PartnerApiError("Sender phone is required", 400)
        config = self.repo.get_sms_config(self.db, ctx.profile.id)
        if not config:
            config = PartnerSmsConfig(profile_id=ctx.profile.id, provider="aligo")
            self.db.add(config)
        config.api_key = encrypt_credential(data.api_key.strip())
        config.aligo_user_id = data.aligo_user_id.strip()
        config.sender_phone = data.sender_phone
        config.is_active = data.is_active
        self.db.commit()
        logger.info(f"🔐 SMS settings saved for profile {ctx.profile.id}")
        return self.get_sms_config(ctx)
