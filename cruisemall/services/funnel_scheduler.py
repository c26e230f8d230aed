"""
Queue a group's funnel and scheduled messages for a lead when it joins the group
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session, selectinload

from ..models import AffiliateLead, PartnerCustomerGroup
from ..models_messaging import FunnelMessage, OutboundMessage, ScheduledMessage
from ..shared.dates import local_now, parse_hhmm
from .scheduled_message_sender import apply_ad_rules

logger = logging.getLogger(__name__)

DEFAULT_SEND_TIME = (10, 0)
FUNNEL_SOURCE = "partner_funnel"
SCHEDULED_SOURCE = "partner_scheduled"
QUEUED_SOURCES = (FUNNEL_SOURCE, SCHEDULED_SOURCE)


def _id_list(value) -> list[int]:
    if not value or not isinstance(value, list):
        return []
    ids = []
    for v in value:
        try:
            ids.append(int(v))
        except (TypeError, ValueError):
            continue
    return ids


def compute_send_at(now: datetime, days_after: int, send_time: Optional[str], fallback_time: Optional[str] = None) -> datetime:
    """now + days_after at HH:MM; a same-day time that already passed moves to tomorrow"""
    hour, minute = parse_hhmm(send_time) or parse_hhmm(fallback_time) or DEFAULT_SEND_TIME
    send_at = (now + timedelta(days=days_after or 0)).replace(hour=hour, minute=minute, second=0, microsecond=0)
    if send_at < now and (days_after or 0) == 0:
        send_at += timedelta(days=1)
    return send_at


def cancel_pending_funnel_messages(db: Session, lead_id: int) -> int:
    """Deactivate queued funnel messages for a lead (used when it changes group)"""
    pending = (
        db.query(OutboundMessage)
        .filter(
            OutboundMessage.lead_id == lead_id,
            OutboundMessage.is_active.is_(True),
            OutboundMessage.sent_at.is_(None),
        )
        .all()
    )
    cancelled = 0
    for message in pending:
        metadata = dict(message.metadata_json or {})
        if metadata.get("source") not in QUEUED_SOURCES:
            continue
        metadata["cancelled_reason"] = "group_changed"
        message.metadata_json = metadata
        message.is_active = False
        cancelled += 1
    return cancelled


def schedule_partner_funnel_messages(
    db: Session,
    lead_id: int,
    group_id: int,
    profile_id: int,
    user_id: int,
    now: Optional[datetime] = None,
) -> dict:
    """
    Returns:
        {"scheduled": int, "error": Optional[str]}. Rows are added to the
        session and flushed; the caller commits.
    """
    now = now or local_now()

    group = db.query(PartnerCustomerGroup).filter(PartnerCustomerGroup.id == group_id).first()
    if not group:
        return {"scheduled": 0, "error": "Group not found"}

    sms_ids = _id_list(group.funnel_sms_ids)
    talk_ids = _id_list(group.funnel_talk_ids)
    email_ids = _id_list(group.funnel_email_ids)
    funnel_ids = sms_ids + talk_ids + email_ids
    if not funnel_ids:
        return {"scheduled": 0, "error": None}

    funnels = (
        db.query(FunnelMessage)
        .options(selectinload(FunnelMessage.stages))
        .filter(FunnelMessage.id.in_(funnel_ids), FunnelMessage.is_active.is_(True))
        .order_by(FunnelMessage.id)
        .all()
    )
    # the funnel id lists may also point at partner scheduled messages
    scheduled_messages = (
        db.query(ScheduledMessage)
        .options(selectinload(ScheduledMessage.stages))
        .filter(ScheduledMessage.id.in_(funnel_ids), ScheduledMessage.is_active.is_(True))
        .order_by(ScheduledMessage.id)
        .all()
    )
    if not funnels and not scheduled_messages:
        return {"scheduled": 0, "error": None}

    lead = db.query(AffiliateLead).filter(AffiliateLead.id == lead_id).first()
    if not lead:
        return {"scheduled": 0, "error": "Lead not found"}

    has_phone_funnels = bool(sms_ids or talk_ids)
    has_email_funnels = bool(email_ids)

    if has_phone_funnels and not has_email_funnels and not lead.customer_phone:
        logger.info(f"[Funnel Scheduler] Lead {lead_id} has no phone, skipping SMS funnel scheduling")
        return {"scheduled": 0, "error": "Lead has no phone number"}

    if has_email_funnels and not has_phone_funnels and not lead.customer_email:
        logger.info(f"[Funnel Scheduler] Lead {lead_id} has no email, skipping email funnel scheduling")
        return {"scheduled": 0, "error": "Lead has no email"}

    scheduled = 0
    for funnel in funnels:
        channel = funnel.message_type or "sms"
        for stage in funnel.stages:
            send_at = compute_send_at(now, stage.days_after, stage.send_time, funnel.send_time)
            db.add(
                OutboundMessage(
                    owner_user_id=user_id,
                    profile_id=profile_id,
                    lead_id=lead.id,
                    channel=channel,
                    title=f"[퍼널] {funnel.title} - {stage.stage_number}단계",
                    content=stage.content,
                    send_at=send_at,
                    is_active=True,
                    metadata_json={
                        "source": FUNNEL_SOURCE,
                        "funnel_message_id": funnel.id,
                        "funnel_stage_id": stage.id,
                        "stage_number": stage.stage_number,
                        "days_after": stage.days_after,
                        "group_id": group.id,
                        "group_name": group.name,
                        "lead_id": lead.id,
                        "lead_name": lead.customer_name,
                        "lead_phone": lead.customer_phone,
                        "lead_email": lead.customer_email,
                        "profile_id": profile_id,
                        "image_url": stage.image_url,
                        "opt_out_number": funnel.opt_out_number if funnel.auto_add_opt_out else None,
                    },
                )
            )
            scheduled += 1
            logger.info(
                f"[Funnel Scheduler] Created: funnel={funnel.id}, stage={stage.stage_number}, "
                f"lead={lead.id}, send_at={send_at.isoformat()}"
            )

    for message in scheduled_messages:
        channel = message.send_method or "sms"
        for stage in message.stages:
            send_at = compute_send_at(now, stage.days_after, stage.send_time, message.start_time)
            db.add(
                OutboundMessage(
                    owner_user_id=user_id,
                    profile_id=profile_id,
                    lead_id=lead.id,
                    channel=channel,
                    title=f"[퍼널] {message.title} - {stage.stage_number}단계",
                    # ad tag and opt-out footer are already applied here
                    content=apply_ad_rules(message, stage.content),
                    send_at=send_at,
                    is_active=True,
                    metadata_json={
                        "source": SCHEDULED_SOURCE,
                        "scheduled_message_id": message.id,
                        "scheduled_stage_id": stage.id,
                        "stage_number": stage.stage_number,
                        "days_after": stage.days_after,
                        "group_id": group.id,
                        "group_name": group.name,
                        "lead_id": lead.id,
                        "lead_name": lead.customer_name,
                        "lead_phone": lead.customer_phone,
                        "lead_email": lead.customer_email,
                        "profile_id": profile_id,
                        "is_ad_message": message.is_ad_message,
                        "category": message.category,
                    },
                )
            )
            scheduled += 1
            logger.info(
                f"[Funnel Scheduler] Created: scheduled={message.id}, stage={stage.stage_number}, "
                f"lead={lead.id}, send_at={send_at.isoformat()}"
            )

    db.flush()
    return {"scheduled": scheduled, "error": None}
