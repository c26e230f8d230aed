"""
Scheduled message sender.

Runs every 5 minutes. A stage fires when the current wall-clock time is within
2 minutes of its send time and the day offset from the message start date
matches; each user receives a given stage at most once per day.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session, selectinload

from ..models import AffiliateLead, User
from ..models_messaging import NotificationLog, ScheduledMessage, ScheduledMessageStage
from ..shared.dates import local_now, parse_hhmm
from ..shared.validators import normalize_phone
from .notification_service import get_hq_sms_config, send_email_message, send_sms

logger = logging.getLogger(__name__)

NOTIFICATION_TYPE = "SCHEDULED_MESSAGE"
SEND_WINDOW_MINUTES = 2
AD_TAG = "[광고]"


def build_event_key(message_id: int, stage_number: int, user_id: int, day: datetime) -> str:
    return f"SCHEDULED_MESSAGE_{message_id}_{stage_number}_{user_id}_{day.strftime('%Y-%m-%d')}"


def apply_ad_rules(message: ScheduledMessage, content: str) -> str:
    """Advertising messages get the [광고] prefix and an opt-out footer when configured"""
    if not message.is_ad_message:
        return content
    if message.auto_add_ad_tag:
        content = f"{AD_TAG} {content}"
    if message.auto_add_opt_out and message.opt_out_number:
        content = f"{content}\n무료수신거부: {message.opt_out_number}"
    return content


def stage_is_due(message: ScheduledMessage, stage: ScheduledMessageStage, now: datetime) -> bool:
    parsed = parse_hhmm(stage.send_time or message.start_time)
    if not parsed:
        logger.info(f"[Scheduled Message] Stage {stage.stage_number} of message {message.id} has no valid send time, skipping")
        return False

    hours, minutes = parsed
    time_diff = abs((now.hour * 60 + now.minute) - (hours * 60 + minutes))
    if time_diff > SEND_WINDOW_MINUTES:
        return False

    days_after = stage.days_after or 0
    if message.start_date:
        days_diff = (now.date() - message.start_date).days
        if days_diff < days_after:
            return False
        if days_diff > message.max_days:
            return False
    elif days_after > 0:
        return False

    return True


def get_target_users(db: Session, message: ScheduledMessage) -> list[User]:
    """Members of the target group (matched through lead phones), or every active customer"""
    if message.target_group_id:
        phones = {
            normalize_phone(p)
            for (p,) in db.query(AffiliateLead.customer_phone)
            .filter(AffiliateLead.group_id == message.target_group_id)
            .all()
        }
        phones.discard(None)
        if not phones:
            return []
        return db.query(User).filter(User.phone.in_(sorted(phones))).order_by(User.id).all()

    return (
        db.query(User)
        .filter(User.role == "user", User.customer_status == "active")
        .order_by(User.id)
        .all()
    )


async def _deliver(db: Session, message: ScheduledMessage, user: User, title: str, content: str) -> tuple[bool, Optional[str]]:
    method = message.send_method
    if method == "cruise-guide":
        # In-app guide notification: the log row is the inbox entry
        return True, None
    if method in ("sms", "kakao"):
        config = get_hq_sms_config()
        if not config:
            return False, "HQ SMS config missing"
        return await send_sms(db, config, user.phone, content, "scheduled_message", title=title)
    if method == "email":
        return await send_email_message(user.email, title, content)
    return False, f"Unknown send method: {method}"


async def process_scheduled_messages(db: Session, now: Optional[datetime] = None) -> dict:
    now = now or local_now()
    summary = {"messages": 0, "sent": 0, "skipped": 0, "failed": 0}

    messages = (
        db.query(ScheduledMessage)
        .options(selectinload(ScheduledMessage.stages))
        .filter(ScheduledMessage.is_active.is_(True))
        .order_by(ScheduledMessage.id)
        .all()
    )
    summary["messages"] = len(messages)
    logger.info(f"[Scheduled Message] Found {len(messages)} active scheduled message(s)")

    for message in messages:
        try:
            for stage in message.stages:
                if not stage_is_due(message, stage, now):
                    continue

                users = get_target_users(db, message)
                event_keys = {u.id: build_event_key(message.id, stage.stage_number, u.id, now) for u in users}
                already_sent = {
                    key
                    for (key,) in db.query(NotificationLog.event_key)
                    .filter(NotificationLog.event_key.in_(list(event_keys.values())))
                    .all()
                } if event_keys else set()

                sent = skipped = failed = 0
                for user in users:
                    event_key = event_keys[user.id]
                    if event_key in already_sent:
                        skipped += 1
                        continue
                    try:
                        content = apply_ad_rules(message, stage.content)
                        ok, error = await _deliver(db, message, user, stage.title, content)
                        if not ok:
                            logger.warning(f"[Scheduled Message] Delivery to user {user.id} failed: {error}")
                            failed += 1
                            continue
                        db.add(
                            NotificationLog(
                                user_id=user.id,
                                notification_type=NOTIFICATION_TYPE,
                                event_key=event_key,
                                channel=message.send_method,
                                title=stage.title,
                                body=content,
                                sent_at=now,
                            )
                        )
                        db.commit()
                        sent += 1
                    except Exception as e:
                        db.rollback()
                        logger.error(f"[Scheduled Message] Failed to send to user {user.id}: {e}")
                        failed += 1

                logger.info(
                    f"[Scheduled Message] Stage {stage.stage_number} of message {message.id} completed: "
                    f"{sent} sent, {skipped} skipped, {failed} failed"
                )
                summary["sent"] += sent
                summary["skipped"] += skipped
                summary["failed"] += failed

        except Exception as e:
            db.rollback()
            logger.error(f"[Scheduled Message] ❌ Error processing message {message.id}: {e}")

    logger.info(f"[Scheduled Message] ✅ Processing completed: {summary}")
    return summary
