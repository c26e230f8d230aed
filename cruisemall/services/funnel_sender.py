"""
Deliver queued partner funnel messages whose send time has passed
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models_messaging import OutboundMessage
from ..shared.dates import local_now
from ..shared.validators import is_valid_mobile_phone, mask_phone_for_log
from .notification_service import SmsConfig, get_partner_sms_config, send_email_message, send_sms

logger = logging.getLogger(__name__)

MAX_SEND_ATTEMPTS = 3


def _with_opt_out(content: str, opt_out_number: Optional[str]) -> str:
    if opt_out_number:
        return f"{content}\n무료수신거부: {opt_out_number}"
    return content


def _close(message: OutboundMessage, now: datetime, error: Optional[str] = None):
    metadata = dict(message.metadata_json or {})
    if error:
        metadata["send_error"] = error
        metadata["failed_at"] = now.isoformat()
    else:
        message.sent_at = now
    message.metadata_json = metadata
    message.is_active = False


def _record_failed_attempt(message: OutboundMessage, now: datetime, error: Optional[str]) -> bool:
    """Count a failed send; the row stays queued until MAX_SEND_ATTEMPTS. Returns True once deactivated."""
    metadata = dict(message.metadata_json or {})
    attempts = int(metadata.get("send_attempt_count") or 0) + 1
    metadata["send_attempt_count"] = attempts
    metadata["last_send_error"] = error
    metadata["last_send_attempt_at"] = now.isoformat()
    if attempts >= MAX_SEND_ATTEMPTS:
        metadata["final_error"] = f"Deactivated after {attempts} failed attempts"
        message.is_active = False
    message.metadata_json = metadata
    return not message.is_active


async def process_funnel_messages(db: Session, now: Optional[datetime] = None) -> dict:
    """
    Send every active queued message with send_at <= now. Sent and skipped
    rows are deactivated; a failed send stays queued and is retried on the
    next run until MAX_SEND_ATTEMPTS is reached.
    """
    now = now or local_now()

    due = (
        db.query(OutboundMessage)
        .filter(OutboundMessage.is_active.is_(True), OutboundMessage.send_at <= now)
        .order_by(OutboundMessage.send_at, OutboundMessage.id)
        .all()
    )
    logger.info(f"[Funnel Sender] Found {len(due)} pending funnel message(s)")

    sent = failed = skipped = 0
    config_cache: dict[int, Optional[SmsConfig]] = {}

    for message in due:
        try:
            metadata = message.metadata_json or {}
            content = _with_opt_out(message.content, metadata.get("opt_out_number"))

            if message.channel == "email":
                ok, error = await send_email_message(metadata.get("lead_email"), message.title, content)
                if ok:
                    _close(message, now)
                    sent += 1
                elif error == "No email address":
                    _close(message, now, error)
                    skipped += 1
                else:
                    _record_failed_attempt(message, now, error)
                    failed += 1
                db.commit()
                continue

            phone = metadata.get("lead_phone")
            profile_id = message.profile_id
            if profile_id not in config_cache:
                config_cache[profile_id] = get_partner_sms_config(db, profile_id) if profile_id else None
            config = config_cache[profile_id]

            if not config:
                reason = "SMS config not found"
            elif not phone:
                reason = "Lead has no phone number"
            elif not is_valid_mobile_phone(phone):
                reason = "Lead phone is not a mobile number"
            else:
                reason = None
            if reason:
                logger.warning(f"[Funnel Sender] Skipping message {message.id}: {reason}")
                _close(message, now, reason)
                skipped += 1
                db.commit()
                continue

            ok, error = await send_sms(
                db, config, phone, content, "partner_funnel", profile_id=profile_id, title=message.title
            )
            if ok:
                _close(message, now)
                sent += 1
                logger.info(f"[Funnel Sender] ✅ Sent message {message.id} to {mask_phone_for_log(phone)}")
            else:
                if _record_failed_attempt(message, now, error):
                    logger.warning(f"[Funnel Sender] Message {message.id} deactivated after {MAX_SEND_ATTEMPTS} failed attempts")
                failed += 1
            db.commit()

        except Exception as e:
            db.rollback()
            failed += 1
            logger.error(f"[Funnel Sender] ❌ Error processing message {message.id}: {e}")
            try:
                _record_failed_attempt(message, now, str(e))
                db.commit()
            except SQLAlchemyError as db_error:
                db.rollback()
                logger.error(f"[Funnel Sender] ❌ Could not record failure of message {message.id}: {db_error}")

    summary = {"processed": len(due), "sent": sent, "failed": failed, "skipped": skipped}
    logger.info(f"[Funnel Sender] Complete: {summary}")
    return summary
