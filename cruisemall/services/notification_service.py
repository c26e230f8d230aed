"""
Outbound notifications: Aligo SMS, email and in-app (cruise guide) messages
"""

import logging
from typing import Optional

import httpx
from sqlalchemy.orm import Session

from ..config import ALIGO_API_KEY, ALIGO_API_URL, ALIGO_SENDER_PHONE, ALIGO_USER_ID
from ..email_service import send_message_email
from ..models_messaging import PartnerSmsConfig, SmsLog
from ..security_utils import decrypt_credential
from ..shared.validators import mask_phone_for_log, normalize_phone

logger = logging.getLogger(__name__)

SMS_MAX_BYTES = 90


class SmsConfig:
    """Credentials for one Aligo account"""

    def __init__(self, api_key: str, user_id: str, sender_phone: str, provider: str = "aligo"):
        self.api_key = api_key
        self.user_id = user_id
        self.sender_phone = sender_phone
        self.provider = provider


def get_hq_sms_config() -> Optional[SmsConfig]:
    if not (ALIGO_API_KEY and ALIGO_USER_ID and ALIGO_SENDER_PHONE):
        return None
    return SmsConfig(ALIGO_API_KEY, ALIGO_USER_ID, ALIGO_SENDER_PHONE)


def get_partner_sms_config(db: Session, profile_id: int) -> Optional[SmsConfig]:
    config = db.query(PartnerSmsConfig).filter(PartnerSmsConfig.profile_id == profile_id).first()
    if not config or not config.is_active:
        logger.info(f"SMS config not found or inactive for profile {profile_id}")
        return None

    api_key = decrypt_credential(config.api_key)
    if not api_key:
        return None
    return SmsConfig(api_key, config.aligo_user_id, config.sender_phone, config.provider or "aligo")


def sms_message_type(message: str) -> str:
    """Aligo bills by bytes: over 90 UTF-8 bytes is an LMS"""
    return "LMS" if len(message.encode("utf-8")) > SMS_MAX_BYTES else "SMS"


async def send_sms_via_aligo(config: SmsConfig, phone: str, message: str, title: Optional[str] = None) -> dict:
    """
    POST to Aligo /send/.

    Returns:
        {"success": bool, "msg_type": "SMS"|"LMS", "result": dict|None, "error": str|None}
    """
    msg_type = sms_message_type(message)
    form = {
        "key": config.api_key,
        "user_id": config.user_id,
        "sender": config.sender_phone,
        "receiver": normalize_phone(phone) or "",
        "msg": message,
        "msg_type": msg_type,
    }
    if title and msg_type == "LMS":
        form["title"] = title[:44]

    try:
        async with httpx.AsyncClient(timeout=15.0) as client:
            response = await client.post(f"{ALIGO_API_URL}/send/", data=form)
    except httpx.HTTPError as e:
        return {"success": False, "msg_type": msg_type, "result": None, "error": str(e)}

    if response.status_code != 200:
        return {
            "success": False,
            "msg_type": msg_type,
            "result": None,
            "error": f"Aligo request failed ({response.status_code}): {response.text[:200]}",
        }

    try:
        result = response.json()
    except ValueError:
        result = None
    if not isinstance(result, dict):
        return {
            "success": False,
            "msg_type": msg_type,
            "result": None,
            "error": f"Aligo returned an unreadable response: {response.text[:200]}",
        }

    if str(result.get("result_code")) != "1":
        return {
            "success": False,
            "msg_type": msg_type,
            "result": result,
            "error": result.get("message") or f"Aligo error (code: {result.get('result_code')})",
        }

    return {"success": True, "msg_type": msg_type, "result": result, "error": None}


async def send_sms(
    db: Session,
    config: SmsConfig,
    to_phone: str,
    message_body: str,
    message_type: str,
    profile_id: Optional[int] = None,
    title: Optional[str] = None,
) -> tuple[bool, Optional[str]]:
    """
    Send an SMS and record it in sms_logs

    Returns:
        Tuple of (success: bool, error_message: Optional[str])
    """
    if not normalize_phone(to_phone):
        return False, "No phone number provided"

    outcome = await send_sms_via_aligo(config, to_phone, message_body, title)

    db.add(
        SmsLog(
            profile_id=profile_id,
            to_phone=normalize_phone(to_phone),
            message_body=message_body,
            message_type=message_type,
            msg_type=outcome["msg_type"],
            status="sent" if outcome["success"] else "failed",
            provider_msg_id=str((outcome["result"] or {}).get("msg_id") or "") or None,
            error_message=outcome["error"],
        )
    )
    db.flush()

    if outcome["success"]:
        logger.info(f"✅ SMS sent to {mask_phone_for_log(to_phone)} ({outcome['msg_type']})")
        return True, None

    logger.error(f"❌ SMS to {mask_phone_for_log(to_phone)} failed: {outcome['error']}")
    return False, outcome["error"]


async def send_email_message(to_email: Optional[str], title: str, body: str) -> tuple[bool, Optional[str]]:
    if not to_email:
        return False, "No email address"
    try:
        await send_message_email(to_email, title, body)
        return True, None
    except Exception as e:
        logger.error(f"❌ Email to {to_email} failed: {e}")
        return False, str(e)
