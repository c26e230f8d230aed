"""Passport submission service - request links and guest submissions"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...config import BASE_URL, PASSPORT_TOKEN_TTL_HOURS
from ...email_service import EmailNotConfiguredError, send_passport_request_email
from ...models import AffiliateLead, User
from ...models_passport import PassportRequestLog, PassportSubmission, PassportSubmissionGuest
from ...security_utils import generate_hex_token
from ...shared.validators import normalize_phone
from .schemas import GuestResponse, PassportLinkRequest, PassportSubmitRequest
from .tokens import decode_token, encode_token

logger = logging.getLogger(__name__)

MAX_GROUPS = 30
MIN_TOKEN_LENGTH = 10


def build_passport_link(token: str) -> str:
    return f"{BASE_URL.rstrip('/')}/passport/{encode_token(token)}"


def _clean(value) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


class PassportService:
    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------ request

    def create_link(
        self,
        data: PassportLinkRequest,
        requested_by: Optional[User],
        lead: Optional[AffiliateLead] = None,
    ) -> tuple[PassportSubmission, str]:
        user = None
        if data.user_id is not None:
            user = self.db.query(User).filter(User.id == data.user_id).first()
            if not user:
                raise HTTPException(status_code=404, detail="User not found")

        if lead is None and data.lead_id is not None:
            lead = self.db.query(AffiliateLead).filter(AffiliateLead.id == data.lead_id).first()
            if not lead:
                raise HTTPException(status_code=404, detail="Lead not found")

        if user is None and lead and lead.customer_phone:
            user = self.db.query(User).filter(User.phone == lead.customer_phone).first()

        token = generate_hex_token(24)
        while self.db.query(PassportSubmission.id).filter(PassportSubmission.token == token).first():
            token = generate_hex_token(24)

        submission = PassportSubmission(
            user_id=user.id if user else None,
            lead_id=lead.id if lead else None,
            token=token,
            token_expires_at=datetime.utcnow() + timedelta(hours=PASSPORT_TOKEN_TTL_HOURS),
            is_submitted=False,
            trip_name=data.trip_name,
            departure_date=data.departure_date,
        )
        self.db.add(submission)
        self.db.flush()
        self.db.add(
            PassportRequestLog(
                submission_id=submission.id,
                requested_by_id=requested_by.id if requested_by else None,
                status="PENDING",
            )
        )
        if lead:
            lead.passport_requested_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(submission)

        link = build_passport_link(token)
        logger.info(f"🛂 Passport link created: submission={submission.id}, user={submission.user_id}, lead={submission.lead_id}")
        return submission, link

    async def send_link_email(self, submission: PassportSubmission, link: str) -> bool:
        email = None
        name = "고객"
        if submission.user and submission.user.email:
            email = submission.user.email
            name = submission.user.name or name
        elif submission.lead_id:
            lead = self.db.query(AffiliateLead).filter(AffiliateLead.id == submission.lead_id).first()
            if lead and lead.customer_email:
                email = lead.customer_email
                name = lead.customer_name or name
        if not email:
            return False

        try:
            await send_passport_request_email(
                email, name, link, submission.token_expires_at.strftime("%Y-%m-%d %H:%M")
            )
            return True
        except EmailNotConfiguredError:
            logger.warning("⚠️ Email not configured, passport link not emailed")
            return False

    # ------------------------------------------------------------------ public

    def _find(self, raw_token: str) -> PassportSubmission:
        if not raw_token or len(raw_token) < MIN_TOKEN_LENGTH:
            raise HTTPException(status_code=400, detail="Invalid token")
        token = decode_token(raw_token)
        submission = self.db.query(PassportSubmission).filter(PassportSubmission.token == token).first()
        if not submission:
            raise HTTPException(status_code=404, detail="Token not found")
        return submission

    def get_submission(self, raw_token: str) -> dict:
        submission = self._find(raw_token)
        user = submission.user
        return {
            "ok": True,
            "submission": {
                "id": submission.id,
                "is_submitted": submission.is_submitted,
                "submitted_at": submission.submitted_at,
                "token_expires_at": submission.token_expires_at,
                "is_expired": submission.token_expires_at < datetime.utcnow(),
                "trip_name": submission.trip_name,
                "departure_date": submission.departure_date,
                "extra_data": submission.extra_data,
            },
            "user": {"id": user.id, "name": user.name, "phone": user.phone, "email": user.email} if user else None,
            "guests": [GuestResponse.model_validate(g) for g in submission.guests],
        }

    def submit(self, raw_token: str, data: PassportSubmitRequest) -> dict:
        if len(raw_token or "") < MIN_TOKEN_LENGTH:
            raise HTTPException(status_code=400, detail="Invalid token")
        if not isinstance(data.groups, list):
            raise HTTPException(status_code=400, detail="groups must be a list")

        submission = self._find(raw_token)
        if submission.token_expires_at < datetime.utcnow():
            raise HTTPException(status_code=410, detail="Submission link has expired")

        groups = []
        for group in data.groups[:MAX_GROUPS]:
            if not isinstance(group, dict):
                continue
            try:
                number = int(group.get("group_number"))
            except (TypeError, ValueError):
                continue
            if 1 <= number <= MAX_GROUPS:
                guests = group.get("guests")
                groups.append({"group_number": number, "guests": guests if isinstance(guests, list) else []})
        if not groups:
            raise HTTPException(status_code=400, detail="At least one group is required")

        guest_rows = []
        for group in groups:
            for guest in group["guests"]:
                if not isinstance(guest, dict):
                    continue
                name = _clean(guest.get("name"))
                if not name:
                    continue
                guest_rows.append(
                    PassportSubmissionGuest(
                        group_number=group["group_number"],
                        name=name,
                        phone=normalize_phone(_clean(guest.get("phone"))),
                        passport_number=_clean(guest.get("passport_number")),
                        nationality=_clean(guest.get("nationality")),
                        date_of_birth=_clean(guest.get("date_of_birth")),
                        passport_expiry_date=_clean(guest.get("passport_expiry_date")),
                    )
                )
        if not guest_rows:
            raise HTTPException(status_code=400, detail="Each group needs at least one guest")

        now = datetime.utcnow()
        try:
            submission.guests = guest_rows
            submission.is_submitted = True
            submission.submitted_at = now
            extra = dict(submission.extra_data or {})
            extra["groups"] = groups
            extra["remarks"] = data.remarks or ""
            submission.extra_data = extra

            self.db.query(PassportRequestLog).filter(
                PassportRequestLog.submission_id == submission.id,
                PassportRequestLog.status == "PENDING",
            ).update({"status": "SUCCESS"}, synchronize_session=False)

            if submission.lead_id:
                lead = self.db.query(AffiliateLead).filter(AffiliateLead.id == submission.lead_id).first()
                if lead:
                    lead.passport_completed_at = now
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.exception(f"❌ Passport submission {submission.id} failed")
            raise

        logger.info(f"✅ Passport submission {submission.id}: {len(groups)} group(s), {len(guest_rows)} guest(s)")
        return {"ok": True, "submission_id": submission.id, "guest_count": len(guest_rows)}
