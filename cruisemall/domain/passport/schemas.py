"""Passport request schemas"""

from datetime import date, datetime
from typing import Any, Optional

from pydantic import BaseModel, model_validator


class PassportLinkRequest(BaseModel):
    user_id: Optional[int] = None
    lead_id: Optional[int] = None
    trip_name: Optional[str] = None
    departure_date: Optional[date] = None
    send_email: bool = False

    @model_validator(mode="after")
    def require_target(self):
        if self.user_id is None and self.lead_id is None:
            raise ValueError("user_id or lead_id is required")
        return self


class PassportLinkResponse(BaseModel):
    ok: bool = True
    submission_id: int
    token: str
    link: str
    expires_at: datetime
    email_sent: bool = False


class PassportSubmitRequest(BaseModel):
    # Shape is checked by the service so malformed payloads get a 400
    groups: Any = None
    remarks: Optional[str] = None


class GuestResponse(BaseModel):
    id: int
    group_number: int
    name: str
    phone: Optional[str] = None
    passport_number: Optional[str] = None
    nationality: Optional[str] = None
    date_of_birth: Optional[str] = None
    passport_expiry_date: Optional[str] = None

    class Config:
        from_attributes = True
