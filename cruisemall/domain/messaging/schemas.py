"""Messaging schemas - partner funnels, scheduled messages and SMS settings"""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from ...shared.dates import parse_hhmm
from ...shared.validators import validate_kr_phone

FUNNEL_TYPES = ("sms", "kakao", "email")
SEND_METHODS = ("cruise-guide", "sms", "kakao", "email")


def _check_time(v):
    if v in (None, ""):
        return None
    if not parse_hhmm(v):
        raise ValueError("time must be HH:MM")
    return v


# ============================================================================
# FUNNEL MESSAGES
# ============================================================================


class FunnelStageIn(BaseModel):
    stage_number: Optional[int] = None
    days_after: int = 0
    send_time: Optional[str] = None
    content: str
    image_url: Optional[str] = None

    @field_validator("send_time")
    @classmethod
    def validate_time(cls, v):
        return _check_time(v)

    @field_validator("days_after")
    @classmethod
    def validate_days(cls, v):
        if v < 0:
            raise ValueError("days_after cannot be negative")
        return v


class FunnelMessageCreate(BaseModel):
    message_type: str
    title: str
    category: Optional[str] = None
    description: Optional[str] = None
    group_id: Optional[int] = None
    sender_phone: Optional[str] = None
    sender_email: Optional[str] = None
    send_time: Optional[str] = None
    opt_out_number: Optional[str] = None
    auto_add_opt_out: bool = False
    is_active: bool = True
    stages: list[FunnelStageIn] = []

    @field_validator("message_type")
    @classmethod
    def validate_type(cls, v):
        v = (v or "").strip().lower()
        if v not in FUNNEL_TYPES:
            raise ValueError("message_type must be sms, kakao or email")
        return v

    @field_validator("title")
    @classmethod
    def validate_title(cls, v):
        v = (v or "").strip()
        if not v:
            raise ValueError("title is required")
        return v

    @field_validator("send_time")
    @classmethod
    def validate_time(cls, v):
        return _check_time(v)


class FunnelMessageUpdate(BaseModel):
    title: Optional[str] = None
    category: Optional[str] = None
    description: Optional[str] = None
    group_id: Optional[int] = None
    sender_phone: Optional[str] = None
    sender_email: Optional[str] = None
    send_time: Optional[str] = None
    opt_out_number: Optional[str] = None
    auto_add_opt_out: Optional[bool] = None
    is_active: Optional[bool] = None
    stages: Optional[list[FunnelStageIn]] = None

    @field_validator("send_time")
    @classmethod
    def validate_time(cls, v):
        return _check_time(v)


class FunnelStageResponse(BaseModel):
    id: int
    stage_number: int
    days_after: int
    send_time: Optional[str] = None
    content: str
    image_url: Optional[str] = None
    order: int

    class Config:
        from_attributes = True


class FunnelMessageResponse(BaseModel):
    id: int
    owner_user_id: int
    profile_id: Optional[int] = None
    group_id: Optional[int] = None
    message_type: str
    title: str
    category: Optional[str] = None
    description: Optional[str] = None
    sender_phone: Optional[str] = None
    sender_email: Optional[str] = None
    send_time: Optional[str] = None
    opt_out_number: Optional[str] = None
    auto_add_opt_out: bool
    is_active: bool
    stages: list[FunnelStageResponse] = []
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ============================================================================
# SCHEDULED MESSAGES
# ============================================================================


class ScheduledStageIn(BaseModel):
    stage_number: Optional[int] = None
    days_after: int = 0
    send_time: Optional[str] = None
    title: str
    content: str

    @field_validator("send_time")
    @classmethod
    def validate_time(cls, v):
        return _check_time(v)


class ScheduledMessageCreate(BaseModel):
    title: str
    category: Optional[str] = None
    send_method: str
    target_group_id: Optional[int] = None
    start_date: Optional[date] = None
    start_time: Optional[str] = None
    max_days: int = 999
    is_ad_message: bool = False
    auto_add_ad_tag: bool = True
    auto_add_opt_out: bool = True
    opt_out_number: Optional[str] = None
    is_active: bool = True
    stages: list[ScheduledStageIn] = []

    @field_validator("send_method")
    @classmethod
    def validate_method(cls, v):
        if v not in SEND_METHODS:
            raise ValueError(f"send_method must be one of {', '.join(SEND_METHODS)}")
        return v

    @field_validator("start_time")
    @classmethod
    def validate_time(cls, v):
        return _check_time(v)


class ScheduledMessageUpdate(BaseModel):
    title: Optional[str] = None
    category: Optional[str] = None
    send_method: Optional[str] = None
    target_group_id: Optional[int] = None
    start_date: Optional[date] = None
    start_time: Optional[str] = None
    max_days: Optional[int] = None
    is_ad_message: Optional[bool] = None
    auto_add_ad_tag: Optional[bool] = None
    auto_add_opt_out: Optional[bool] = None
    opt_out_number: Optional[str] = None
    is_active: Optional[bool] = None
    stages: Optional[list[ScheduledStageIn]] = None

    @field_validator("send_method")
    @classmethod
    def validate_method(cls, v):
        if v is not None and v not in SEND_METHODS:
            raise ValueError(f"send_method must be one of {', '.join(SEND_METHODS)}")
        return v


class ScheduledStageResponse(BaseModel):
    id: int
    stage_number: int
    days_after: int
    send_time: Optional[str] = None
    title: str
    content: str
    order: int

    class Config:
        from_attributes = True


class ScheduledMessageResponse(BaseModel):
    id: int
    owner_user_id: int
    title: str
    category: Optional[str] = None
    send_method: str
    target_group_id: Optional[int] = None
    start_date: Optional[date] = None
    start_time: Optional[str] = None
    max_days: int
    is_ad_message: bool
    auto_add_ad_tag: bool
    auto_add_opt_out: bool
    opt_out_number: Optional[str] = None
    is_active: bool
    stages: list[ScheduledStageResponse] = []
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ============================================================================
# PARTNER SMS SETTINGS
# ============================================================================


class SmsConfigUpdate(BaseModel):
    api_key: str
    aligo_user_id: str
    sender_phone: str
    is_active: bool = True

    @field_validator("sender_phone")
    @classmethod
    def validate_sender(cls, v):
        return validate_kr_phone(v)


class SmsConfigResponse(BaseModel):
    provider: str
    aligo_user_id: str
    sender_phone: str
    is_active: bool
    has_api_key: bool
