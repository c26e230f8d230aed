"""Landing page schemas"""

import re
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from ...shared.validators import validate_email, validate_kr_phone

SLUG_PATTERN = re.compile(r"^[a-z0-9][a-z0-9-]{1,98}[a-z0-9]$")


def _check_slug(v):
    if v is None:
        return v
    v = v.strip().lower()
    if not SLUG_PATTERN.match(v):
        raise ValueError("slug must be 3-100 lowercase letters, digits or hyphens")
    return v


class LandingPageCreate(BaseModel):
    slug: str
    title: str
    html_content: Optional[str] = None
    group_id: Optional[int] = None
    is_active: bool = True

    @field_validator("slug")
    @classmethod
    def validate_slug(cls, v):
        return _check_slug(v)

    @field_validator("title")
    @classmethod
    def validate_title(cls, v):
        v = (v or "").strip()
        if not v:
            raise ValueError("title is required")
        return v


class LandingPageUpdate(BaseModel):
    slug: Optional[str] = None
    title: Optional[str] = None
    html_content: Optional[str] = None
    group_id: Optional[int] = None
    is_active: Optional[bool] = None

    @field_validator("slug")
    @classmethod
    def validate_slug(cls, v):
        return _check_slug(v)


class LandingPageResponse(BaseModel):
    id: int
    profile_id: int
    slug: str
    title: str
    html_content: Optional[str] = None
    is_active: bool
    view_count: int
    group_id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PublicLandingResponse(BaseModel):
    slug: str
    title: str
    html_content: Optional[str] = None
    partner_name: Optional[str] = None


class LandingRegisterRequest(BaseModel):
    name: str
    phone: str
    email: Optional[str] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        v = (v or "").strip()
        if not v:
            raise ValueError("name is required")
        return v

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v):
        v = validate_kr_phone(v)
        if not v:
            raise ValueError("phone is required")
        return v

    @field_validator("email")
    @classmethod
    def validate_email_field(cls, v):
        return validate_email(v)
