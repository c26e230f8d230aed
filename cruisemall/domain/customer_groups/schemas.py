"""Customer group schemas"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator


def _clean_id_list(v):
    if v is None:
        return None
    ids = []
    for item in v:
        try:
            ids.append(int(item))
        except (TypeError, ValueError):
            continue
    return ids or None


class CustomerGroupBase(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    color: Optional[str] = None
    product_code: Optional[str] = None
    funnel_talk_ids: Optional[list] = None
    funnel_sms_ids: Optional[list] = None
    funnel_email_ids: Optional[list] = None
    re_entry_handling: Optional[str] = None

    @field_validator("funnel_talk_ids", "funnel_sms_ids", "funnel_email_ids")
    @classmethod
    def validate_ids(cls, v):
        return _clean_id_list(v)


class CustomerGroupCreate(CustomerGroupBase):
    pass


class CustomerGroupUpdate(CustomerGroupBase):
    pass


class CustomerGroupResponse(BaseModel):
    id: int
    profile_id: int
    name: str
    description: Optional[str] = None
    color: Optional[str] = None
    product_code: Optional[str] = None
    funnel_talk_ids: Optional[list[int]] = None
    funnel_sms_ids: Optional[list[int]] = None
    funnel_email_ids: Optional[list[int]] = None
    re_entry_handling: Optional[str] = None
    lead_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
