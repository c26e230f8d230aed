"""Affiliate domain schemas - profiles, relations, leads, sales"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from ...models import LEAD_STATUSES, PROFILE_TYPES
from ...shared.validators import validate_email, validate_kr_phone

# ============================================================================
# PROFILES & RELATIONS
# ============================================================================


class ProfileCreate(BaseModel):
    user_id: int
    type: str
    affiliate_code: Optional[str] = None
    display_name: Optional[str] = None
    nickname: Optional[str] = None
    branch_label: Optional[str] = None
    contact_phone: Optional[str] = None
    landing_slug: Optional[str] = None
    withholding_rate: Optional[float] = None
    manager_id: Optional[int] = None  # Connect a new agent to a branch manager

    @field_validator("type")
    @classmethod
    def validate_type(cls, v):
        if v not in PROFILE_TYPES:
            raise ValueError(f"type must be one of {', '.join(PROFILE_TYPES)}")
        return v

    @field_validator("contact_phone")
    @classmethod
    def validate_phone(cls, v):
        return validate_kr_phone(v)


class ProfileUpdate(BaseModel):
    display_name: Optional[str] = None
    nickname: Optional[str] = None
    branch_label: Optional[str] = None
    status: Optional[str] = None
    contact_phone: Optional[str] = None
    landing_slug: Optional[str] = None
    withholding_rate: Optional[float] = None

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        if v is not None and v not in ("ACTIVE", "SUSPENDED", "TERMINATED"):
            raise ValueError("status must be ACTIVE, SUSPENDED or TERMINATED")
        return v

    @field_validator("contact_phone")
    @classmethod
    def validate_phone(cls, v):
        return validate_kr_phone(v)


class ProfileResponse(BaseModel):
    id: int
    user_id: int
    type: str
    affiliate_code: str
    display_name: Optional[str] = None
    nickname: Optional[str] = None
    branch_label: Optional[str] = None
    status: str
    contact_phone: Optional[str] = None
    landing_slug: Optional[str] = None
    withholding_rate: float
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class RelationCreate(BaseModel):
    manager_id: int
    agent_id: int


class RelationResponse(BaseModel):
    id: int
    manager_id: int
    agent_id: int
    status: str
    connected_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ============================================================================
# LEADS (PARTNER CUSTOMERS)
# ============================================================================


class LeadCreate(BaseModel):
    customer_name: str
    customer_phone: Optional[str] = None
    customer_email: Optional[str] = None
    status: Optional[str] = None
    notes: Optional[str] = None
    group_id: Optional[int] = None
    next_action_at: Optional[datetime] = None

    @field_validator("customer_name")
    @classmethod
    def validate_name(cls, v):
        v = (v or "").strip()
        if not v:
            raise ValueError("customer_name is required")
        return v

    @field_validator("customer_phone")
    @classmethod
    def validate_phone(cls, v):
        return validate_kr_phone(v)

    @field_validator("customer_email")
    @classmethod
    def validate_email_field(cls, v):
        return validate_email(v)


class LeadUpdate(BaseModel):
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_email: Optional[str] = None
    status: Optional[str] = None
    notes: Optional[str] = None
    next_action_at: Optional[datetime] = None

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        if v is not None and v not in LEAD_STATUSES:
            raise ValueError(f"status must be one of {', '.join(LEAD_STATUSES)}")
        return v

    @field_validator("customer_phone")
    @classmethod
    def validate_phone(cls, v):
        return validate_kr_phone(v)

    @field_validator("customer_email")
    @classmethod
    def validate_email_field(cls, v):
        return validate_email(v)


class LeadResponse(BaseModel):
    id: int
    manager_id: Optional[int] = None
    agent_id: Optional[int] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_email: Optional[str] = None
    status: str
    source: Optional[str] = None
    group_id: Optional[int] = None
    notes: Optional[str] = None
    ownership: Optional[str] = None
    passport_requested_at: Optional[datetime] = None
    passport_completed_at: Optional[datetime] = None
    last_contacted_at: Optional[datetime] = None
    next_action_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class LeadListResponse(BaseModel):
    ok: bool = True
    customers: list[LeadResponse]
    total: int
    page: int
    limit: int


class InteractionCreate(BaseModel):
    interaction_type: str
    note: Optional[str] = None
    occurred_at: Optional[datetime] = None

    @field_validator("interaction_type")
    @classmethod
    def validate_type(cls, v):
        v = (v or "").strip().upper()
        if v not in ("CALL", "SMS", "KAKAO", "EMAIL", "MEMO", "VISIT"):
            raise ValueError("interaction_type must be CALL, SMS, KAKAO, EMAIL, MEMO or VISIT")
        return v


class InteractionResponse(BaseModel):
    id: int
    lead_id: int
    profile_id: Optional[int] = None
    interaction_type: str
    note: Optional[str] = None
    occurred_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class MoveGroupRequest(BaseModel):
    group_id: Optional[int] = None


class AssignRequest(BaseModel):
    lead_ids: list[int]
    agent_id: int


# ============================================================================
# SALES & LEDGER
# ============================================================================


class SaleCreate(BaseModel):
    product_code: Optional[str] = None
    sale_amount: int
    cost_amount: Optional[int] = None
    sale_date: Optional[datetime] = None

    @field_validator("sale_amount")
    @classmethod
    def validate_amount(cls, v):
        if v <= 0:
            raise ValueError("sale_amount must be positive")
        return v


class SaleResponse(BaseModel):
    id: int
    lead_id: Optional[int] = None
    manager_id: Optional[int] = None
    agent_id: Optional[int] = None
    product_code: Optional[str] = None
    sale_amount: int
    cost_amount: Optional[int] = None
    net_revenue: Optional[int] = None
    branch_commission: Optional[int] = None
    sales_commission: Optional[int] = None
    override_commission: Optional[int] = None
    status: str
    sale_date: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class LedgerEntryResponse(BaseModel):
    id: int
    sale_id: int
    entry_type: str
    amount: int
    currency: str
    withholding_amount: Optional[int] = None
    is_settled: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
