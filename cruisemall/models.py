from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base

# Affiliate profile types
PROFILE_HQ = "HQ"
PROFILE_BRANCH_MANAGER = "BRANCH_MANAGER"
PROFILE_SALES_AGENT = "SALES_AGENT"
PROFILE_TYPES = (PROFILE_HQ, PROFILE_BRANCH_MANAGER, PROFILE_SALES_AGENT)

LEAD_STATUSES = (
    "NEW",
    "CONTACTED",
    "IN_PROGRESS",
    "PURCHASED",
    "REFUNDED",
    "CLOSED",
    "CANCELLED",
)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(100), unique=True, index=True, nullable=True)  # Mall login id
    nickname = Column(String(100), nullable=True)
    name = Column(String(100), nullable=True)
    phone = Column(String(30), index=True, nullable=True)  # Digits only; legacy rows may hold login id
    email = Column(String(255), unique=True, index=True, nullable=True)
    password_hash = Column(String(255), nullable=True)
    role = Column(String(30), default="user", nullable=False)  # user, community, partner, admin
    customer_source = Column(String(50), nullable=True)  # mall-signup, landing-page, admin
    customer_status = Column(String(30), default="active", nullable=False)
    onboarded = Column(Boolean, default=False, nullable=False)
    last_login_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    affiliate_profile = relationship("AffiliateProfile", back_populates="user", uselist=False)


class AffiliateProfile(Base):
    __tablename__ = "affiliate_profiles"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)
    type = Column(String(30), nullable=False)  # HQ, BRANCH_MANAGER, SALES_AGENT
    affiliate_code = Column(String(50), unique=True, index=True, nullable=False)
    display_name = Column(String(100), nullable=True)
    nickname = Column(String(100), nullable=True)
    branch_label = Column(String(100), nullable=True)
    status = Column(String(30), default="ACTIVE", nullable=False)  # ACTIVE, SUSPENDED, TERMINATED
    contact_phone = Column(String(30), nullable=True)
    landing_slug = Column(String(100), unique=True, nullable=True)
    withholding_rate = Column(Float, default=3.3, nullable=False)  # Percent
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="affiliate_profile")


class AffiliateRelation(Base):
    """Branch manager -> sales agent link. An agent has at most one ACTIVE relation."""

    __tablename__ = "affiliate_relations"

    id = Column(Integer, primary_key=True, index=True)
    manager_id = Column(Integer, ForeignKey("affiliate_profiles.id"), index=True, nullable=False)
    agent_id = Column(Integer, ForeignKey("affiliate_profiles.id"), index=True, nullable=False)
    status = Column(String(20), default="ACTIVE", nullable=False)  # ACTIVE, INACTIVE
    connected_at = Column(DateTime, server_default=func.now())
    disconnected_at = Column(DateTime, nullable=True)

    manager = relationship("AffiliateProfile", foreign_keys=[manager_id])
    agent = relationship("AffiliateProfile", foreign_keys=[agent_id])


class PartnerCustomerGroup(Base):
    __tablename__ = "partner_customer_groups"

    id = Column(Integer, primary_key=True, index=True)
    profile_id = Column(Integer, ForeignKey("affiliate_profiles.id"), index=True, nullable=False)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    color = Column(String(20), nullable=True)
    product_code = Column(String(50), nullable=True)
    funnel_talk_ids = Column(JSON, nullable=True)  # list[int] of kakao funnels
    funnel_sms_ids = Column(JSON, nullable=True)
    funnel_email_ids = Column(JSON, nullable=True)
    re_entry_handling = Column(String(30), nullable=True)  # time_change_info, ...
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    profile = relationship("AffiliateProfile")


class AffiliateLead(Base):
    __tablename__ = "affiliate_leads"

    id = Column(Integer, primary_key=True, index=True)
    manager_id = Column(Integer, ForeignKey("affiliate_profiles.id"), index=True, nullable=True)
    agent_id = Column(Integer, ForeignKey("affiliate_profiles.id"), index=True, nullable=True)
    customer_name = Column(String(100), nullable=True)
    customer_phone = Column(String(30), index=True, nullable=True)  # Normalized digits
    customer_email = Column(String(255), nullable=True)
    status = Column(String(30), default="NEW", nullable=False)
    source = Column(String(50), nullable=True)  # partner-manual, landing-page, mall-purchase
    group_id = Column(Integer, ForeignKey("partner_customer_groups.id"), index=True, nullable=True)
    notes = Column(Text, nullable=True)
    metadata_json = Column("metadata", JSON, nullable=True)
    passport_requested_at = Column(DateTime, nullable=True)
    passport_completed_at = Column(DateTime, nullable=True)
    last_contacted_at = Column(DateTime, nullable=True)
    next_action_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    manager = relationship("AffiliateProfile", foreign_keys=[manager_id])
    agent = relationship("AffiliateProfile", foreign_keys=[agent_id])
    group = relationship("PartnerCustomerGroup")
    interactions = relationship(
        "AffiliateInteraction", back_populates="lead", cascade="all, delete-orphan"
    )
    sales = relationship("AffiliateSale", back_populates="lead")


class AffiliateInteraction(Base):
    __tablename__ = "affiliate_interactions"

    id = Column(Integer, primary_key=True, index=True)
    lead_id = Column(Integer, ForeignKey("affiliate_leads.id"), index=True, nullable=False)
    profile_id = Column(Integer, ForeignKey("affiliate_profiles.id"), nullable=True)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    interaction_type = Column(String(30), nullable=False)  # CALL, SMS, KAKAO, MEMO, VISIT
    occurred_at = Column(DateTime, server_default=func.now())
    note = Column(Text, nullable=True)

    lead = relationship("AffiliateLead", back_populates="interactions")


class AffiliateSale(Base):
    __tablename__ = "affiliate_sales"

    id = Column(Integer, primary_key=True, index=True)
    lead_id = Column(Integer, ForeignKey("affiliate_leads.id"), index=True, nullable=True)
    manager_id = Column(Integer, ForeignKey("affiliate_profiles.id"), index=True, nullable=True)
    agent_id = Column(Integer, ForeignKey("affiliate_profiles.id"), index=True, nullable=True)
    payment_id = Column(Integer, ForeignKey("payments.id"), nullable=True)
    product_code = Column(String(50), nullable=True)
    sale_amount = Column(Integer, nullable=False)  # KRW
    cost_amount = Column(Integer, nullable=True)
    net_revenue = Column(Integer, nullable=True)
    branch_commission = Column(Integer, nullable=True)
    sales_commission = Column(Integer, nullable=True)
    override_commission = Column(Integer, nullable=True)
    status = Column(String(20), default="PENDING", nullable=False)
    sale_date = Column(DateTime, server_default=func.now())
    confirmed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    lead = relationship("AffiliateLead", back_populates="sales")
    manager = relationship("AffiliateProfile", foreign_keys=[manager_id])
    agent = relationship("AffiliateProfile", foreign_keys=[agent_id])
    ledger_entries = relationship(
        "CommissionLedger", back_populates="sale", cascade="all, delete-orphan"
    )


class CommissionLedger(Base):
    __tablename__ = "commission_ledgers"

    id = Column(Integer, primary_key=True, index=True)
    sale_id = Column(Integer, ForeignKey("affiliate_sales.id"), index=True, nullable=False)
    profile_id = Column(Integer, ForeignKey("affiliate_profiles.id"), index=True, nullable=True)
    entry_type = Column(String(30), nullable=False)
    amount = Column(Integer, nullable=False)
    currency = Column(String(10), default="KRW", nullable=False)
    withholding_amount = Column(Integer, nullable=True)
    is_settled = Column(Boolean, default=False, nullable=False)
    metadata_json = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    sale = relationship("AffiliateSale", back_populates="ledger_entries")


class LandingPage(Base):
    __tablename__ = "landing_pages"

    id = Column(Integer, primary_key=True, index=True)
    profile_id = Column(Integer, ForeignKey("affiliate_profiles.id"), index=True, nullable=False)
    slug = Column(String(100), unique=True, index=True, nullable=False)
    title = Column(String(200), nullable=False)
    html_content = Column(Text, nullable=True)  # Sanitized with bleach
    is_active = Column(Boolean, default=True, nullable=False)
    view_count = Column(Integer, default=0, nullable=False)
    group_id = Column(Integer, ForeignKey("partner_customer_groups.id"), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    profile = relationship("AffiliateProfile")
    registrations = relationship(
        "LandingPageRegistration", back_populates="landing_page", cascade="all, delete-orphan"
    )


class LandingPageRegistration(Base):
    __tablename__ = "landing_page_registrations"

    id = Column(Integer, primary_key=True, index=True)
    landing_page_id = Column(Integer, ForeignKey("landing_pages.id"), index=True, nullable=False)
    lead_id = Column(Integer, ForeignKey("affiliate_leads.id"), nullable=True)
    name = Column(String(100), nullable=False)
    phone = Column(String(30), nullable=False)
    email = Column(String(255), nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    landing_page = relationship("LandingPage", back_populates="registrations")


class ChatHistory(Base):
    __tablename__ = "chat_histories"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    role = Column(String(20), nullable=False)  # user, assistant
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
