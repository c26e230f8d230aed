"""
Messaging models: partner funnels, admin scheduled messages, outbound queue
and delivery logs
"""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


class FunnelMessage(Base):
    __tablename__ = "funnel_messages"

    id = Column(Integer, primary_key=True, index=True)
    owner_user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    profile_id = Column(Integer, ForeignKey("affiliate_profiles.id"), index=True, nullable=True)
    group_id = Column(Integer, ForeignKey("partner_customer_groups.id"), nullable=True)
    message_type = Column(String(20), nullable=False)  # sms, kakao, email
    title = Column(String(200), nullable=False)
    category = Column(String(50), nullable=True)
    description = Column(Text, nullable=True)
    sender_phone = Column(String(30), nullable=True)
    sender_email = Column(String(255), nullable=True)
    send_time = Column(String(5), nullable=True)  # HH:MM default for stages
    opt_out_number = Column(String(30), nullable=True)
    auto_add_opt_out = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    stages = relationship(
        "FunnelMessageStage",
        back_populates="funnel_message",
        cascade="all, delete-orphan",
        order_by="FunnelMessageStage.order",
    )


class FunnelMessageStage(Base):
    __tablename__ = "funnel_message_stages"

    id = Column(Integer, primary_key=True, index=True)
    funnel_message_id = Column(Integer, ForeignKey("funnel_messages.id"), index=True, nullable=False)
    stage_number = Column(Integer, nullable=False)
    days_after = Column(Integer, default=0, nullable=False)
    send_time = Column(String(5), nullable=True)
    content = Column(Text, nullable=False)
    image_url = Column(String(500), nullable=True)
    order = Column(Integer, default=0, nullable=False)

    funnel_message = relationship("FunnelMessage", back_populates="stages")


class ScheduledMessage(Base):
    __tablename__ = "scheduled_messages"

    id = Column(Integer, primary_key=True, index=True)
    owner_user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    title = Column(String(200), nullable=False)
    category = Column(String(50), nullable=True)
    send_method = Column(String(20), nullable=False)  # cruise-guide, sms, kakao, email
    target_group_id = Column(Integer, ForeignKey("partner_customer_groups.id"), nullable=True)
    start_date = Column(Date, nullable=True)
    start_time = Column(String(5), nullable=True)  # HH:MM
    max_days = Column(Integer, default=999, nullable=False)
    is_ad_message = Column(Boolean, default=False, nullable=False)
    auto_add_ad_tag = Column(Boolean, default=True, nullable=False)
    auto_add_opt_out = Column(Boolean, default=True, nullable=False)
    opt_out_number = Column(String(30), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    stages = relationship(
        "ScheduledMessageStage",
        back_populates="scheduled_message",
        cascade="all, delete-orphan",
        order_by="ScheduledMessageStage.order",
    )


class ScheduledMessageStage(Base):
    __tablename__ = "scheduled_message_stages"

    id = Column(Integer, primary_key=True, index=True)
    scheduled_message_id = Column(
        Integer, ForeignKey("scheduled_messages.id"), index=True, nullable=False
    )
    stage_number = Column(Integer, nullable=False)
    days_after = Column(Integer, default=0, nullable=False)
    send_time = Column(String(5), nullable=True)
    title = Column(String(200), nullable=False)
    content = Column(Text, nullable=False)
    order = Column(Integer, default=0, nullable=False)

    scheduled_message = relationship("ScheduledMessage", back_populates="stages")


class OutboundMessage(Base):
    """Queued partner message, picked up by the funnel sender once send_at passes"""

    __tablename__ = "outbound_messages"

    id = Column(Integer, primary_key=True, index=True)
    owner_user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    profile_id = Column(Integer, ForeignKey("affiliate_profiles.id"), index=True, nullable=True)
    lead_id = Column(Integer, ForeignKey("affiliate_leads.id"), index=True, nullable=True)
    channel = Column(String(20), nullable=False)  # sms, kakao, email
    title = Column(String(200), nullable=False)
    content = Column(Text, nullable=False)
    send_at = Column(DateTime, index=True, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)  # False once sent or abandoned
    sent_at = Column(DateTime, nullable=True)
    metadata_json = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime, server_default=func.now())


class NotificationLog(Base):
    __tablename__ = "notification_logs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=True)
    notification_type = Column(String(50), nullable=False)
    event_key = Column(String(255), unique=True, index=True, nullable=False)
    channel = Column(String(20), nullable=True)
    title = Column(String(200), nullable=True)
    body = Column(Text, nullable=True)
    sent_at = Column(DateTime, server_default=func.now())


class PartnerSmsConfig(Base):
    __tablename__ = "partner_sms_configs"

    id = Column(Integer, primary_key=True, index=True)
    profile_id = Column(Integer, ForeignKey("affiliate_profiles.id"), unique=True, nullable=False)
    provider = Column(String(20), default="aligo", nullable=False)
    api_key = Column(Text, nullable=False)  # Fernet encrypted
    aligo_user_id = Column(String(100), nullable=False)
    sender_phone = Column(String(30), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class SmsLog(Base):
    __tablename__ = "sms_logs"

    id = Column(Integer, primary_key=True, index=True)
    profile_id = Column(Integer, ForeignKey("affiliate_profiles.id"), index=True, nullable=True)
    to_phone = Column(String(30), nullable=False)
    message_body = Column(Text, nullable=False)
    message_type = Column(String(50), nullable=False)  # scheduled_message, partner_funnel
    msg_type = Column(String(10), nullable=True)  # SMS, LMS
    status = Column(String(20), nullable=False)  # sent, failed
    provider_msg_id = Column(String(100), nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
