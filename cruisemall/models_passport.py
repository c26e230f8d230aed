from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


class PassportSubmission(Base):
    __tablename__ = "passport_submissions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=True)
    lead_id = Column(Integer, ForeignKey("affiliate_leads.id"), index=True, nullable=True)
    token = Column(String(64), unique=True, index=True, nullable=False)  # hex
    token_expires_at = Column(DateTime, nullable=False)
    is_submitted = Column(Boolean, default=False, nullable=False)
    submitted_at = Column(DateTime, nullable=True)
    extra_data = Column(JSON, nullable=True)  # {"groups": [...], "remarks": "..."}
    trip_name = Column(String(200), nullable=True)
    departure_date = Column(Date, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    user = relationship("User")
    guests = relationship(
        "PassportSubmissionGuest",
        back_populates="submission",
        cascade="all, delete-orphan",
        order_by="PassportSubmissionGuest.group_number",
    )


class PassportSubmissionGuest(Base):
    __tablename__ = "passport_submission_guests"

    id = Column(Integer, primary_key=True, index=True)
    submission_id = Column(
        Integer, ForeignKey("passport_submissions.id"), index=True, nullable=False
    )
    group_number = Column(Integer, nullable=False)
    name = Column(String(100), nullable=False)
    phone = Column(String(30), nullable=True)
    passport_number = Column(String(30), nullable=True)
    nationality = Column(String(50), nullable=True)
    date_of_birth = Column(String(10), nullable=True)  # YYYY-MM-DD as typed
    passport_expiry_date = Column(String(10), nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    submission = relationship("PassportSubmission", back_populates="guests")


class PassportRequestLog(Base):
    __tablename__ = "passport_request_logs"

    id = Column(Integer, primary_key=True, index=True)
    submission_id = Column(Integer, ForeignKey("passport_submissions.id"), index=True, nullable=False)
    requested_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    status = Column(String(20), default="PENDING", nullable=False)  # PENDING, SUCCESS
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
