from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
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


class CruiseProduct(Base):
    __tablename__ = "cruise_products"

    id = Column(Integer, primary_key=True, index=True)
    product_code = Column(String(50), unique=True, index=True, nullable=False)
    title = Column(String(200), nullable=False)
    cruise_line = Column(String(100), nullable=True)
    ship_name = Column(String(100), nullable=True)
    departure_date = Column(Date, nullable=True)
    nights = Column(Integer, nullable=True)
    base_price = Column(Integer, nullable=False)  # KRW per person
    cost_price = Column(Integer, nullable=True)
    currency = Column(String(10), default="KRW", nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    metadata_json = Column("metadata", JSON, nullable=True)  # itinerary, ports, images
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(String(50), unique=True, index=True, nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    product_id = Column(Integer, ForeignKey("cruise_products.id"), nullable=False)
    affiliate_code = Column(String(50), nullable=True)
    quantity = Column(Integer, default=1, nullable=False)
    amount = Column(Integer, nullable=False)
    status = Column(String(20), default="PENDING", nullable=False)
    buyer_name = Column(String(100), nullable=False)
    buyer_phone = Column(String(30), nullable=False)
    buyer_email = Column(String(255), nullable=True)
    paid_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    product = relationship("CruiseProduct")


class DocumentRecord(Base):
    __tablename__ = "document_records"

    id = Column(Integer, primary_key=True, index=True)
    document_type = Column(String(30), nullable=False)  # certificate, quote
    reference = Column(String(100), nullable=False)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, server_default=func.now())


class BackupLog(Base):
    __tablename__ = "backup_logs"

    id = Column(Integer, primary_key=True, index=True)
    backup_type = Column(String(30), nullable=False)  # database, spreadsheet
    total_tables = Column(Integer, default=0, nullable=False)
    success_count = Column(Integer, default=0, nullable=False)
    failure_count = Column(Integer, default=0, nullable=False)
    duration_seconds = Column(Float, nullable=True)
    results = Column(JSON, nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
