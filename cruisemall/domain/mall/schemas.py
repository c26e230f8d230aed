"""Mall schemas - catalog, checkout, payments and calculators"""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from ...shared.validators import validate_email, validate_kr_phone

# ============================================================================
# PRODUCTS
# ============================================================================


class ProductCreate(BaseModel):
    product_code: str
    title: str
    cruise_line: Optional[str] = None
    ship_name: Optional[str] = None
    departure_date: Optional[date] = None
    nights: Optional[int] = None
    base_price: int
    cost_price: Optional[int] = None
    currency: str = "KRW"
    is_active: bool = True
    metadata: Optional[dict] = None

    @field_validator("product_code")
    @classmethod
    def validate_code(cls, v):
        v = (v or "").strip().upper()
        if not v:
            raise ValueError("product_code is required")
        return v

    @field_validator("base_price")
    @classmethod
    def validate_price(cls, v):
        if v < 0:
            raise ValueError("base_price cannot be negative")
        return v


class ProductUpdate(BaseModel):
    title: Optional[str] = None
    cruise_line: Optional[str] = None
    ship_name: Optional[str] = None
    departure_date: Optional[date] = None
    nights: Optional[int] = None
    base_price: Optional[int] = None
    cost_price: Optional[int] = None
    is_active: Optional[bool] = None
    metadata: Optional[dict] = None


class ProductResponse(BaseModel):
    id: int
    product_code: str
    title: str
    cruise_line: Optional[str] = None
    ship_name: Optional[str] = None
    departure_date: Optional[date] = None
    nights: Optional[int] = None
    base_price: int
    currency: str
    is_active: bool
    metadata: Optional[dict] = None

    @classmethod
    def from_product(cls, product) -> "ProductResponse":
        return cls(
            id=product.id,
            product_code=product.product_code,
            title=product.title,
            cruise_line=product.cruise_line,
            ship_name=product.ship_name,
            departure_date=product.departure_date,
            nights=product.nights,
            base_price=product.base_price,
            currency=product.currency,
            is_active=product.is_active,
            metadata=product.metadata_json,
        )


# ============================================================================
# CHECKOUT & PAYMENTS
# ============================================================================


class CheckoutRequest(BaseModel):
    product_code: str
    quantity: int = 1
    buyer_name: str
    buyer_phone: str
    buyer_email: Optional[str] = None
    affiliate_code: Optional[str] = None

    @field_validator("quantity")
    @classmethod
    def validate_quantity(cls, v):
        if v < 1 or v > 20:
            raise ValueError("quantity must be between 1 and 20")
        return v

    @field_validator("buyer_name")
    @classmethod
    def validate_name(cls, v):
        v = (v or "").strip()
        if not v:
            raise ValueError("buyer_name is required")
        return v

    @field_validator("buyer_phone")
    @classmethod
    def validate_phone(cls, v):
        v = validate_kr_phone(v)
        if not v:
            raise ValueError("buyer_phone is required")
        return v

    @field_validator("buyer_email")
    @classmethod
    def validate_email_field(cls, v):
        return validate_email(v)


class PaymentResponse(BaseModel):
    id: int
    order_id: str
    product_id: int
    affiliate_code: Optional[str] = None
    quantity: int
    amount: int
    status: str
    buyer_name: str
    buyer_phone: str
    buyer_email: Optional[str] = None
    paid_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ============================================================================
# CALCULATORS
# ============================================================================


class TaxCalculateRequest(BaseModel):
    monthly_commission: Optional[int] = None
    annual_commission: Optional[int] = None
    commission_history: Optional[list[int]] = None
    has_simplified_deduction: bool = True
    custom_deduction_rate: Optional[float] = None
    additional_deductions: Optional[int] = None


class MarginSales(BaseModel):
    total_sales: int = 0
    sales_count: int = 0
    refund_amount: int = 0
    refund_count: int = 0


class MarginCommission(BaseModel):
    sales_agent: int = 0
    mentor: int = 0
    branch_manager: int = 0
    other: int = 0


class MarginCalculateRequest(BaseModel):
    sales: MarginSales
    commission: MarginCommission = MarginCommission()
    fixed_costs: dict[str, int] = {}
    variable_costs: dict[str, int] = {}
