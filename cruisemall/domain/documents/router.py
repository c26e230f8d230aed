"""Document router - purchase certificates and partner quotes"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from ...auth import get_optional_user
from ...database import get_db
from ...models import User
from ...models_mall import DocumentRecord
from ...shared.validators import normalize_phone
from ..affiliate.scope import PartnerApiError, PartnerContext, require_partner_context
from ..mall.repository import MallRepository
from .pdf_service import CertificatePDFGenerator, QuotePDFGenerator

logger = logging.getLogger(__name__)

certificate_router = APIRouter(prefix="/api/mall/payments", tags=["Documents"])
quote_router = APIRouter(prefix="/api/partner/documents", tags=["Documents"])


class QuoteItem(BaseModel):
    description: str
    quantity: int = 1
    unit_price: int


class QuoteRequest(BaseModel):
    product_code: str
    passengers: int = 2
    customer_name: Optional[str] = None
    extra_items: list[QuoteItem] = []

    @field_validator("passengers")
    @classmethod
    def validate_passengers(cls, v):
        if v < 1 or v > 50:
            raise ValueError("passengers must be between 1 and 50")
        return v


def record_document(db: Session, document_type: str, reference: str, created_by_id: Optional[int]):
    db.add(DocumentRecord(document_type=document_type, reference=reference, created_by_id=created_by_id))
    db.commit()


def pdf_response(pdf_bytes: bytes, filename: str) -> Response:
    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@certificate_router.get("/{order_id}/certificate")
async def purchase_certificate(
    order_id: str,
    phone: Optional[str] = Query(None, description="Buyer phone, for guest orders"),
    user: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_db),
):
    payment = MallRepository.get_payment(db, order_id)
    if not payment:
        raise HTTPException(status_code=404, detail="Order not found")

    is_admin = bool(user and user.role == "admin")
    is_owner = bool(user and payment.user_id == user.id)
    phone_matches = bool(phone and normalize_phone(phone) == payment.buyer_phone)
    if not (is_admin or is_owner or phone_matches):
        raise HTTPException(status_code=403, detail="Not allowed to view this certificate")

    if payment.status != "PAID":
        raise HTTPException(status_code=409, detail="Order is not paid")

    generator = CertificatePDFGenerator(payment, payment.product)
    pdf_bytes = generator.generate()
    record_document(db, "certificate", generator.certificate_number, user.id if user else None)
    return pdf_response(pdf_bytes, f"{generator.certificate_number}.pdf")


@quote_router.post("/quote")
async def create_quote(
    data: QuoteRequest,
    ctx: PartnerContext = Depends(require_partner_context),
    db: Session = Depends(get_db),
):
    product = MallRepository.get_product_by_code(db, data.product_code)
    if not product or not product.is_active:
        raise PartnerApiError("Product not found", 404)

    generator = QuotePDFGenerator(
        product,
        data.passengers,
        customer_name=data.customer_name,
        extra_items=[item.model_dump() for item in data.extra_items],
        partner_name=ctx.profile.display_name or ctx.profile.nickname,
    )
    pdf_bytes = generator.generate()
    record_document(db, "quote", f"{product.product_code}:{data.passengers}", ctx.user.id)
    logger.info(f"📄 Quote for {product.product_code} generated by profile {ctx.profile.id} (total {generator.total():,} KRW)")
    return pdf_response(pdf_bytes, f"quote_{product.product_code}.pdf")
