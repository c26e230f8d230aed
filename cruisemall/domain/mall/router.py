"""Mall routers - catalog, checkout, payment confirmation and calculators"""

import logging
import secrets
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException, Query
from sqlalchemy.orm import Session

from ...auth import get_optional_user, require_admin
from ...config import PAYMENT_WEBHOOK_SECRET
from ...database import SessionLocal, get_db
from ...email_service import send_purchase_confirmation_email
from ...models import User
from ...services.google_sheets import append_sale_to_spreadsheet
from ...services.margin_calculator import calculate_margin
from ...services.tax_calculator import calculate_tax, days_until_tax_filing, format_currency, monthly_tax_summary
from ..affiliate.schemas import SaleResponse
from ..documents.pdf_service import CertificatePDFGenerator
from .schemas import (
    CheckoutRequest,
    MarginCalculateRequest,
    PaymentResponse,
    ProductCreate,
    ProductResponse,
    ProductUpdate,
    TaxCalculateRequest,
)
from .service import MallService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/mall", tags=["Mall"])
admin_router = APIRouter(prefix="/api/admin/mall", tags=["Mall Admin"])


def get_mall_service(db: Session = Depends(get_db)) -> MallService:
    return MallService(db)


async def require_admin_or_webhook(
    x_webhook_secret: Optional[str] = Header(None),
    user: Optional[User] = Depends(get_optional_user),
) -> str:
    if x_webhook_secret and PAYMENT_WEBHOOK_SECRET and secrets.compare_digest(x_webhook_secret, PAYMENT_WEBHOOK_SECRET):
        return "webhook"
    if user and user.role == "admin":
        return f"admin:{user.id}"
    if not user and not x_webhook_secret:
        raise HTTPException(status_code=401, detail="Authentication required")
    raise HTTPException(status_code=403, detail="Not allowed to confirm payments")


async def send_purchase_email_task(order_id: str):
    """Background task: certificate PDF + confirmation email (own session)"""
    db = SessionLocal()
    try:
        payment = MallService(db).get_payment(order_id)
        if not payment.buyer_email:
            return
        pdf_bytes = CertificatePDFGenerator(payment, payment.product).generate()
        await send_purchase_confirmation_email(
            to=payment.buyer_email,
            buyer_name=payment.buyer_name,
            product_title=payment.product.title,
            order_id=payment.order_id,
            amount=f"{payment.amount:,}원",
            certificate_pdf=pdf_bytes,
        )
        logger.info(f"📧 Purchase confirmation sent for order {order_id}")
    except Exception as e:
        logger.error(f"❌ Failed to send purchase confirmation for order {order_id}: {e}")
    finally:
        db.close()


# ============================================================================
# CATALOG
# ============================================================================


@router.get("/products")
async def list_products(q: Optional[str] = Query(None), service: MallService = Depends(get_mall_service)):
    return {"ok": True, "products": [ProductResponse.from_product(p) for p in service.list_products(q)]}


@router.get("/products/{product_code}")
async def get_product(product_code: str, service: MallService = Depends(get_mall_service)):
    return {"ok": True, "product": ProductResponse.from_product(service.get_product(product_code))}


@admin_router.post("/products", status_code=201)
async def create_product(
    data: ProductCreate,
    _: User = Depends(require_admin),
    service: MallService = Depends(get_mall_service),
):
    return {"ok": True, "product": ProductResponse.from_product(service.create_product(data))}


@admin_router.patch("/products/{product_code}")
async def update_product(
    product_code: str,
    data: ProductUpdate,
    _: User = Depends(require_admin),
    service: MallService = Depends(get_mall_service),
):
    return {"ok": True, "product": ProductResponse.from_product(service.update_product(product_code, data))}


# ============================================================================
# CHECKOUT & PAYMENTS
# ============================================================================


@router.post("/checkout", status_code=201)
async def checkout(
    data: CheckoutRequest,
    user: Optional[User] = Depends(get_optional_user),
    service: MallService = Depends(get_mall_service),
):
    payment = service.checkout(data, user)
    return {"ok": True, "order_id": payment.order_id, "payment": PaymentResponse.model_validate(payment)}


@router.post("/payments/{order_id}/confirm")
async def confirm_payment(
    order_id: str,
    background_tasks: BackgroundTasks,
    confirmed_by: str = Depends(require_admin_or_webhook),
    service: MallService = Depends(get_mall_service),
):
    payment, sale = service.confirm_payment(order_id)
    logger.info(f"✅ Order {order_id} confirmed by {confirmed_by}")
    if payment.buyer_email:
        background_tasks.add_task(send_purchase_email_task, payment.order_id)
    if sale:
        background_tasks.add_task(append_sale_to_spreadsheet, SaleResponse.model_validate(sale).model_dump(mode="json"))
    return {
        "ok": True,
        "payment": PaymentResponse.model_validate(payment),
        "sale_id": sale.id if sale else None,
    }


# ============================================================================
# CALCULATORS
# ============================================================================


@router.post("/tax/calculate")
async def tax_calculate(data: TaxCalculateRequest):
    result = calculate_tax(
        annual_commission=data.annual_commission,
        monthly_commission=data.monthly_commission,
        commission_history=data.commission_history,
        has_simplified_deduction=data.has_simplified_deduction,
        custom_deduction_rate=data.custom_deduction_rate,
        additional_deductions=data.additional_deductions,
    )
    return {
        "ok": True,
        "result": result,
        "monthly": monthly_tax_summary(data.monthly_commission) if data.monthly_commission else None,
        "days_until_filing": days_until_tax_filing(),
        "display": {
            "gross_income": format_currency(result["gross_income"]),
            "total_tax_due": format_currency(result["total_tax_due"]),
            "additional_payment": format_currency(abs(result["additional_payment"])),
            "net_income_after_tax": format_currency(result["net_income_after_tax"]),
        },
    }


@admin_router.post("/margin/calculate")
async def margin_calculate(data: MarginCalculateRequest, _: User = Depends(require_admin)):
    result = calculate_margin(
        sales=data.sales.model_dump(),
        commission=data.commission.model_dump(),
        fixed_costs=data.fixed_costs,
        variable_costs=data.variable_costs,
    )
    return {"ok": True, "result": result}
