"""Mall service - catalog, checkout and payment confirmation with affiliate attribution"""

import logging
import secrets
import string
from datetime import datetime
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...models import AffiliateLead, AffiliateProfile, AffiliateSale, User
from ...models_mall import CruiseProduct, Payment
from ...services.commission import sync_sale_commission_ledgers
from ...shared.dates import local_now
from ...shared.validators import mask_phone_for_log
from ..affiliate.repository import AffiliateRepository
from ..affiliate.scope import PartnerContext, get_team_agent_ids, lead_owner_fields
from .repository import MallRepository
from .schemas import CheckoutRequest, ProductCreate, ProductUpdate

logger = logging.getLogger(__name__)

ORDER_ALPHABET = string.ascii_uppercase + string.digits


def generate_order_id(now: Optional[datetime] = None) -> str:
    now = now or local_now()
    suffix = "".join(secrets.choice(ORDER_ALPHABET) for _ in range(8))
    return f"ORD-{now.strftime('%Y%m%d')}-{suffix}"


class MallService:
    def __init__(self, db: Session):
        self.db = db
        self.repo = MallRepository()

    # ----------------------------------------------------------------- products

    def list_products(self, q: Optional[str] = None) -> list[CruiseProduct]:
        return self.repo.search_products(self.db, q)

    def get_product(self, code: str, active_only: bool = True) -> CruiseProduct:
        product = self.repo.get_product_by_code(self.db, code)
        if not product or (active_only and not product.is_active):
            raise HTTPException(status_code=404, detail="Product not found")
        return product

    def create_product(self, data: ProductCreate) -> CruiseProduct:
        if self.repo.get_product_by_code(self.db, data.product_code):
            raise HTTPException(status_code=409, detail="Product code already exists")
        payload = data.model_dump(exclude={"metadata"})
        product = CruiseProduct(**payload, metadata_json=data.metadata)
        self.db.add(product)
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise HTTPException(status_code=409, detail="Product code already exists") from e
        self.db.refresh(product)
        logger.info(f"✅ Product {product.product_code} created")
        return product

    def update_product(self, code: str, data: ProductUpdate) -> CruiseProduct:
        product = self.get_product(code, active_only=False)
        updates = data.model_dump(exclude_unset=True)
        if "metadata" in updates:
            product.metadata_json = updates.pop("metadata")
        for key, value in updates.items():
            setattr(product, key, value)
        self.db.commit()
        self.db.refresh(product)
        return product

    # ----------------------------------------------------------------- checkout

    def checkout(self, data: CheckoutRequest, user: Optional[User] = None) -> Payment:
        product = self.get_product(data.product_code)

        affiliate_code = None
        if data.affiliate_code:
            code = data.affiliate_code.strip().upper()
            profile = AffiliateRepository.get_profile_by_code(self.db, code)
            if profile and profile.status == "ACTIVE":
                affiliate_code = code
            else:
                logger.warning(f"⚠️ Checkout with unknown or inactive affiliate code {code}, ignoring")

        order_id = generate_order_id()
        while self.repo.order_id_exists(self.db, order_id):
            order_id = generate_order_id()

        payment = Payment(
            order_id=order_id,
            user_id=user.id if user else None,
            product_id=product.id,
            affiliate_code=affiliate_code,
            quantity=data.quantity,
            amount=product.base_price * data.quantity,
            status="PENDING",
            buyer_name=data.buyer_name,
            buyer_phone=data.buyer_phone,
            buyer_email=data.buyer_email,
        )
        self.db.add(payment)
        self.db.commit()
        self.db.refresh(payment)
        logger.info(f"🛒 Order {payment.order_id} created: {product.product_code} x{data.quantity} = {payment.amount:,} KRW")
        return payment

    def get_payment(self, order_id: str) -> Payment:
        payment = self.repo.get_payment(self.db, order_id)
        if not payment:
            raise HTTPException(status_code=404, detail="Order not found")
        return payment

    def confirm_payment(self, order_id: str) -> tuple[Payment, Optional[AffiliateSale]]:
        """Mark an order PAID and attribute it to the referring partner, in one commit"""
        payment = self.get_payment(order_id)
        if payment.status == "PAID":
            raise HTTPException(status_code=409, detail="Order already paid")
        if payment.status != "PENDING":
            raise HTTPException(status_code=409, detail=f"Order is {payment.status}")

        payment.status = "PAID"
        payment.paid_at = datetime.utcnow()

        sale = None
        try:
            if payment.affiliate_code:
                sale = self._attribute(payment)
            if sale:
                self.db.flush()
                sync_sale_commission_ledgers(self.db, sale.id, regenerate=True, commit=False)
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.exception(f"❌ Failed to confirm order {order_id}")
            raise

        self.db.refresh(payment)
        logger.info(f"💰 Order {payment.order_id} paid ({payment.amount:,} KRW), sale={sale.id if sale else None}")
        return payment, sale

    def _attribute(self, payment: Payment) -> Optional[AffiliateSale]:
        profile: Optional[AffiliateProfile] = AffiliateRepository.get_profile_by_code(self.db, payment.affiliate_code)
        if not profile or profile.status != "ACTIVE":
            logger.warning(f"⚠️ Affiliate code {payment.affiliate_code} no longer active, sale not attributed")
            return None

        ctx = PartnerContext(profile.user, profile, get_team_agent_ids(self.db, profile))
        lead: Optional[AffiliateLead] = AffiliateRepository.find_lead_by_phone(self.db, ctx, payment.buyer_phone)
        if lead:
            lead.status = "PURCHASED"
            if payment.buyer_email and not lead.customer_email:
                lead.customer_email = payment.buyer_email
        else:
            lead = AffiliateRepository.create_lead(
                self.db,
                customer_name=payment.buyer_name,
                customer_phone=payment.buyer_phone,
                customer_email=payment.buyer_email,
                status="PURCHASED",
                source="mall-purchase",
                metadata_json={"order_id": payment.order_id},
                **lead_owner_fields(self.db, profile),
            )
            logger.info(f"🔗 New lead {lead.id} for buyer {mask_phone_for_log(payment.buyer_phone)} via {profile.affiliate_code}")

        product = payment.product
        cost = product.cost_price * payment.quantity if product and product.cost_price is not None else None
        return AffiliateRepository.create_sale(
            self.db,
            lead_id=lead.id,
            manager_id=lead.manager_id,
            agent_id=lead.agent_id,
            payment_id=payment.id,
            product_code=product.product_code if product else None,
            sale_amount=payment.amount,
            cost_amount=cost,
            status="CONFIRMED",
            sale_date=payment.paid_at,
            confirmed_at=payment.paid_at,
        )
