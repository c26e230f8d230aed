"""Mall repository"""

from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ...models_mall import CruiseProduct, Payment


class MallRepository:
    @staticmethod
    def search_products(db: Session, q: Optional[str] = None, limit: Optional[int] = None) -> list[CruiseProduct]:
        query = db.query(CruiseProduct).filter(CruiseProduct.is_active.is_(True))
        if q:
            like = f"%{q.strip()}%"
            query = query.filter(
                or_(
                    CruiseProduct.title.ilike(like),
                    CruiseProduct.cruise_line.ilike(like),
                    CruiseProduct.ship_name.ilike(like),
                    CruiseProduct.product_code.ilike(like),
                )
            )
        query = query.order_by(CruiseProduct.departure_date.asc(), CruiseProduct.id.asc())
        if limit:
            query = query.limit(limit)
        return query.all()

    @staticmethod
    def get_product_by_code(db: Session, code: str) -> Optional[CruiseProduct]:
        return db.query(CruiseProduct).filter(CruiseProduct.product_code == code.strip().upper()).first()

    @staticmethod
    def get_payment(db: Session, order_id: str) -> Optional[Payment]:
        return db.query(Payment).filter(Payment.order_id == order_id).first()

    @staticmethod
    def order_id_exists(db: Session, order_id: str) -> bool:
        return db.query(Payment.id).filter(Payment.order_id == order_id).first() is not None
