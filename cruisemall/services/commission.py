"""
Commission breakdown and ledger generation for affiliate sales
"""

import logging
import math
from typing import Optional

from sqlalchemy.orm import Session

from ..models import AffiliateSale, CommissionLedger

logger = logging.getLogger(__name__)

DEFAULT_WITHHOLDING_RATE = 3.3  # percent (3% income tax + 0.3% local tax)
DEFAULT_CURRENCY = "KRW"

# Applied when the sale does not carry explicit commission amounts
DEFAULT_SALES_COMMISSION_RATE = 0.03
DEFAULT_BRANCH_COMMISSION_RATE = 0.02
DEFAULT_OVERRIDE_COMMISSION_RATE = 0.01


def calculate_withholding(amount: int, rate: Optional[float]) -> int:
    if amount <= 0:
        return 0
    rate = DEFAULT_WITHHOLDING_RATE if rate is None else rate
    return math.floor(amount * rate / 100)


def calculate_commission_breakdown(
    sale_amount: int,
    cost_amount: Optional[int] = None,
    branch_commission: Optional[int] = None,
    sales_commission: Optional[int] = None,
    override_commission: Optional[int] = None,
    has_manager: bool = False,
    has_agent: bool = False,
) -> dict:
    net_revenue = sale_amount - (cost_amount or 0)

    if sales_commission is None:
        sales_commission = math.floor(sale_amount * DEFAULT_SALES_COMMISSION_RATE) if has_agent else 0
    if branch_commission is None:
        branch_commission = math.floor(sale_amount * DEFAULT_BRANCH_COMMISSION_RATE) if has_manager else 0
    if override_commission is None:
        override_commission = (
            math.floor(sale_amount * DEFAULT_OVERRIDE_COMMISSION_RATE) if has_manager and has_agent else 0
        )

    total_commission = branch_commission + sales_commission + override_commission
    return {
        "sale_amount": sale_amount,
        "cost_amount": cost_amount or 0,
        "net_revenue": net_revenue,
        "branch_commission": branch_commission,
        "sales_commission": sales_commission,
        "override_commission": override_commission,
        "total_commission": total_commission,
        "hq_net": net_revenue - total_commission,
    }


def generate_ledger_entries(
    sale_id: int,
    sale_amount: int,
    cost_amount: Optional[int] = None,
    branch_commission: Optional[int] = None,
    sales_commission: Optional[int] = None,
    override_commission: Optional[int] = None,
    manager_profile_id: Optional[int] = None,
    agent_profile_id: Optional[int] = None,
    withholding_rate: Optional[float] = None,
    manager_withholding_rate: Optional[float] = None,
    currency: str = DEFAULT_CURRENCY,
    include_hq_net: bool = True,
    metadata: Optional[dict] = None,
) -> tuple[dict, list[dict]]:
    """
    Returns:
        Tuple of (breakdown, ledger entry dicts ready for CommissionLedger(**entry))
    """
    breakdown = calculate_commission_breakdown(
        sale_amount,
        cost_amount,
        branch_commission,
        sales_commission,
        override_commission,
        has_manager=manager_profile_id is not None,
        has_agent=agent_profile_id is not None,
    )

    entries = []

    def add(entry_type: str, profile_id: Optional[int], amount: int, rate: Optional[float]):
        entries.append(
            {
                "sale_id": sale_id,
                "profile_id": profile_id,
                "entry_type": entry_type,
                "amount": amount,
                "currency": currency,
                "withholding_amount": calculate_withholding(amount, rate) if profile_id else 0,
                "metadata_json": dict(metadata or {}),
            }
        )

    if manager_profile_id and breakdown["branch_commission"] > 0:
        add("BRANCH_COMMISSION", manager_profile_id, breakdown["branch_commission"], manager_withholding_rate)
    if agent_profile_id and breakdown["sales_commission"] > 0:
        add("SALES_COMMISSION", agent_profile_id, breakdown["sales_commission"], withholding_rate)
    if manager_profile_id and breakdown["override_commission"] > 0:
        add("OVERRIDE_COMMISSION", manager_profile_id, breakdown["override_commission"], manager_withholding_rate)
    if include_hq_net:
        add("HQ_NET", None, breakdown["hq_net"], None)

    return breakdown, entries


def sync_sale_commission_ledgers(
    db: Session, sale_id: int, regenerate: bool = False, include_hq: bool = True, commit: bool = True
) -> dict:
    """
    Write ledger entries for a sale and store the breakdown on the sale.
    Existing entries are kept unless regenerate is set. With commit=False the
    caller owns the transaction.

    Raises:
        ValueError: If the sale does not exist
    """
    sale = db.query(AffiliateSale).filter(AffiliateSale.id == sale_id).first()
    if not sale:
        raise ValueError(f"Sale #{sale_id} not found")

    metadata = {
        "source": "auto-generated",
        "sale_id": sale.id,
        "sale_status": sale.status,
        "manager_id": sale.manager_id,
        "agent_id": sale.agent_id,
        "sale_date": sale.sale_date.isoformat() if sale.sale_date else None,
        "product_code": sale.product_code,
    }

    breakdown, entries = generate_ledger_entries(
        sale_id=sale.id,
        sale_amount=sale.sale_amount,
        cost_amount=sale.cost_amount,
        branch_commission=sale.branch_commission,
        sales_commission=sale.sales_commission,
        override_commission=sale.override_commission,
        manager_profile_id=sale.manager_id,
        agent_profile_id=sale.agent_id,
        withholding_rate=sale.agent.withholding_rate if sale.agent else None,
        manager_withholding_rate=sale.manager.withholding_rate if sale.manager else None,
        include_hq_net=include_hq,
        metadata=metadata,
    )

    if regenerate:
        db.query(CommissionLedger).filter(CommissionLedger.sale_id == sale.id).delete(
            synchronize_session=False
        )
        existing = 0
    else:
        existing = db.query(CommissionLedger).filter(CommissionLedger.sale_id == sale.id).count()

    created = 0
    if not existing:
        for entry in entries:
            db.add(CommissionLedger(**entry))
        created = len(entries)

    sale.net_revenue = breakdown["net_revenue"]
    sale.branch_commission = breakdown["branch_commission"]
    sale.sales_commission = breakdown["sales_commission"]
    sale.override_commission = breakdown["override_commission"]
    if commit:
        db.commit()
    else:
        db.flush()

    logger.info(f"💰 Ledger synced for sale {sale.id}: {created} entries created")
    return {"sale_id": sale.id, "breakdown": breakdown, "entries_created": created}
