"""
Business-income tax estimate for freelance partners (3.3% withholding)

Amounts are KRW integers. Brackets and progressive deductions follow the
2024 national income tax table; local income tax is 10% of income tax.
"""

import math
from datetime import date
from typing import Optional

WITHHOLDING_RATE = 0.033
WITHHOLDING_INCOME_TAX_RATE = 0.03
WITHHOLDING_LOCAL_TAX_RATE = 0.003
LOCAL_TAX_RATE = 0.1

SIMPLIFIED_THRESHOLD = 24_000_000
SIMPLIFIED_DEDUCTION_RATE = 64.1
STANDARD_DEDUCTION_RATE = 10.5

# (upper bound, rate %, progressive deduction, label)
TAX_BRACKETS = [
    (14_000_000, 6, 0, "1,400만원 이하 (6%)"),
    (50_000_000, 15, 1_260_000, "1,400만원~5,000만원 (15%)"),
    (88_000_000, 24, 5_760_000, "5,000만원~8,800만원 (24%)"),
    (150_000_000, 35, 15_440_000, "8,800만원~1.5억원 (35%)"),
    (300_000_000, 38, 19_940_000, "1.5억원~3억원 (38%)"),
    (500_000_000, 40, 25_940_000, "3억원~5억원 (40%)"),
    (1_000_000_000, 42, 35_940_000, "5억원~10억원 (42%)"),
    (math.inf, 45, 65_940_000, "10억원 초과 (45%)"),
]


def annual_income_from(
    annual_commission: Optional[int] = None,
    monthly_commission: Optional[int] = None,
    commission_history: Optional[list[int]] = None,
) -> float:
    if annual_commission:
        return annual_commission
    if monthly_commission:
        return monthly_commission * 12
    if commission_history:
        total = sum(commission_history)
        if len(commission_history) < 12:
            return total / len(commission_history) * 12
        return total
    return 0


def deduction_rate_for(annual_income: float, simplified: bool = True) -> float:
    if simplified and annual_income < SIMPLIFIED_THRESHOLD:
        return SIMPLIFIED_DEDUCTION_RATE
    return STANDARD_DEDUCTION_RATE


def income_tax_for(taxable_income: float) -> tuple[int, int, str]:
    """Returns (tax, rate %, bracket label)"""
    if taxable_income <= 0:
        return 0, 0, "비과세"
    for upper, rate, deduction, label in TAX_BRACKETS:
        if taxable_income <= upper:
            tax = math.floor(taxable_income * rate / 100 - deduction)
            return max(0, tax), rate, label
    raise ValueError("taxable income out of range")


def calculate_tax(
    annual_commission: Optional[int] = None,
    monthly_commission: Optional[int] = None,
    commission_history: Optional[list[int]] = None,
    has_simplified_deduction: bool = True,
    custom_deduction_rate: Optional[float] = None,
    additional_deductions: Optional[int] = None,
) -> dict:
    annual_income = annual_income_from(annual_commission, monthly_commission, commission_history)

    withholding_tax = math.floor(annual_income * WITHHOLDING_RATE)
    deduction_rate = custom_deduction_rate or deduction_rate_for(annual_income, has_simplified_deduction)
    deduction_amount = math.floor(annual_income * deduction_rate / 100) + (additional_deductions or 0)
    taxable_income = max(0, annual_income - deduction_amount)

    income_tax, rate, bracket = income_tax_for(taxable_income)
    local_tax = math.floor(income_tax * LOCAL_TAX_RATE)
    total_due = income_tax + local_tax
    additional_payment = total_due - withholding_tax
    net_income = annual_income - total_due

    return {
        "gross_income": annual_income,
        "monthly_average": annual_income / 12,
        "withholding_tax": withholding_tax,
        "withholding_income_tax": math.floor(annual_income * WITHHOLDING_INCOME_TAX_RATE),
        "withholding_local_tax": math.floor(annual_income * WITHHOLDING_LOCAL_TAX_RATE),
        "deduction_rate": deduction_rate,
        "deduction_amount": deduction_amount,
        "taxable_income": taxable_income,
        "income_tax_bracket": bracket,
        "income_tax_rate": rate,
        "calculated_income_tax": income_tax,
        "local_income_tax": local_tax,
        "total_tax_due": total_due,
        "already_paid": withholding_tax,
        "additional_payment": additional_payment,
        "is_refund": additional_payment < 0,
        "net_income_after_tax": net_income,
        "monthly_net_income": net_income / 12,
        "effective_tax_rate": (total_due / annual_income * 100) if annual_income > 0 else 0,
    }


def monthly_tax_summary(monthly_commission: int) -> dict:
    withholding = math.floor(monthly_commission * WITHHOLDING_RATE)
    return {"gross": monthly_commission, "withholding": withholding, "net": monthly_commission - withholding}


def days_until_tax_filing(today: Optional[date] = None) -> int:
    """Days until the May 31 filing deadline (next year's once this year's has passed)"""
    today = today or date.today()
    deadline = date(today.year, 5, 31)
    if today > deadline:
        deadline = date(today.year + 1, 5, 31)
    return (deadline - today).days


def format_currency(amount: float) -> str:
    if abs(amount) >= 100_000_000:
        return f"{amount / 100_000_000:.1f}억원"
    if abs(amount) >= 10_000:
        return f"{math.floor(amount / 10_000):,}만원"
    return f"{int(amount):,}원"
