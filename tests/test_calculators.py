from datetime import date

import pytest

from cruisemall.services.commission import calculate_withholding, generate_ledger_entries
from cruisemall.services.tax_calculator import (
    calculate_tax,
    days_until_tax_filing,
    deduction_rate_for,
    format_currency,
    income_tax_for,
)


@pytest.mark.parametrize(
    "taxable, expected",
    [
        (0, (0, 0, "비과세")),
        (10_000_000, (600_000, 6, "1,400만원 이하 (6%)")),
        (14_000_000, (840_000, 6, "1,400만원 이하 (6%)")),
        (30_000_000, (3_240_000, 15, "1,400만원~5,000만원 (15%)")),
        (100_000_000, (19_560_000, 35, "8,800만원~1.5억원 (35%)")),
    ],
)
def test_income_tax_brackets(taxable, expected):
    assert income_tax_for(taxable) == expected


def test_deduction_rate_depends_on_income():
    assert deduction_rate_for(20_000_000) == 64.1
    assert deduction_rate_for(20_000_000, simplified=False) == 10.5
    assert deduction_rate_for(24_000_000) == 10.5


def test_small_income_is_refunded():
    result = calculate_tax(monthly_commission=1_000_000)
    assert result["deduction_rate"] == 64.1
    assert result["withholding_tax"] == 396_000
    assert result["is_refund"] is True


def test_commission_history_is_annualized():
    result = calculate_tax(commission_history=[1_000_000, 2_000_000, 3_000_000])
    assert result["gross_income"] == 24_000_000


def test_days_until_tax_filing():
    assert days_until_tax_filing(date(2026, 5, 1)) == 30
    assert days_until_tax_filing(date(2026, 5, 31)) == 0
    assert days_until_tax_filing(date(2026, 6, 1)) == 364


def test_format_currency():
    assert format_currency(250_000_000) == "2.5억원"
    assert format_currency(35_700) == "3만원"
    assert format_currency(9_990) == "9,990원"


def test_withholding_is_floored():
    assert calculate_withholding(30_000, None) == 990
    assert calculate_withholding(12_345, 3.3) == 407
    assert calculate_withholding(0, 3.3) == 0


def test_ledger_without_manager_has_no_branch_or_override():
    breakdown, entries = generate_ledger_entries(
        sale_id=1, sale_amount=1_000_000, cost_amount=800_000, agent_profile_id=7
    )
    assert breakdown["sales_commission"] == 30_000
    assert breakdown["branch_commission"] == 0
    assert breakdown["override_commission"] == 0
    assert breakdown["hq_net"] == 170_000
    assert [(e["entry_type"], e["profile_id"]) for e in entries] == [("SALES_COMMISSION", 7), ("HQ_NET", None)]
    assert entries[0]["withholding_amount"] == 990
    assert entries[1]["withholding_amount"] == 0


def test_explicit_commissions_win_over_defaults():
    breakdown, entries = generate_ledger_entries(
        sale_id=2,
        sale_amount=1_000_000,
        sales_commission=50_000,
        branch_commission=0,
        manager_profile_id=3,
        agent_profile_id=4,
        include_hq_net=False,
    )
    assert breakdown["override_commission"] == 10_000
    assert {e["entry_type"] for e in entries} == {"SALES_COMMISSION", "OVERRIDE_COMMISSION"}
