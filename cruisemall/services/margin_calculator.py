"""HQ margin calculator: commissions, operating costs, profit status and break-even"""

PROFIT_STATUSES = [
    (30, "excellent", "매우 우수한 수익 구조입니다!"),
    (15, "good", "양호한 수익 구조입니다."),
    (5, "warning", "수익 개선이 필요합니다."),
    (0, "danger", "수익이 거의 없습니다. 비용 점검 필요!"),
]


def profit_status(margin: float) -> tuple[str, str]:
    for threshold, status, message in PROFIT_STATUSES:
        if margin >= threshold:
            return status, message
    return "critical", "적자 상태입니다! 긴급 점검 필요!"


def _ratio(part: float, whole: float) -> float:
    return part / whole * 100 if whole > 0 else 0


def calculate_margin(sales: dict, commission: dict, fixed_costs: dict, variable_costs: dict) -> dict:
    """
    Args:
        sales: total_sales, sales_count, refund_amount, refund_count
        commission: sales_agent, mentor, branch_manager, other
        fixed_costs / variable_costs: free-form {item: amount}
    """
    gross_sales = sales.get("total_sales", 0)
    refund_amount = sales.get("refund_amount", 0)
    net_sales = gross_sales - refund_amount

    total_commission = sum(commission.values())
    gross_profit = net_sales - total_commission

    total_fixed = sum(fixed_costs.values())
    total_variable = sum(variable_costs.values())
    total_operating = total_fixed + total_variable

    operating_profit = gross_profit - total_operating
    net_profit = operating_profit
    net_margin = _ratio(net_profit, net_sales)
    status, message = profit_status(net_margin)

    contribution_margin_rate = (
        (net_sales - total_commission - total_variable) / net_sales if net_sales > 0 else 0
    )
    break_even = total_fixed / contribution_margin_rate if contribution_margin_rate > 0 else 0

    return {
        "gross_sales": gross_sales,
        "net_sales": net_sales,
        "refund_amount": refund_amount,
        "refund_rate": _ratio(refund_amount, gross_sales),
        "total_commission": total_commission,
        "commission_rate": _ratio(total_commission, net_sales),
        "commission_breakdown": dict(commission),
        "gross_profit": gross_profit,
        "gross_profit_margin": _ratio(gross_profit, net_sales),
        "total_fixed_costs": total_fixed,
        "total_variable_costs": total_variable,
        "total_operating_costs": total_operating,
        "fixed_cost_breakdown": dict(fixed_costs),
        "variable_cost_breakdown": dict(variable_costs),
        "operating_profit": operating_profit,
        "operating_profit_margin": _ratio(operating_profit, net_sales),
        "net_profit": net_profit,
        "net_profit_margin": net_margin,
        "is_profitable": net_profit > 0,
        "profit_status": status,
        "status_message": message,
        "break_even_sales": break_even,
        "sales_vs_break_even": _ratio(net_sales, break_even),
        "cost_structure": {
            "commission_percent": _ratio(total_commission, net_sales),
            "fixed_percent": _ratio(total_fixed, net_sales),
            "variable_percent": _ratio(total_variable, net_sales),
            "profit_percent": net_margin,
        },
    }
