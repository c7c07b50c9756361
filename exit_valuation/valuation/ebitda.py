from exit_valuation.models.company import EbitdaAdjustment, FinancialPeriod, IncomeStatement
from exit_valuation.models.valuations import EbitdaResult, EbitdaTrend

# Market salary for an owner/CEO by revenue bucket; pay above this is added back
MARKET_SALARY_BY_REVENUE: dict[str, float] = {
    "UNDER_500K": 80_000,
    "FROM_500K_TO_1M": 120_000,
    "FROM_1M_TO_3M": 150_000,
    "FROM_3M_TO_10M": 200_000,
    "FROM_10M_TO_25M": 300_000,
    "OVER_25M": 400_000,
}
DEFAULT_MARKET_SALARY = 150_000


def _applies_to(adjustment: EbitdaAdjustment, fiscal_year: int | None) -> bool:
    return adjustment.fiscal_year is None or adjustment.fiscal_year == fiscal_year


def compute_adjusted_ebitda(
    statement: IncomeStatement | None,
    adjustments: list[EbitdaAdjustment] | None = None,
    fiscal_year: int | None = None,
) -> EbitdaResult:
    """Normalize one period's EBITDA.

    adjusted = (revenue - cogs - opex) + D + A + I + T + add-backs - deductions

    Missing line items count as zero. The result is flagged unavailable, rather
    than zero, when revenue or all cost data is absent.
    """
    statement = statement or IncomeStatement()
    adjustments = adjustments or []

    missing: list[str] = []
    if statement.revenue is None:
        missing.append("revenue")
    if statement.cost_of_goods_sold is None and statement.operating_expenses is None:
        missing.append("cost_of_goods_sold/operating_expenses")

    applicable = [a for a in adjustments if _applies_to(a, fiscal_year)]
    add_backs = sum(a.amount for a in applicable if a.type == "add_back")
    deductions = sum(a.amount for a in applicable if a.type == "deduction")

    if missing:
        return EbitdaResult(
            available=False,
            total_add_backs=add_backs,
            total_deductions=deductions,
            fiscal_year=fiscal_year,
            missing_fields=missing,
        )

    gross_profit = (statement.revenue or 0.0) - (statement.cost_of_goods_sold or 0.0)
    reported = (
        gross_profit
        - (statement.operating_expenses or 0.0)
        + (statement.depreciation or 0.0)
        + (statement.amortization or 0.0)
        + (statement.interest_expense or 0.0)
        + (statement.tax_expense or 0.0)
    )

    return EbitdaResult(
        available=True,
        adjusted_ebitda=reported + add_backs - deductions,
        reported_ebitda=reported,
        gross_profit=gross_profit,
        total_add_backs=add_backs,
        total_deductions=deductions,
        fiscal_year=fiscal_year,
    )


def compute_ebitda_trend(
    current: FinancialPeriod,
    prior: FinancialPeriod | None,
    adjustments: list[EbitdaAdjustment] | None = None,
) -> EbitdaTrend:
    """Adjusted EBITDA for the current and prior period, using the same formula for both."""
    current_result = compute_adjusted_ebitda(current.income_statement, adjustments, current.fiscal_year)
    if prior is None:
        return EbitdaTrend(current=current_result)

    prior_result = compute_adjusted_ebitda(prior.income_statement, adjustments, prior.fiscal_year)

    change = None
    change_pct = None
    if current_result.available and prior_result.available:
        change = current_result.adjusted_ebitda - prior_result.adjusted_ebitda
        if prior_result.adjusted_ebitda > 0:
            change_pct = change / prior_result.adjusted_ebitda

    return EbitdaTrend(current=current_result, prior=prior_result, change=change, change_pct=change_pct)


def owner_compensation_add_back(
    owner_compensation: float | None,
    revenue_size_category: str | None,
) -> EbitdaAdjustment | None:
    """Add-back for owner pay above the market salary for the company's size."""
    if not owner_compensation:
        return None
    benchmark = MARKET_SALARY_BY_REVENUE.get(revenue_size_category or "", DEFAULT_MARKET_SALARY)
    excess = owner_compensation - benchmark
    if excess <= 0:
        return None
    return EbitdaAdjustment(
        description=f"Owner compensation above ${benchmark:,.0f} market salary",
        amount=excess,
        type="add_back",
        category="OWNER_COMPENSATION",
    )


def ebitda_margin(ebitda: float | None, revenue: float | None) -> float | None:
    if ebitda is None or not revenue or revenue <= 0:
        return None
    return ebitda / revenue


def revenue_growth_rate(current_revenue: float | None, prior_revenue: float | None) -> float | None:
    if current_revenue is None or not prior_revenue or prior_revenue <= 0:
        return None
    return (current_revenue - prior_revenue) / prior_revenue
