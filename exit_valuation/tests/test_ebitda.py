import pytest

from exit_valuation.models.company import EbitdaAdjustment, FinancialPeriod, IncomeStatement
from exit_valuation.valuation.ebitda import (
    compute_adjusted_ebitda, compute_ebitda_trend, ebitda_margin,
    owner_compensation_add_back, revenue_growth_rate,
)


def _statement(**overrides) -> IncomeStatement:
    values = dict(
        revenue=5_000_000, cost_of_goods_sold=2_000_000, operating_expenses=2_200_000,
        depreciation=100_000, amortization=50_000, interest_expense=30_000, tax_expense=20_000,
    )
    values.update(overrides)
    return IncomeStatement(**values)


def test_adjusted_ebitda_formula():
    adjustments = [
        EbitdaAdjustment(description="Owner car", amount=40_000, type="add_back"),
        EbitdaAdjustment(description="Below-market rent", amount=15_000, type="deduction"),
    ]
    result = compute_adjusted_ebitda(_statement(), adjustments)

    assert result.available
    assert result.gross_profit == 3_000_000
    assert result.reported_ebitda == 800_000 + 200_000
    assert result.total_add_backs == 40_000
    assert result.total_deductions == 15_000
    assert result.adjusted_ebitda == 1_025_000


def test_missing_line_items_count_as_zero():
    statement = IncomeStatement(revenue=1_000_000, operating_expenses=600_000)
    result = compute_adjusted_ebitda(statement)
    assert result.available
    assert result.adjusted_ebitda == 400_000


def test_missing_revenue_is_unavailable():
    result = compute_adjusted_ebitda(_statement(revenue=None))
    assert not result.available
    assert result.adjusted_ebitda is None
    assert "revenue" in result.missing_fields


def test_missing_all_costs_is_unavailable():
    result = compute_adjusted_ebitda(_statement(cost_of_goods_sold=None, operating_expenses=None))
    assert not result.available
    assert result.adjusted_ebitda is None


def test_no_statement_is_unavailable():
    result = compute_adjusted_ebitda(None)
    assert not result.available


def test_adjustments_scoped_to_fiscal_year():
    adjustments = [
        EbitdaAdjustment(description="2023 lawsuit", amount=100_000, type="add_back", fiscal_year=2023),
        EbitdaAdjustment(description="Every year", amount=10_000, type="add_back"),
    ]
    result_2024 = compute_adjusted_ebitda(_statement(), adjustments, fiscal_year=2024)
    result_2023 = compute_adjusted_ebitda(_statement(), adjustments, fiscal_year=2023)
    assert result_2024.total_add_backs == 10_000
    assert result_2023.total_add_backs == 110_000


def test_negative_adjustment_amount_rejected():
    with pytest.raises(ValueError):
        EbitdaAdjustment(description="bad", amount=-5, type="add_back")


def test_trend_uses_same_formula_for_both_periods():
    current = FinancialPeriod(fiscal_year=2024, income_statement=_statement())
    prior = FinancialPeriod(fiscal_year=2023, income_statement=_statement(revenue=4_000_000))
    trend = compute_ebitda_trend(current, prior)

    assert trend.current.adjusted_ebitda == 1_000_000
    assert trend.prior.adjusted_ebitda == 0
    assert trend.change == 1_000_000
    assert trend.change_pct is None  # prior EBITDA is not positive


def test_trend_change_pct():
    current = FinancialPeriod(fiscal_year=2024, income_statement=_statement())
    prior = FinancialPeriod(fiscal_year=2023, income_statement=_statement(revenue=4_500_000))
    trend = compute_ebitda_trend(current, prior)
    assert trend.change_pct == pytest.approx(1.0)


def test_trend_without_prior():
    current = FinancialPeriod(fiscal_year=2024, income_statement=_statement())
    trend = compute_ebitda_trend(current, None)
    assert trend.prior is None
    assert trend.change is None


def test_owner_compensation_above_market():
    line = owner_compensation_add_back(350_000, "FROM_3M_TO_10M")
    assert line.type == "add_back"
    assert line.amount == 150_000
    assert line.category == "OWNER_COMPENSATION"


def test_owner_compensation_below_market():
    assert owner_compensation_add_back(100_000, "FROM_3M_TO_10M") is None
    assert owner_compensation_add_back(None, None) is None


def test_owner_compensation_unknown_size_uses_default():
    line = owner_compensation_add_back(200_000, None)
    assert line.amount == 50_000


def test_margin_and_growth_guards():
    assert ebitda_margin(200_000, 1_000_000) == pytest.approx(0.2)
    assert ebitda_margin(-100_000, 1_000_000) == pytest.approx(-0.1)
    assert ebitda_margin(200_000, 0) is None
    assert ebitda_margin(None, 1_000_000) is None
    assert revenue_growth_rate(1_200_000, 1_000_000) == pytest.approx(0.2)
    assert revenue_growth_rate(1_200_000, 0) is None
    assert revenue_growth_rate(1_200_000, None) is None
