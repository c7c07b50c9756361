import logging

from exit_valuation.models.company import CompanyInputs, EbitdaAdjustment
from exit_valuation.models.valuations import EbitdaResult, FinancialSummary
from exit_valuation.valuation.ebitda import (
    compute_ebitda_trend, ebitda_margin, owner_compensation_add_back, revenue_growth_rate,
)

logger = logging.getLogger(__name__)


def normalize_financials(inputs: CompanyInputs) -> FinancialSummary:
    """Step 2: adjusted EBITDA for the latest period, with growth and margin.

    Uses the two most recent financial periods when statements exist, otherwise
    the company's annual revenue and EBITDA figures.
    """
    adjustments = _ledger_with_owner_compensation(inputs)

    periods = sorted(
        (p for p in inputs.financial_periods if p.income_statement is not None),
        key=lambda p: p.fiscal_year,
        reverse=True,
    )

    if periods:
        current = periods[0]
        prior = periods[1] if len(periods) > 1 else None
        trend = compute_ebitda_trend(current, prior, adjustments)

        revenue = current.income_statement.revenue
        prior_revenue = prior.income_statement.revenue if prior else None
        summary = FinancialSummary(
            revenue=revenue,
            prior_revenue=prior_revenue,
            revenue_growth_rate=revenue_growth_rate(revenue, prior_revenue),
            ebitda_margin=ebitda_margin(trend.current.adjusted_ebitda, revenue),
            fiscal_year=current.fiscal_year,
            ebitda=trend.current,
            trend=trend,
            source="financial_statements",
        )
    elif inputs.annual_ebitda is not None:
        add_backs = sum(a.amount for a in adjustments if a.type == "add_back" and a.fiscal_year is None)
        deductions = sum(a.amount for a in adjustments if a.type == "deduction" and a.fiscal_year is None)
        ebitda = EbitdaResult(
            available=True,
            adjusted_ebitda=inputs.annual_ebitda + add_backs - deductions,
            reported_ebitda=inputs.annual_ebitda,
            total_add_backs=add_backs,
            total_deductions=deductions,
        )
        summary = FinancialSummary(
            revenue=inputs.annual_revenue,
            ebitda_margin=ebitda_margin(ebitda.adjusted_ebitda, inputs.annual_revenue),
            ebitda=ebitda,
            source="annual_figures",
        )
    else:
        summary = FinancialSummary(
            revenue=inputs.annual_revenue,
            ebitda=EbitdaResult(available=False, missing_fields=["financial_periods", "annual_ebitda"]),
        )

    if summary.ebitda.available:
        logger.info(
            f"Adjusted EBITDA={summary.ebitda.adjusted_ebitda:,.0f} from {summary.source} "
            f"(add-backs {summary.ebitda.total_add_backs:,.0f}, deductions {summary.ebitda.total_deductions:,.0f})"
        )
    else:
        logger.warning(f"Adjusted EBITDA unavailable, missing: {summary.ebitda.missing_fields}")
    return summary


def _ledger_with_owner_compensation(inputs: CompanyInputs) -> list[EbitdaAdjustment]:
    adjustments = list(inputs.ebitda_adjustments)
    if any(a.category == "OWNER_COMPENSATION" for a in adjustments):
        return adjustments

    size_category = inputs.core_factors.revenue_size_category if inputs.core_factors else None
    owner_line = owner_compensation_add_back(inputs.owner_compensation, size_category)
    if owner_line:
        adjustments.append(owner_line)
    return adjustments
