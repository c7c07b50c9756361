import logging

from exit_valuation.models.company import CompanyInputs
from exit_valuation.models.market_data import ComparableResult
from exit_valuation.models.scores import CategoryScores
from exit_valuation.models.valuations import AdjustmentProfile, AdjustmentResult, FinancialSummary, MultipleRangeResult
from exit_valuation.pipeline.step_comparables import RECURRING_MODELS
from exit_valuation.valuation.adjustments import adjust_multiples
from exit_valuation.valuation.comps import calculate_multiple_range

logger = logging.getLogger(__name__)


def build_adjustment_profile(
    inputs: CompanyInputs,
    financials: FinancialSummary,
    category_scores: CategoryScores | None,
) -> AdjustmentProfile:
    """Transferability comes from the scores of the run in progress, not an older snapshot."""
    core = inputs.core_factors
    revenue_model = core.revenue_model if core else None
    revenue = financials.revenue if financials.revenue is not None else (inputs.annual_revenue or 0.0)
    return AdjustmentProfile(
        revenue=max(revenue, 0.0),
        revenue_size_category=core.revenue_size_category if core else None,
        revenue_growth_rate=financials.revenue_growth_rate,
        ebitda_margin=financials.ebitda_margin,
        top_customer_concentration=inputs.top_customer_concentration,
        top3_customer_concentration=inputs.top3_customer_concentration,
        transferability_score=category_scores.transferability if category_scores else None,
        revenue_model=revenue_model,
        is_recurring_revenue=revenue_model in RECURRING_MODELS,
    )


def apply_adjustments(
    profile: AdjustmentProfile,
    comparables: ComparableResult,
) -> tuple[AdjustmentResult, MultipleRangeResult, MultipleRangeResult]:
    """Step 4: company-specific adjustments plus the raw and adjusted multiple ranges."""
    adjustments = adjust_multiples(profile)
    raw_range = calculate_multiple_range(
        comparables.weighted_ebitda_multiple,
        comparables.weighted_revenue_multiple,
        comparables.comparables,
    )
    adjusted_range = calculate_multiple_range(
        comparables.weighted_ebitda_multiple,
        comparables.weighted_revenue_multiple,
        comparables.comparables,
        adjustments,
    )
    logger.info(
        f"{len(adjustments.adjustments)} adjustments, total {adjustments.total_adjustment:+.2f} "
        f"(raw {adjustments.raw_total_adjustment:+.2f}), multiplier {adjustments.adjustment_multiplier:.2f}"
    )
    return adjustments, raw_range, adjusted_range
