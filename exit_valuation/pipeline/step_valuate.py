import logging

from exit_valuation.models.scores import BriScoreResult
from exit_valuation.models.valuations import (
    AdjustmentResult, FinancialSummary, MultipleRangeResult, ValuationInputs, ValuationResult,
)
from exit_valuation.valuation.calculator import ALPHA, calculate_valuation
from exit_valuation.valuation.errors import NotComputableError

logger = logging.getLogger(__name__)


def run_valuation(
    financials: FinancialSummary,
    raw_range: MultipleRangeResult,
    adjustments: AdjustmentResult,
    bri: BriScoreResult,
    core_score: float,
    alpha: float = ALPHA,
) -> ValuationResult:
    """Step 5: current and potential value. Raises NotComputableError when EBITDA or a multiple is missing."""
    missing: list[str] = []
    if not financials.ebitda.available:
        missing.extend(f"ebitda:{field}" for field in financials.ebitda.missing_fields)
    if raw_range.ebitda_multiple_range is None:
        missing.append("comparable_ebitda_multiple")

    if missing:
        msg = "Unable to value company: " + ", ".join(missing)
        logger.error(msg)
        raise NotComputableError(msg, missing)

    multiples = raw_range.ebitda_multiple_range
    result = calculate_valuation(
        ValuationInputs(
            adjusted_ebitda=financials.ebitda.adjusted_ebitda,
            multiple_low=multiples.low,
            multiple_high=multiples.high,
            adjustment_multiplier=adjustments.adjustment_multiplier,
            core_score=core_score,
            bri_score=bri.bri_score,
        ),
        alpha=alpha,
    )
    logger.info(
        f"Valuation: base {result.base_multiple:.2f}x, final {result.final_multiple:.2f}x, "
        f"current ${result.current_value:,.0f}, potential ${result.potential_value:,.0f}"
    )
    return result
