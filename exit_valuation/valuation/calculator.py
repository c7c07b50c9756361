import math

from exit_valuation.models.valuations import ValuationInputs, ValuationResult
from exit_valuation.valuation.errors import ValidationFailedError

ALPHA = 0.3
MAX_DISCOUNT_FRACTION = 0.95


def calculate_valuation(inputs: ValuationInputs, alpha: float = ALPHA) -> ValuationResult:
    """Turn EBITDA, a comparable multiple range and readiness scores into current and potential value.

    The core score picks a point inside the comparable range; company-specific
    adjustments scale it into the base multiple. Readiness then discounts the
    base multiple:

        discount = clamp(alpha * (1 - bri), 0, 0.95)
        final    = base * (1 - discount)

    Potential value is what the business would fetch at full readiness (bri = 1),
    so the gap is never negative.
    """
    _validate(inputs, alpha)
    warnings: list[str] = []

    range_multiple = inputs.multiple_low + inputs.core_score * (inputs.multiple_high - inputs.multiple_low)
    base_multiple = range_multiple * inputs.adjustment_multiplier

    discount_fraction = max(0.0, min(alpha * (1 - inputs.bri_score), MAX_DISCOUNT_FRACTION))
    final_multiple = base_multiple * (1 - discount_fraction)

    ebitda = inputs.adjusted_ebitda
    if ebitda < 0:
        warnings.append(
            f"Adjusted EBITDA is negative ({ebitda:,.0f}); an earnings-multiple valuation "
            f"is not meaningful and values are reported as zero"
        )
        ebitda = 0.0

    current_value = round(ebitda * final_multiple)
    potential_value = round(ebitda * base_multiple)

    return ValuationResult(
        adjusted_ebitda=inputs.adjusted_ebitda,
        multiple_low=inputs.multiple_low,
        multiple_high=inputs.multiple_high,
        range_multiple=range_multiple,
        adjustment_multiplier=inputs.adjustment_multiplier,
        base_multiple=base_multiple,
        discount_fraction=discount_fraction,
        final_multiple=final_multiple,
        alpha=alpha,
        core_score=inputs.core_score,
        bri_score=inputs.bri_score,
        current_value=current_value,
        potential_value=potential_value,
        value_gap=potential_value - current_value,
        warnings=warnings,
    )


def _validate(inputs: ValuationInputs, alpha: float) -> None:
    problems: list[str] = []

    values = {
        "adjusted_ebitda": inputs.adjusted_ebitda,
        "multiple_low": inputs.multiple_low,
        "multiple_high": inputs.multiple_high,
        "adjustment_multiplier": inputs.adjustment_multiplier,
        "core_score": inputs.core_score,
        "bri_score": inputs.bri_score,
        "alpha": alpha,
    }
    non_finite = [name for name, value in values.items() if not math.isfinite(value)]
    if non_finite:
        raise ValidationFailedError(f"Non-finite valuation inputs: {', '.join(non_finite)}", non_finite)

    if inputs.multiple_low <= 0:
        problems.append("multiple_low")
    if inputs.multiple_high < inputs.multiple_low:
        problems.append("multiple_high")
    if not 0 <= inputs.core_score <= 1:
        problems.append("core_score")
    if not 0 <= inputs.bri_score <= 1:
        problems.append("bri_score")
    if inputs.adjustment_multiplier <= 0:
        problems.append("adjustment_multiplier")
    if not 0 <= alpha <= 1:
        problems.append("alpha")

    if problems:
        raise ValidationFailedError(f"Invalid valuation inputs: {', '.join(problems)}", problems)
