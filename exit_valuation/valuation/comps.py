import math
from typing import Callable

from exit_valuation.models.market_data import (
    ComparableCompany, ComparableMetrics, RawComparable,
)
from exit_valuation.models.valuations import AdjustmentResult, MultipleRange, MultipleRangeResult

MAX_COMPARABLES = 5
MAX_EV_TO_EBITDA = 100.0
MAX_EV_TO_REVENUE = 50.0


def _positive_number(value: float | None) -> float | None:
    if value is None or not math.isfinite(value) or value <= 0:
        return None
    return value


def _decimal_rate(value: float | None, low: float, high: float) -> float | None:
    """Clamp a decimal rate; values that look like whole percentages (22 for 22%) are divided by 100."""
    if value is None or not math.isfinite(value):
        return None
    normalized = value
    if (normalized > high or normalized < low) and abs(normalized) <= 100:
        as_decimal = normalized / 100
        if low <= as_decimal <= high:
            normalized = as_decimal
    return max(low, min(high, normalized))


def normalize_comparables(raw: list[RawComparable]) -> list[ComparableCompany]:
    """Drop unusable entries, clamp scores and multiples, sort by relevance."""
    validated: list[ComparableCompany] = []

    for entry in raw:
        if not entry.name or not entry.name.strip():
            continue

        relevance = entry.relevance_score if entry.relevance_score is not None else 0.5
        relevance = max(0.0, min(1.0, relevance))

        m = entry.metrics
        metrics = ComparableMetrics(
            revenue=_positive_number(m.revenue) if m else None,
            ebitda_margin=_decimal_rate(m.ebitda_margin, -1.0, 1.0) if m else None,
            revenue_growth_rate=_decimal_rate(m.revenue_growth_rate, -1.0, 5.0) if m else None,
            ev_to_ebitda=_positive_number(m.ev_to_ebitda) if m else None,
            ev_to_revenue=_positive_number(m.ev_to_revenue) if m else None,
        )
        # Implausible multiples are estimator errors, not data
        if metrics.ev_to_ebitda is not None and metrics.ev_to_ebitda > MAX_EV_TO_EBITDA:
            metrics.ev_to_ebitda = None
        if metrics.ev_to_revenue is not None and metrics.ev_to_revenue > MAX_EV_TO_REVENUE:
            metrics.ev_to_revenue = None

        validated.append(ComparableCompany(
            name=entry.name.strip(),
            ticker=entry.ticker.strip().upper() if entry.ticker and entry.ticker.strip() else None,
            rationale=entry.rationale.strip() if entry.rationale else "No rationale provided",
            metrics=metrics,
            relevance_score=relevance,
        ))

    validated.sort(key=lambda c: c.relevance_score, reverse=True)
    return validated[:MAX_COMPARABLES]


def calculate_weighted_multiple(
    comparables: list[ComparableCompany],
    extractor: Callable[[ComparableCompany], float | None],
) -> float | None:
    """Relevance-weighted average of one multiple across the comparable set."""
    valid = [c for c in comparables if _positive_number(extractor(c)) is not None]
    if not valid:
        return None
    if len(valid) == 1:
        return extractor(valid[0])

    total_weight = sum(c.relevance_score for c in valid)
    if total_weight == 0:
        return None
    return sum(extractor(c) * c.relevance_score for c in valid) / total_weight


def weighted_ebitda_multiple(comparables: list[ComparableCompany]) -> float | None:
    return calculate_weighted_multiple(comparables, lambda c: c.metrics.ev_to_ebitda)


def weighted_revenue_multiple(comparables: list[ComparableCompany]) -> float | None:
    return calculate_weighted_multiple(comparables, lambda c: c.metrics.ev_to_revenue)


def calculate_spread_factor(comparables: list[ComparableCompany]) -> float:
    """Range half-width: wider with fewer comps and with more dispersed EV/EBITDA multiples."""
    count = len(comparables)
    if count >= 5:
        spread = 0.15
    elif count >= 3:
        spread = 0.25
    elif count >= 1:
        spread = 0.35
    else:
        spread = 0.40

    ebitda_multiples = [c.metrics.ev_to_ebitda for c in comparables if _positive_number(c.metrics.ev_to_ebitda)]
    if len(ebitda_multiples) >= 2:
        mean = sum(ebitda_multiples) / len(ebitda_multiples)
        dispersion = (max(ebitda_multiples) - min(ebitda_multiples)) / mean if mean > 0 else 0.0
        if dispersion > 0.5:
            spread += 0.05
        if dispersion > 1.0:
            spread += 0.05

    return min(spread, 0.50)


def _build_range(base: float | None, multiplier: float, spread: float, floor: float) -> MultipleRange | None:
    if base is None or base <= 0:
        return None
    mid = base * multiplier
    return MultipleRange(
        low=max(floor, round(mid * (1 - spread), 1)),
        mid=max(floor, round(mid, 1)),
        high=max(floor, round(mid * (1 + spread), 1)),
    )


def calculate_multiple_range(
    base_ebitda_multiple: float | None,
    base_revenue_multiple: float | None,
    comparables: list[ComparableCompany],
    adjustments: AdjustmentResult | None = None,
) -> MultipleRangeResult:
    """Low/mid/high multiple ranges around the weighted comparable multiples.

    Without adjustments the range is the raw comparable range the valuation
    calculator blends from; with adjustments it is the display range.
    """
    multiplier = adjustments.adjustment_multiplier if adjustments else 1.0
    spread = calculate_spread_factor(comparables)

    return MultipleRangeResult(
        ebitda_multiple_range=_build_range(base_ebitda_multiple, multiplier, spread, floor=0.5),
        revenue_multiple_range=_build_range(base_revenue_multiple, multiplier, spread, floor=0.1),
        adjustment_multiplier=multiplier,
        comparable_count=len(comparables),
        base_ebitda_multiple=base_ebitda_multiple,
        base_revenue_multiple=base_revenue_multiple,
        spread_factor=spread,
    )


def format_dollar_amount(amount: float) -> str:
    """500000 -> '500K', 2500000 -> '2.5M'."""
    if amount >= 1_000_000_000:
        return f"{amount / 1_000_000_000:.1f}B"
    if amount >= 1_000_000:
        return f"{amount / 1_000_000:.1f}M"
    if amount >= 1_000:
        return f"{amount / 1_000:.0f}K"
    return f"{amount:.0f}"
