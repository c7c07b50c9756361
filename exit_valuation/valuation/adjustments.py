"""Company-specific adjustments to comparable-derived multiples.

Every adjustment is a percentage-point delta. They are summed, never chained,
so the total reads as a simple bridge:

    adjusted_multiple = base_multiple * (1 + total_adjustment)

The sum is clamped to [-0.70, +0.50], keeping the multiplier within [0.3, 1.5].
"""
from exit_valuation.models.valuations import AdjustmentProfile, AdjustmentResult, MultipleAdjustment

MIN_TOTAL_ADJUSTMENT = -0.70
MAX_TOTAL_ADJUSTMENT = 0.50

SIZE_DISCOUNTS: dict[str, float] = {
    "UNDER_500K": -0.35,
    "FROM_500K_TO_1M": -0.25,
    "FROM_1M_TO_3M": -0.18,
    "FROM_3M_TO_10M": -0.10,
    "FROM_10M_TO_25M": -0.05,
    "OVER_25M": 0.0,
}

SIZE_LABELS: dict[str, str] = {
    "UNDER_500K": "under $500K",
    "FROM_500K_TO_1M": "$500K-$1M",
    "FROM_1M_TO_3M": "$1M-$3M",
    "FROM_3M_TO_10M": "$3M-$10M",
    "FROM_10M_TO_25M": "$10M-$25M",
    "OVER_25M": "over $25M",
}

# (minimum, impact, label), checked top-down
GROWTH_TIERS: list[tuple[float, float, str]] = [
    (0.30, 0.20, "High growth (30%+)"),
    (0.20, 0.12, "Strong growth (20-30%)"),
    (0.10, 0.05, "Moderate growth (10-20%)"),
    (0.0, 0.0, "Stable (0-10%)"),
    (-0.10, -0.10, "Declining (-10% to 0%)"),
    (float("-inf"), -0.20, "Rapid decline (below -10%)"),
]

MARGIN_TIERS: list[tuple[float, float, str]] = [
    (0.30, 0.15, "Premium margins (30%+)"),
    (0.20, 0.08, "Strong margins (20-30%)"),
    (0.15, 0.0, "Average margins (15-20%)"),
    (0.10, -0.08, "Below-average margins (10-15%)"),
    (0.0, -0.15, "Thin margins (0-10%)"),
    (float("-inf"), -0.25, "Negative margins"),
]

SINGLE_CUSTOMER_HIGH = (0.30, -0.20)
SINGLE_CUSTOMER_MODERATE = (0.20, -0.10)
TOP3_HIGH = (0.60, -0.15)
TOP3_MODERATE = (0.40, -0.08)

OWNER_DEPENDENCY_MAX_DISCOUNT = -0.25

RECURRING_REVENUE_PREMIUMS: dict[str, float] = {
    "SUBSCRIPTION_SAAS": 0.25,
    "RECURRING_CONTRACTS": 0.12,
    "TRANSACTIONAL": 0.0,
    "PROJECT_BASED": -0.05,
}
GENERIC_RECURRING_PREMIUM = 0.15


def adjust_multiples(profile: AdjustmentProfile) -> AdjustmentResult:
    """Compute the ordered adjustment list and the clamped total for a subject company."""
    adjustments: list[MultipleAdjustment] = []

    for candidate in (
        _size_adjustment(profile),
        _growth_adjustment(profile),
        _margin_adjustment(profile),
    ):
        if candidate:
            adjustments.append(candidate)

    adjustments.extend(_concentration_adjustments(profile))

    for candidate in (_owner_dependency_adjustment(profile), _revenue_model_adjustment(profile)):
        if candidate:
            adjustments.append(candidate)

    raw_total = sum(a.impact for a in adjustments if a.enabled)
    total = max(MIN_TOTAL_ADJUSTMENT, min(raw_total, MAX_TOTAL_ADJUSTMENT))

    return AdjustmentResult(
        adjustments=adjustments,
        raw_total_adjustment=raw_total,
        total_adjustment=total,
        adjustment_multiplier=1 + total,
    )


def infer_size_category(revenue: float) -> str:
    if revenue < 500_000:
        return "UNDER_500K"
    if revenue < 1_000_000:
        return "FROM_500K_TO_1M"
    if revenue < 3_000_000:
        return "FROM_1M_TO_3M"
    if revenue < 10_000_000:
        return "FROM_3M_TO_10M"
    if revenue < 25_000_000:
        return "FROM_10M_TO_25M"
    return "OVER_25M"


def _size_adjustment(profile: AdjustmentProfile) -> MultipleAdjustment | None:
    category = profile.revenue_size_category or infer_size_category(profile.revenue)
    impact = SIZE_DISCOUNTS.get(category)
    if not impact:
        return None
    return MultipleAdjustment(
        factor="size_discount",
        name="Size Discount",
        impact=impact,
        explanation=(
            f"Private companies with revenue {SIZE_LABELS[category]} typically trade at a "
            f"{abs(impact):.0%} discount to public comparables: less diversified revenue, "
            f"thinner management and higher key-person risk."
        ),
        category="size",
    )


def _tier_for(value: float, tiers: list[tuple[float, float, str]]) -> tuple[float, str]:
    for minimum, impact, label in tiers:
        if value >= minimum:
            return impact, label
    return tiers[-1][1], tiers[-1][2]


def _growth_adjustment(profile: AdjustmentProfile) -> MultipleAdjustment | None:
    if profile.revenue_growth_rate is None:
        return None
    impact, label = _tier_for(profile.revenue_growth_rate, GROWTH_TIERS)
    if impact == 0:
        return None
    premium = impact > 0
    return MultipleAdjustment(
        factor="growth_adjustment",
        name="Growth Premium" if premium else "Growth Discount",
        impact=impact,
        explanation=(
            f"Revenue growth of {profile.revenue_growth_rate:.1%} ({label}) warrants a "
            f"{abs(impact):.0%} {'premium' if premium else 'discount'}. "
            + ("Buyers pay more for companies growing above market rates."
               if premium else "Declining revenue signals that future earnings may erode.")
        ),
        category="growth",
    )


def _margin_adjustment(profile: AdjustmentProfile) -> MultipleAdjustment | None:
    if profile.ebitda_margin is None:
        return None
    impact, label = _tier_for(profile.ebitda_margin, MARGIN_TIERS)
    if impact == 0:
        return None
    premium = impact > 0
    return MultipleAdjustment(
        factor="margin_adjustment",
        name="Margin Premium" if premium else "Margin Discount",
        impact=impact,
        explanation=(
            f"EBITDA margin of {profile.ebitda_margin:.1%} ({label}) warrants a "
            f"{abs(impact):.0%} {'premium' if premium else 'discount'}."
        ),
        category="profitability",
    )


def _concentration_adjustments(profile: AdjustmentProfile) -> list[MultipleAdjustment]:
    adjustments: list[MultipleAdjustment] = []

    top1 = profile.top_customer_concentration
    if top1 is not None:
        for threshold, impact in (SINGLE_CUSTOMER_HIGH, SINGLE_CUSTOMER_MODERATE):
            if top1 >= threshold:
                adjustments.append(MultipleAdjustment(
                    factor="customer_concentration_single",
                    name="Customer Concentration (Single)",
                    impact=impact,
                    explanation=(
                        f"Top customer represents {top1:.0%} of revenue (threshold {threshold:.0%}). "
                        f"Losing this customer would materially impact the business."
                    ),
                    category="risk",
                ))
                break

    # A heavy single-customer discount already prices in top-3 concentration
    single_already_heavy = any(a.impact <= -0.15 for a in adjustments)
    top3 = profile.top3_customer_concentration
    if top3 is not None and not single_already_heavy:
        for threshold, impact in (TOP3_HIGH, TOP3_MODERATE):
            if top3 >= threshold:
                adjustments.append(MultipleAdjustment(
                    factor="customer_concentration_top3",
                    name="Customer Concentration (Top 3)",
                    impact=impact,
                    explanation=f"Top 3 customers represent {top3:.0%} of revenue (threshold {threshold:.0%}).",
                    category="risk",
                ))
                break

    return adjustments


def _owner_dependency_adjustment(profile: AdjustmentProfile) -> MultipleAdjustment | None:
    score = profile.transferability_score
    if score is None:
        return None
    impact = OWNER_DEPENDENCY_MAX_DISCOUNT * (1 - score)
    if abs(impact) < 0.02:
        return None
    severity = "high" if score < 0.3 else "moderate" if score < 0.6 else "low"
    return MultipleAdjustment(
        factor="owner_dependency",
        name="Owner Dependency Discount",
        impact=impact,
        explanation=(
            f"Transferability score of {score:.0%} indicates {severity} owner dependency. "
            f"Buyers discount businesses that cannot run without the current owner ({abs(impact):.0%})."
        ),
        category="risk",
    )


def _revenue_model_adjustment(profile: AdjustmentProfile) -> MultipleAdjustment | None:
    impact = RECURRING_REVENUE_PREMIUMS.get(profile.revenue_model or "")
    if impact:
        premium = impact > 0
        return MultipleAdjustment(
            factor="recurring_revenue",
            name="Recurring Revenue Premium" if premium else "Revenue Model Discount",
            impact=impact,
            explanation=(
                f"{profile.revenue_model.replace('_', ' ').lower()} revenue model warrants a "
                f"{abs(impact):.0%} {'premium' if premium else 'discount'}."
            ),
            category="quality",
        )

    if profile.is_recurring_revenue and impact is None:
        return MultipleAdjustment(
            factor="recurring_revenue",
            name="Recurring Revenue Premium",
            impact=GENERIC_RECURRING_PREMIUM,
            explanation="Recurring revenue model warrants a 15% premium for its predictability.",
            category="quality",
        )
    return None
