from exit_valuation.models.company import CoreFactors
from exit_valuation.models.scores import CATEGORY_FIELDS, BriScoreResult, BriWeights, CategoryScores

# Lookup per core factor; revenue_size_category is intentionally not scored
CORE_FACTOR_SCORES: dict[str, dict[str, float]] = {
    "revenue_model": {
        "PROJECT_BASED": 0.25,
        "TRANSACTIONAL": 0.5,
        "RECURRING_CONTRACTS": 0.75,
        "SUBSCRIPTION_SAAS": 1.0,
    },
    "gross_margin_proxy": {"LOW": 0.25, "MODERATE": 0.5, "GOOD": 0.75, "EXCELLENT": 1.0},
    "labor_intensity": {"VERY_HIGH": 0.25, "HIGH": 0.5, "MODERATE": 0.75, "LOW": 1.0},
    "asset_intensity": {"ASSET_HEAVY": 0.33, "MODERATE": 0.67, "ASSET_LIGHT": 1.0},
    "owner_involvement": {"CRITICAL": 0.0, "HIGH": 0.25, "MODERATE": 0.5, "LOW": 0.75, "MINIMAL": 1.0},
}

NEUTRAL_CORE_SCORE = 1.0
UNKNOWN_FACTOR_SCORE = 0.5


def compute_bri_score(scores: CategoryScores, weights: BriWeights) -> BriScoreResult:
    """Weighted sum of the six category scores.

    Weights are trusted to sum to 1.0 (BriWeights enforces it on construction),
    so nothing is renormalized here.
    """
    values = scores.as_dict()
    weight_map = weights.as_dict()
    bri = sum(weight_map[name] * values[name] for name in CATEGORY_FIELDS)

    # Float drift only; a convex combination stays inside the score range
    bri = min(max(bri, min(values.values())), max(values.values()))

    return BriScoreResult(bri_score=bri, category_scores=scores, weights=weights)


def calculate_core_score(core_factors: CoreFactors | None) -> float:
    """Average of the five factor scores; 1.0 when the company has no core factors yet."""
    if core_factors is None:
        return NEUTRAL_CORE_SCORE

    total = 0.0
    for factor, table in CORE_FACTOR_SCORES.items():
        level = getattr(core_factors, factor)
        total += table.get(level, UNKNOWN_FACTOR_SCORE) if level else UNKNOWN_FACTOR_SCORE
    return total / len(CORE_FACTOR_SCORES)
