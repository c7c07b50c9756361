import pytest
from pydantic import ValidationError

from exit_valuation.models.company import CoreFactors
from exit_valuation.models.scores import BriWeights, CategoryScores, DEFAULT_BRI_WEIGHTS
from exit_valuation.valuation.bri import calculate_core_score, compute_bri_score


def _scores(**overrides) -> CategoryScores:
    values = dict(financial=0.8, transferability=0.4, operational=0.6, market=0.7, legal_tax=0.9, personal=0.5)
    values.update(overrides)
    return CategoryScores(**values)


def test_default_weights_sum_to_one():
    assert sum(DEFAULT_BRI_WEIGHTS.as_dict().values()) == pytest.approx(1.0)


def test_weights_summing_to_99_rejected():
    with pytest.raises(ValidationError, match="99%"):
        BriWeights(financial=0.24, transferability=0.20, operational=0.20, market=0.15, legal_tax=0.10, personal=0.10)


def test_weights_summing_to_101_rejected():
    with pytest.raises(ValidationError, match="101%"):
        BriWeights(financial=0.26, transferability=0.20, operational=0.20, market=0.15, legal_tax=0.10, personal=0.10)


def test_weights_with_float_drift_accepted():
    weights = BriWeights(
        financial=0.1 + 0.2, transferability=0.2, operational=0.2, market=0.1, legal_tax=0.1, personal=0.1,
    )
    assert weights.financial == pytest.approx(0.3)


def test_fractional_point_weights_rejected_even_if_points_round_to_100():
    # 99.5 + 5 x 0.4 rounds to 100 points per weight but really sums to 101.5%
    with pytest.raises(ValidationError, match="whole percentage points"):
        BriWeights(
            financial=0.995, transferability=0.004, operational=0.004, market=0.004, legal_tax=0.004, personal=0.004,
        )


def test_fractional_point_weights_summing_to_one_rejected():
    with pytest.raises(ValidationError, match="whole percentage points"):
        BriWeights(
            financial=0.166, transferability=0.166, operational=0.167, market=0.167, legal_tax=0.167, personal=0.167,
        )


def test_negative_weight_rejected():
    with pytest.raises(ValidationError):
        BriWeights(financial=-0.1, transferability=0.4, operational=0.2, market=0.2, legal_tax=0.2, personal=0.1)


def test_score_out_of_range_rejected():
    with pytest.raises(ValidationError):
        _scores(market=1.2)


def test_bri_weighted_sum():
    result = compute_bri_score(_scores(), DEFAULT_BRI_WEIGHTS)
    expected = 0.25 * 0.8 + 0.20 * 0.4 + 0.20 * 0.6 + 0.15 * 0.7 + 0.10 * 0.9 + 0.10 * 0.5
    assert result.bri_score == pytest.approx(expected)
    assert result.category_scores.transferability == 0.4
    assert result.weights == DEFAULT_BRI_WEIGHTS


def test_bri_is_convex_combination():
    weight_sets = [
        DEFAULT_BRI_WEIGHTS,
        BriWeights(financial=1.0, transferability=0, operational=0, market=0, legal_tax=0, personal=0),
        BriWeights(financial=0.01, transferability=0.01, operational=0.01, market=0.01, legal_tax=0.01, personal=0.95),
    ]
    score_sets = [
        _scores(),
        _scores(financial=0.0, personal=1.0),
        _scores(financial=0.33, transferability=0.33, operational=0.33, market=0.33, legal_tax=0.33, personal=0.33),
    ]
    for weights in weight_sets:
        for scores in score_sets:
            bri = compute_bri_score(scores, weights).bri_score
            values = scores.as_dict().values()
            assert min(values) <= bri <= max(values)


def test_uniform_scores_give_that_score():
    scores = _scores(financial=0.33, transferability=0.33, operational=0.33, market=0.33, legal_tax=0.33, personal=0.33)
    assert compute_bri_score(scores, DEFAULT_BRI_WEIGHTS).bri_score == 0.33


def test_core_score_defaults_to_neutral_without_factors():
    assert calculate_core_score(None) == 1.0


def test_core_score_all_best_values():
    factors = CoreFactors(
        revenue_model="SUBSCRIPTION_SAAS",
        gross_margin_proxy="EXCELLENT",
        labor_intensity="LOW",
        asset_intensity="ASSET_LIGHT",
        owner_involvement="MINIMAL",
    )
    assert calculate_core_score(factors) == pytest.approx(1.0)


def test_core_score_mixed_values():
    factors = CoreFactors(
        revenue_size_category="UNDER_500K",
        revenue_model="PROJECT_BASED",
        gross_margin_proxy="GOOD",
        labor_intensity="HIGH",
        asset_intensity="ASSET_HEAVY",
        owner_involvement="CRITICAL",
    )
    assert calculate_core_score(factors) == pytest.approx((0.25 + 0.75 + 0.5 + 0.33 + 0.0) / 5)


def test_core_score_unknown_and_unset_values_are_half():
    factors = CoreFactors(revenue_model="SOMETHING_NEW")
    assert calculate_core_score(factors) == pytest.approx(0.5)
