import pytest

from exit_valuation.models.valuations import ValuationInputs
from exit_valuation.valuation.calculator import MAX_DISCOUNT_FRACTION, calculate_valuation
from exit_valuation.valuation.errors import ValidationFailedError


def _inputs(**overrides) -> ValuationInputs:
    values = dict(
        adjusted_ebitda=1_000_000, multiple_low=4.0, multiple_high=6.0,
        adjustment_multiplier=1.05, core_score=1.0, bri_score=0.70,
    )
    values.update(overrides)
    return ValuationInputs(**values)


def test_reference_scenario():
    result = calculate_valuation(_inputs())
    assert result.range_multiple == pytest.approx(6.0)
    assert result.base_multiple == pytest.approx(6.3)
    assert result.discount_fraction == pytest.approx(0.09)
    assert result.final_multiple == pytest.approx(5.733)
    assert result.current_value == pytest.approx(5_733_000)
    assert result.potential_value == pytest.approx(6_300_000)
    assert result.value_gap == pytest.approx(567_000)
    assert result.alpha == 0.3


def test_fully_ready_has_no_gap():
    result = calculate_valuation(_inputs(bri_score=1.0))
    assert result.discount_fraction == 0
    assert result.current_value == result.potential_value
    assert result.value_gap == 0


def test_core_score_picks_point_in_range():
    assert calculate_valuation(_inputs(core_score=0.0)).range_multiple == 4.0
    assert calculate_valuation(_inputs(core_score=0.5)).range_multiple == 5.0


def test_higher_bri_strictly_increases_current_value():
    previous = None
    for bri in [0.0, 0.1, 0.25, 0.5, 0.7, 0.9, 1.0]:
        result = calculate_valuation(_inputs(bri_score=bri))
        if previous is not None:
            assert result.discount_fraction < previous.discount_fraction
            assert result.current_value > previous.current_value
        previous = result


def test_gap_never_negative():
    for ebitda in [-500_000, 0, 250_000, 3_000_000]:
        for bri in [0.0, 0.4, 1.0]:
            for core in [0.0, 0.5, 1.0]:
                for multiplier in [0.3, 1.0, 1.5]:
                    result = calculate_valuation(_inputs(
                        adjusted_ebitda=ebitda, bri_score=bri, core_score=core, adjustment_multiplier=multiplier,
                    ))
                    assert result.value_gap >= 0


def test_negative_ebitda_valued_at_zero_with_warning():
    result = calculate_valuation(_inputs(adjusted_ebitda=-200_000))
    assert result.current_value == 0
    assert result.potential_value == 0
    assert result.adjusted_ebitda == -200_000
    assert any("negative" in w for w in result.warnings)


def test_discount_capped():
    result = calculate_valuation(_inputs(bri_score=0.0), alpha=1.0)
    assert result.discount_fraction == MAX_DISCOUNT_FRACTION
    assert result.final_multiple > 0


def test_alpha_configurable():
    result = calculate_valuation(_inputs(bri_score=0.5), alpha=0.5)
    assert result.discount_fraction == pytest.approx(0.25)
    assert result.alpha == 0.5


@pytest.mark.parametrize("overrides, field", [
    (dict(multiple_low=0.0), "multiple_low"),
    (dict(multiple_low=7.0), "multiple_high"),
    (dict(bri_score=1.2), "bri_score"),
    (dict(core_score=-0.1), "core_score"),
    (dict(adjustment_multiplier=0.0), "adjustment_multiplier"),
])
def test_invalid_inputs_rejected(overrides, field):
    with pytest.raises(ValidationFailedError) as exc:
        calculate_valuation(_inputs(**overrides))
    assert field in exc.value.fields


def test_invalid_alpha_rejected():
    with pytest.raises(ValidationFailedError) as exc:
        calculate_valuation(_inputs(), alpha=1.5)
    assert exc.value.fields == ["alpha"]


def test_non_finite_input_rejected():
    with pytest.raises(ValidationFailedError):
        calculate_valuation(_inputs(adjusted_ebitda=float("nan")))
