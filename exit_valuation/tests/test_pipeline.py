import asyncio

import pytest
from unittest.mock import MagicMock

from exit_valuation.models.company import (
    CompanyInputs, CoreFactors, EbitdaAdjustment, FinancialPeriod, IncomeStatement,
)
from exit_valuation.models.market_data import (
    ComparableCompany, ComparableMetrics, ComparableResult,
    RawComparable, RawComparableMetrics, RawComparableResponse,
)
from exit_valuation.models.scores import BriWeights, CategoryScores
from exit_valuation.models.snapshot import LLMCallLog
from exit_valuation.pipeline.orchestrator import RecalculationPipeline
from exit_valuation.pipeline.step_comparables import build_company_profile, format_icb_name
from exit_valuation.pipeline.step_ebitda import normalize_financials
from exit_valuation.services.cache_service import InMemoryKeyValueCache
from exit_valuation.services.comparable_service import ComparableEngine, LLMComparableEstimator
from exit_valuation.services.db_service import DBService
from exit_valuation.valuation.errors import (
    CompanyNotFoundError, NotComputableError, ServiceUnavailableError, ValidationFailedError,
)


class FakeEstimator:
    def __init__(self, result: ComparableResult | None = None, error: Exception | None = None):
        self.result = result
        self.error = error
        self.calls = 0

    async def estimate(self, profile):
        self.calls += 1
        if self.error:
            raise self.error
        return self.result.model_copy(deep=True)


def _comparables(multiple: float | None = 8.0) -> ComparableResult:
    comps = [
        ComparableCompany(name=f"Comp {i}", relevance_score=0.6,
                          metrics=ComparableMetrics(ev_to_ebitda=multiple, ev_to_revenue=1.2))
        for i in range(5)
    ]
    return ComparableResult(comparables=comps, weighted_ebitda_multiple=multiple, weighted_revenue_multiple=1.2)


def _statement(revenue: float) -> IncomeStatement:
    return IncomeStatement(
        revenue=revenue, cost_of_goods_sold=2_000_000, operating_expenses=2_200_000,
        depreciation=100_000, amortization=50_000, interest_expense=30_000, tax_expense=20_000,
    )


@pytest.fixture
def db(tmp_path):
    return DBService(f"sqlite:///{tmp_path}/test.db")


@pytest.fixture
def company_inputs():
    return CompanyInputs(
        company_id="acme",
        name="Acme Mechanical",
        organization_id="org1",
        icb_industry="INDUSTRIALS",
        icb_sector="CONSTRUCTION_AND_MATERIALS",
        icb_sub_sector="BUILDING_SERVICES",
        geography="Ohio",
        top_customer_concentration=0.12,
        owner_compensation=260_000,
        core_factors=CoreFactors(
            revenue_size_category="FROM_3M_TO_10M",
            revenue_model="RECURRING_CONTRACTS",
            gross_margin_proxy="GOOD",
            labor_intensity="HIGH",
            asset_intensity="MODERATE",
            owner_involvement="MODERATE",
        ),
        category_scores=CategoryScores(
            financial=0.8, transferability=0.6, operational=0.7, market=0.65, legal_tax=0.9, personal=0.5,
        ),
        financial_periods=[
            FinancialPeriod(fiscal_year=2023, income_statement=_statement(4_500_000)),
            FinancialPeriod(fiscal_year=2024, income_statement=_statement(5_000_000)),
        ],
        ebitda_adjustments=[EbitdaAdjustment(description="One-time legal settlement", amount=50_000, type="add_back")],
    )


def _pipeline(db: DBService, estimator: FakeEstimator, cache=None) -> RecalculationPipeline:
    engine = ComparableEngine(estimator=estimator, cache=cache or InMemoryKeyValueCache(), timeout_seconds=0)
    return RecalculationPipeline(db=db, comparables=engine)


@pytest.mark.asyncio
async def test_full_recalculation(db, company_inputs):
    db.save_company_inputs(company_inputs)
    pipeline = _pipeline(db, FakeEstimator(_comparables()))

    snapshot = await pipeline.recalculate("acme", "Financial update", actor_id="user-1")

    assert snapshot.company_id == "acme"
    assert snapshot.snapshot_reason == "Financial update"
    assert snapshot.created_by_user_id == "user-1"
    # 1,000,000 reported + 50,000 legal + 60,000 owner pay above the 200K benchmark
    assert snapshot.adjusted_ebitda == pytest.approx(1_110_000)
    assert snapshot.industry_multiple_low == 6.8
    assert snapshot.industry_multiple_high == 9.2
    assert snapshot.current_value > 0
    assert snapshot.value_gap >= 0
    assert snapshot.potential_value == pytest.approx(snapshot.current_value + snapshot.value_gap)
    assert snapshot.bri_transferability == 0.6
    assert snapshot.details["weights_source"] == "default"
    assert db.get_latest_snapshot("acme").id == snapshot.id

    audit = db.get_audit_log(snapshot.id)
    assert [s["step_name"] for s in audit["pipeline_steps"]] == ["score", "ebitda", "comparables", "adjust", "valuate"]


@pytest.mark.asyncio
async def test_recalculation_uses_current_transferability(db, company_inputs):
    db.save_company_inputs(company_inputs)
    pipeline = _pipeline(db, FakeEstimator(_comparables()))
    snapshot = await pipeline.recalculate("acme", "Assessment update")

    owner = [a for a in snapshot.details["adjustments"]["adjustments"] if a["factor"] == "owner_dependency"]
    assert owner[0]["impact"] == pytest.approx(-0.25 * (1 - 0.6))


@pytest.mark.asyncio
async def test_organization_weights_applied(db, company_inputs):
    db.save_company_inputs(company_inputs)
    db.set_bri_weights("organization", "org1", BriWeights(
        financial=0.5, transferability=0.1, operational=0.1, market=0.1, legal_tax=0.1, personal=0.1,
    ))
    pipeline = _pipeline(db, FakeEstimator(_comparables()))
    snapshot = await pipeline.recalculate("acme", "Weights changed")

    assert snapshot.details["weights_source"] == "organization"
    assert snapshot.bri_score == pytest.approx(0.5 * 0.8 + 0.1 * (0.6 + 0.7 + 0.65 + 0.9 + 0.5))


@pytest.mark.asyncio
async def test_estimator_failure_creates_no_snapshot(db, company_inputs):
    db.save_company_inputs(company_inputs)
    pipeline = _pipeline(db, FakeEstimator(error=TimeoutError("upstream slow")))

    with pytest.raises(ServiceUnavailableError):
        await pipeline.recalculate("acme", "Manual reassessment")
    assert db.list_snapshots("acme") == []


@pytest.mark.asyncio
async def test_failure_keeps_previous_snapshot_current(db, company_inputs):
    db.save_company_inputs(company_inputs)
    first = await _pipeline(db, FakeEstimator(_comparables())).recalculate("acme", "Initial")

    failing = _pipeline(db, FakeEstimator(error=ConnectionError("down")))
    with pytest.raises(ServiceUnavailableError):
        await failing.recalculate("acme", "Retry", force_refresh_comparables=True)

    assert [s.id for s in db.list_snapshots("acme")] == [first.id]


@pytest.mark.asyncio
async def test_cached_comparables_reused_across_recalculations(db, company_inputs):
    db.save_company_inputs(company_inputs)
    estimator = FakeEstimator(_comparables())
    pipeline = _pipeline(db, estimator)

    first = await pipeline.recalculate("acme", "First")
    second = await pipeline.recalculate("acme", "Second")

    assert estimator.calls == 1
    assert second.id != first.id
    assert second.details["comparables_from_cache"]
    assert len(db.list_snapshots("acme")) == 2


@pytest.mark.asyncio
async def test_no_ebitda_multiple_is_not_computable(db, company_inputs):
    db.save_company_inputs(company_inputs)
    pipeline = _pipeline(db, FakeEstimator(_comparables(multiple=None)))

    with pytest.raises(NotComputableError) as exc:
        await pipeline.recalculate("acme", "Manual reassessment")
    assert "comparable_ebitda_multiple" in exc.value.missing_fields
    assert db.list_snapshots("acme") == []


@pytest.mark.asyncio
async def test_missing_financials_is_not_computable(db, company_inputs):
    db.save_company_inputs(company_inputs.model_copy(update={"financial_periods": [], "annual_ebitda": None}))
    pipeline = _pipeline(db, FakeEstimator(_comparables()))

    with pytest.raises(NotComputableError):
        await pipeline.recalculate("acme", "Manual reassessment")


@pytest.mark.asyncio
async def test_missing_scores_is_not_computable(db, company_inputs):
    db.save_company_inputs(company_inputs.model_copy(update={"category_scores": None}))
    estimator = FakeEstimator(_comparables())

    with pytest.raises(NotComputableError) as exc:
        await _pipeline(db, estimator).recalculate("acme", "Manual reassessment")
    assert exc.value.missing_fields == ["category_scores"]
    assert estimator.calls == 0


@pytest.mark.asyncio
async def test_unknown_company(db):
    with pytest.raises(CompanyNotFoundError):
        await _pipeline(db, FakeEstimator(_comparables())).recalculate("ghost", "Manual reassessment")


@pytest.mark.asyncio
async def test_analyze_comparables_does_not_persist(db, company_inputs):
    db.save_company_inputs(company_inputs)
    estimator = FakeEstimator(_comparables())
    pipeline = _pipeline(db, estimator)

    analysis = await pipeline.analyze_comparables("acme")
    refreshed = await pipeline.force_refresh_comparables("acme")

    assert analysis.profile.industry == "Building Services"
    assert analysis.raw_multiple_range.ebitda_multiple_range.mid == 8.0
    assert analysis.adjusted_multiple_range.adjustment_multiplier == analysis.adjustments.adjustment_multiplier
    assert not refreshed.from_cache
    assert estimator.calls == 2
    assert db.list_snapshots("acme") == []


@pytest.mark.asyncio
async def test_recalculate_for_industry_counts_outcomes(db, company_inputs):
    db.save_company_inputs(company_inputs)
    db.save_company_inputs(company_inputs.model_copy(update={"company_id": "beta", "category_scores": None}))
    db.save_company_inputs(company_inputs.model_copy(update={"company_id": "other", "icb_sub_sector": "SOFTWARE",
                                                             "icb_sector": "TECH", "icb_industry": "TECHNOLOGY"}))
    pipeline = _pipeline(db, FakeEstimator(_comparables()))

    summary = await pipeline.recalculate_for_industry(icb_sub_sector="BUILDING_SERVICES", update_type="EBITDA")

    assert summary.matched == 2
    assert summary.succeeded == 1
    assert summary.failed == 1
    assert summary.errors[0]["company_id"] == "beta"
    assert db.get_latest_snapshot("acme").snapshot_reason == "Industry multiple update (EBITDA)"
    assert db.get_latest_snapshot("other") is None


def test_annual_figures_used_without_statements(company_inputs):
    inputs = company_inputs.model_copy(update={
        "financial_periods": [], "annual_revenue": 3_000_000, "annual_ebitda": 450_000, "owner_compensation": None,
    })
    summary = normalize_financials(inputs)
    assert summary.source == "annual_figures"
    assert summary.ebitda.adjusted_ebitda == 500_000
    assert summary.ebitda_margin == pytest.approx(500_000 / 3_000_000)


def test_company_profile_from_inputs(company_inputs):
    profile = build_company_profile(company_inputs, normalize_financials(company_inputs))
    assert profile.industry_path == "Industrials / Construction And Materials / Building Services"
    assert profile.revenue == 5_000_000
    assert profile.revenue_growth_rate == pytest.approx(500_000 / 4_500_000)
    assert profile.is_recurring_revenue is True


def test_profile_requires_industry(company_inputs):
    inputs = company_inputs.model_copy(update={"icb_industry": None, "icb_sector": None, "icb_sub_sector": None})
    with pytest.raises(NotComputableError):
        build_company_profile(inputs, normalize_financials(inputs))


def test_format_icb_name():
    assert format_icb_name("SOFTWARE_AND_COMPUTER_SERVICES") == "Software And Computer Services"
    assert format_icb_name(None) == ""


@pytest.fixture
def interleaving_llm():
    """Shared LLM whose calls finish in reverse order of arrival."""
    llm = MagicMock()
    llm.configured = True
    delays = iter([0.05, 0.0])

    async def mock_structured(*args, user_prompt="", call_log=None, **kwargs):
        await asyncio.sleep(next(delays))
        call_log.append(LLMCallLog(
            step_name="comparables", model="gpt-4o", system_prompt="s", user_prompt=user_prompt,
            response="{}", tokens_used=500, duration_ms=100,
        ))
        return RawComparableResponse(comparables=[
            RawComparable(name="Comfort Systems", relevance_score=0.8,
                          metrics=RawComparableMetrics(ev_to_ebitda=9.0, ev_to_revenue=1.1)),
        ])

    llm.structured_completion = mock_structured
    return llm


@pytest.mark.asyncio
async def test_overlapping_recalculations_keep_their_own_llm_calls(db, company_inputs, interleaving_llm):
    db.save_company_inputs(company_inputs)
    db.save_company_inputs(company_inputs.model_copy(update={"company_id": "beta", "name": "Beta Plumbing"}))
    engine = ComparableEngine(
        estimator=LLMComparableEstimator(interleaving_llm), cache=InMemoryKeyValueCache(), timeout_seconds=0,
    )
    pipeline = RecalculationPipeline(db=db, comparables=engine)

    acme, beta = await asyncio.gather(
        pipeline.recalculate("acme", "Answers changed"),
        pipeline.recalculate("beta", "Answers changed"),
    )

    for snapshot, name in [(acme, "Acme Mechanical"), (beta, "Beta Plumbing")]:
        calls = db.get_audit_log(snapshot.id)["llm_calls"]
        assert len(calls) == 1
        assert f"Company: {name}" in calls[0]["user_prompt"]
        assert snapshot.details["comparables"]["ai_usage"]["tokens_used"] == 500


@pytest.mark.parametrize("alpha", ["abc", "1.5", "-0.1", "nan", 2.0])
def test_invalid_alpha_rejected_at_construction(db, alpha):
    estimator = FakeEstimator(_comparables())
    with pytest.raises(ValidationFailedError) as exc:
        _pipeline_with_alpha(db, estimator, alpha)
    assert exc.value.fields == ["alpha"]
    assert estimator.calls == 0


def test_alpha_from_config_string(db):
    pipeline = _pipeline_with_alpha(db, FakeEstimator(_comparables()), "0.45")
    assert pipeline.alpha == 0.45


def _pipeline_with_alpha(db: DBService, estimator: FakeEstimator, alpha) -> RecalculationPipeline:
    engine = ComparableEngine(estimator=estimator, cache=InMemoryKeyValueCache(), timeout_seconds=0)
    return RecalculationPipeline(db=db, comparables=engine, alpha=alpha)
