from exit_valuation.models.market_data import ComparableLookup
from exit_valuation.models.scores import BriScoreResult, ResolvedWeights
from exit_valuation.models.snapshot import LLMCallLog, PipelineStep
from exit_valuation.models.valuations import AdjustmentResult, FinancialSummary, MultipleRangeResult, ValuationResult
from exit_valuation.services.db_service import DBService


def build_snapshot_details(
    financials: FinancialSummary,
    comparables: ComparableLookup,
    adjustments: AdjustmentResult,
    adjusted_range: MultipleRangeResult,
    resolved_weights: ResolvedWeights,
    valuation: ValuationResult,
) -> dict:
    """Everything needed to explain a snapshot later, beyond its numeric columns."""
    return {
        "ebitda": financials.model_dump(mode="json"),
        "comparables": comparables.result.model_dump(mode="json"),
        "comparables_from_cache": comparables.from_cache,
        "adjustments": adjustments.model_dump(mode="json"),
        "adjusted_multiple_range": adjusted_range.model_dump(mode="json"),
        "range_multiple": valuation.range_multiple,
        "weights": resolved_weights.weights.model_dump(),
        "weights_source": resolved_weights.source,
        "warnings": comparables.result.warnings + valuation.warnings,
    }


def persist_snapshot(
    db: DBService,
    company_id: str,
    valuation: ValuationResult,
    bri: BriScoreResult,
    reason: str,
    actor_id: str | None,
    details: dict,
    steps: list[PipelineStep],
    llm_calls: list[LLMCallLog],
) -> str:
    """Step 6: append one immutable snapshot with its audit trail."""
    return db.record_snapshot(
        company_id=company_id,
        valuation=valuation,
        bri=bri,
        reason=reason,
        actor_id=actor_id,
        details=details,
        steps=steps,
        llm_calls=llm_calls,
    )
