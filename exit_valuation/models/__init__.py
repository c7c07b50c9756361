from exit_valuation.models.scores import CategoryScores, BriWeights, BriScoreResult, ResolvedWeights
from exit_valuation.models.company import (
    CoreFactors, IncomeStatement, FinancialPeriod, EbitdaAdjustment, CompanyInputs, CompanyProfile,
)
from exit_valuation.models.market_data import (
    ComparableMetrics, ComparableCompany, ComparableResult, ComparableLookup,
)
from exit_valuation.models.valuations import (
    EbitdaResult, EbitdaTrend, AdjustmentProfile, MultipleAdjustment, AdjustmentResult,
    MultipleRange, MultipleRangeResult, ValuationInputs, ValuationResult, FinancialSummary,
    ComparableAnalysis, IndustryRecalculationSummary,
)
from exit_valuation.models.snapshot import PipelineStep, LLMCallLog, ValuationSnapshot, SnapshotChartPoint
from exit_valuation.models.request import RecalculateRequest, IndustryRecalculateRequest

__all__ = [
    "CategoryScores", "BriWeights", "BriScoreResult", "ResolvedWeights",
    "CoreFactors", "IncomeStatement", "FinancialPeriod", "EbitdaAdjustment", "CompanyInputs", "CompanyProfile",
    "ComparableMetrics", "ComparableCompany", "ComparableResult", "ComparableLookup",
    "EbitdaResult", "EbitdaTrend", "AdjustmentProfile", "MultipleAdjustment", "AdjustmentResult",
    "MultipleRange", "MultipleRangeResult", "ValuationInputs", "ValuationResult", "FinancialSummary",
    "ComparableAnalysis", "IndustryRecalculationSummary",
    "PipelineStep", "LLMCallLog", "ValuationSnapshot", "SnapshotChartPoint",
    "RecalculateRequest", "IndustryRecalculateRequest",
]
