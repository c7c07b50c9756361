from pydantic import BaseModel, Field
from typing import Literal, Optional

from exit_valuation.models.company import CompanyProfile
from exit_valuation.models.market_data import ComparableResult


class EbitdaResult(BaseModel):
    available: bool
    adjusted_ebitda: Optional[float] = Field(None, description="None when revenue or cost data is absent")
    reported_ebitda: Optional[float] = None
    gross_profit: Optional[float] = None
    total_add_backs: float = 0.0
    total_deductions: float = 0.0
    fiscal_year: Optional[int] = None
    missing_fields: list[str] = Field(default_factory=list)


class EbitdaTrend(BaseModel):
    current: EbitdaResult
    prior: Optional[EbitdaResult] = None
    change: Optional[float] = None
    change_pct: Optional[float] = None


class AdjustmentProfile(BaseModel):
    revenue: float = 0.0
    revenue_size_category: Optional[str] = None
    revenue_growth_rate: Optional[float] = None
    ebitda_margin: Optional[float] = None
    top_customer_concentration: Optional[float] = None
    top3_customer_concentration: Optional[float] = None
    transferability_score: Optional[float] = None
    revenue_model: Optional[str] = None
    is_recurring_revenue: bool = False


class MultipleAdjustment(BaseModel):
    factor: str
    name: str
    impact: float = Field(..., description="Decimal delta, e.g. -0.15 for a 15% discount")
    explanation: str
    enabled: bool = True
    category: Literal["size", "growth", "profitability", "risk", "quality"]


class AdjustmentResult(BaseModel):
    adjustments: list[MultipleAdjustment] = Field(default_factory=list)
    raw_total_adjustment: float = 0.0
    total_adjustment: float = 0.0
    adjustment_multiplier: float = 1.0


class MultipleRange(BaseModel):
    low: float
    mid: float
    high: float


class MultipleRangeResult(BaseModel):
    ebitda_multiple_range: Optional[MultipleRange] = None
    revenue_multiple_range: Optional[MultipleRange] = None
    adjustment_multiplier: float = 1.0
    comparable_count: int = 0
    base_ebitda_multiple: Optional[float] = None
    base_revenue_multiple: Optional[float] = None
    spread_factor: float


class ValuationInputs(BaseModel):
    adjusted_ebitda: float
    multiple_low: float
    multiple_high: float
    adjustment_multiplier: float = 1.0
    core_score: float
    bri_score: float


class ValuationResult(BaseModel):
    adjusted_ebitda: float
    multiple_low: float
    multiple_high: float
    range_multiple: float = Field(..., description="Point inside [low, high] chosen by core score")
    adjustment_multiplier: float
    base_multiple: float
    discount_fraction: float
    final_multiple: float
    alpha: float
    core_score: float
    bri_score: float
    current_value: float
    potential_value: float
    value_gap: float
    warnings: list[str] = Field(default_factory=list)


class FinancialSummary(BaseModel):
    """Normalized financials for the latest period, shared by the later pipeline steps."""
    revenue: Optional[float] = None
    prior_revenue: Optional[float] = None
    revenue_growth_rate: Optional[float] = None
    ebitda_margin: Optional[float] = None
    fiscal_year: Optional[int] = None
    ebitda: EbitdaResult
    trend: Optional[EbitdaTrend] = None
    source: Literal["financial_statements", "annual_figures", "none"] = "none"


class ComparableAnalysis(BaseModel):
    """Display-only comparable analysis; never persisted as a snapshot."""
    company_id: str
    profile: CompanyProfile
    comparables: ComparableResult
    from_cache: bool
    adjustments: AdjustmentResult
    raw_multiple_range: MultipleRangeResult
    adjusted_multiple_range: MultipleRangeResult


class IndustryRecalculationSummary(BaseModel):
    matched: int = 0
    succeeded: int = 0
    failed: int = 0
    snapshot_ids: list[str] = Field(default_factory=list)
    errors: list[dict] = Field(default_factory=list)
