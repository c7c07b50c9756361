from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime, timezone

from exit_valuation.models.snapshot import LLMCallLog


class ComparableMetrics(BaseModel):
    revenue: Optional[float] = None
    ebitda_margin: Optional[float] = None
    revenue_growth_rate: Optional[float] = None
    ev_to_ebitda: Optional[float] = None
    ev_to_revenue: Optional[float] = None
    data_source: str = "ai_estimated"
    data_source_url: Optional[str] = None


class ComparableCompany(BaseModel):
    name: str
    ticker: Optional[str] = None
    rationale: str = "No rationale provided"
    metrics: ComparableMetrics = Field(default_factory=ComparableMetrics)
    relevance_score: float = Field(0.5, ge=0, le=1)


class AIUsage(BaseModel):
    model: str
    tokens_used: Optional[int] = None
    duration_ms: Optional[float] = None


class ComparableResult(BaseModel):
    comparables: list[ComparableCompany] = Field(default_factory=list)
    weighted_ebitda_multiple: Optional[float] = None
    weighted_revenue_multiple: Optional[float] = None
    ai_usage: Optional[AIUsage] = None
    analyzed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    warnings: list[str] = Field(default_factory=list)
    # calls made to produce this result; never cached or serialized
    llm_calls: list[LLMCallLog] = Field(default_factory=list, exclude=True)


class ComparableLookup(BaseModel):
    result: ComparableResult
    from_cache: bool = False


# Raw estimator response, validated loosely; normalization happens in valuation.comps
class RawComparableMetrics(BaseModel):
    revenue: Optional[float] = None
    ebitda_margin: Optional[float] = None
    revenue_growth_rate: Optional[float] = None
    ev_to_ebitda: Optional[float] = None
    ev_to_revenue: Optional[float] = None


class RawComparable(BaseModel):
    name: Optional[str] = Field(None, description="Company name")
    ticker: Optional[str] = Field(None, description="Stock ticker if publicly traded, else null")
    rationale: Optional[str] = Field(None, description="Why this company is comparable")
    metrics: Optional[RawComparableMetrics] = None
    relevance_score: Optional[float] = Field(None, description="0-1, where 1 is a perfect match")


class RawComparableResponse(BaseModel):
    comparables: list[RawComparable] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
