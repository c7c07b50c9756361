from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime, timezone


class PipelineStep(BaseModel):
    step_name: str
    status: str = "pending"  # pending, running, completed, failed
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration_ms: Optional[float] = None
    error: Optional[str] = None


class LLMCallLog(BaseModel):
    step_name: str
    model: str
    system_prompt: str
    user_prompt: str
    response: str
    tokens_used: Optional[int] = None
    duration_ms: Optional[float] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ValuationSnapshot(BaseModel):
    """One immutable recalculation result. The newest per company is the current valuation."""
    id: str
    company_id: str
    created_at: datetime
    created_by_user_id: Optional[str] = None
    snapshot_reason: str

    adjusted_ebitda: float
    industry_multiple_low: float
    industry_multiple_high: float
    adjustment_multiplier: float
    base_multiple: float
    discount_fraction: float
    final_multiple: float
    alpha_constant: float

    core_score: float
    bri_score: float
    bri_financial: float
    bri_transferability: float
    bri_operational: float
    bri_market: float
    bri_legal_tax: float
    bri_personal: float

    current_value: float
    potential_value: float
    value_gap: float

    details: dict = Field(default_factory=dict, description="Comparables, adjustments, EBITDA breakdown, weights")


class SnapshotChartPoint(BaseModel):
    date: datetime
    current_value: float
    potential_value: float
    value_gap: float
    bri_score: float
    bri_financial: float
    bri_transferability: float
    bri_operational: float
    bri_market: float
    bri_legal_tax: float
    bri_personal: float
    base_multiple: float
    final_multiple: float
