from pydantic import BaseModel, Field
from typing import Optional


class RecalculateRequest(BaseModel):
    reason: str = Field("Manual reassessment", description="Why this recalculation was triggered")
    actor_id: Optional[str] = Field(None, description="User who triggered the recalculation")
    force_refresh_comparables: bool = Field(False, description="Bypass the comparable cache")


class IndustryRecalculateRequest(BaseModel):
    icb_industry: Optional[str] = None
    icb_super_sector: Optional[str] = None
    icb_sector: Optional[str] = None
    icb_sub_sector: Optional[str] = None
    update_type: str = Field("Both", description="EBITDA, Revenue or Both")
    actor_id: Optional[str] = None
