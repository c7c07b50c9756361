from pydantic import BaseModel, Field, model_validator

CATEGORY_FIELDS = ("financial", "transferability", "operational", "market", "legal_tax", "personal")
PERCENT_POINT_TOLERANCE = 1e-6


class CategoryScores(BaseModel):
    financial: float = Field(..., ge=0, le=1)
    transferability: float = Field(..., ge=0, le=1)
    operational: float = Field(..., ge=0, le=1)
    market: float = Field(..., ge=0, le=1)
    legal_tax: float = Field(..., ge=0, le=1)
    personal: float = Field(..., ge=0, le=1)

    def as_dict(self) -> dict[str, float]:
        return {name: getattr(self, name) for name in CATEGORY_FIELDS}


class BriWeights(BaseModel):
    """Category weights. Must sum to exactly 100 percentage points."""
    financial: float = Field(..., ge=0, le=1)
    transferability: float = Field(..., ge=0, le=1)
    operational: float = Field(..., ge=0, le=1)
    market: float = Field(..., ge=0, le=1)
    legal_tax: float = Field(..., ge=0, le=1)
    personal: float = Field(..., ge=0, le=1)

    @model_validator(mode="after")
    def _check_total(self) -> "BriWeights":
        off_grid = [
            name for name in CATEGORY_FIELDS
            if abs(getattr(self, name) * 100 - round(getattr(self, name) * 100)) > PERCENT_POINT_TOLERANCE
        ]
        if off_grid:
            raise ValueError(f"Weights must be whole percentage points (got fractional: {', '.join(off_grid)})")
        total_points = sum(round(getattr(self, name) * 100) for name in CATEGORY_FIELDS)
        if total_points != 100:
            raise ValueError(f"Weights must sum to exactly 100% (got {total_points}%)")
        return self

    def as_dict(self) -> dict[str, float]:
        return {name: getattr(self, name) for name in CATEGORY_FIELDS}


DEFAULT_BRI_WEIGHTS = BriWeights(
    financial=0.25,
    transferability=0.20,
    operational=0.20,
    market=0.15,
    legal_tax=0.10,
    personal=0.10,
)


class BriScoreResult(BaseModel):
    bri_score: float
    category_scores: CategoryScores
    weights: BriWeights


class ResolvedWeights(BaseModel):
    weights: BriWeights
    source: str = Field(..., description="company, organization, system or default")
