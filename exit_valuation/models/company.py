from pydantic import BaseModel, Field
from typing import Literal, Optional

from exit_valuation.models.scores import CategoryScores


class CoreFactors(BaseModel):
    revenue_size_category: Optional[str] = Field(None, description="Revenue bucket, e.g. 'FROM_1M_TO_3M'")
    revenue_model: Optional[str] = Field(None, description="PROJECT_BASED, TRANSACTIONAL, RECURRING_CONTRACTS, SUBSCRIPTION_SAAS")
    gross_margin_proxy: Optional[str] = Field(None, description="LOW, MODERATE, GOOD, EXCELLENT")
    labor_intensity: Optional[str] = Field(None, description="VERY_HIGH, HIGH, MODERATE, LOW")
    asset_intensity: Optional[str] = Field(None, description="ASSET_HEAVY, MODERATE, ASSET_LIGHT")
    owner_involvement: Optional[str] = Field(None, description="CRITICAL, HIGH, MODERATE, LOW, MINIMAL")


class IncomeStatement(BaseModel):
    revenue: Optional[float] = None
    cost_of_goods_sold: Optional[float] = None
    operating_expenses: Optional[float] = None
    depreciation: Optional[float] = None
    amortization: Optional[float] = None
    interest_expense: Optional[float] = None
    tax_expense: Optional[float] = None


class FinancialPeriod(BaseModel):
    fiscal_year: int
    income_statement: Optional[IncomeStatement] = None


class EbitdaAdjustment(BaseModel):
    description: str
    amount: float = Field(..., ge=0, description="Positive amount; direction comes from type")
    type: Literal["add_back", "deduction"]
    category: Optional[str] = Field(None, description="OWNER_COMPENSATION, PERSONAL_EXPENSES, ONE_TIME_CHARGES, ...")
    fiscal_year: Optional[int] = Field(None, description="Restrict to one fiscal period; None applies to every period")


class CompanyInputs(BaseModel):
    """Company data supplied by the surrounding product. Read-only to the engine."""
    company_id: str
    name: str
    organization_id: Optional[str] = None
    icb_industry: Optional[str] = None
    icb_super_sector: Optional[str] = None
    icb_sector: Optional[str] = None
    icb_sub_sector: Optional[str] = None
    annual_revenue: Optional[float] = Field(None, description="Latest annual revenue when no statements exist")
    annual_ebitda: Optional[float] = None
    business_description: Optional[str] = None
    geography: Optional[str] = None
    top_customer_concentration: Optional[float] = Field(None, ge=0, le=1)
    top3_customer_concentration: Optional[float] = Field(None, ge=0, le=1)
    owner_compensation: Optional[float] = Field(None, ge=0)
    core_factors: Optional[CoreFactors] = None
    category_scores: Optional[CategoryScores] = None
    financial_periods: list[FinancialPeriod] = Field(default_factory=list)
    ebitda_adjustments: list[EbitdaAdjustment] = Field(default_factory=list)


class CompanyProfile(BaseModel):
    """Profile sent to the comparable estimator. Rates and margins are decimals."""
    name: str
    industry: str
    industry_path: Optional[str] = None
    revenue: float = Field(..., ge=0)
    revenue_size_category: Optional[str] = None
    revenue_growth_rate: Optional[float] = None
    ebitda_margin: Optional[float] = None
    revenue_model: Optional[str] = None
    is_recurring_revenue: Optional[bool] = None
    customer_concentration: Optional[str] = None
    geography: Optional[str] = None
    business_description: Optional[str] = None
