import logging

from exit_valuation.models.company import CompanyInputs, CompanyProfile
from exit_valuation.models.market_data import ComparableLookup
from exit_valuation.models.valuations import FinancialSummary
from exit_valuation.services.comparable_service import ComparableEngine
from exit_valuation.valuation.adjustments import infer_size_category
from exit_valuation.valuation.errors import NotComputableError

logger = logging.getLogger(__name__)

RECURRING_MODELS = {"SUBSCRIPTION_SAAS", "RECURRING_CONTRACTS"}


def format_icb_name(value: str | None) -> str:
    """'SOFTWARE_AND_COMPUTER_SERVICES' -> 'Software And Computer Services'."""
    if not value:
        return ""
    return " ".join(word.capitalize() for word in value.split("_"))


def build_company_profile(inputs: CompanyInputs, financials: FinancialSummary) -> CompanyProfile:
    levels = [inputs.icb_industry, inputs.icb_super_sector, inputs.icb_sector, inputs.icb_sub_sector]
    named = [format_icb_name(level) for level in levels if level]
    if not named:
        raise NotComputableError(
            f"Company '{inputs.company_id}' has no industry classification",
            ["icb_industry"],
        )

    revenue = financials.revenue if financials.revenue is not None else (inputs.annual_revenue or 0.0)
    revenue = max(revenue, 0.0)
    core = inputs.core_factors
    revenue_model = core.revenue_model if core else None

    concentration = None
    if inputs.top_customer_concentration is not None:
        concentration = f"Top customer {inputs.top_customer_concentration:.0%} of revenue"
        if inputs.top3_customer_concentration is not None:
            concentration += f", top 3 customers {inputs.top3_customer_concentration:.0%}"

    return CompanyProfile(
        name=inputs.name,
        industry=named[-1],
        industry_path=" / ".join(named),
        revenue=revenue,
        revenue_size_category=(core.revenue_size_category if core else None) or infer_size_category(revenue),
        revenue_growth_rate=financials.revenue_growth_rate,
        ebitda_margin=financials.ebitda_margin,
        revenue_model=revenue_model,
        is_recurring_revenue=revenue_model in RECURRING_MODELS if revenue_model else None,
        customer_concentration=concentration,
        geography=inputs.geography,
        business_description=inputs.business_description,
    )


async def find_comparables(
    engine: ComparableEngine,
    company_id: str,
    profile: CompanyProfile,
    force_refresh: bool = False,
) -> ComparableLookup:
    """Step 3: comparable companies and weighted multiples, cached per company."""
    lookup = await engine.find(company_id, profile, force_refresh=force_refresh)
    result = lookup.result
    logger.info(
        f"{len(result.comparables)} comparables ({'cached' if lookup.from_cache else 'fresh'}), "
        f"weighted EV/EBITDA={result.weighted_ebitda_multiple}"
    )
    return lookup
