import asyncio
import os
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Protocol

from pydantic import ValidationError

from exit_valuation.models.company import CompanyProfile
from exit_valuation.models.snapshot import LLMCallLog
from exit_valuation.models.market_data import (
    AIUsage, ComparableLookup, ComparableResult, RawComparableResponse,
)
from exit_valuation.services.cache_service import KeyValueCache
from exit_valuation.services.llm_service import LLMService
from exit_valuation.services.market_data_service import MarketDataService
from exit_valuation.valuation.adjustments import SIZE_LABELS
from exit_valuation.valuation.comps import (
    format_dollar_amount, normalize_comparables,
    weighted_ebitda_multiple, weighted_revenue_multiple,
)
from exit_valuation.valuation.errors import ServiceUnavailableError, ValidationFailedError

logger = logging.getLogger(__name__)

CACHE_KEY_PREFIX = "comparable_cache_"
DEFAULT_CACHE_TTL = timedelta(hours=24)
DEFAULT_TIMEOUT_SECONDS = 60.0

COMPARABLE_SYSTEM_PROMPT = """You are a senior investment banking analyst specializing in middle-market M&A valuation. \
Identify the most relevant comparable public companies for a private company being valued.

Rules:
1. Select 3-5 comparable companies that a buyer or investment banker would consider relevant.
2. Prioritize matches on business model, end market, revenue scale, growth profile and margin structure.
3. For SMBs (revenue under $25M) pick the closest public comparables even if they are larger. \
Size discounts are applied separately.
4. Include at least one closest match and at least one aspirational comparable.
5. Metrics are your best estimate of recent values. Use null for any metric you are unsure of.
6. Express ebitda_margin and revenue_growth_rate as decimals (0.22 for 22%).
7. relevance_score reflects how closely the comparable matches:
   0.8-1.0 same business model, similar size, same end market
   0.6-0.8 similar business model, different size or geography
   0.4-0.6 related industry, different model or scale
   0.2-0.4 broad industry similarity only
8. EV/EBITDA for SMBs is typically 3x-8x; public companies often trade at 8x-15x+.
9. EV/Revenue depends on growth and margins: SaaS 3x-15x+, traditional businesses 0.5x-2x."""

REVENUE_MODEL_LABELS = {
    "PROJECT_BASED": "Project-based",
    "TRANSACTIONAL": "Transactional",
    "RECURRING_CONTRACTS": "Recurring contracts",
    "SUBSCRIPTION_SAAS": "SaaS / Subscription",
}


def cache_key(company_id: str) -> str:
    return f"{CACHE_KEY_PREFIX}{company_id}"


def build_comparable_prompt(profile: CompanyProfile) -> str:
    parts = [
        "Identify 3-5 comparable public companies for the following private company:",
        "",
        f"Company: {profile.name}",
        f"Industry: {profile.industry}",
    ]
    if profile.industry_path:
        parts.append(f"Industry Path: {profile.industry_path}")
    parts.append(f"Annual Revenue: ${format_dollar_amount(profile.revenue)}")
    if profile.revenue_size_category:
        size = SIZE_LABELS.get(profile.revenue_size_category, profile.revenue_size_category)
        parts.append(f"Revenue Size Band: {size}")

    if profile.revenue_growth_rate is not None:
        parts.append(f"Revenue Growth Rate: {profile.revenue_growth_rate * 100:.1f}% YoY")
    if profile.ebitda_margin is not None:
        parts.append(f"EBITDA Margin: {profile.ebitda_margin * 100:.1f}%")
    else:
        parts.append("EBITDA Margin: Negative or not available")

    if profile.revenue_model:
        parts.append(f"Revenue Model: {REVENUE_MODEL_LABELS.get(profile.revenue_model, profile.revenue_model)}")
    if profile.is_recurring_revenue is not None:
        parts.append(f"Recurring Revenue: {'Yes' if profile.is_recurring_revenue else 'No'}")
    if profile.customer_concentration:
        parts.append(f"Customer Concentration: {profile.customer_concentration}")
    if profile.geography:
        parts.append(f"Geography: {profile.geography}")
    if profile.business_description:
        parts.extend(["", f"Business Description: {profile.business_description}"])

    parts.extend([
        "",
        "Return 3-5 comparables as JSON. Use null for metrics you are not confident about. "
        "The subject is a private SMB, so public comparables will be larger. "
        "Focus on business model and end-market similarity.",
    ])
    return "\n".join(parts)


class ComparableEstimator(Protocol):
    async def estimate(self, profile: CompanyProfile) -> ComparableResult: ...


class LLMComparableEstimator:
    """Asks the LLM for comparable public companies, then normalizes and weights them."""

    def __init__(self, llm: LLMService, market: MarketDataService | None = None):
        self.llm = llm
        self.market = market

    async def estimate(self, profile: CompanyProfile) -> ComparableResult:
        if not self.llm.configured:
            raise ServiceUnavailableError("Comparable estimation unavailable: OPENAI_API_KEY is not configured")

        calls: list[LLMCallLog] = []
        response = await self.llm.structured_completion(
            system_prompt=COMPARABLE_SYSTEM_PROMPT,
            user_prompt=build_comparable_prompt(profile),
            response_model=RawComparableResponse,
            step_name="comparables",
            call_log=calls,
        )

        comparables = normalize_comparables(response.comparables)
        warnings = list(response.warnings)
        if not comparables:
            warnings.append("Estimator did not return any valid comparables. Multiple ranges may be unreliable.")

        if self.market:
            warnings.extend(await self.market.overlay_live_multiples(comparables))

        ebitda_multiple = weighted_ebitda_multiple(comparables)
        revenue_multiple = weighted_revenue_multiple(comparables)
        if ebitda_multiple is None and revenue_multiple is None:
            warnings.append("Insufficient comparable data to compute weighted multiples.")

        usage = None
        if calls:
            usage = AIUsage(
                model=calls[-1].model,
                tokens_used=sum(c.tokens_used or 0 for c in calls),
                duration_ms=sum(c.duration_ms or 0 for c in calls),
            )

        logger.info(
            f"Comparables for '{profile.name}': {len(comparables)} comps, "
            f"EV/EBITDA={ebitda_multiple}, EV/Revenue={revenue_multiple}"
        )

        return ComparableResult(
            comparables=comparables,
            weighted_ebitda_multiple=ebitda_multiple,
            weighted_revenue_multiple=revenue_multiple,
            ai_usage=usage,
            warnings=warnings,
            llm_calls=calls,
        )


class ComparableEngine:
    """Cached, time-boxed access to the comparable estimator.

    Entries are keyed per company and trusted for `ttl` from their
    `analyzed_at`. Estimator failures are never papered over with stale data.
    """

    def __init__(
        self,
        estimator: ComparableEstimator,
        cache: KeyValueCache,
        ttl: timedelta | None = None,
        timeout_seconds: float | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.estimator = estimator
        self.cache = cache
        if ttl is None:
            ttl = timedelta(hours=float(os.getenv("COMPARABLE_CACHE_TTL_HOURS", "24")))
        self.ttl = ttl
        if timeout_seconds is None:
            timeout_seconds = float(os.getenv("COMPARABLE_TIMEOUT_SECONDS", str(DEFAULT_TIMEOUT_SECONDS)))
        self.timeout_seconds = timeout_seconds if timeout_seconds > 0 else None
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    async def find(self, company_id: str, profile: CompanyProfile, force_refresh: bool = False) -> ComparableLookup:
        if not profile.name.strip():
            raise ValidationFailedError("Company name is required for comparable analysis", ["name"])
        if not profile.industry.strip():
            raise ValidationFailedError("Industry classification is required for comparable analysis", ["industry"])

        key = cache_key(company_id)

        if not force_refresh:
            cached = self._read_cache(key)
            if cached is not None:
                age = self.clock() - _as_utc(cached.analyzed_at)
                if age < self.ttl:
                    logger.info(f"Comparable cache hit for '{company_id}' (age {age.total_seconds():.0f}s)")
                    return ComparableLookup(result=cached, from_cache=True)
                logger.info(f"Comparable cache stale for '{company_id}' (age {age.total_seconds():.0f}s)")
        else:
            logger.info(f"Comparable cache bypassed for '{company_id}' (forced refresh)")

        result = await self._estimate(profile)
        if result.comparables:
            self._write_cache(key, result)
        else:
            logger.warning(f"Not caching empty comparable result for '{company_id}'")
        return ComparableLookup(result=result, from_cache=False)

    async def _estimate(self, profile: CompanyProfile) -> ComparableResult:
        try:
            if self.timeout_seconds:
                return await asyncio.wait_for(self.estimator.estimate(profile), timeout=self.timeout_seconds)
            return await self.estimator.estimate(profile)
        except ServiceUnavailableError:
            raise
        except asyncio.TimeoutError as e:
            logger.error(f"Comparable estimation timed out after {self.timeout_seconds}s")
            raise ServiceUnavailableError(
                f"Comparable estimation timed out after {self.timeout_seconds:g}s"
            ) from e
        except Exception as e:
            logger.error(f"Comparable estimation failed: {e}")
            raise ServiceUnavailableError(f"Comparable estimation failed: {e}") from e

    def _read_cache(self, key: str) -> ComparableResult | None:
        try:
            payload = self.cache.get(key)
        except Exception as e:
            logger.warning(f"Comparable cache read failed for '{key}': {e}")
            return None
        if payload is None:
            logger.info(f"Comparable cache miss for '{key}'")
            return None
        if not isinstance(payload, dict) or not payload.get("analyzed_at"):
            logger.warning(f"Discarding comparable cache entry '{key}' without a timestamp")
            return None
        try:
            return ComparableResult.model_validate(payload)
        except ValidationError as e:
            logger.warning(f"Discarding invalid comparable cache entry '{key}': {e.error_count()} errors")
            return None

    def _write_cache(self, key: str, result: ComparableResult) -> None:
        try:
            self.cache.put(key, result.model_dump(mode="json"))
        except Exception as e:
            logger.warning(f"Comparable cache write failed for '{key}': {e}")


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
