import math
import time
import inspect
import logging
from datetime import datetime, timezone

from exit_valuation.models.company import CompanyInputs
from exit_valuation.models.market_data import ComparableLookup
from exit_valuation.models.snapshot import PipelineStep, ValuationSnapshot
from exit_valuation.models.valuations import (
    ComparableAnalysis, FinancialSummary, IndustryRecalculationSummary,
)
from exit_valuation.services.comparable_service import ComparableEngine
from exit_valuation.services.db_service import DBService
from exit_valuation.pipeline.step_score import score_company
from exit_valuation.pipeline.step_ebitda import normalize_financials
from exit_valuation.pipeline.step_comparables import build_company_profile, find_comparables
from exit_valuation.pipeline.step_adjust import apply_adjustments, build_adjustment_profile
from exit_valuation.pipeline.step_valuate import run_valuation
from exit_valuation.pipeline.step_persist import build_snapshot_details, persist_snapshot
from exit_valuation.valuation.calculator import ALPHA
from exit_valuation.valuation.errors import (
    CompanyNotFoundError, SnapshotNotFoundError, ValidationFailedError,
)

logger = logging.getLogger(__name__)


class RecalculationPipeline:
    """scores -> EBITDA -> comparables -> adjustments -> valuation -> snapshot.

    Any failing step aborts the run and nothing is written; the previous
    snapshot stays the current valuation.
    """

    def __init__(
        self,
        db: DBService,
        comparables: ComparableEngine,
        alpha: float | str = ALPHA,
    ):
        self.db = db
        self.comparables = comparables
        self.alpha = parse_alpha(alpha)

    async def recalculate(
        self,
        company_id: str,
        reason: str,
        actor_id: str | None = None,
        force_refresh_comparables: bool = False,
    ) -> ValuationSnapshot:
        steps: list[PipelineStep] = []

        logger.info(f"=== Recalculation started for '{company_id}' ({reason}) ===")

        inputs = self._load_inputs(company_id)
        resolved = self.db.resolve_bri_weights(company_id, inputs.organization_id)

        bri, core_score = await self._run_step("score", steps, score_company, inputs, resolved)
        financials = await self._run_step("ebitda", steps, normalize_financials, inputs)
        lookup = await self._run_step(
            "comparables", steps, self._comparables, inputs, financials, force_refresh_comparables
        )
        adjustment_profile = build_adjustment_profile(inputs, financials, inputs.category_scores)
        adjustments, raw_range, adjusted_range = await self._run_step(
            "adjust", steps, apply_adjustments, adjustment_profile, lookup.result
        )
        valuation = await self._run_step(
            "valuate", steps, run_valuation, financials, raw_range, adjustments, bri, core_score, self.alpha
        )

        details = build_snapshot_details(financials, lookup, adjustments, adjusted_range, resolved, valuation)
        llm_calls = list(lookup.result.llm_calls)
        snapshot_id = await self._run_step(
            "persist", steps, persist_snapshot,
            self.db, company_id, valuation, bri, reason, actor_id, details, list(steps), llm_calls,
        )

        snapshot = self.db.get_snapshot(snapshot_id)
        if snapshot is None:
            raise SnapshotNotFoundError(snapshot_id)

        logger.info(
            f"=== Recalculation completed for '{company_id}': snapshot={snapshot_id}, "
            f"current=${snapshot.current_value:,.0f}, gap=${snapshot.value_gap:,.0f} ==="
        )
        return snapshot

    async def analyze_comparables(self, company_id: str, force_refresh: bool = False) -> ComparableAnalysis:
        """Comparables with adjusted ranges for display. Does not write a snapshot."""
        inputs = self._load_inputs(company_id)
        financials = normalize_financials(inputs)
        profile = build_company_profile(inputs, financials)
        lookup = await find_comparables(self.comparables, company_id, profile, force_refresh)
        adjustment_profile = build_adjustment_profile(inputs, financials, inputs.category_scores)
        adjustments, raw_range, adjusted_range = apply_adjustments(adjustment_profile, lookup.result)
        return ComparableAnalysis(
            company_id=company_id,
            profile=profile,
            comparables=lookup.result,
            from_cache=lookup.from_cache,
            adjustments=adjustments,
            raw_multiple_range=raw_range,
            adjusted_multiple_range=adjusted_range,
        )

    async def force_refresh_comparables(self, company_id: str) -> ComparableAnalysis:
        return await self.analyze_comparables(company_id, force_refresh=True)

    async def recalculate_for_industry(
        self,
        icb_industry: str | None = None,
        icb_super_sector: str | None = None,
        icb_sector: str | None = None,
        icb_sub_sector: str | None = None,
        update_type: str = "Both",
        actor_id: str | None = None,
    ) -> IndustryRecalculationSummary:
        """Recalculate every company matching any of the given classification levels."""
        company_ids = self.db.find_companies_by_industry(icb_industry, icb_super_sector, icb_sector, icb_sub_sector)
        summary = IndustryRecalculationSummary(matched=len(company_ids))
        reason = f"Industry multiple update ({update_type})"

        for company_id in company_ids:
            try:
                snapshot = await self.recalculate(company_id, reason, actor_id=actor_id)
                summary.succeeded += 1
                summary.snapshot_ids.append(snapshot.id)
            except Exception as e:
                logger.error(f"Industry recalculation failed for '{company_id}': {e}")
                summary.failed += 1
                summary.errors.append({"company_id": company_id, "error": str(e), "type": type(e).__name__})

        logger.info(
            f"Industry recalculation: {summary.matched} matched, "
            f"{summary.succeeded} succeeded, {summary.failed} failed"
        )
        return summary

    def _load_inputs(self, company_id: str) -> CompanyInputs:
        inputs = self.db.get_company_inputs(company_id)
        if inputs is None:
            raise CompanyNotFoundError(company_id)
        return inputs

    async def _comparables(
        self, inputs: CompanyInputs, financials: FinancialSummary, force_refresh: bool
    ) -> ComparableLookup:
        profile = build_company_profile(inputs, financials)
        return await find_comparables(self.comparables, inputs.company_id, profile, force_refresh)

    async def _run_step(self, name: str, steps: list[PipelineStep], fn, *args):
        step = PipelineStep(step_name=name, status="running", started_at=datetime.now(timezone.utc))
        start = time.time()
        logger.info(f"Step '{name}' started")
        try:
            result = await fn(*args) if inspect.iscoroutinefunction(fn) else fn(*args)
            step.status = "completed"
            step.completed_at = datetime.now(timezone.utc)
            step.duration_ms = (time.time() - start) * 1000
            steps.append(step)
            logger.info(f"Step '{name}' completed in {step.duration_ms:.0f}ms")
            return result
        except Exception as e:
            step.status = "failed"
            step.error = str(e)
            step.completed_at = datetime.now(timezone.utc)
            step.duration_ms = (time.time() - start) * 1000
            steps.append(step)
            logger.error(f"Step '{name}' failed in {step.duration_ms:.0f}ms: {e}")
            raise


def parse_alpha(value: float | str) -> float:
    """Parse and range-check the BRI discount sensitivity (VALUATION_ALPHA)."""
    try:
        alpha = float(value)
    except (TypeError, ValueError):
        raise ValidationFailedError(f"VALUATION_ALPHA must be a number (got {value!r})", ["alpha"]) from None
    if not math.isfinite(alpha) or not 0 <= alpha <= 1:
        raise ValidationFailedError(f"VALUATION_ALPHA must be between 0 and 1 (got {value!r})", ["alpha"])
    return alpha
