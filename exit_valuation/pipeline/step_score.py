import logging

from exit_valuation.models.company import CompanyInputs
from exit_valuation.models.scores import BriScoreResult, ResolvedWeights
from exit_valuation.valuation.bri import calculate_core_score, compute_bri_score
from exit_valuation.valuation.errors import NotComputableError

logger = logging.getLogger(__name__)


def score_company(inputs: CompanyInputs, resolved: ResolvedWeights) -> tuple[BriScoreResult, float]:
    """Step 1: BRI from the assessment category scores, plus the core score."""
    if inputs.category_scores is None:
        raise NotComputableError(
            f"No assessment category scores for company '{inputs.company_id}'",
            ["category_scores"],
        )

    bri = compute_bri_score(inputs.category_scores, resolved.weights)
    core_score = calculate_core_score(inputs.core_factors)

    logger.info(
        f"BRI={bri.bri_score:.3f} (weights from {resolved.source}), core score={core_score:.3f}"
    )
    return bri, core_score
