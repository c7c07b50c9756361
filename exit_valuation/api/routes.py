from fastapi import APIRouter, Depends, HTTPException

from exit_valuation.models.company import CompanyInputs
from exit_valuation.models.request import RecalculateRequest, IndustryRecalculateRequest
from exit_valuation.models.scores import BriWeights, ResolvedWeights
from exit_valuation.models.snapshot import ValuationSnapshot, SnapshotChartPoint
from exit_valuation.models.valuations import ComparableAnalysis, IndustryRecalculationSummary
from exit_valuation.api.dependencies import get_pipeline, get_db_service, http_error
from exit_valuation.pipeline.orchestrator import RecalculationPipeline
from exit_valuation.services.db_service import DBService, SYSTEM_SCOPE_ID
from exit_valuation.valuation.errors import ValuationEngineError

router = APIRouter(prefix="/api", tags=["valuations"])


# --- Company inputs ---

@router.put("/companies/{company_id}/inputs", response_model=CompanyInputs)
async def put_company_inputs(
    company_id: str,
    inputs: CompanyInputs,
    db: DBService = Depends(get_db_service),
):
    """Store company data pushed by the surrounding product."""
    if inputs.company_id != company_id:
        raise HTTPException(status_code=422, detail="company_id in body does not match the URL")
    db.save_company_inputs(inputs)
    return inputs


@router.get("/companies/{company_id}/inputs", response_model=CompanyInputs)
async def get_company_inputs(company_id: str, db: DBService = Depends(get_db_service)):
    inputs = db.get_company_inputs(company_id)
    if not inputs:
        raise HTTPException(status_code=404, detail="Company not found")
    return inputs


# --- Recalculation and snapshots ---

@router.post("/companies/{company_id}/recalculate", response_model=ValuationSnapshot, status_code=201)
async def recalculate(
    company_id: str,
    body: RecalculateRequest,
    pipeline: RecalculationPipeline = Depends(get_pipeline),
):
    """Run the full pipeline and append a new valuation snapshot."""
    try:
        return await pipeline.recalculate(
            company_id, body.reason, actor_id=body.actor_id,
            force_refresh_comparables=body.force_refresh_comparables,
        )
    except ValuationEngineError as e:
        raise http_error(e)


@router.post("/industries/recalculate", response_model=IndustryRecalculationSummary)
async def recalculate_industry(
    body: IndustryRecalculateRequest,
    pipeline: RecalculationPipeline = Depends(get_pipeline),
):
    """Recalculate every company in an industry after its multiples changed."""
    if not any([body.icb_industry, body.icb_super_sector, body.icb_sector, body.icb_sub_sector]):
        raise HTTPException(status_code=422, detail="At least one industry classification level is required")
    return await pipeline.recalculate_for_industry(
        body.icb_industry, body.icb_super_sector, body.icb_sector, body.icb_sub_sector,
        update_type=body.update_type, actor_id=body.actor_id,
    )


@router.get("/companies/{company_id}/valuation", response_model=ValuationSnapshot)
async def get_current_valuation(company_id: str, db: DBService = Depends(get_db_service)):
    """The most recent snapshot is the current valuation."""
    snapshot = db.get_latest_snapshot(company_id)
    if not snapshot:
        raise HTTPException(status_code=404, detail="No valuation yet for this company")
    return snapshot


@router.get("/companies/{company_id}/valuation/history", response_model=list[ValuationSnapshot])
async def get_valuation_history(company_id: str, db: DBService = Depends(get_db_service)):
    return db.list_snapshots(company_id)


@router.get("/companies/{company_id}/valuation/chart", response_model=list[SnapshotChartPoint])
async def get_valuation_chart(company_id: str, db: DBService = Depends(get_db_service)):
    """Snapshot history in chronological order for charting."""
    return db.get_chart_data(company_id)


@router.get("/snapshots/{snapshot_id}", response_model=ValuationSnapshot)
async def get_snapshot(snapshot_id: str, db: DBService = Depends(get_db_service)):
    snapshot = db.get_snapshot(snapshot_id)
    if not snapshot:
        raise HTTPException(status_code=404, detail="Snapshot not found")
    return snapshot


@router.get("/snapshots/{snapshot_id}/audit-log")
async def get_audit_log(snapshot_id: str, db: DBService = Depends(get_db_service)):
    """Get pipeline steps and LLM call logs for a snapshot."""
    if not db.get_snapshot(snapshot_id):
        raise HTTPException(status_code=404, detail="Snapshot not found")
    return db.get_audit_log(snapshot_id)


# --- Comparables ---

@router.get("/companies/{company_id}/comparables", response_model=ComparableAnalysis)
async def get_comparables(
    company_id: str,
    refresh: bool = False,
    pipeline: RecalculationPipeline = Depends(get_pipeline),
):
    try:
        return await pipeline.analyze_comparables(company_id, force_refresh=refresh)
    except ValuationEngineError as e:
        raise http_error(e)


@router.post("/companies/{company_id}/comparables/refresh", response_model=ComparableAnalysis)
async def refresh_comparables(
    company_id: str,
    pipeline: RecalculationPipeline = Depends(get_pipeline),
):
    try:
        return await pipeline.force_refresh_comparables(company_id)
    except ValuationEngineError as e:
        raise http_error(e)


# --- BRI weights ---

@router.get("/companies/{company_id}/bri-weights", response_model=ResolvedWeights)
async def get_company_weights(company_id: str, db: DBService = Depends(get_db_service)):
    """Weights in effect for the company and where they came from."""
    inputs = db.get_company_inputs(company_id)
    return db.resolve_bri_weights(company_id, inputs.organization_id if inputs else None)


@router.put("/companies/{company_id}/bri-weights", response_model=ResolvedWeights)
async def put_company_weights(company_id: str, weights: BriWeights, db: DBService = Depends(get_db_service)):
    db.set_bri_weights("company", company_id, weights)
    return ResolvedWeights(weights=weights, source="company")


@router.delete("/companies/{company_id}/bri-weights", response_model=ResolvedWeights)
async def delete_company_weights(company_id: str, db: DBService = Depends(get_db_service)):
    """Drop the company override and fall back to inherited weights."""
    db.delete_bri_weights("company", company_id)
    inputs = db.get_company_inputs(company_id)
    return db.resolve_bri_weights(company_id, inputs.organization_id if inputs else None)


@router.put("/organizations/{organization_id}/bri-weights", response_model=ResolvedWeights)
async def put_organization_weights(
    organization_id: str, weights: BriWeights, db: DBService = Depends(get_db_service)
):
    db.set_bri_weights("organization", organization_id, weights)
    return ResolvedWeights(weights=weights, source="organization")


@router.put("/bri-weights/default", response_model=ResolvedWeights)
async def put_default_weights(weights: BriWeights, db: DBService = Depends(get_db_service)):
    db.set_bri_weights("system", SYSTEM_SCOPE_ID, weights)
    return ResolvedWeights(weights=weights, source="system")
