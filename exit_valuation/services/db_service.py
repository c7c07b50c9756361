import json
import uuid
import os
import logging
from datetime import datetime, timezone
from sqlalchemy import create_engine, desc, or_
from sqlalchemy.orm import sessionmaker

from exit_valuation.models.company import CompanyInputs
from exit_valuation.models.db import (
    Base, ValuationSnapshotRecord, SnapshotAuditEntry, LLMCallRecord,
    CompanyInputRecord, BriWeightSetting, KeyValueSetting,
)
from exit_valuation.models.scores import BriScoreResult, BriWeights, DEFAULT_BRI_WEIGHTS, ResolvedWeights
from exit_valuation.models.snapshot import PipelineStep, LLMCallLog, ValuationSnapshot, SnapshotChartPoint
from exit_valuation.models.valuations import ValuationResult

logger = logging.getLogger(__name__)

SYSTEM_SCOPE_ID = "default"


class DBService:
    def __init__(self, database_url: str | None = None):
        url = database_url or os.getenv("DATABASE_URL", "sqlite:///./valuation.db")
        self.engine = create_engine(url, echo=False)
        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(bind=self.engine, expire_on_commit=False)

    # --- Company inputs (written by the surrounding product, read by the engine) ---

    def save_company_inputs(self, inputs: CompanyInputs) -> None:
        session = self.Session()
        try:
            session.merge(CompanyInputRecord(
                company_id=inputs.company_id,
                organization_id=inputs.organization_id,
                icb_industry=inputs.icb_industry,
                icb_super_sector=inputs.icb_super_sector,
                icb_sector=inputs.icb_sector,
                icb_sub_sector=inputs.icb_sub_sector,
                inputs_json=inputs.model_dump_json(),
                updated_at=datetime.now(timezone.utc),
            ))
            session.commit()
        finally:
            session.close()

    def get_company_inputs(self, company_id: str) -> CompanyInputs | None:
        session = self.Session()
        try:
            record = session.query(CompanyInputRecord).filter_by(company_id=company_id).first()
            if not record:
                return None
            return CompanyInputs.model_validate_json(record.inputs_json)
        finally:
            session.close()

    def find_companies_by_industry(
        self,
        icb_industry: str | None = None,
        icb_super_sector: str | None = None,
        icb_sector: str | None = None,
        icb_sub_sector: str | None = None,
    ) -> list[str]:
        """Company ids matching any of the given classification levels."""
        conditions = []
        if icb_industry:
            conditions.append(CompanyInputRecord.icb_industry == icb_industry)
        if icb_super_sector:
            conditions.append(CompanyInputRecord.icb_super_sector == icb_super_sector)
        if icb_sector:
            conditions.append(CompanyInputRecord.icb_sector == icb_sector)
        if icb_sub_sector:
            conditions.append(CompanyInputRecord.icb_sub_sector == icb_sub_sector)
        if not conditions:
            return []

        session = self.Session()
        try:
            records = session.query(CompanyInputRecord.company_id).filter(or_(*conditions)).all()
            return [r.company_id for r in records]
        finally:
            session.close()

    # --- BRI weights ---

    def set_bri_weights(self, scope: str, scope_id: str, weights: BriWeights) -> None:
        session = self.Session()
        try:
            record = session.query(BriWeightSetting).filter_by(scope=scope, scope_id=scope_id).first()
            if record:
                record.weights_json = weights.model_dump_json()
                record.updated_at = datetime.now(timezone.utc)
            else:
                session.add(BriWeightSetting(scope=scope, scope_id=scope_id, weights_json=weights.model_dump_json()))
            session.commit()
            logger.info(f"BRI weights set for {scope} '{scope_id}'")
        finally:
            session.close()

    def delete_bri_weights(self, scope: str, scope_id: str) -> bool:
        session = self.Session()
        try:
            deleted = session.query(BriWeightSetting).filter_by(scope=scope, scope_id=scope_id).delete()
            session.commit()
            return deleted > 0
        finally:
            session.close()

    def get_bri_weights(self, scope: str, scope_id: str) -> BriWeights | None:
        session = self.Session()
        try:
            record = session.query(BriWeightSetting).filter_by(scope=scope, scope_id=scope_id).first()
            if not record:
                return None
            return BriWeights.model_validate_json(record.weights_json)
        finally:
            session.close()

    def resolve_bri_weights(self, company_id: str, organization_id: str | None = None) -> ResolvedWeights:
        """Company override, then organization default, then the system setting, then the built-in default."""
        candidates = [("company", company_id)]
        if organization_id:
            candidates.append(("organization", organization_id))
        candidates.append(("system", SYSTEM_SCOPE_ID))

        for scope, scope_id in candidates:
            weights = self.get_bri_weights(scope, scope_id)
            if weights:
                return ResolvedWeights(weights=weights, source=scope)
        return ResolvedWeights(weights=DEFAULT_BRI_WEIGHTS, source="default")

    # --- Key-value settings (comparable cache store) ---

    def kv_get(self, key: str) -> dict | None:
        session = self.Session()
        try:
            record = session.query(KeyValueSetting).filter_by(key=key).first()
            if not record:
                return None
            return json.loads(record.value_json)
        finally:
            session.close()

    def kv_put(self, key: str, value: dict) -> None:
        session = self.Session()
        try:
            session.merge(KeyValueSetting(
                key=key,
                value_json=json.dumps(value, default=str),
                updated_at=datetime.now(timezone.utc),
            ))
            session.commit()
        finally:
            session.close()

    # --- Snapshots ---

    def record_snapshot(
        self,
        company_id: str,
        valuation: ValuationResult,
        bri: BriScoreResult,
        reason: str,
        actor_id: str | None = None,
        details: dict | None = None,
        steps: list[PipelineStep] | None = None,
        llm_calls: list[LLMCallLog] | None = None,
    ) -> str:
        """Insert one new snapshot with its audit trail in a single transaction. Never updates."""
        scores = bri.category_scores
        record = ValuationSnapshotRecord(
            id=str(uuid.uuid4()),
            company_id=company_id,
            created_at=datetime.now(timezone.utc),
            created_by_user_id=actor_id,
            snapshot_reason=reason,
            adjusted_ebitda=valuation.adjusted_ebitda,
            industry_multiple_low=valuation.multiple_low,
            industry_multiple_high=valuation.multiple_high,
            adjustment_multiplier=valuation.adjustment_multiplier,
            base_multiple=valuation.base_multiple,
            discount_fraction=valuation.discount_fraction,
            final_multiple=valuation.final_multiple,
            alpha_constant=valuation.alpha,
            core_score=valuation.core_score,
            bri_score=bri.bri_score,
            bri_financial=scores.financial,
            bri_transferability=scores.transferability,
            bri_operational=scores.operational,
            bri_market=scores.market,
            bri_legal_tax=scores.legal_tax,
            bri_personal=scores.personal,
            current_value=valuation.current_value,
            potential_value=valuation.potential_value,
            value_gap=valuation.value_gap,
            details_json=json.dumps(details or {}, default=str),
        )

        session = self.Session()
        try:
            session.add(record)
            session.flush()

            for step in steps or []:
                session.add(SnapshotAuditEntry(
                    snapshot_id=record.id,
                    step_name=step.step_name,
                    status=step.status,
                    duration_ms=step.duration_ms,
                    error=step.error,
                ))

            for log in llm_calls or []:
                session.add(LLMCallRecord(
                    snapshot_id=record.id,
                    step_name=log.step_name,
                    model=log.model,
                    system_prompt=log.system_prompt,
                    user_prompt=log.user_prompt,
                    response=log.response,
                    tokens_used=log.tokens_used,
                    duration_ms=log.duration_ms,
                ))

            session.commit()
            logger.info(
                f"Snapshot {record.id} recorded for company '{company_id}': "
                f"current={valuation.current_value:,.0f}, potential={valuation.potential_value:,.0f}"
            )
            return record.id
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def get_snapshot(self, snapshot_id: str) -> ValuationSnapshot | None:
        session = self.Session()
        try:
            record = session.query(ValuationSnapshotRecord).filter_by(id=snapshot_id).first()
            return _to_snapshot(record) if record else None
        finally:
            session.close()

    def get_latest_snapshot(self, company_id: str) -> ValuationSnapshot | None:
        session = self.Session()
        try:
            record = (
                session.query(ValuationSnapshotRecord)
                .filter_by(company_id=company_id)
                .order_by(desc(ValuationSnapshotRecord.created_at), desc(ValuationSnapshotRecord.seq))
                .first()
            )
            return _to_snapshot(record) if record else None
        finally:
            session.close()

    def list_snapshots(self, company_id: str) -> list[ValuationSnapshot]:
        session = self.Session()
        try:
            records = (
                session.query(ValuationSnapshotRecord)
                .filter_by(company_id=company_id)
                .order_by(desc(ValuationSnapshotRecord.created_at), desc(ValuationSnapshotRecord.seq))
                .all()
            )
            return [_to_snapshot(r) for r in records]
        finally:
            session.close()

    def get_chart_data(self, company_id: str) -> list[SnapshotChartPoint]:
        snapshots = list(reversed(self.list_snapshots(company_id)))
        return [
            SnapshotChartPoint(
                date=s.created_at,
                current_value=s.current_value,
                potential_value=s.potential_value,
                value_gap=s.value_gap,
                bri_score=s.bri_score,
                bri_financial=s.bri_financial,
                bri_transferability=s.bri_transferability,
                bri_operational=s.bri_operational,
                bri_market=s.bri_market,
                bri_legal_tax=s.bri_legal_tax,
                bri_personal=s.bri_personal,
                base_multiple=s.base_multiple,
                final_multiple=s.final_multiple,
            )
            for s in snapshots
        ]

    def get_audit_log(self, snapshot_id: str) -> dict:
        session = self.Session()
        try:
            steps = session.query(SnapshotAuditEntry).filter_by(snapshot_id=snapshot_id).all()
            llm_calls = session.query(LLMCallRecord).filter_by(snapshot_id=snapshot_id).all()
            return {
                "pipeline_steps": [
                    {
                        "step_name": s.step_name,
                        "status": s.status,
                        "duration_ms": s.duration_ms,
                        "error": s.error,
                    }
                    for s in steps
                ],
                "llm_calls": [
                    {
                        "step_name": c.step_name,
                        "model": c.model,
                        "system_prompt": c.system_prompt,
                        "user_prompt": c.user_prompt,
                        "response": c.response,
                        "tokens_used": c.tokens_used,
                        "duration_ms": c.duration_ms,
                    }
                    for c in llm_calls
                ],
            }
        finally:
            session.close()


def _to_snapshot(record: ValuationSnapshotRecord) -> ValuationSnapshot:
    created_at = record.created_at
    # SQLite drops tzinfo on the way back
    if created_at is not None and created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    return ValuationSnapshot(
        id=record.id,
        company_id=record.company_id,
        created_at=created_at,
        created_by_user_id=record.created_by_user_id,
        snapshot_reason=record.snapshot_reason,
        adjusted_ebitda=record.adjusted_ebitda,
        industry_multiple_low=record.industry_multiple_low,
        industry_multiple_high=record.industry_multiple_high,
        adjustment_multiplier=record.adjustment_multiplier,
        base_multiple=record.base_multiple,
        discount_fraction=record.discount_fraction,
        final_multiple=record.final_multiple,
        alpha_constant=record.alpha_constant,
        core_score=record.core_score,
        bri_score=record.bri_score,
        bri_financial=record.bri_financial,
        bri_transferability=record.bri_transferability,
        bri_operational=record.bri_operational,
        bri_market=record.bri_market,
        bri_legal_tax=record.bri_legal_tax,
        bri_personal=record.bri_personal,
        current_value=record.current_value,
        potential_value=record.potential_value,
        value_gap=record.value_gap,
        details=json.loads(record.details_json or "{}"),
    )
