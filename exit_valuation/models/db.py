from sqlalchemy import Column, String, Text, DateTime, Float, Integer, UniqueConstraint, event
from sqlalchemy.orm import declarative_base
from datetime import datetime, timezone
import uuid

Base = declarative_base()


class ImmutableSnapshotError(Exception):
    """Raised on any attempt to update or delete a stored valuation snapshot."""


class ValuationSnapshotRecord(Base):
    __tablename__ = "valuation_snapshots"

    seq = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String, unique=True, nullable=False, default=lambda: str(uuid.uuid4()))
    company_id = Column(String, nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, default=lambda: datetime.now(timezone.utc))
    created_by_user_id = Column(String, nullable=True)
    snapshot_reason = Column(String, nullable=False)

    adjusted_ebitda = Column(Float, nullable=False)
    industry_multiple_low = Column(Float, nullable=False)
    industry_multiple_high = Column(Float, nullable=False)
    adjustment_multiplier = Column(Float, nullable=False)
    base_multiple = Column(Float, nullable=False)
    discount_fraction = Column(Float, nullable=False)
    final_multiple = Column(Float, nullable=False)
    alpha_constant = Column(Float, nullable=False)

    core_score = Column(Float, nullable=False)
    bri_score = Column(Float, nullable=False)
    bri_financial = Column(Float, nullable=False)
    bri_transferability = Column(Float, nullable=False)
    bri_operational = Column(Float, nullable=False)
    bri_market = Column(Float, nullable=False)
    bri_legal_tax = Column(Float, nullable=False)
    bri_personal = Column(Float, nullable=False)

    current_value = Column(Float, nullable=False)
    potential_value = Column(Float, nullable=False)
    value_gap = Column(Float, nullable=False)

    details_json = Column(Text, nullable=False, default="{}")


@event.listens_for(ValuationSnapshotRecord, "before_update")
def _reject_snapshot_update(mapper, connection, target):
    raise ImmutableSnapshotError(f"Valuation snapshot {target.id} is immutable and cannot be updated")


@event.listens_for(ValuationSnapshotRecord, "before_delete")
def _reject_snapshot_delete(mapper, connection, target):
    raise ImmutableSnapshotError(f"Valuation snapshot {target.id} is immutable and cannot be deleted")


class SnapshotAuditEntry(Base):
    __tablename__ = "snapshot_audit_entries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    snapshot_id = Column(String, nullable=False, index=True)
    step_name = Column(String, nullable=False)
    status = Column(String, nullable=False)
    duration_ms = Column(Float, nullable=True)
    error = Column(Text, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))


class LLMCallRecord(Base):
    __tablename__ = "llm_call_records"

    id = Column(Integer, primary_key=True, autoincrement=True)
    snapshot_id = Column(String, nullable=False, index=True)
    step_name = Column(String, nullable=False)
    model = Column(String, nullable=False)
    system_prompt = Column(Text, nullable=False)
    user_prompt = Column(Text, nullable=False)
    response = Column(Text, nullable=False)
    tokens_used = Column(Integer, nullable=True)
    duration_ms = Column(Float, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))


class CompanyInputRecord(Base):
    __tablename__ = "company_inputs"

    company_id = Column(String, primary_key=True)
    organization_id = Column(String, nullable=True, index=True)
    icb_industry = Column(String, nullable=True)
    icb_super_sector = Column(String, nullable=True)
    icb_sector = Column(String, nullable=True)
    icb_sub_sector = Column(String, nullable=True)
    inputs_json = Column(Text, nullable=False)
    updated_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))


class BriWeightSetting(Base):
    __tablename__ = "bri_weight_settings"
    __table_args__ = (UniqueConstraint("scope", "scope_id", name="uq_bri_weight_scope"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    scope = Column(String, nullable=False)  # company, organization, system
    scope_id = Column(String, nullable=False)
    weights_json = Column(Text, nullable=False)
    updated_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))


class KeyValueSetting(Base):
    __tablename__ = "key_value_settings"

    key = Column(String, primary_key=True)
    value_json = Column(Text, nullable=False)
    updated_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
