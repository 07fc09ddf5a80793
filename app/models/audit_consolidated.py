"""
AuditPulse - Unified Audit Models

This consolidated module provides the database models for the audit engine:

1. AUDIT TRAIL (read by the engine):
   - AuditLog: append-only log of user actions on accounting data

2. AUDIT ENGINE (written by the engine):
   - AuditComplianceRun: one execution of a full audit or simulation
   - ComplianceCheck: statutory rule finding (GST, TDS, income tax, ...)
   - IFCAssessment: internal financial control finding
   - AIAnomaly / RiskTheme / AISample / AINarrative: structured output of
     the audit intelligence gateway
   - AuditPackExport: log of generated auditor packs

RULES:
- Child rows are inserted only while their run is RUNNING
- A run in a terminal state (COMPLETED, FAILED) is never modified again
- `position` preserves the order in which results were produced so that
  exports of the same run are identical
"""

import uuid
import enum
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    DateTime, Enum, Float, ForeignKey, Index, Integer, Numeric,
    String, Text, Uuid, event, func, inspect,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.models.base import BaseModel, JSONType, OrganizationScopedMixin
from app.utils.error_handling import InvalidRunTransitionException


# ===========================================
# ENUMS - AUDIT ENGINE
# ===========================================

class AuditRunType(str, enum.Enum):
    """Type of audit execution."""
    FULL = "full"               # Rules + IFC + AI intelligence
    SIMULATION = "simulation"   # Deterministic checks only


class AuditRunStatus(str, enum.Enum):
    """Lifecycle state of an audit run."""
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class ComplianceModule(str, enum.Enum):
    """Statutory area a compliance check belongs to."""
    GST = "gst"
    TDS = "tds"
    INCOME_TAX = "income_tax"
    FIXED_ASSETS = "fixed_assets"
    DATA_INTEGRITY = "data_integrity"


class CheckSeverity(str, enum.Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class CheckStatus(str, enum.Enum):
    PASS = "pass"
    WARNING = "warning"
    FAIL = "fail"


class IFCCheckType(str, enum.Enum):
    """Internal financial control dimension."""
    SEGREGATION = "segregation"
    MAKER_CHECKER = "maker_checker"
    PERIOD_CONTROLS = "period_controls"
    OVERRIDE_CONTROLS = "override_controls"


class IFCRating(str, enum.Enum):
    STRONG = "Strong"
    MODERATE = "Moderate"
    WEAK = "Weak"


# ===========================================
# AUDIT TRAIL
# ===========================================

class AuditLog(Base):
    """
    Append-only log of user actions on accounting data.

    The engine reads a bounded window of the most recent entries to look
    for period unlocks and control overrides.
    """

    __tablename__ = "audit_logs"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    organization_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)

    action: Mapped[str] = mapped_column(String(100), nullable=False)
    entity_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    entity_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    actor_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    actor_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    details: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSONType, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
        index=True,
    )


# ===========================================
# AUDIT ENGINE
# ===========================================

class AuditComplianceRun(BaseModel, OrganizationScopedMixin):
    """
    One execution of the audit engine for an organization and fiscal year.

    Scores are populated only when the run completes. ai_risk_index stays
    NULL for simulation runs.
    """

    __tablename__ = "audit_compliance_runs"

    financial_year: Mapped[str] = mapped_column(String(9), nullable=False)
    run_type: Mapped[AuditRunType] = mapped_column(
        Enum(AuditRunType),
        default=AuditRunType.FULL,
        nullable=False,
    )
    status: Mapped[AuditRunStatus] = mapped_column(
        Enum(AuditRunStatus),
        default=AuditRunStatus.RUNNING,
        nullable=False,
    )

    compliance_score: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    ai_risk_index: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    ifc_rating: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    score_breakdown: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSONType, nullable=True)
    risk_breakdown: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSONType, nullable=True)

    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    # Set on entering any terminal state, FAILED included
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    run_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    __table_args__ = (
        Index("ix_audit_compliance_runs_org_fy", "organization_id", "financial_year"),
    )


@event.listens_for(AuditComplianceRun, "before_update")
def _reject_terminal_run_update(mapper, connection, target: AuditComplianceRun) -> None:
    """Completed and failed runs are frozen; mirrors the database trigger."""
    history = inspect(target).attrs.status.history
    previous = history.deleted[0] if history.deleted else target.status
    if AuditRunStatus(previous) != AuditRunStatus.RUNNING:
        raise InvalidRunTransitionException(target.id, AuditRunStatus(previous).value, "update")


class RunChildMixin(OrganizationScopedMixin):
    """Columns shared by every row a run produces."""

    run_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("audit_compliance_runs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


class ComplianceCheck(BaseModel, RunChildMixin):
    """Statutory compliance finding produced by one rule."""

    __tablename__ = "audit_compliance_checks"

    module: Mapped[ComplianceModule] = mapped_column(Enum(ComplianceModule), nullable=False)
    check_code: Mapped[str] = mapped_column(String(20), nullable=False)
    check_name: Mapped[str] = mapped_column(String(255), nullable=False)
    severity: Mapped[CheckSeverity] = mapped_column(Enum(CheckSeverity), nullable=False)
    status: Mapped[CheckStatus] = mapped_column(Enum(CheckStatus), nullable=False)

    details: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSONType, nullable=True)
    affected_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    affected_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2),
        default=Decimal("0"),
        nullable=False,
    )
    recommendation: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    data_references: Mapped[Optional[List[Any]]] = mapped_column(JSONType, nullable=True)


class IFCAssessment(BaseModel, RunChildMixin):
    """Internal financial control finding."""

    __tablename__ = "audit_ifc_assessments"

    check_type: Mapped[IFCCheckType] = mapped_column(Enum(IFCCheckType), nullable=False)
    check_code: Mapped[str] = mapped_column(String(20), nullable=False)
    check_name: Mapped[str] = mapped_column(String(255), nullable=False)
    severity: Mapped[CheckSeverity] = mapped_column(Enum(CheckSeverity), nullable=False)
    status: Mapped[CheckStatus] = mapped_column(Enum(CheckStatus), nullable=False)

    details: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSONType, nullable=True)
    affected_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    affected_user_ids: Mapped[Optional[List[str]]] = mapped_column(JSONType, nullable=True)
    recommendation: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class AIAnomaly(BaseModel, RunChildMixin):
    """Pattern anomaly reported by the intelligence gateway."""

    __tablename__ = "audit_ai_anomalies"

    anomaly_type: Mapped[str] = mapped_column(String(50), nullable=False)
    risk_score: Mapped[float] = mapped_column(Float, nullable=False)
    trigger_condition: Mapped[str] = mapped_column(Text, nullable=False)
    deviation_pct: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    current_value: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    last_year_value: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    confidence_score: Mapped[float] = mapped_column(Float, nullable=False)
    suggested_audit_action: Mapped[str] = mapped_column(Text, nullable=False)


class RiskTheme(BaseModel, RunChildMixin):
    """Cluster of related risk signals."""

    __tablename__ = "audit_risk_themes"

    theme_name: Mapped[str] = mapped_column(String(255), nullable=False)
    risk_score: Mapped[float] = mapped_column(Float, nullable=False)
    confidence_score: Mapped[float] = mapped_column(Float, nullable=False)
    impact_area: Mapped[str] = mapped_column(String(255), nullable=False)
    impacted_value: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    transaction_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    explanation: Mapped[str] = mapped_column(Text, nullable=False)
    suggested_action: Mapped[str] = mapped_column(Text, nullable=False)
    contributing_flags: Mapped[Optional[List[str]]] = mapped_column(JSONType, nullable=True)


class AISample(BaseModel, RunChildMixin):
    """Transaction proposed for substantive testing."""

    __tablename__ = "audit_ai_samples"

    sample_type: Mapped[str] = mapped_column(String(20), nullable=False)
    sample_name: Mapped[str] = mapped_column(String(255), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(100), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(100), nullable=False)
    entity_reference: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    risk_weight: Mapped[float] = mapped_column(Float, nullable=False)
    reason_selected: Mapped[str] = mapped_column(Text, nullable=False)
    amount: Mapped[Optional[float]] = mapped_column(Float, nullable=True)


class AINarrative(BaseModel, RunChildMixin):
    """Markdown narrative section for the audit file."""

    __tablename__ = "audit_ai_narratives"

    narrative_type: Mapped[str] = mapped_column(String(50), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    data_points: Mapped[Optional[List[str]]] = mapped_column(JSONType, nullable=True)
    financial_year: Mapped[str] = mapped_column(String(9), nullable=False)
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)


class AuditPackExport(BaseModel, OrganizationScopedMixin):
    """Record of one auditor pack generation."""

    __tablename__ = "audit_pack_exports"

    run_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("audit_compliance_runs.id", ondelete="SET NULL"),
        nullable=True,
    )
    financial_year: Mapped[str] = mapped_column(String(9), nullable=False)
    exported_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    export_type: Mapped[str] = mapped_column(String(20), default="json", nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="completed", nullable=False)
    sections_included: Mapped[Optional[List[str]]] = mapped_column(JSONType, nullable=True)
