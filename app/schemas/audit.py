"""
AuditPulse - Audit Engine Schemas

Pydantic schemas for audit engine request/response validation.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.models import (
    AuditRunStatus,
    AuditRunType,
    CheckSeverity,
    CheckStatus,
    ComplianceModule,
    IFCCheckType,
)


# =============================================================================
# REQUEST
# =============================================================================

class AuditAction(str, Enum):
    """Operations exposed by the audit engine endpoint."""
    RUN_FULL_AUDIT = "run_full_audit"
    PRE_AUDIT_SIMULATION = "pre_audit_simulation"
    GENERATE_AUDITOR_PACK = "generate_auditor_pack"


class AuditEngineRequest(BaseModel):
    """Single-dispatch request; ``action`` selects the operation."""
    action: AuditAction
    financial_year: Optional[str] = Field(
        None,
        description="Fiscal year label such as 2025-26; defaults to the run's year, else the current fiscal year",
        examples=["2025-26"],
    )
    run_id: Optional[UUID] = Field(None, description="Completed run to export (auditor pack only)")

    @field_validator('financial_year')
    @classmethod
    def blank_financial_year_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        return v.strip()


# =============================================================================
# RESPONSES
# =============================================================================

class ActionResponse(BaseModel):
    """Exact shape per action; the POST response is a union of these."""
    model_config = ConfigDict(extra="forbid")


class FullAuditResponse(ActionResponse):
    success: bool = True
    run_id: UUID
    compliance_score: int
    ai_risk_index: Optional[int] = None
    ifc_rating: str


class SimulationResponse(ActionResponse):
    success: bool = True
    run_id: UUID
    run_type: str = "simulation"
    compliance_score: int
    ifc_rating: str
    checks_count: int
    ifc_count: int


class AuditorPackResponse(ActionResponse):
    metadata: Dict[str, Any]
    sections: Dict[str, Any]


# =============================================================================
# RUN READS
# =============================================================================

class AuditRunSummary(BaseModel):
    """Audit run without its child rows."""
    id: UUID
    organization_id: UUID
    financial_year: str
    run_type: AuditRunType
    status: AuditRunStatus
    compliance_score: Optional[int] = None
    ai_risk_index: Optional[int] = None
    ifc_rating: Optional[str] = None
    score_breakdown: Optional[Dict[str, Any]] = None
    risk_breakdown: Optional[Dict[str, Any]] = None
    started_at: datetime
    completed_at: Optional[datetime] = None
    run_by: Optional[UUID] = None
    version: int

    model_config = ConfigDict(from_attributes=True)


class AuditRunListResponse(BaseModel):
    runs: List[AuditRunSummary]
    total: int


class ComplianceCheckResponse(BaseModel):
    id: UUID
    module: ComplianceModule
    check_code: str
    check_name: str
    severity: CheckSeverity
    status: CheckStatus
    details: Optional[Dict[str, Any]] = None
    affected_count: int
    affected_amount: Decimal
    recommendation: Optional[str] = None
    data_references: Optional[List[Any]] = None

    model_config = ConfigDict(from_attributes=True)


class IFCAssessmentResponse(BaseModel):
    id: UUID
    check_type: IFCCheckType
    check_code: str
    check_name: str
    severity: CheckSeverity
    status: CheckStatus
    details: Optional[Dict[str, Any]] = None
    affected_count: int
    affected_user_ids: Optional[List[str]] = None
    recommendation: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class AIAnomalyResponse(BaseModel):
    id: UUID
    anomaly_type: str
    risk_score: float
    trigger_condition: str
    deviation_pct: Optional[float] = None
    current_value: Optional[float] = None
    last_year_value: Optional[float] = None
    confidence_score: float
    suggested_audit_action: str

    model_config = ConfigDict(from_attributes=True)


class RiskThemeResponse(BaseModel):
    id: UUID
    theme_name: str
    risk_score: float
    confidence_score: float
    impact_area: str
    impacted_value: Optional[float] = None
    transaction_count: Optional[int] = None
    explanation: str
    suggested_action: str
    contributing_flags: Optional[List[str]] = None

    model_config = ConfigDict(from_attributes=True)


class AISampleResponse(BaseModel):
    id: UUID
    sample_type: str
    sample_name: str
    entity_type: str
    entity_id: str
    entity_reference: Optional[str] = None
    risk_weight: float
    reason_selected: str
    amount: Optional[float] = None

    model_config = ConfigDict(from_attributes=True)


class AINarrativeResponse(BaseModel):
    id: UUID
    narrative_type: str
    content: str
    data_points: Optional[List[str]] = None

    model_config = ConfigDict(from_attributes=True)


class AuditRunDetailResponse(BaseModel):
    """Audit run with everything it produced, in production order."""
    run: AuditRunSummary
    checks: List[ComplianceCheckResponse] = []
    ifc_assessments: List[IFCAssessmentResponse] = []
    anomalies: List[AIAnomalyResponse] = []
    risk_themes: List[RiskThemeResponse] = []
    samples: List[AISampleResponse] = []
    narratives: List[AINarrativeResponse] = []
