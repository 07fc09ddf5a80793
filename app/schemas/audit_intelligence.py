"""
AuditPulse - Audit Intelligence Contract

Structured output the reasoning gateway must return. The same models
produce the JSON schema sent as the forced tool definition and validate
the tool-call arguments on receipt. Nothing outside this contract is
accepted: unknown fields, out-of-range scores or blank explanations fail
validation as a whole.
"""

import copy
from typing import Annotated, Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, StringConstraints

from app.services.audit_scoring import RISK_COMPONENT_CAPS


# Explanations shown to the auditor; whitespace-only text is rejected
Justification = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
Score = Annotated[float, Field(ge=0, le=100, description="0-100")]

AnomalyType = Literal[
    "revenue_clustering",
    "round_figure",
    "manual_journal_spike",
    "odd_hour_posting",
    "negative_cash",
    "vendor_concentration",
    "expense_volatility",
    "reversal_pattern",
    "year_end_spike",
    "other",
]
SampleType = Literal["high_risk", "stratified", "random"]
NarrativeType = Literal[
    "executive_summary",
    "gst_risk",
    "tds_risk",
    "revenue_pattern",
    "internal_controls",
    "suggested_procedures",
]


class ContractModel(BaseModel):
    model_config = ConfigDict(extra="forbid")


class Anomaly(ContractModel):
    """A flagged pattern with its deterministic explanation."""
    anomaly_type: AnomalyType
    risk_score: Score
    trigger_condition: Justification = Field(..., description="Why this was flagged - deterministic explanation")
    deviation_pct: Optional[float] = Field(None, description="% deviation from expected or historical")
    current_value: Optional[float] = None
    last_year_value: Optional[float] = None
    confidence_score: Score
    suggested_audit_action: Justification


class RiskThemeOut(ContractModel):
    theme_name: Justification
    risk_score: Score
    confidence_score: Score
    impact_area: Justification
    impacted_value: Optional[float] = None
    transaction_count: Optional[int] = Field(None, ge=0)
    explanation: Justification
    suggested_action: Justification
    contributing_flags: List[str] = Field(default_factory=list)


class SampleOut(ContractModel):
    sample_type: SampleType
    sample_name: Justification
    entity_type: Justification
    entity_id: Justification
    entity_reference: Optional[str] = None
    risk_weight: float = Field(..., ge=0)
    reason_selected: Justification
    amount: Optional[float] = None


class NarrativeOut(ContractModel):
    narrative_type: NarrativeType
    content: Justification = Field(..., description="Markdown narrative with Rs values and % references")
    data_points: List[str] = Field(default_factory=list)


class RiskBreakdown(ContractModel):
    """Components of the AI risk index; each bounded by its cap."""
    revenue_pattern: float = Field(..., ge=0, le=RISK_COMPONENT_CAPS["revenue_pattern"])
    cash_manipulation: float = Field(..., ge=0, le=RISK_COMPONENT_CAPS["cash_manipulation"])
    gst: float = Field(..., ge=0, le=RISK_COMPONENT_CAPS["gst"])
    tds: float = Field(..., ge=0, le=RISK_COMPONENT_CAPS["tds"])
    journal: float = Field(..., ge=0, le=RISK_COMPONENT_CAPS["journal"])
    control_override: float = Field(..., ge=0, le=RISK_COMPONENT_CAPS["control_override"])
    vendor_concentration: float = Field(..., ge=0, le=RISK_COMPONENT_CAPS["vendor_concentration"])


class AuditIntelligence(ContractModel):
    """Complete gateway answer for one run."""
    anomalies: List[Anomaly]
    risk_themes: List[RiskThemeOut]
    samples: List[SampleOut]
    narratives: List[NarrativeOut]
    risk_breakdown: RiskBreakdown


def _inline_refs(node: Any, defs: Dict[str, Any]) -> Any:
    if isinstance(node, dict):
        ref = node.get("$ref")
        if ref is not None:
            return _inline_refs(copy.deepcopy(defs[ref.rsplit("/", 1)[-1]]), defs)
        return {key: _inline_refs(value, defs) for key, value in node.items()}
    if isinstance(node, list):
        return [_inline_refs(item, defs) for item in node]
    return node


def tool_parameters_schema() -> Dict[str, Any]:
    """
    JSON schema of AuditIntelligence with all $refs inlined.

    Function-calling endpoints do not reliably resolve $defs.
    """
    schema = AuditIntelligence.model_json_schema()
    defs = schema.pop("$defs", {})
    return _inline_refs(schema, defs)
