"""
AuditPulse - Score & Rating Compiler

Pure functions turning rule results into the three headline numbers of a
run: compliance score (0-100), AI risk index (0-100) and IFC rating.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Mapping, Optional, Sequence

from app.models import CheckStatus, ComplianceModule, IFCRating
from app.services.compliance_rules import ComplianceFinding
from app.services.ifc_assessment_service import IFCFinding


IFC_SCORE_KEY = "ifc"

# Points per area; they sum to 100. Fixed-asset findings are reported but
# carry no allocation.
DEFAULT_SCORE_ALLOCATIONS: Dict[str, int] = {
    ComplianceModule.GST.value: 25,
    ComplianceModule.TDS.value: 20,
    ComplianceModule.INCOME_TAX.value: 20,
    IFC_SCORE_KEY: 20,
    ComplianceModule.DATA_INTEGRITY.value: 15,
}

# Upper bound of each AI risk component
RISK_COMPONENT_CAPS: Dict[str, int] = {
    "revenue_pattern": 20,
    "cash_manipulation": 15,
    "gst": 15,
    "tds": 15,
    "journal": 15,
    "control_override": 10,
    "vendor_concentration": 10,
}

MAX_RISK_INDEX = 100

# IFC rating thresholds
WEAK_FAIL_COUNT = 2
MODERATE_FAIL_COUNT = 1
MODERATE_WARNING_COUNT = 3


def _round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def _area_score(statuses: Sequence[CheckStatus], allocation: int) -> int:
    # No checks in an area means nothing failed there
    if not statuses:
        return allocation
    passed = sum(1 for status in statuses if status == CheckStatus.PASS)
    return _round_half_up(Decimal(passed) / Decimal(len(statuses)) * allocation)


def score_breakdown(
    findings: Sequence[ComplianceFinding],
    assessments: Sequence[IFCFinding],
    allocations: Optional[Mapping[str, int]] = None,
) -> Dict[str, int]:
    """Per-area sub-scores keyed by module name plus "ifc"."""
    allocations = allocations or DEFAULT_SCORE_ALLOCATIONS
    breakdown = {}
    for area, allocation in allocations.items():
        if area == IFC_SCORE_KEY:
            statuses = [a.status for a in assessments]
        else:
            statuses = [f.status for f in findings if f.module == area]
        breakdown[area] = _area_score(statuses, allocation)
    return breakdown


def compute_compliance_score(
    findings: Sequence[ComplianceFinding],
    assessments: Sequence[IFCFinding],
    allocations: Optional[Mapping[str, int]] = None,
) -> int:
    return sum(score_breakdown(findings, assessments, allocations).values())


def compute_ai_risk_index(
    risk_breakdown: Mapping[str, float],
    caps: Optional[Mapping[str, int]] = None,
) -> int:
    """
    Sum of the risk components, each clamped to [0, cap], capped at 100.

    Components missing from ``risk_breakdown`` count as zero.
    """
    caps = caps or RISK_COMPONENT_CAPS
    total = Decimal('0')
    for component, cap in caps.items():
        value = Decimal(str(risk_breakdown.get(component, 0) or 0))
        total += min(max(value, Decimal('0')), Decimal(cap))
    return min(_round_half_up(total), MAX_RISK_INDEX)


def compute_ifc_rating(assessments: Sequence[IFCFinding]) -> IFCRating:
    fails = sum(1 for a in assessments if a.status == CheckStatus.FAIL)
    warnings = sum(1 for a in assessments if a.status == CheckStatus.WARNING)
    return rate_ifc(fails, warnings)


def rate_ifc(fail_count: int, warning_count: int) -> IFCRating:
    if fail_count >= WEAK_FAIL_COUNT:
        return IFCRating.WEAK
    if fail_count >= MODERATE_FAIL_COUNT or warning_count >= MODERATE_WARNING_COUNT:
        return IFCRating.MODERATE
    return IFCRating.STRONG
