"""
AuditPulse - Internal Financial Controls Assessment

Control-weakness checks over the journal and audit trail, reported under
Companies Act 2013 Section 143(3)(i):

- IFC1 segregation: share of manually keyed journal entries
- IFC2 maker_checker: posted entries with no approver
- IFC3 period_controls: concentration of entries in the final month
- IFC4 override_controls: override / unlock actions in the audit trail
- IFC5 period_controls: entries keyed more than 30 days after their date
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Optional

from app.models import CheckSeverity, CheckStatus, IFCCheckType, JournalEntryStatus
from app.services.audit_snapshot_service import FiscalSnapshot


MANUAL_RATIO_FAIL_PCT = Decimal('30')
MANUAL_RATIO_WARN_PCT = Decimal('15')
FINAL_MONTH_WARN_PCT = Decimal('25')
OVERRIDE_WARN_COUNT = 5
OVERRIDE_KEYWORDS = ("override", "unlock")
BACKDATING_DAYS = 30


def _pct(part: int, whole: int) -> Decimal:
    """Unrounded percentage; thresholds are compared against this value."""
    if whole == 0:
        return Decimal('0')
    return Decimal(part) * 100 / Decimal(whole)


def _pct_label(value: Decimal) -> str:
    if value == 0:
        return "0"
    return str(value.quantize(Decimal('0.1'), rounding=ROUND_HALF_UP))


def _as_date(value: Any) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    return value


def _user_ids(entries, attr: str = "created_by") -> List[str]:
    seen = []
    for entry in entries:
        user_id = getattr(entry, attr, None)
        if user_id is not None and str(user_id) not in seen:
            seen.append(str(user_id))
    return seen


@dataclass
class IFCFinding:
    """Outcome of one internal-control check."""
    check_type: IFCCheckType
    check_code: str
    check_name: str
    severity: CheckSeverity
    status: CheckStatus
    affected_count: int = 0
    recommendation: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)
    affected_user_ids: List[str] = field(default_factory=list)


class IFCRule:
    """Base class for internal financial control checks."""
    code: str = ""
    check_type: IFCCheckType
    name: str = ""
    recommendation: Optional[str] = None

    def evaluate(self, snapshot: FiscalSnapshot) -> IFCFinding:
        raise NotImplementedError

    def finding(self, status: CheckStatus, severity: CheckSeverity, affected_count: int, **extra) -> IFCFinding:
        return IFCFinding(
            check_type=self.check_type,
            check_code=self.code,
            check_name=self.name,
            severity=severity,
            status=status,
            affected_count=affected_count,
            recommendation=self.recommendation if status != CheckStatus.PASS else None,
            **extra,
        )


class ManualEntryRatioRule(IFCRule):
    code = "IFC1"
    check_type = IFCCheckType.SEGREGATION
    name = "Manual Journal Entry Ratio"
    recommendation = "Reduce manual journal entries. Automate posting from source documents."

    def evaluate(self, snapshot):
        entries = snapshot.journal_entries
        manual = [e for e in entries if e.is_manual]
        ratio = _pct(len(manual), len(entries))
        details = {"manual_count": len(manual), "total": len(entries), "ratio_pct": _pct_label(ratio)}

        if ratio > MANUAL_RATIO_FAIL_PCT:
            return self.finding(CheckStatus.FAIL, CheckSeverity.CRITICAL, len(manual), details=details)
        if ratio > MANUAL_RATIO_WARN_PCT:
            return self.finding(CheckStatus.WARNING, CheckSeverity.WARNING, len(manual), details=details)
        return self.finding(CheckStatus.PASS, CheckSeverity.INFO, len(manual), details=details)


class MakerCheckerRule(IFCRule):
    code = "IFC2"
    check_type = IFCCheckType.MAKER_CHECKER
    name = "Posted Entries Without Approval"
    recommendation = "Enforce maker-checker. No journal entry should post without approval."

    def evaluate(self, snapshot):
        unapproved = [
            e for e in snapshot.journal_entries
            if e.status == JournalEntryStatus.POSTED and not e.approved_by
        ]
        details = {"unapproved_count": len(unapproved)}
        if not unapproved:
            return self.finding(CheckStatus.PASS, CheckSeverity.INFO, 0, details=details)
        return self.finding(
            CheckStatus.FAIL,
            CheckSeverity.CRITICAL,
            len(unapproved),
            details=details,
            affected_user_ids=_user_ids(unapproved),
        )


class FinalMonthConcentrationRule(IFCRule):
    code = "IFC3"
    check_type = IFCCheckType.PERIOD_CONTROLS
    name = "March Entry Concentration"
    recommendation = "High concentration of year-end entries suggests window dressing risk."

    def evaluate(self, snapshot):
        final_month = snapshot.window.final_month
        entries = snapshot.journal_entries
        year_end = [e for e in entries if _as_date(e.entry_date).month == final_month]
        pct = _pct(len(year_end), len(entries))
        details = {"march_count": len(year_end), "pct": _pct_label(pct)}
        if pct > FINAL_MONTH_WARN_PCT:
            return self.finding(CheckStatus.WARNING, CheckSeverity.WARNING, len(year_end), details=details)
        return self.finding(CheckStatus.PASS, CheckSeverity.INFO, len(year_end), details=details)


class OverrideActivityRule(IFCRule):
    code = "IFC4"
    check_type = IFCCheckType.OVERRIDE_CONTROLS
    name = "Admin Override Activity"
    recommendation = "Review all admin overrides for justification."

    def evaluate(self, snapshot):
        overrides = [
            log for log in snapshot.audit_logs
            if any(keyword in (log.action or "").lower() for keyword in OVERRIDE_KEYWORDS)
        ]
        details = {"override_count": len(overrides)}
        if len(overrides) > OVERRIDE_WARN_COUNT:
            return self.finding(
                CheckStatus.WARNING,
                CheckSeverity.WARNING,
                len(overrides),
                details=details,
                affected_user_ids=_user_ids(overrides, "actor_id"),
            )
        return self.finding(CheckStatus.PASS, CheckSeverity.INFO, len(overrides), details=details)


class BackdatedEntryRule(IFCRule):
    code = "IFC5"
    check_type = IFCCheckType.PERIOD_CONTROLS
    name = "Backdated Journal Entries (>30 days)"
    recommendation = "Investigate backdated entries for potential manipulation."

    def evaluate(self, snapshot):
        backdated = []
        for entry in snapshot.journal_entries:
            keyed_on = _as_date(entry.created_at)
            if keyed_on is None or entry.entry_date is None:
                continue
            if (keyed_on - _as_date(entry.entry_date)).days > BACKDATING_DAYS:
                backdated.append(entry)

        details = {"backdated_count": len(backdated)}
        if not backdated:
            return self.finding(CheckStatus.PASS, CheckSeverity.INFO, 0, details=details)
        return self.finding(
            CheckStatus.WARNING,
            CheckSeverity.WARNING,
            len(backdated),
            details=details,
            affected_user_ids=_user_ids(backdated),
        )


IFC_RULES: List[IFCRule] = [
    ManualEntryRatioRule(),
    MakerCheckerRule(),
    FinalMonthConcentrationRule(),
    OverrideActivityRule(),
    BackdatedEntryRule(),
]


def run_ifc_assessment(
    snapshot: FiscalSnapshot,
    rules: Optional[Iterable[IFCRule]] = None,
) -> List[IFCFinding]:
    """Evaluate every IFC rule in registry order."""
    return [rule.evaluate(snapshot) for rule in (IFC_RULES if rules is None else rules)]


def summarize_assessments(findings: List[IFCFinding]) -> Dict[str, int]:
    return {
        "total": len(findings),
        "fail": sum(1 for f in findings if f.status == CheckStatus.FAIL),
        "warning": sum(1 for f in findings if f.status == CheckStatus.WARNING),
    }
