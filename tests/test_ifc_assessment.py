"""
AuditPulse - Internal Financial Controls Tests

Unit tests for the IFC assessor (segregation, maker-checker, period and
override controls).
"""

from datetime import date, datetime, timezone
from uuid import uuid4

import pytest

from app.models import AccountType, CheckSeverity, CheckStatus, IFCCheckType, JournalEntryStatus
from app.services.ifc_assessment_service import (
    IFC_RULES,
    BackdatedEntryRule,
    FinalMonthConcentrationRule,
    MakerCheckerRule,
    ManualEntryRatioRule,
    OverrideActivityRule,
    run_ifc_assessment,
    summarize_assessments,
)
from fixtures import ledger_factory as lf


ORG = uuid4()
APPROVER = uuid4()


@pytest.fixture
def bank():
    return lf.gl_account(ORG, "1100", "Bank", AccountType.ASSET)


def entries(bank, count, entry_date=date(2025, 8, 1), **kwargs):
    kwargs.setdefault("approved_by", APPROVER)
    return [lf.journal_entry(ORG, entry_date, [(bank, 100, 0), (bank, 0, 100)], **kwargs) for _ in range(count)]


class TestEmptyAssessment:
    def test_every_control_passes(self):
        findings = run_ifc_assessment(lf.snapshot(ORG))

        assert [f.check_code for f in findings] == ["IFC1", "IFC2", "IFC3", "IFC4", "IFC5"]
        assert len(findings) == len(IFC_RULES)
        for finding in findings:
            assert finding.status == CheckStatus.PASS
            assert finding.affected_count == 0
            assert finding.recommendation is None
            assert finding.affected_user_ids == []

    def test_ratio_is_zero_without_entries(self):
        finding = ManualEntryRatioRule().evaluate(lf.snapshot(ORG))

        assert finding.details == {"manual_count": 0, "total": 0, "ratio_pct": "0"}


class TestManualEntryRatio:
    """IFC1 - share of manually keyed journals."""

    def test_above_thirty_percent_fails(self, bank):
        journal = entries(bank, 6, is_manual=True) + entries(bank, 4)

        finding = ManualEntryRatioRule().evaluate(lf.snapshot(ORG, journal_entries=journal))

        assert finding.check_type == IFCCheckType.SEGREGATION
        assert finding.status == CheckStatus.FAIL
        assert finding.severity == CheckSeverity.CRITICAL
        assert finding.affected_count == 6
        assert finding.details["ratio_pct"] == "60.0"
        assert finding.recommendation

    def test_between_fifteen_and_thirty_warns(self, bank):
        journal = entries(bank, 2, is_manual=True) + entries(bank, 8)

        finding = ManualEntryRatioRule().evaluate(lf.snapshot(ORG, journal_entries=journal))

        assert finding.status == CheckStatus.WARNING

    def test_exactly_thirty_percent_only_warns(self, bank):
        journal = entries(bank, 3, is_manual=True) + entries(bank, 7)

        finding = ManualEntryRatioRule().evaluate(lf.snapshot(ORG, journal_entries=journal))

        assert finding.status == CheckStatus.WARNING

    def test_low_ratio_passes(self, bank):
        journal = entries(bank, 1, is_manual=True) + entries(bank, 9)

        assert ManualEntryRatioRule().evaluate(lf.snapshot(ORG, journal_entries=journal)).status == CheckStatus.PASS

    def test_ratio_just_over_fifteen_warns_before_rounding(self, bank):
        journal = entries(bank, 20, is_manual=True) + entries(bank, 113)

        finding = ManualEntryRatioRule().evaluate(lf.snapshot(ORG, journal_entries=journal))

        assert finding.status == CheckStatus.WARNING
        assert finding.details["ratio_pct"] == "15.0"

    def test_ratio_just_over_thirty_fails(self, bank):
        journal = entries(bank, 43, is_manual=True) + entries(bank, 100)

        finding = ManualEntryRatioRule().evaluate(lf.snapshot(ORG, journal_entries=journal))

        assert finding.status == CheckStatus.FAIL
        assert finding.details["ratio_pct"] == "30.1"


class TestMakerChecker:
    """IFC2 - posted entries need an approver."""

    def test_unapproved_posted_entries_fail_with_makers(self, bank):
        maker = uuid4()
        journal = entries(bank, 2, approved_by=None, created_by=maker) + entries(bank, 3)

        finding = MakerCheckerRule().evaluate(lf.snapshot(ORG, journal_entries=journal))

        assert finding.status == CheckStatus.FAIL
        assert finding.affected_count == 2
        assert finding.affected_user_ids == [str(maker)]

    def test_drafts_are_ignored(self, bank):
        journal = entries(bank, 3, approved_by=None, status=JournalEntryStatus.DRAFT)

        assert MakerCheckerRule().evaluate(lf.snapshot(ORG, journal_entries=journal)).status == CheckStatus.PASS


class TestFinalMonthConcentration:
    """IFC3 - year-end window dressing."""

    def test_march_heavy_year_warns(self, bank):
        journal = entries(bank, 3, entry_date=date(2026, 3, 20)) + entries(bank, 7)

        finding = FinalMonthConcentrationRule().evaluate(lf.snapshot(ORG, journal_entries=journal))

        assert finding.status == CheckStatus.WARNING
        assert finding.details == {"march_count": 3, "pct": "30.0"}

    def test_quarter_exactly_passes(self, bank):
        journal = entries(bank, 1, entry_date=date(2026, 3, 31)) + entries(bank, 3)

        finding = FinalMonthConcentrationRule().evaluate(lf.snapshot(ORG, journal_entries=journal))

        assert finding.status == CheckStatus.PASS
        assert finding.details["pct"] == "25.0"

    def test_share_just_over_a_quarter_warns_before_rounding(self, bank):
        journal = entries(bank, 200, entry_date=date(2026, 3, 10)) + entries(bank, 599)

        finding = FinalMonthConcentrationRule().evaluate(lf.snapshot(ORG, journal_entries=journal))

        assert finding.status == CheckStatus.WARNING
        assert finding.details == {"march_count": 200, "pct": "25.0"}


class TestOverrideActivity:
    """IFC4 - admin overrides and period unlocks."""

    def test_more_than_five_overrides_warn(self):
        actor = uuid4()
        logs = [lf.audit_log(ORG, "PERIOD_UNLOCK", actor_id=actor) for _ in range(4)]
        logs += [lf.audit_log(ORG, "approval_override", actor_id=actor) for _ in range(2)]
        logs.append(lf.audit_log(ORG, "invoice_created", actor_id=uuid4()))

        finding = OverrideActivityRule().evaluate(lf.snapshot(ORG, audit_logs=logs))

        assert finding.status == CheckStatus.WARNING
        assert finding.affected_count == 6
        assert finding.affected_user_ids == [str(actor)]

    def test_five_overrides_pass(self):
        logs = [lf.audit_log(ORG, "period_unlock") for _ in range(5)]

        finding = OverrideActivityRule().evaluate(lf.snapshot(ORG, audit_logs=logs))

        assert finding.status == CheckStatus.PASS
        assert finding.details == {"override_count": 5}


class TestBackdatedEntries:
    """IFC5 - entries keyed long after their accounting date."""

    def test_entry_keyed_after_thirty_days_warns(self, bank):
        keyed_late = entries(
            bank, 1,
            entry_date=date(2025, 6, 1),
            created_by=APPROVER,
            created_at=datetime(2025, 7, 15, tzinfo=timezone.utc),
        )
        keyed_on_time = entries(
            bank, 1,
            entry_date=date(2025, 6, 1),
            created_at=datetime(2025, 7, 1, tzinfo=timezone.utc),
        )

        finding = BackdatedEntryRule().evaluate(lf.snapshot(ORG, journal_entries=keyed_late + keyed_on_time))

        assert finding.status == CheckStatus.WARNING
        assert finding.affected_count == 1
        assert finding.affected_user_ids == [str(APPROVER)]


class TestSummary:
    def test_summarize_assessments(self, bank):
        journal = entries(bank, 5, is_manual=True, approved_by=None)

        summary = summarize_assessments(run_ifc_assessment(lf.snapshot(ORG, journal_entries=journal)))

        assert summary == {"total": 5, "fail": 2, "warning": 0}
